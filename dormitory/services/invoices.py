# dormitory/services/invoices.py
"""Utility invoices: one per room per calendar month."""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Exists, OuterRef, Q
from django.db.models.functions import TruncMonth
from django.utils import timezone

from dormitory.exceptions import Conflict, InvalidState, NotFound, ValidationError
from dormitory.models import Contract, Invoice
from dormitory.services import activity
from dormitory.services.occupancy import lock_room
from dormitory.states import ContractStatus, InvoiceStatus, ensure_transition

logger = logging.getLogger(__name__)

# Largest value a DECIMAL(10,2) column holds.
MAX_AMOUNT = Decimal("99999999.99")
CENTS = Decimal("0.01")


def normalize_month(value) -> date:
    """First day of the month given as a date, ``YYYY-MM`` or ``YYYY-MM-DD``."""
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.replace(day=1)
    text = str(value or "").strip()
    for fmt in ("%Y-%m", "%Y-%m-%d"):
        try:
            return datetime.strptime(text, fmt).date().replace(day=1)
        except ValueError:
            continue
    raise ValidationError({"invoice_month": [f"'{value}' is not a month (expected YYYY-MM)."]})


def calculate_amounts(room_fee, electricity_units: int, water_units: int, service_fee=None) -> dict:
    if electricity_units < 0 or water_units < 0:
        raise ValidationError({"units": ["Meter readings must not be negative."]})
    service_fee = settings.DEFAULT_SERVICE_FEE if service_fee is None else Decimal(service_fee)
    if service_fee < 0:
        raise ValidationError({"service_fee": ["Must not be negative."]})

    amounts = {
        "room_fee": Decimal(room_fee),
        "electric_fee": electricity_units * settings.ELECTRICITY_UNIT_PRICE,
        "water_fee": water_units * settings.WATER_UNIT_PRICE,
        "service_fee": service_fee,
    }
    amounts = {name: value.quantize(CENTS) for name, value in amounts.items()}
    amounts["total_amount"] = sum(amounts.values(), Decimal("0.00"))

    too_large = {name: [f"Amount exceeds {MAX_AMOUNT}."] for name, value in amounts.items() if value > MAX_AMOUNT}
    if too_large:
        raise ValidationError(too_large)
    return amounts


def lock_invoice(invoice_id) -> Invoice:
    try:
        return Invoice.objects.select_for_update().get(pk=invoice_id)
    except Invoice.DoesNotExist:
        raise NotFound("Invoice not found.", code="invoice")


def invoice_number(room, month: date) -> str:
    number = f"INV-{room.building_id}{room.room_number}-{month:%Y%m}"
    # building 1 room "12" and building 11 room "2" share a prefix
    if Invoice.objects.filter(invoice_number=number).exists():
        number = f"{number}-{room.pk}"
    return number


def create_invoice(*, room_id, invoice_month, electricity_units: int = 0, water_units: int = 0,
                   due_date: date | None = None, service_fee=None, actor=None, request=None) -> Invoice:
    month = normalize_month(invoice_month)
    if due_date is None:
        due_date = month + timedelta(days=settings.INVOICE_DUE_DAYS - 1)
    if due_date < month:
        raise ValidationError({"due_date": ["Due date cannot precede the billed month."]})

    with transaction.atomic():
        room = lock_room(room_id)
        if Invoice.objects.filter(room_id=room.pk, invoice_month=month).exists():
            raise Conflict(
                f"Room {room.room_number} already has an invoice for {month:%Y-%m}.",
                code="duplicate_invoice",
            )
        amounts = calculate_amounts(room.price_per_month, electricity_units, water_units, service_fee)
        invoice = Invoice.objects.create(
            invoice_number=invoice_number(room, month),
            room=room,
            invoice_month=month,
            due_date=due_date,
            electricity_units=electricity_units,
            water_units=water_units,
            payment_status=InvoiceStatus.PENDING,
            **amounts,
        )
        activity.record(
            actor, "create", "invoice", invoice.pk,
            f"Created invoice {invoice.invoice_number} for room {room.room_number}, {room.building}", request,
        )
    return invoice


def update_invoice(invoice_id, *, actor=None, request=None, **changes) -> Invoice:
    """Edit readings, service fee, due date or payment method and recompute the total."""
    allowed = {"electricity_units", "water_units", "service_fee", "due_date", "payment_method"}
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError({name: ["This field cannot be changed."] for name in sorted(unknown)})

    with transaction.atomic():
        invoice = lock_invoice(invoice_id)
        touches_amounts = bool({"electricity_units", "water_units", "service_fee"} & set(changes))
        if touches_amounts and invoice.payment_status == InvoiceStatus.PAID:
            raise InvalidState("A paid invoice's amounts cannot be changed.", code="invoice_paid")

        for name, value in changes.items():
            setattr(invoice, name, value)
        if invoice.due_date < invoice.invoice_month:
            raise ValidationError({"due_date": ["Due date cannot precede the billed month."]})
        if touches_amounts:
            amounts = calculate_amounts(
                invoice.room_fee, invoice.electricity_units, invoice.water_units, invoice.service_fee,
            )
            for name, value in amounts.items():
                setattr(invoice, name, value)
        invoice.save()
        activity.record(actor, "update", "invoice", invoice.pk, f"Updated invoice {invoice.invoice_number}", request)
    return invoice


def update_invoice_status(invoice_id, status: str, payment_method: str | None = None,
                          actor=None, request=None) -> Invoice:
    if status not in InvoiceStatus.values:
        raise ValidationError({"status": [f"'{status}' is not a valid invoice status."]})

    with transaction.atomic():
        invoice = lock_invoice(invoice_id)
        previous = invoice.payment_status
        ensure_transition(InvoiceStatus, previous, status, "invoice")
        past_due = invoice.due_date < timezone.localdate()
        if status == InvoiceStatus.OVERDUE and previous != InvoiceStatus.OVERDUE and not past_due:
            raise InvalidState(
                f"Invoice {invoice.invoice_number} is not due until {invoice.due_date:%Y-%m-%d}.",
                code="invoice_not_due",
            )
        if previous == InvoiceStatus.OVERDUE and status == InvoiceStatus.PENDING and past_due:
            raise InvalidState(
                f"Invoice {invoice.invoice_number} is past its due date; extend the due date first.",
                code="invoice_past_due",
            )
        invoice.payment_status = status
        if status == InvoiceStatus.PAID:
            if previous != InvoiceStatus.PAID or invoice.payment_date is None:
                invoice.payment_date = timezone.now()
            if payment_method:
                invoice.payment_method = payment_method
        elif previous == InvoiceStatus.PAID:
            invoice.payment_date = None
            invoice.payment_method = ""
            invoice.payment_submitted_at = None
        invoice.save(update_fields=["payment_status", "payment_date", "payment_method", "payment_submitted_at"])
        activity.record(
            actor, "update_status", "invoice", invoice.pk,
            f"Invoice {invoice.invoice_number}: {previous} -> {status}", request,
        )
    return invoice


def submit_payment(invoice_id, student, payment_method: str, actor=None, request=None) -> Invoice:
    """
    Record that a billed student has paid by ``payment_method``.

    The invoice stays pending or overdue until an admin confirms the payment
    through ``update_invoice_status``.
    """
    payment_method = (payment_method or "").strip()
    if not payment_method:
        raise ValidationError({"payment_method": ["This field is required."]})

    with transaction.atomic():
        invoice = lock_invoice(invoice_id)
        if not visible_to_student(Invoice.objects.filter(pk=invoice.pk), student).exists():
            raise NotFound("Invoice not found.", code="invoice")
        if invoice.payment_status == InvoiceStatus.PAID:
            raise InvalidState(f"Invoice {invoice.invoice_number} is already paid.", code="invoice_paid")
        invoice.payment_method = payment_method
        invoice.payment_submitted_at = timezone.now()
        invoice.save(update_fields=["payment_method", "payment_submitted_at"])
        activity.record(
            actor, "submit_payment", "invoice", invoice.pk,
            f"{student.full_name} submitted payment of {invoice.invoice_number} by {payment_method}", request,
        )
    logger.info("Payment submitted for invoice %s", invoice.invoice_number)
    return invoice


def delete_invoice(invoice_id, actor=None, request=None) -> None:
    with transaction.atomic():
        invoice = lock_invoice(invoice_id)
        number = invoice.invoice_number
        invoice.delete()
        activity.record(actor, "delete", "invoice", invoice_id, f"Deleted invoice {number}", request)


def covering_month(contracts, month):
    """
    Narrow ``contracts`` to those that covered the billed ``month``.

    ``month`` is the first day of a month, or an ``OuterRef`` to one. A contract
    terminated before the month started does not count, whatever its nominal
    end date.
    """
    return (
        contracts.annotate(start_month=TruncMonth("start_date"))
        .filter(start_month__lte=month, end_date__gte=month)
        .filter(
            ~Q(status=ContractStatus.TERMINATED)
            | Q(terminated_at__isnull=True)
            | Q(terminated_at__date__gte=month)
        )
    )


def visible_to_student(invoices, student):
    """Invoices of rooms ``student`` lived in during the billed month."""
    held = covering_month(
        Contract.objects.filter(student_id=student.pk, room_id=OuterRef("room_id")),
        OuterRef("invoice_month"),
    )
    return invoices.filter(Exists(held))


def billed_occupants(invoice: Invoice) -> list[dict]:
    """Students whose contract on the invoice's room covered the billed month."""
    contracts = (
        covering_month(Contract.objects.filter(room_id=invoice.room_id), invoice.invoice_month)
        .select_related("student")
        .order_by("student_id", "pk")
    )
    recipients, seen = [], set()
    for contract in contracts:
        if contract.student_id in seen:
            continue
        seen.add(contract.student_id)
        recipients.append({
            "student_id": contract.student_id,
            "email": contract.student.email,
            "name": contract.student.full_name,
        })
    return recipients
