# dormitory/services/expiration.py
"""
Daily status updates.

``expire_contracts`` and ``expire_invoices`` each flip their rows in one
transaction and return what changed. The ``run_*`` wrappers send the notices
after that transaction has committed and turn failures into a report instead
of an exception, so one job failing never stops the other.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from dormitory.models import Contract, Invoice
from dormitory.services import activity, notifications
from dormitory.services.invoices import billed_occupants
from dormitory.services.occupancy import lock_rooms, recompute_occupancy
from dormitory.states import ContractStatus, InvoiceStatus

logger = logging.getLogger(__name__)


@dataclass
class ExpirationReport:
    job: str
    transitioned: int = 0
    notified: int = 0
    failed_recipients: list = field(default_factory=list)
    error: Optional[str] = None
    items: list = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_dict(self) -> dict:
        data = asdict(self)
        data["ok"] = self.ok
        return data


def expire_contracts(today: date) -> list[dict]:
    """Expire every active contract that ended before ``today`` and re-derive their rooms."""
    with transaction.atomic():
        contracts = list(
            Contract.objects.select_for_update()
            .filter(status=ContractStatus.ACTIVE, end_date__lt=today)
            .order_by("pk")
        )
        if not contracts:
            return []
        ids = [c.pk for c in contracts]
        rooms = lock_rooms(c.room_id for c in contracts)

        Contract.objects.filter(pk__in=ids).update(status=ContractStatus.EXPIRED, updated_at=timezone.now())
        for room in rooms.values():
            recompute_occupancy(room)

        items = list(
            Contract.objects.filter(pk__in=ids).order_by("pk").values(
                "id", "contract_number", "end_date",
                "student_id", "student__full_name", "student__student_code", "student__email",
                "room_id", "room__room_number", "room__building__name",
            )
        )
        for item in items:
            activity.record(
                None, "auto_expire", "contract", item["id"],
                f"Contract {item['contract_number']} expired on {item['end_date']:%Y-%m-%d}",
            )
    logger.info("Expired %d contract(s) across %d room(s)", len(items), len(rooms))
    return items


def expire_invoices(today: date) -> list[dict]:
    """Mark pending invoices past their due date as overdue, with the students billed for each."""
    with transaction.atomic():
        invoices = list(
            Invoice.objects.select_for_update()
            .filter(payment_status=InvoiceStatus.PENDING, due_date__lt=today)
            .order_by("pk")
        )
        if not invoices:
            return []
        Invoice.objects.filter(pk__in=[i.pk for i in invoices]).update(payment_status=InvoiceStatus.OVERDUE)

        items = []
        for invoice in invoices:
            room = invoice.room
            items.append({
                "id": invoice.pk,
                "invoice_number": invoice.invoice_number,
                "invoice_month": invoice.invoice_month,
                "due_date": invoice.due_date,
                "total_amount": invoice.total_amount,
                "room_id": room.pk,
                "room_number": room.room_number,
                "building_name": room.building.name,
                "recipients": billed_occupants(invoice),
            })
            activity.record(
                None, "auto_overdue", "invoice", invoice.pk,
                f"Invoice {invoice.invoice_number} overdue since {invoice.due_date:%Y-%m-%d}",
            )
    logger.info("Marked %d invoice(s) overdue", len(items))
    return items


def _notify(report: ExpirationReport, recipient: dict, subject: str, template: str, context: dict) -> None:
    if notifications.send_template(recipient, subject, template, context):
        report.notified += 1
    else:
        report.failed_recipients.append(recipient.get("email") or recipient.get("name"))


def run_contract_expiration(today: date) -> ExpirationReport:
    report = ExpirationReport(job="contracts")
    try:
        items = expire_contracts(today)
    except DatabaseError as exc:
        logger.exception("Contract expiration failed")
        report.error = str(exc)
        return report

    report.transitioned = len(items)
    report.items = [item["contract_number"] for item in items]
    for item in items:
        recipient = {"email": item["student__email"], "name": item["student__full_name"]}
        _notify(report, recipient, f"Your dormitory contract {item['contract_number']} has expired",
                "contract_expired", {"contract": item})
    return report


def run_invoice_expiration(today: date) -> ExpirationReport:
    report = ExpirationReport(job="invoices")
    try:
        items = expire_invoices(today)
    except DatabaseError as exc:
        logger.exception("Invoice expiration failed")
        report.error = str(exc)
        return report

    report.transitioned = len(items)
    report.items = [item["invoice_number"] for item in items]
    for item in items:
        if not item["recipients"]:
            logger.warning("Overdue invoice %s has no billed occupants to notify", item["invoice_number"])
        for recipient in item["recipients"]:
            _notify(report, recipient, f"Invoice {item['invoice_number']} is overdue",
                    "invoice_overdue", {"invoice": item})
    return report


def run_status_updates(today: Optional[date] = None) -> dict[str, ExpirationReport]:
    """Contract expiration, then invoice expiration. Neither aborts the other."""
    today = today or timezone.localdate()
    logger.info("Running status updates for %s", today)
    reports = {
        "contracts": run_contract_expiration(today),
        "invoices": run_invoice_expiration(today),
    }
    for report in reports.values():
        logger.info(
            "%s: %d transitioned, %d notified, %d failed%s",
            report.job, report.transitioned, report.notified, len(report.failed_recipients),
            f" (error: {report.error})" if report.error else "",
        )
    return reports
