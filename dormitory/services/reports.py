# dormitory/services/reports.py
"""Read-only figures for the admin dashboard."""
from __future__ import annotations

from datetime import date
from decimal import Decimal

from django.db.models import Count, Q, Sum
from django.db.models.functions import ExtractMonth, ExtractYear

from dormitory.models import Contract, Invoice, Room
from dormitory.services.invoices import covering_month, normalize_month
from dormitory.states import ContractStatus, InvoiceStatus, RoomStatus

ZERO = Decimal("0.00")


def _revenue_by(queryset, period):
    """Billed and collected totals keyed by the ``period`` expression's value."""
    rows = queryset.annotate(period=period).order_by().values("period").annotate(
        billed=Sum("total_amount"),
        collected=Sum("total_amount", filter=Q(payment_status=InvoiceStatus.PAID)),
    )
    return {row["period"]: row for row in rows}


def invoice_stats(month=None) -> dict:
    invoices = Invoice.objects.all()
    if month:
        month = normalize_month(month)
        invoices = invoices.filter(invoice_month=month)
    rows = {
        row["payment_status"]: row
        for row in invoices.order_by().values("payment_status").annotate(count=Count("id"), total=Sum("total_amount"))
    }
    by_status = {}
    for status in InvoiceStatus.values:
        row = rows.get(status, {})
        by_status[status] = {"count": row.get("count", 0), "total_amount": row.get("total") or ZERO}
    return {
        "month": f"{month:%Y-%m}" if month else None,
        "count": sum(item["count"] for item in by_status.values()),
        "total_amount": sum((item["total_amount"] for item in by_status.values()), ZERO),
        "by_status": by_status,
        "awaiting_confirmation": invoices.exclude(payment_status=InvoiceStatus.PAID)
        .filter(payment_submitted_at__isnull=False).count(),
    }


def monthly_stats(year: int) -> list[dict]:
    """Revenue and number of housed students for each month of ``year``."""
    revenue = _revenue_by(Invoice.objects.filter(invoice_month__year=year), ExtractMonth("invoice_month"))
    months = []
    for number in range(1, 13):
        row = revenue.get(number, {})
        housed = covering_month(Contract.objects.all(), date(year, number, 1))
        months.append({
            "month": number,
            "revenue": row.get("billed") or ZERO,
            "collected": row.get("collected") or ZERO,
            "students": housed.values("student_id").distinct().count(),
        })
    return months


def yearly_stats(current_year: int, years: int = 5) -> list[dict]:
    """Revenue and number of housed students for the last ``years`` years."""
    first_year = current_year - years + 1
    revenue = _revenue_by(
        Invoice.objects.filter(invoice_month__year__gte=first_year, invoice_month__year__lte=current_year),
        ExtractYear("invoice_month"),
    )
    result = []
    for year in range(first_year, current_year + 1):
        row = revenue.get(year, {})
        start, end = date(year, 1, 1), date(year, 12, 31)
        housed = Contract.objects.filter(start_date__lte=end, end_date__gte=start).filter(
            ~Q(status=ContractStatus.TERMINATED) | Q(terminated_at__isnull=True) | Q(terminated_at__date__gte=start)
        )
        result.append({
            "year": year,
            "revenue": row.get("billed") or ZERO,
            "collected": row.get("collected") or ZERO,
            "students": housed.values("student_id").distinct().count(),
        })
    return result


def occupancy_stats() -> dict:
    """Occupied versus free beds over rooms that are not under maintenance."""
    beds = Room.objects.exclude(status=RoomStatus.MAINTENANCE).aggregate(
        capacity=Sum("capacity"), occupied=Sum("current_occupancy"),
    )
    capacity, occupied = beds["capacity"] or 0, beds["occupied"] or 0
    available = capacity - occupied
    return {
        "capacity": capacity,
        "occupied": occupied,
        "available": available,
        "occupied_percentage": round(occupied * 100 / capacity, 2) if capacity else 0,
        "available_percentage": round(available * 100 / capacity, 2) if capacity else 0,
    }
