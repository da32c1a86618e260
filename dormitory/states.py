# dormitory/states.py
"""
Status vocabularies and the legal transitions between them.

Each entity's status is a closed ``TextChoices`` enum; the stored strings are
the wire values the web UI already speaks. ``TRANSITIONS`` lists, per enum,
the statuses reachable from each status. Anything not listed is rejected by
``ensure_transition``.
"""
from django.db import models
from django.utils.translation import gettext_lazy as _


class StudentStatus(models.TextChoices):
    PENDING = "pending", _("Pending approval")
    ACTIVE = "active", _("Active")
    INACTIVE = "inactive", _("Inactive")
    BLOCKED = "blocked", _("Blocked")


class Gender(models.TextChoices):
    MALE = "male", _("Male")
    FEMALE = "female", _("Female")
    OTHER = "other", _("Other")


class RoomType(models.TextChoices):
    MALE = "male", _("Male room")
    FEMALE = "female", _("Female room")
    MIXED = "mixed", _("Mixed room")


class RoomStatus(models.TextChoices):
    AVAILABLE = "available", _("Available")
    FULL = "full", _("Full")
    MAINTENANCE = "maintenance", _("Under maintenance")


class BuildingStatus(models.TextChoices):
    ACTIVE = "active", _("Active")
    INACTIVE = "inactive", _("Inactive")
    MAINTENANCE = "maintenance", _("Under maintenance")


class ContractStatus(models.TextChoices):
    ACTIVE = "active", _("Active")
    EXPIRED = "expired", _("Expired")
    TERMINATED = "terminated", _("Terminated")


class InvoiceStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    PAID = "paid", _("Paid")
    OVERDUE = "overdue", _("Overdue")


class MaintenanceStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    PROCESSING = "processing", _("Processing")
    COMPLETED = "completed", _("Completed")
    REJECTED = "rejected", _("Rejected")
    CANCELED = "canceled", _("Canceled")


class MaintenancePriority(models.TextChoices):
    LOW = "low", _("Low")
    NORMAL = "normal", _("Normal")
    HIGH = "high", _("High")
    URGENT = "urgent", _("Urgent")


class AdminRole(models.TextChoices):
    SUPER_ADMIN = "super_admin", _("Super admin")
    ADMIN = "admin", _("Admin")
    STAFF = "staff", _("Staff")


TRANSITIONS = {
    StudentStatus: {
        StudentStatus.PENDING: {StudentStatus.ACTIVE, StudentStatus.INACTIVE},
        StudentStatus.ACTIVE: {StudentStatus.INACTIVE, StudentStatus.BLOCKED},
        StudentStatus.INACTIVE: {StudentStatus.ACTIVE, StudentStatus.BLOCKED},
        StudentStatus.BLOCKED: {StudentStatus.ACTIVE, StudentStatus.INACTIVE},
    },
    # "full" is never requested directly; it is derived from occupancy.
    RoomStatus: {
        RoomStatus.AVAILABLE: {RoomStatus.FULL, RoomStatus.MAINTENANCE},
        RoomStatus.FULL: {RoomStatus.AVAILABLE, RoomStatus.MAINTENANCE},
        RoomStatus.MAINTENANCE: {RoomStatus.AVAILABLE, RoomStatus.FULL},
    },
    ContractStatus: {
        ContractStatus.ACTIVE: {ContractStatus.EXPIRED, ContractStatus.TERMINATED},
        ContractStatus.EXPIRED: {ContractStatus.ACTIVE, ContractStatus.TERMINATED},
        ContractStatus.TERMINATED: {ContractStatus.ACTIVE},
    },
    # paid -> pending undoes a payment recorded by mistake
    InvoiceStatus: {
        InvoiceStatus.PENDING: {InvoiceStatus.PAID, InvoiceStatus.OVERDUE},
        InvoiceStatus.OVERDUE: {InvoiceStatus.PAID, InvoiceStatus.PENDING},
        InvoiceStatus.PAID: {InvoiceStatus.PENDING},
    },
    MaintenanceStatus: {
        MaintenanceStatus.PENDING: {
            MaintenanceStatus.PROCESSING, MaintenanceStatus.REJECTED, MaintenanceStatus.CANCELED,
        },
        MaintenanceStatus.PROCESSING: {
            MaintenanceStatus.COMPLETED, MaintenanceStatus.REJECTED, MaintenanceStatus.CANCELED,
        },
        MaintenanceStatus.COMPLETED: set(),
        MaintenanceStatus.REJECTED: set(),
        MaintenanceStatus.CANCELED: set(),
    },
}

MAINTENANCE_TERMINAL = frozenset(
    status for status, targets in TRANSITIONS[MaintenanceStatus].items() if not targets
)


def can_transition(choices, current, target) -> bool:
    """Same-status writes are no-ops and always allowed."""
    current, target = choices(current), choices(target)
    if current == target:
        return True
    return target in TRANSITIONS[choices][current]


def ensure_transition(choices, current, target, entity: str) -> None:
    # imported here: exceptions imports DRF, which must not load at model import time
    from .exceptions import InvalidState

    if not can_transition(choices, current, target):
        raise InvalidState(
            f"Cannot change {entity} status from '{current}' to '{target}'.",
            code=f"{entity}_transition",
        )


def derive_room_status(current_status: str, occupancy: int, capacity: int) -> str:
    """Room status implied by occupancy. Maintenance is sticky."""
    if current_status == RoomStatus.MAINTENANCE:
        return RoomStatus.MAINTENANCE
    if occupancy >= capacity:
        return RoomStatus.FULL
    return RoomStatus.AVAILABLE


def genders_compatible(room_type: str, gender: str) -> bool:
    """Male rooms reject female students and vice versa; "other" fits either."""
    if room_type == RoomType.MALE and gender == Gender.FEMALE:
        return False
    if room_type == RoomType.FEMALE and gender == Gender.MALE:
        return False
    return True
