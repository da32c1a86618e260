# dormitory/services/maintenance.py
"""Maintenance request intake and workflow."""
from __future__ import annotations

import logging

from django.db import transaction
from django.utils import timezone

from dormitory.exceptions import InvalidState, NotFound, ValidationError
from dormitory.models import AdminProfile, Contract, MaintenanceRequest, Room
from dormitory.services import activity
from dormitory.services.numbers import unique_number
from dormitory.states import (
    ContractStatus, MaintenancePriority, MaintenanceStatus, ensure_transition,
)

logger = logging.getLogger(__name__)


def generate_request_number() -> str:
    return unique_number(MaintenanceRequest, "request_number", "MR")


def lock_request(request_id) -> MaintenanceRequest:
    try:
        return MaintenanceRequest.objects.select_for_update().get(pk=request_id)
    except MaintenanceRequest.DoesNotExist:
        raise NotFound("Maintenance request not found.", code="maintenance_request")


def resident_room_id(student) -> int:
    room_id = (
        Contract.objects.filter(student_id=student.pk, status=ContractStatus.ACTIVE)
        .values_list("room_id", flat=True)
        .first()
    )
    if room_id is None:
        raise NotFound("You do not have an active contract.", code="active_contract")
    return room_id


def create_request(*, room_id=None, request_type: str, description: str,
                   priority: str = MaintenancePriority.NORMAL, student=None,
                   actor=None, request=None) -> MaintenanceRequest:
    """File a request. A student filing without a room files it for the room they live in."""
    if priority not in MaintenancePriority.values:
        raise ValidationError({"priority": [f"'{priority}' is not a valid priority."]})
    if room_id is None:
        if student is None:
            raise ValidationError({"room_id": ["This field is required."]})
        room_id = resident_room_id(student)

    with transaction.atomic():
        room = Room.objects.filter(pk=room_id).first()
        if room is None:
            raise NotFound("Room not found.", code="room")
        maintenance_request = MaintenanceRequest.objects.create(
            request_number=generate_request_number(),
            room=room,
            student=student,
            request_type=request_type,
            description=description,
            priority=priority,
            status=MaintenanceStatus.PENDING,
        )
        activity.record(
            actor, "create", "maintenance_request", maintenance_request.pk,
            f"Maintenance request {maintenance_request.request_number} ({request_type}) for room {room.room_number}",
            request,
        )
    return maintenance_request


def update_request(request_id, *, status=None, resolution_note=None, cost=None, priority=None,
                   assigned_to_id=None, actor=None, request=None) -> MaintenanceRequest:
    if status is not None and status not in MaintenanceStatus.values:
        raise ValidationError({"status": [f"'{status}' is not a valid maintenance status."]})
    if priority is not None and priority not in MaintenancePriority.values:
        raise ValidationError({"priority": [f"'{priority}' is not a valid priority."]})
    if cost is not None and cost < 0:
        raise ValidationError({"cost": ["Must not be negative."]})

    with transaction.atomic():
        item = lock_request(request_id)
        previous = item.status
        # closed requests keep their status; notes and cost stay editable
        if status is not None:
            ensure_transition(MaintenanceStatus, previous, status, "maintenance")
            item.status = status
            if status == MaintenanceStatus.COMPLETED and previous != MaintenanceStatus.COMPLETED:
                item.resolved_at = timezone.now()
        if assigned_to_id is not None:
            item.assigned_to = AdminProfile.objects.filter(pk=assigned_to_id).first()
            if item.assigned_to is None:
                raise NotFound("Assignee not found.", code="admin")
        if resolution_note is not None:
            item.resolution_note = resolution_note
        if cost is not None:
            item.cost = cost
        if priority is not None:
            item.priority = priority
        item.save()

        description = f"Updated maintenance request {item.request_number}"
        if item.status != previous:
            description = f"{description}: {previous} -> {item.status}"
        activity.record(actor, "update", "maintenance_request", item.pk, description, request)
    return item


def cancel_request(request_id, student, actor=None, request=None) -> MaintenanceRequest:
    """A student withdraws one of their own requests while it is still pending."""
    with transaction.atomic():
        item = lock_request(request_id)
        if item.student_id != student.pk:
            raise NotFound("Maintenance request not found.", code="maintenance_request")
        if item.status != MaintenanceStatus.PENDING:
            raise InvalidState("Only pending requests can be canceled.", code="maintenance_not_pending")
        item.status = MaintenanceStatus.CANCELED
        item.save(update_fields=["status"])
        activity.record(
            actor, "cancel", "maintenance_request", item.pk,
            f"{student.full_name} canceled request {item.request_number}", request,
        )
    return item


def delete_request(request_id, actor=None, request=None) -> None:
    with transaction.atomic():
        item = lock_request(request_id)
        number = item.request_number
        item.delete()
        activity.record(actor, "delete", "maintenance_request", request_id, f"Deleted request {number}", request)
