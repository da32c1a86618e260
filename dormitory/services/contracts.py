# dormitory/services/contracts.py
"""
Contract lifecycle.

Each operation is a single ``transaction.atomic`` block. Rows are locked in a
fixed order (contract, then student, then rooms by ascending id) so two
operations touching the same rows queue up instead of deadlocking. Room
occupancy is always re-derived with ``recompute_occupancy`` after the contract
rows are written.
"""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from dormitory.exceptions import Conflict, InvalidState, NotFound, ValidationError
from dormitory.models import Contract, Room, Student
from dormitory.services import activity
from dormitory.services.numbers import unique_number
from dormitory.services.occupancy import count_active_contracts, lock_room, lock_rooms, recompute_occupancy
from dormitory.services.students import lock_student, promote_student
from dormitory.states import ContractStatus, RoomStatus, ensure_transition, genders_compatible

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("start_date", "end_date", "deposit_amount", "monthly_fee")


def generate_contract_number(student_id, room_id) -> str:
    return unique_number(Contract, "contract_number", f"CTR-{student_id}-{room_id}")


def lock_contract(contract_id) -> Contract:
    try:
        return Contract.objects.select_for_update().get(pk=contract_id)
    except Contract.DoesNotExist:
        raise NotFound("Contract not found.", code="contract")


def _validate_period(start_date: date, end_date: date) -> None:
    if end_date <= start_date:
        raise ValidationError({"end_date": ["End date must be after the start date."]})


def _validate_amounts(**amounts: Decimal) -> None:
    errors = {name: ["Must not be negative."] for name, value in amounts.items() if value is not None and value < 0}
    if errors:
        raise ValidationError(errors)


def check_room_accepts(room: Room, student: Student) -> None:
    """Room-side preconditions for housing ``student``, in the order callers report them."""
    if room.status == RoomStatus.MAINTENANCE:
        raise InvalidState(f"Room {room.room_number} is under maintenance.", code="room")
    if count_active_contracts(room.pk) >= room.capacity:
        raise Conflict(f"Room {room.room_number} is full.", code="room_full")
    if not genders_compatible(room.room_type, student.gender):
        raise Conflict(
            f"A {student.gender} student cannot be placed in a {room.room_type} room.",
            code="gender_mismatch",
        )


def check_no_other_active(student: Student, exclude_pk=None) -> None:
    others = Contract.objects.filter(student_id=student.pk, status=ContractStatus.ACTIVE)
    if exclude_pk is not None:
        others = others.exclude(pk=exclude_pk)
    if others.exists():
        raise Conflict(
            f"{student.full_name} already has an active contract.",
            code="duplicate_active_contract",
        )


def create_contract(*, student_id, room_id, start_date: date, end_date: date,
                    deposit_amount: Decimal, monthly_fee: Decimal, actor=None, request=None) -> Contract:
    _validate_period(start_date, end_date)
    _validate_amounts(deposit_amount=deposit_amount, monthly_fee=monthly_fee)

    with transaction.atomic():
        student = lock_student(student_id)
        room = lock_room(room_id)
        check_room_accepts(room, student)
        check_no_other_active(student)

        promote_student(student, actor, request, reason="contract assigned")

        contract = Contract.objects.create(
            contract_number=generate_contract_number(student.pk, room.pk),
            student=student,
            room=room,
            start_date=start_date,
            end_date=end_date,
            deposit_amount=deposit_amount,
            monthly_fee=monthly_fee,
            status=ContractStatus.ACTIVE,
            created_by=actor if getattr(actor, "is_authenticated", False) else None,
        )
        recompute_occupancy(room)
        activity.record(
            actor, "create", "contract", contract.pk,
            f"Created contract {contract.contract_number} for {student.full_name} ({student.student_code}) "
            f"in room {room.room_number}, {room.building}",
            request,
        )
    logger.info("Contract %s created (room %s now %s/%s)", contract.contract_number, room.pk,
                room.current_occupancy, room.capacity)
    return contract


def update_contract(contract_id, *, actor=None, request=None, **changes) -> Contract:
    """
    Apply date, fee, status and room changes to a contract in one transaction.

    Moving to ``active`` re-runs the room and duplicate checks and promotes the
    student. Leaving ``active`` frees the seat. A room change checks the new room
    when the contract ends up active and recomputes both rooms.
    """
    status = changes.pop("status", None)
    new_room_id = changes.pop("room_id", None)
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError({name: ["This field cannot be changed."] for name in sorted(unknown)})
    if status is not None and status not in ContractStatus.values:
        raise ValidationError({"status": [f"'{status}' is not a valid contract status."]})
    _validate_amounts(deposit_amount=changes.get("deposit_amount"), monthly_fee=changes.get("monthly_fee"))

    with transaction.atomic():
        contract = lock_contract(contract_id)
        student = lock_student(contract.student_id)
        old_room_id = contract.room_id
        target_room_id = new_room_id if new_room_id is not None else old_room_id
        rooms = lock_rooms([old_room_id, target_room_id])

        previous_status = contract.status
        target_status = status or previous_status
        ensure_transition(ContractStatus, previous_status, target_status, "contract")

        _validate_period(changes.get("start_date", contract.start_date), changes.get("end_date", contract.end_date))

        room_changed = target_room_id != old_room_id
        activating = target_status == ContractStatus.ACTIVE and previous_status != ContractStatus.ACTIVE
        if target_status == ContractStatus.ACTIVE and (activating or room_changed):
            check_room_accepts(rooms[target_room_id], student)
        if activating:
            check_no_other_active(student, exclude_pk=contract.pk)
            promote_student(student, actor, request, reason=f"contract {contract.contract_number} reactivated")

        for name, value in changes.items():
            setattr(contract, name, value)
        contract.room_id = target_room_id
        contract.status = target_status
        if target_status == ContractStatus.TERMINATED and previous_status != ContractStatus.TERMINATED:
            contract.terminated_at = timezone.now()
        elif target_status == ContractStatus.ACTIVE:
            contract.terminated_at = None
        contract.save()

        if room_changed or target_status != previous_status:
            for room in rooms.values():
                recompute_occupancy(room)

        summary = [f"{name}={value}" for name, value in changes.items()]
        if target_status != previous_status:
            summary.append(f"status {previous_status} -> {target_status}")
        if room_changed:
            summary.append(f"room {old_room_id} -> {target_room_id}")
        activity.record(
            actor, "update", "contract", contract.pk,
            f"Updated contract {contract.contract_number}: {', '.join(summary) or 'no changes'}", request,
        )
    return contract


def delete_contract(contract_id, actor=None, request=None) -> None:
    with transaction.atomic():
        contract = lock_contract(contract_id)
        room = lock_room(contract.room_id)
        was_active = contract.status == ContractStatus.ACTIVE
        number = contract.contract_number
        contract.delete()
        if was_active:
            recompute_occupancy(room)
        activity.record(actor, "delete", "contract", contract_id, f"Deleted contract {number}", request)


def remove_resident(room_id, student_id, actor=None, request=None) -> Contract:
    """Terminate the active contract that houses ``student_id`` in ``room_id``."""
    with transaction.atomic():
        contract = (
            Contract.objects.select_for_update()
            .filter(room_id=room_id, student_id=student_id, status=ContractStatus.ACTIVE)
            .first()
        )
        if contract is None:
            raise NotFound("No active contract links this student to this room.", code="active_contract")
        room = lock_room(room_id)

        ensure_transition(ContractStatus, contract.status, ContractStatus.TERMINATED, "contract")
        contract.status = ContractStatus.TERMINATED
        contract.terminated_at = timezone.now()
        contract.save(update_fields=["status", "terminated_at", "updated_at"])
        recompute_occupancy(room)

        student = contract.student
        activity.record(
            actor, "remove_from_room", "student", student.pk,
            f"{student.full_name} ({student.student_code}) removed from room {room.room_number}; "
            f"contract {contract.contract_number} terminated",
            request,
        )
        activity.record(
            actor, "remove_resident", "room", room.pk,
            f"Room {room.room_number}: resident {student.full_name} removed", request,
        )
    return contract
