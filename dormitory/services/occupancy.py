# dormitory/services/occupancy.py
"""
Room occupancy bookkeeping.

``current_occupancy`` is a cache of the number of active contracts on a room.
Every write path that can change that number ends with ``recompute_occupancy``
on the locked room row; nothing increments or decrements it in place.
"""
from __future__ import annotations

import logging

from django.db import transaction

from dormitory.exceptions import Conflict, NotFound, ValidationError
from dormitory.models import Building, Contract, Room
from dormitory.services import activity
from dormitory.states import ContractStatus, RoomStatus, derive_room_status, ensure_transition, genders_compatible

logger = logging.getLogger(__name__)

# Columns only this module may write.
PROTECTED_ROOM_FIELDS = {"current_occupancy", "status"}


def lock_room(room_id) -> Room:
    try:
        return Room.objects.select_for_update().get(pk=room_id)
    except Room.DoesNotExist:
        raise NotFound("Room not found.", code="room")


def lock_rooms(room_ids) -> dict[int, Room]:
    """Lock several rooms in ascending id order; every id must exist."""
    ids = sorted({rid for rid in room_ids if rid is not None})
    rooms = {room.pk: room for room in Room.objects.select_for_update().filter(pk__in=ids).order_by("pk")}
    if len(rooms) != len(ids):
        raise NotFound("Room not found.", code="room")
    return rooms


def count_active_contracts(room_id) -> int:
    return Contract.objects.filter(room_id=room_id, status=ContractStatus.ACTIVE).count()


def recompute_occupancy(room: Room) -> Room:
    """Re-derive ``current_occupancy`` and ``status`` of a locked room."""
    occupancy = count_active_contracts(room.pk)
    status = derive_room_status(room.status, occupancy, room.capacity)
    if occupancy != room.current_occupancy or status != room.status:
        logger.info(
            "Room %s occupancy %s -> %s, status %s -> %s",
            room.pk, room.current_occupancy, occupancy, room.status, status,
        )
        room.current_occupancy = occupancy
        room.status = status
        room.save(update_fields=["current_occupancy", "status"])
    return room


def set_room_status(room_id, status: str, actor=None, request=None) -> Room:
    """Admin status change. Only ``available`` and ``maintenance`` can be requested."""
    if status == RoomStatus.FULL:
        raise ValidationError({"status": ["'full' is derived from occupancy and cannot be set."]})
    if status not in RoomStatus.values:
        raise ValidationError({"status": [f"'{status}' is not a valid room status."]})

    with transaction.atomic():
        room = lock_room(room_id)
        previous = room.status
        if status == RoomStatus.MAINTENANCE:
            if room.current_occupancy > 0 or count_active_contracts(room.pk):
                raise Conflict(
                    "The room still has active contracts and cannot go into maintenance.",
                    code="has_active_contracts",
                )
            ensure_transition(RoomStatus, room.status, status, "room")
            room.status = RoomStatus.MAINTENANCE
            room.save(update_fields=["status"])
        else:
            ensure_transition(RoomStatus, room.status, status, "room")
            room.status = RoomStatus.AVAILABLE
            room.save(update_fields=["status"])
            recompute_occupancy(room)

        activity.record(
            actor, "update_status", "room", room.pk,
            f"Room {room.room_number}: status {previous} -> {room.status}", request,
        )
    return room


def update_room(room_id, actor=None, request=None, **fields) -> Room:
    """Edit room attributes. Occupancy and status are never taken from ``fields``."""
    fields = {k: v for k, v in fields.items() if k not in PROTECTED_ROOM_FIELDS}

    with transaction.atomic():
        room = lock_room(room_id)
        capacity = fields.get("capacity")
        if capacity is not None:
            occupancy = count_active_contracts(room.pk)
            if capacity < occupancy:
                raise Conflict(
                    f"Capacity {capacity} is below the current occupancy of {occupancy}.",
                    code="capacity_below_occupancy",
                )
        room_type = fields.get("room_type")
        if room_type is not None and room_type != room.room_type:
            genders = Contract.objects.filter(
                room_id=room.pk, status=ContractStatus.ACTIVE,
            ).values_list("student__gender", flat=True)
            for gender in sorted(set(genders)):
                if not genders_compatible(room_type, gender):
                    raise Conflict(
                        f"Room {room.room_number} has a {gender} resident and cannot become a {room_type} room.",
                        code="gender_mismatch",
                    )
        for name, value in fields.items():
            setattr(room, name, value)
        room.save()
        recompute_occupancy(room)
        activity.record(actor, "update", "room", room.pk, f"Updated room {room.room_number}", request)
    return room


def delete_room(room_id, actor=None, request=None) -> None:
    with transaction.atomic():
        room = lock_room(room_id)
        if count_active_contracts(room.pk):
            raise Conflict("The room still has active contracts.", code="has_active_contracts")
        label = str(room)
        room.delete()
        activity.record(actor, "delete", "room", room_id, f"Deleted room {label}", request)


def delete_building(building_id, actor=None, request=None) -> None:
    with transaction.atomic():
        try:
            building = Building.objects.select_for_update().get(pk=building_id)
        except Building.DoesNotExist:
            raise NotFound("Building not found.", code="building")
        lock_rooms(building.rooms.values_list("pk", flat=True))
        if Contract.objects.filter(room__building_id=building.pk, status=ContractStatus.ACTIVE).exists():
            raise Conflict("The building still has rooms with active contracts.", code="has_active_contracts")
        name = building.name
        building.delete()
        activity.record(actor, "delete", "building", building_id, f"Deleted building {name}", request)


def recompute_all_rooms() -> list[dict]:
    """Repair every room, one short transaction per room. Returns the rooms that drifted."""
    repaired = []
    for room_id in Room.objects.order_by("pk").values_list("pk", flat=True):
        with transaction.atomic():
            room = lock_room(room_id)
            before = (room.current_occupancy, room.status)
            recompute_occupancy(room)
            after = (room.current_occupancy, room.status)
        if before != after:
            repaired.append({"room_id": room_id, "before": before, "after": after})
    return repaired
