# dormitory/tests/test_contracts.py

from datetime import timedelta
from unittest import mock

from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone

from dormitory.exceptions import Conflict, InvalidState, NotFound, ValidationError
from dormitory.models import ActivityLog, Contract, Room
from dormitory.services import contracts
from dormitory.states import ContractStatus, Gender, RoomStatus, RoomType, StudentStatus

from .helpers import (
    InvariantAssertions, contract_kwargs, make_admin, make_building, make_room, make_student,
)


class CreateContractTests(InvariantAssertions, TestCase):

    def setUp(self):
        self.admin = make_admin()
        self.building = make_building()
        self.room = make_room(self.building, "101", capacity=2)
        self.alice = make_student("SV001", status=StudentStatus.ACTIVE)
        self.bob = make_student("SV002", status=StudentStatus.ACTIVE)
        self.carol = make_student("SV003", status=StudentStatus.ACTIVE)

    def test_room_fills_up_and_rejects_a_third_contract(self):
        contracts.create_contract(actor=self.admin, **contract_kwargs(self.alice, self.room))
        self.room.refresh_from_db()
        self.assertEqual((self.room.current_occupancy, self.room.status), (1, RoomStatus.AVAILABLE))

        contracts.create_contract(actor=self.admin, **contract_kwargs(self.bob, self.room))
        self.room.refresh_from_db()
        self.assertEqual((self.room.current_occupancy, self.room.status), (2, RoomStatus.FULL))

        with self.assertRaises(Conflict) as ctx:
            contracts.create_contract(actor=self.admin, **contract_kwargs(self.carol, self.room))
        self.assertEqual(ctx.exception.code, "room_full")
        self.room.refresh_from_db()
        self.assertEqual(self.room.current_occupancy, 2)
        self.assertFalse(Contract.objects.filter(student=self.carol).exists())
        self.assertRoomsConsistent()

    def test_returns_active_contract_with_generated_number(self):
        contract = contracts.create_contract(actor=self.admin, **contract_kwargs(self.alice, self.room))
        self.assertEqual(contract.status, ContractStatus.ACTIVE)
        self.assertTrue(contract.contract_number.startswith(f"CTR-{self.alice.pk}-{self.room.pk}-"))
        self.assertEqual(contract.created_by, self.admin)

    def test_contract_numbers_are_unique_for_the_same_pair(self):
        first = contracts.create_contract(actor=self.admin, **contract_kwargs(self.alice, self.room))
        contracts.remove_resident(self.room.pk, self.alice.pk, actor=self.admin)
        second = contracts.create_contract(actor=self.admin, **contract_kwargs(self.alice, self.room))
        self.assertNotEqual(first.contract_number, second.contract_number)

    def test_pending_student_is_promoted_with_the_contract(self):
        pending = make_student("SV010")
        with self.captureOnCommitCallbacks(execute=True):
            contract = contracts.create_contract(actor=self.admin, **contract_kwargs(pending, self.room))

        pending.refresh_from_db()
        pending.user.refresh_from_db()
        self.assertEqual(pending.status, StudentStatus.ACTIVE)
        self.assertTrue(pending.user.is_active)
        self.assertEqual(contract.status, ContractStatus.ACTIVE)
        self.assertTrue(ActivityLog.objects.filter(entity_type="student", entity_id=pending.pk, action="activate").exists())
        self.assertTrue(ActivityLog.objects.filter(entity_type="contract", entity_id=contract.pk, action="create").exists())

    def test_failure_after_promotion_rolls_everything_back(self):
        pending = make_student("SV010")
        with self.captureOnCommitCallbacks() as callbacks:
            with mock.patch.object(contracts, "generate_contract_number", side_effect=DatabaseError("insert failed")):
                with self.assertRaises(DatabaseError):
                    contracts.create_contract(actor=self.admin, **contract_kwargs(pending, self.room))

        pending.refresh_from_db()
        pending.user.refresh_from_db()
        self.room.refresh_from_db()
        self.assertEqual(pending.status, StudentStatus.PENDING)
        self.assertFalse(pending.user.is_active)
        self.assertFalse(Contract.objects.exists())
        self.assertEqual(self.room.current_occupancy, 0)
        self.assertEqual(callbacks, [])

    def test_missing_student_is_reported_before_missing_room(self):
        with self.assertRaises(NotFound) as ctx:
            contracts.create_contract(**contract_kwargs(self.alice, self.room, student_id=99999, room_id=99999))
        self.assertEqual(ctx.exception.code, "student")

    def test_missing_room(self):
        with self.assertRaises(NotFound) as ctx:
            contracts.create_contract(**contract_kwargs(self.alice, self.room, room_id=99999))
        self.assertEqual(ctx.exception.code, "room")

    def test_room_under_maintenance(self):
        Room.objects.filter(pk=self.room.pk).update(status=RoomStatus.MAINTENANCE)
        with self.assertRaises(InvalidState) as ctx:
            contracts.create_contract(**contract_kwargs(self.alice, self.room))
        self.assertEqual(ctx.exception.code, "room")

    def test_full_is_reported_before_gender_mismatch(self):
        room = make_room(self.building, "102", capacity=1, room_type=RoomType.MALE)
        contracts.create_contract(**contract_kwargs(self.alice, room))
        female = make_student("SV020", gender=Gender.FEMALE, status=StudentStatus.ACTIVE)
        with self.assertRaises(Conflict) as ctx:
            contracts.create_contract(**contract_kwargs(female, room))
        self.assertEqual(ctx.exception.code, "room_full")

    def test_gender_mismatch(self):
        room = make_room(self.building, "201", room_type=RoomType.FEMALE)
        with self.assertRaises(Conflict) as ctx:
            contracts.create_contract(**contract_kwargs(self.alice, room))
        self.assertEqual(ctx.exception.code, "gender_mismatch")

    def test_other_gender_fits_single_gender_rooms(self):
        other = make_student("SV030", gender=Gender.OTHER, status=StudentStatus.ACTIVE)
        room = make_room(self.building, "202", room_type=RoomType.FEMALE)
        contract = contracts.create_contract(**contract_kwargs(other, room))
        self.assertEqual(contract.room, room)

    def test_duplicate_active_contract(self):
        contracts.create_contract(**contract_kwargs(self.alice, self.room))
        other_room = make_room(self.building, "103")
        with self.assertRaises(Conflict) as ctx:
            contracts.create_contract(**contract_kwargs(self.alice, other_room))
        self.assertEqual(ctx.exception.code, "duplicate_active_contract")
        self.assertOneActiveContractPerStudent()

    def test_end_date_must_follow_start_date(self):
        today = timezone.localdate()
        with self.assertRaises(ValidationError):
            contracts.create_contract(**contract_kwargs(self.alice, self.room, start_date=today, end_date=today))
        self.assertFalse(Contract.objects.exists())


class UpdateContractTests(InvariantAssertions, TestCase):

    def setUp(self):
        self.admin = make_admin()
        self.building = make_building()
        self.room = make_room(self.building, "101", capacity=1)
        self.alice = make_student("SV001", status=StudentStatus.ACTIVE)
        self.contract = contracts.create_contract(actor=self.admin, **contract_kwargs(self.alice, self.room))

    def test_create_then_terminate_restores_room(self):
        room = make_room(self.building, "102", capacity=3)
        before = (room.current_occupancy, room.status)
        bob = make_student("SV002", status=StudentStatus.ACTIVE)

        contract = contracts.create_contract(**contract_kwargs(bob, room))
        contracts.update_contract(contract.pk, status=ContractStatus.TERMINATED)

        room.refresh_from_db()
        self.assertEqual((room.current_occupancy, room.status), before)

    def test_terminating_frees_a_full_room(self):
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, RoomStatus.FULL)

        contract = contracts.update_contract(self.contract.pk, status=ContractStatus.TERMINATED)

        self.room.refresh_from_db()
        self.assertEqual((self.room.current_occupancy, self.room.status), (0, RoomStatus.AVAILABLE))
        self.assertIsNotNone(contract.terminated_at)

    def test_reactivation_rechecks_capacity(self):
        contracts.update_contract(self.contract.pk, status=ContractStatus.TERMINATED)
        bob = make_student("SV002", status=StudentStatus.ACTIVE)
        contracts.create_contract(**contract_kwargs(bob, self.room))

        with self.assertRaises(Conflict) as ctx:
            contracts.update_contract(self.contract.pk, status=ContractStatus.ACTIVE)
        self.assertEqual(ctx.exception.code, "room_full")
        self.contract.refresh_from_db()
        self.assertEqual(self.contract.status, ContractStatus.TERMINATED)
        self.assertRoomsConsistent()

    def test_reactivation_promotes_inactive_student(self):
        contracts.update_contract(self.contract.pk, status=ContractStatus.EXPIRED)
        self.alice.status = StudentStatus.INACTIVE
        self.alice.save()

        contract = contracts.update_contract(self.contract.pk, status=ContractStatus.ACTIVE)

        self.alice.refresh_from_db()
        self.assertEqual(self.alice.status, StudentStatus.ACTIVE)
        self.assertIsNone(contract.terminated_at)
        self.assertRoomsConsistent()

    def test_reactivation_blocked_by_another_active_contract(self):
        contracts.update_contract(self.contract.pk, status=ContractStatus.TERMINATED)
        other_room = make_room(self.building, "102")
        contracts.create_contract(**contract_kwargs(self.alice, other_room))

        with self.assertRaises(Conflict) as ctx:
            contracts.update_contract(self.contract.pk, status=ContractStatus.ACTIVE)
        self.assertEqual(ctx.exception.code, "duplicate_active_contract")
        self.assertOneActiveContractPerStudent()

    def test_illegal_transition(self):
        contracts.update_contract(self.contract.pk, status=ContractStatus.TERMINATED)
        with self.assertRaises(InvalidState) as ctx:
            contracts.update_contract(self.contract.pk, status=ContractStatus.EXPIRED)
        self.assertEqual(ctx.exception.code, "contract_transition")

    def test_room_change_moves_the_seat(self):
        new_room = make_room(self.building, "102", capacity=2)
        contracts.update_contract(self.contract.pk, room_id=new_room.pk)

        self.room.refresh_from_db()
        new_room.refresh_from_db()
        self.assertEqual((self.room.current_occupancy, self.room.status), (0, RoomStatus.AVAILABLE))
        self.assertEqual(new_room.current_occupancy, 1)
        self.assertRoomsConsistent()

    def test_room_change_to_incompatible_room_changes_nothing(self):
        female_room = make_room(self.building, "301", room_type=RoomType.FEMALE)
        tomorrow = timezone.localdate() + timedelta(days=400)
        with self.assertRaises(Conflict) as ctx:
            contracts.update_contract(self.contract.pk, room_id=female_room.pk, end_date=tomorrow)
        self.assertEqual(ctx.exception.code, "gender_mismatch")

        self.contract.refresh_from_db()
        self.assertEqual(self.contract.room_id, self.room.pk)
        self.assertNotEqual(self.contract.end_date, tomorrow)

    def test_room_change_to_missing_room(self):
        with self.assertRaises(NotFound):
            contracts.update_contract(self.contract.pk, room_id=99999)

    def test_fee_update_leaves_status_alone(self):
        contract = contracts.update_contract(self.contract.pk, monthly_fee=self.contract.monthly_fee + 1)
        self.assertEqual(contract.status, ContractStatus.ACTIVE)
        self.assertEqual(contract.monthly_fee, self.room.price_per_month + 1)

    def test_dates_are_validated_against_stored_values(self):
        with self.assertRaises(ValidationError):
            contracts.update_contract(self.contract.pk, end_date=self.contract.start_date)

    def test_unknown_field_is_rejected(self):
        with self.assertRaises(ValidationError):
            contracts.update_contract(self.contract.pk, contract_number="X")

    def test_missing_contract(self):
        with self.assertRaises(NotFound) as ctx:
            contracts.update_contract(99999, status=ContractStatus.TERMINATED)
        self.assertEqual(ctx.exception.code, "contract")


class DeleteAndRemoveTests(InvariantAssertions, TestCase):

    def setUp(self):
        self.admin = make_admin()
        self.room = make_room(capacity=1)
        self.alice = make_student("SV001", status=StudentStatus.ACTIVE)
        self.contract = contracts.create_contract(actor=self.admin, **contract_kwargs(self.alice, self.room))

    def test_deleting_an_active_contract_frees_the_seat(self):
        contracts.delete_contract(self.contract.pk, actor=self.admin)
        self.room.refresh_from_db()
        self.assertEqual((self.room.current_occupancy, self.room.status), (0, RoomStatus.AVAILABLE))

    def test_deleting_an_ended_contract_keeps_occupancy(self):
        contracts.update_contract(self.contract.pk, status=ContractStatus.EXPIRED)
        bob = make_student("SV002", status=StudentStatus.ACTIVE)
        contracts.create_contract(**contract_kwargs(bob, self.room))

        contracts.delete_contract(self.contract.pk)
        self.room.refresh_from_db()
        self.assertEqual(self.room.current_occupancy, 1)
        self.assertRoomsConsistent()

    def test_remove_resident_terminates_and_logs_twice(self):
        with self.captureOnCommitCallbacks(execute=True):
            contract = contracts.remove_resident(self.room.pk, self.alice.pk, actor=self.admin)

        self.assertEqual(contract.status, ContractStatus.TERMINATED)
        self.room.refresh_from_db()
        self.assertEqual((self.room.current_occupancy, self.room.status), (0, RoomStatus.AVAILABLE))
        self.assertTrue(ActivityLog.objects.filter(entity_type="student", entity_id=self.alice.pk).exists())
        self.assertTrue(ActivityLog.objects.filter(entity_type="room", entity_id=self.room.pk).exists())

    def test_remove_resident_without_active_contract(self):
        contracts.remove_resident(self.room.pk, self.alice.pk)
        with self.assertRaises(NotFound) as ctx:
            contracts.remove_resident(self.room.pk, self.alice.pk)
        self.assertEqual(ctx.exception.code, "active_contract")


class OccupancyInvariantTests(InvariantAssertions, TestCase):
    """Counters must match a fresh count after any mix of operations."""

    def test_mixed_sequence(self):
        building = make_building()
        rooms = [make_room(building, f"1{i:02d}", capacity=2) for i in range(3)]
        people = [make_student(f"SV{i:03d}", status=StudentStatus.ACTIVE) for i in range(6)]

        created = []
        for i, student in enumerate(people):
            created.append(contracts.create_contract(**contract_kwargs(student, rooms[i % 3])))
            self.assertRoomsConsistent()

        contracts.update_contract(created[0].pk, status=ContractStatus.TERMINATED)
        contracts.delete_contract(created[1].pk)
        contracts.update_contract(created[2].pk, status=ContractStatus.EXPIRED)
        contracts.update_contract(created[3].pk, room_id=rooms[1].pk)
        contracts.remove_resident(rooms[1].pk, people[4].pk)
        contracts.update_contract(created[0].pk, status=ContractStatus.ACTIVE)

        self.assertRoomsConsistent()
        self.assertOneActiveContractPerStudent()
