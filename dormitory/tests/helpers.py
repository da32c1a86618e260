# dormitory/tests/helpers.py

from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone

from dormitory.models import AdminProfile, Building, Contract, Room, Student
from dormitory.states import AdminRole, ContractStatus, Gender, RoomStatus, RoomType, StudentStatus

User = get_user_model()

PASSWORD = "testpass123"


def make_admin(username="admin", role=AdminRole.ADMIN):
    user = User.objects.create_user(
        username=username, email=f"{username}@dorm.test", password=PASSWORD, is_staff=True,
    )
    AdminProfile.objects.create(user=user, staff_code=username.upper(), full_name=f"Admin {username}", role=role)
    return user


def make_student(code="SV001", gender=Gender.MALE, status=StudentStatus.PENDING, birth_date=None, email=None):
    email = email if email is not None else f"{code.lower()}@dorm.test"
    user = User.objects.create_user(
        username=code, email=email, password=PASSWORD, is_active=status == StudentStatus.ACTIVE,
    )
    return Student.objects.create(
        user=user, student_code=code, full_name=f"Student {code}", gender=gender,
        email=email, birth_date=birth_date, status=status,
    )


def make_building(name="A1", floors=5):
    return Building.objects.create(name=name, total_floors=floors)


def make_room(building=None, number="101", capacity=2, room_type=RoomType.MIXED, price=Decimal("1500000")):
    building = building or Building.objects.first() or make_building()
    return Room.objects.create(
        building=building, room_number=number, capacity=capacity, room_type=room_type, price_per_month=price,
    )


def contract_kwargs(student, room, days=180, **overrides):
    today = timezone.localdate()
    data = {
        "student_id": student.pk,
        "room_id": room.pk,
        "start_date": today,
        "end_date": today + timedelta(days=days),
        "deposit_amount": Decimal("500000"),
        "monthly_fee": room.price_per_month,
    }
    data.update(overrides)
    return data


class InvariantAssertions:
    """Mixin for TestCase classes that check the room/contract invariants."""

    def assertRoomsConsistent(self):
        for room in Room.objects.all():
            active = Contract.objects.filter(room=room, status=ContractStatus.ACTIVE).count()
            self.assertEqual(room.current_occupancy, active, f"room {room.pk} occupancy drifted")
            self.assertLessEqual(room.current_occupancy, room.capacity)
            if room.status != RoomStatus.MAINTENANCE:
                self.assertEqual(room.status == RoomStatus.FULL, room.current_occupancy >= room.capacity)

    def assertOneActiveContractPerStudent(self):
        for student in Student.objects.all():
            self.assertLessEqual(student.contracts.filter(status=ContractStatus.ACTIVE).count(), 1)
