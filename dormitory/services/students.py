# dormitory/services/students.py
"""Student registration, approval and account status."""
from __future__ import annotations

import logging

from django.contrib.auth import get_user_model
from django.db import transaction

from dormitory.exceptions import Conflict, InvalidState, NotFound, ValidationError
from dormitory.models import Contract, Student
from dormitory.services import activity, notifications
from dormitory.services.occupancy import lock_room
from dormitory.states import ContractStatus, StudentStatus, ensure_transition, genders_compatible

logger = logging.getLogger(__name__)
User = get_user_model()


def lock_student(student_id) -> Student:
    try:
        return Student.objects.select_for_update().get(pk=student_id)
    except Student.DoesNotExist:
        raise NotFound("Student not found.", code="student")


def _sync_account(student: Student) -> None:
    User.objects.filter(pk=student.user_id).update(is_active=student.status == StudentStatus.ACTIVE)


def initial_password(student: Student) -> str | None:
    """Birth date as ``dd/mm/YYYY``, the password handed out on approval."""
    if not student.birth_date:
        return None
    return student.birth_date.strftime("%d/%m/%Y")


@transaction.atomic
def register_student(*, email: str, student_code: str, full_name: str, gender: str,
                     password: str | None = None, request=None, **profile) -> Student:
    """Create an inactive account and a pending student awaiting approval."""
    email = email.strip().lower()
    if User.objects.filter(email__iexact=email).exists():
        raise Conflict("An account with this email already exists.", code="email_taken")
    if (Student.objects.filter(student_code=student_code).exists()
            or User.objects.filter(username=student_code).exists()):
        raise Conflict("This student code is already registered.", code="student_code_taken")

    # without a password the account stays unusable until approval sets one
    user = User.objects.create_user(
        username=student_code, email=email, password=password or None, is_active=False,
    )
    student = Student.objects.create(
        user=user, email=email, student_code=student_code, full_name=full_name, gender=gender,
        status=StudentStatus.PENDING, **profile,
    )
    activity.record(user, "register", "student", student.pk, f"Registered {full_name} ({student_code})", request)
    logger.info("Student %s registered, awaiting approval", student_code)
    return student


def promote_student(student: Student, actor=None, request=None, reason: str = "") -> bool:
    """Make a locked student and its account active. Returns False if it already was."""
    if student.status == StudentStatus.ACTIVE:
        return False
    previous = student.status
    ensure_transition(StudentStatus, previous, StudentStatus.ACTIVE, "student")
    student.status = StudentStatus.ACTIVE
    student.save(update_fields=["status", "updated_at"])
    _sync_account(student)
    description = f"Student {student.full_name} ({student.student_code}): {previous} -> active"
    if reason:
        description = f"{description} ({reason})"
    activity.record(actor, "activate", "student", student.pk, description, request)
    return True


def activate_student(student_id, actor=None, request=None) -> Student:
    with transaction.atomic():
        student = lock_student(student_id)
        if student.status != StudentStatus.PENDING:
            raise InvalidState(
                f"Only pending students can be approved (current status '{student.status}').",
                code="student_not_pending",
            )
        promote_student(student, actor, request, reason="approved")

        password = None
        user = User.objects.select_for_update().get(pk=student.user_id)
        if not user.has_usable_password():
            password = initial_password(student)
            if password:
                user.set_password(password)
                user.save(update_fields=["password"])

        notifications.send_after_commit(
            {"email": student.email, "name": student.full_name},
            "Your dormitory account has been approved",
            "student_approved",
            {"student": student, "initial_password": password},
        )
    return student


def reject_student(student_id, actor=None, request=None) -> Student:
    with transaction.atomic():
        student = lock_student(student_id)
        if student.status != StudentStatus.PENDING:
            raise InvalidState(
                f"Only pending students can be rejected (current status '{student.status}').",
                code="student_not_pending",
            )
        student.status = StudentStatus.INACTIVE
        student.save(update_fields=["status", "updated_at"])
        _sync_account(student)
        activity.record(
            actor, "reject", "student", student.pk,
            f"Rejected registration of {student.full_name} ({student.student_code})", request,
        )
    return student


def set_student_status(student_id, status: str, actor=None, request=None) -> Student:
    if status not in StudentStatus.values:
        raise ValidationError({"status": [f"'{status}' is not a valid student status."]})

    with transaction.atomic():
        student = lock_student(student_id)
        previous = student.status
        if previous == status:
            return student
        ensure_transition(StudentStatus, previous, status, "student")
        if status != StudentStatus.ACTIVE and Contract.objects.filter(
            student_id=student.pk, status=ContractStatus.ACTIVE
        ).exists():
            raise Conflict(
                "The student holds an active contract; terminate it first.",
                code="has_active_contracts",
            )
        student.status = status
        student.save(update_fields=["status", "updated_at"])
        _sync_account(student)
        activity.record(
            actor, "update_status", "student", student.pk,
            f"Student {student.full_name} ({student.student_code}): {previous} -> {status}", request,
        )
    return student


def update_student(student_id, actor=None, request=None, **fields) -> Student:
    """Edit profile fields. A resident's gender must still suit the room they live in."""
    with transaction.atomic():
        student = lock_student(student_id)
        gender = fields.get("gender")
        if gender is not None and gender != student.gender:
            contract = Contract.objects.filter(student_id=student.pk, status=ContractStatus.ACTIVE).first()
            if contract is not None:
                room = lock_room(contract.room_id)
                if not genders_compatible(room.room_type, gender):
                    raise Conflict(
                        f"A {gender} student cannot live in {room.room_type} room {room.room_number}.",
                        code="gender_mismatch",
                    )
        for name, value in fields.items():
            setattr(student, name, value)
        student.save()
        activity.record(
            actor, "update", "student", student.pk,
            f"Updated student {student.full_name} ({student.student_code})", request,
        )
    return student
