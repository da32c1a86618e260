# dormitory/services/admins.py
"""Staff accounts."""
from __future__ import annotations

import logging

from django.contrib.auth import get_user_model
from django.db import transaction

from dormitory.exceptions import Conflict
from dormitory.models import AdminProfile
from dormitory.services import activity
from dormitory.states import AdminRole

logger = logging.getLogger(__name__)
User = get_user_model()


@transaction.atomic
def create_admin(*, email: str, password: str, staff_code: str, full_name: str, role: str = AdminRole.STAFF,
                 phone: str = "", department: str = "", actor=None, request=None) -> AdminProfile:
    """Create an active staff login and its admin profile together."""
    email = email.strip().lower()
    if User.objects.filter(email__iexact=email).exists():
        raise Conflict("An account with this email already exists.", code="email_taken")
    if (AdminProfile.objects.filter(staff_code=staff_code).exists()
            or User.objects.filter(username=staff_code).exists()):
        raise Conflict("This staff code is already in use.", code="staff_code_taken")

    user = User.objects.create_user(
        username=staff_code, email=email, password=password, is_staff=True,
        is_superuser=role == AdminRole.SUPER_ADMIN,
    )
    profile = AdminProfile.objects.create(
        user=user, staff_code=staff_code, full_name=full_name, role=role, phone=phone, department=department,
    )
    activity.record(actor, "create", "admin", profile.pk, f"Created {role} account {full_name} ({staff_code})", request)
    logger.info("Admin account %s created with role %s", staff_code, role)
    return profile
