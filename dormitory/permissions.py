from rest_framework.permissions import SAFE_METHODS, BasePermission

from .models import Student
from .states import AdminRole


def is_admin(user) -> bool:
    if not user or not user.is_authenticated: return False
    return hasattr(user, "admin_profile") or user.is_staff or user.is_superuser


def student_of(user):
    """The student profile behind ``user``, or None for admins and anonymous users."""
    if not user or not user.is_authenticated: return None
    return getattr(user, "student", None)


class IsAdmin(BasePermission):
    def has_permission(self, request, view):
        return is_admin(request.user)


class IsAdminOrReadOnly(BasePermission):
    """Any signed-in user may read; only admins write."""
    def has_permission(self, request, view):
        if request.method in SAFE_METHODS:
            return bool(request.user and request.user.is_authenticated)
        return is_admin(request.user)


class IsOwnerOrAdmin(BasePermission):
    """
    Admins can do anything; a student only touches objects that belong to them,
    either the Student row itself or something with a ``student`` link.
    """
    def has_object_permission(self, request, view, obj):
        if is_admin(request.user):
            return True
        student = student_of(request.user)
        if student is None:
            return False
        owner_id = obj.pk if isinstance(obj, Student) else getattr(obj, "student_id", None)
        return owner_id == student.pk


class IsSuperAdmin(BasePermission):
    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated: return False
        profile = getattr(user, "admin_profile", None)
        return user.is_superuser or (profile is not None and profile.role == AdminRole.SUPER_ADMIN)
