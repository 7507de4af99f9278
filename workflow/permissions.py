"""
Role based permission classes, one per hospital department.
"""
from rest_framework.permissions import BasePermission

from .models import User


def _has_role(request, *roles: str) -> bool:
    user = getattr(request, "user", None)
    if not (user and user.is_authenticated):
        return False
    role = getattr(user, "role", None)
    return role == User.ROLE_ADMIN or role in roles


class RolePermission(BasePermission):
    """Allow access to the listed roles. Administrators always pass."""
    roles: tuple[str, ...] = ()

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _has_role(request, *self.roles)


class IsAdminRole(RolePermission):
    roles = (User.ROLE_ADMIN,)


class IsReception(RolePermission):
    roles = (User.ROLE_RECEPTION,)


class IsNurse(RolePermission):
    roles = (User.ROLE_NURSE,)


class IsDoctor(RolePermission):
    roles = (User.ROLE_DOCTOR,)


class IsLab(RolePermission):
    roles = (User.ROLE_LAB,)


class IsRadiology(RolePermission):
    roles = (User.ROLE_RADIOLOGY,)


class IsPharmacy(RolePermission):
    roles = (User.ROLE_PHARMACY,)


class IsBilling(RolePermission):
    roles = (User.ROLE_BILLING, User.ROLE_RECEPTION)


class IsFrontDesk(RolePermission):
    """Reception and nursing staff (visit creation, patient registration)."""
    roles = (User.ROLE_RECEPTION, User.ROLE_NURSE)


class IsDiagnostics(RolePermission):
    roles = (User.ROLE_LAB, User.ROLE_RADIOLOGY)
