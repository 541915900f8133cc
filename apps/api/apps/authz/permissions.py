"""
Role-based DRF permissions for billing, clinical and visit endpoints.
"""
from rest_framework import permissions

from apps.authz.models import RoleChoices


def _user_roles(request):
    return set(request.user.user_roles.values_list('role__name', flat=True))


class RolePermission(permissions.BasePermission):
    """
    Allow authenticated users holding any of ``allowed_roles``.

    ``read_roles`` widens access for safe methods only.
    """
    allowed_roles = set()
    read_roles = set()

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        user_roles = _user_roles(request)

        if request.method in permissions.SAFE_METHODS and user_roles & self.read_roles:
            return True

        return bool(user_roles & self.allowed_roles)


class IsAdmin(RolePermission):
    """Admin role only. Used for record unlock."""
    allowed_roles = {RoleChoices.ADMIN}


class IsCashierOrAdmin(RolePermission):
    """
    Billing writes (create, refresh, payments) are cashier work.

    Clinical staff may read billings to answer patient questions.
    """
    allowed_roles = {RoleChoices.ADMIN, RoleChoices.CASHIER}
    read_roles = {RoleChoices.DOCTOR, RoleChoices.NURSE}


class IsClinicianOrAdmin(RolePermission):
    allowed_roles = {RoleChoices.ADMIN, RoleChoices.DOCTOR}
    read_roles = {RoleChoices.NURSE}


class IsVisitStaff(RolePermission):
    """Anyone moving patients through the facility."""
    allowed_roles = {
        RoleChoices.ADMIN,
        RoleChoices.DOCTOR,
        RoleChoices.NURSE,
        RoleChoices.REGISTRATION,
        RoleChoices.CASHIER,
    }


class IsPharmacistOrAdmin(RolePermission):
    allowed_roles = {RoleChoices.ADMIN, RoleChoices.PHARMACIST}
