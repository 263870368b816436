"""
Role based permission classes.
"""
from rest_framework.permissions import BasePermission

STAFF_ROLES = {"doctor", "nurse", "receptionist", "admin"}


class IsStaffRole(BasePermission):
    """Allow access only to clinic staff (doctors, nurses, reception, admin)."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        return bool(user and user.is_authenticated and getattr(user, "role", None) in STAFF_ROLES)


class IsPatientRole(BasePermission):
    """Allow access only to users with the patient role."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        return bool(user and user.is_authenticated and getattr(user, "role", None) == "patient")


class IsDoctorRole(BasePermission):
    """Doctors only."""
    def has_permission(self, request, view) -> bool:
        user = getattr(request, "user", None)
        return bool(user and user.is_authenticated and getattr(user, "role", None) == "doctor")
