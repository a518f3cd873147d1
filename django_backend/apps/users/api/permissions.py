from rest_framework.permissions import SAFE_METHODS, BasePermission

from apps.users.models import UserRole


class IsAdminRoleOrReadOnly(BasePermission):
    """Reads are open to any actor; writes need the ADMIN role"""

    def has_permission(self, request, view):
        if request.method in SAFE_METHODS:
            return True
        return bool(request.user and getattr(request.user, "role", None) == UserRole.ADMIN)
