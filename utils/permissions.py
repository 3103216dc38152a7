# ==================== UTILS/PERMISSIONS.PY ====================
from rest_framework import permissions


class IsStaffOrReadOnly(permissions.BasePermission):
    """Anyone can read; only staff can create or edit lots and slots"""

    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return True
        return bool(request.user and request.user.is_staff)


class IsBookingOwnerOrStaff(permissions.BasePermission):
    """Permission for booking - either the booking user or staff"""

    def has_object_permission(self, request, view, obj):
        return obj.user == request.user or request.user.is_staff
