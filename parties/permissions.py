"""
Parties — Permissions

Party registration and verification are back-office tasks restricted to
staff. Any authenticated caller may list and read parties.

@file parties/permissions.py
"""

from rest_framework.permissions import SAFE_METHODS, BasePermission


class CanManageParties(BasePermission):
    """Read for authenticated users; create / update / verify / suspend for staff."""

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        if request.method in SAFE_METHODS:
            return True
        return request.user.is_staff or request.user.is_superuser
