"""
Users — DRF Permission Classes

Account-status and party-scope checks for ViewSets. Staff users bypass
party scoping so back-office corrections remain possible.

@file users/permissions.py
"""

from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import BasePermission

from core.exceptions import ValidationError
from parties.models import PartyType


class IsActiveUser(BasePermission):
    """Requires user to be authenticated and have ACTIVE status."""

    def has_permission(self, request, view):
        return bool(
            request.user
            and request.user.is_authenticated
            and getattr(request.user, 'status', None) == 'ACTIVE'
        )


class IsStaffUser(BasePermission):
    """Shortcut: user must be staff or superuser."""

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        return user.is_staff or user.is_superuser


class _ActsAsParty(BasePermission):
    party_type = None

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        if user.is_staff or user.is_superuser:
            return True
        return user.acts_as(self.party_type)


class IsManufacturerParty(_ActsAsParty):
    """Caller acts for a manufacturer (or is staff)."""

    party_type = PartyType.MANUFACTURER


class IsRetailerParty(_ActsAsParty):
    """Caller acts for a retailer (or is staff)."""

    party_type = PartyType.RETAILER


def acting_party_id(user, party_type: str, requested_id=None):
    """
    Party a request acts for. Party accounts act for themselves only and
    may omit the id; staff must name the party explicitly.
    """
    if user.is_staff or user.is_superuser:
        if requested_id is None:
            raise ValidationError(detail={f'{party_type}_id': ['This field is required.']})
        return requested_id
    if not user.acts_as(party_type):
        raise PermissionDenied(f'Only {party_type} accounts can perform this action.')
    if requested_id is not None and str(requested_id) != str(user.party_id):
        raise PermissionDenied(f'You can only act for your own {party_type}.')
    return user.party_id
