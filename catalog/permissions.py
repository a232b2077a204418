"""
Catalog — Permissions

Any authenticated caller may browse the catalog. Products (and the
batches made of them) are written by the owning manufacturer or staff.

@file catalog/permissions.py
"""

from rest_framework.permissions import SAFE_METHODS, BasePermission

from parties.models import PartyType


class CanManageProduct(BasePermission):
    """Writes limited to manufacturer accounts; objects limited to their owner."""

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        if request.method in SAFE_METHODS:
            return True
        return user.is_staff or user.acts_as(PartyType.MANUFACTURER)

    def has_object_permission(self, request, view, obj):
        if request.method in SAFE_METHODS:
            return True
        user = request.user
        if user.is_staff:
            return True
        return user.acts_as(PartyType.MANUFACTURER) and obj.manufacturer_id == user.party_id
