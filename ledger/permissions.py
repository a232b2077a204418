"""
Ledger — Permissions

Batches are acted on by the manufacturer that owns their product;
inventory positions by the retailer that holds them. Staff may act for
any party. Party ids named in a request body are checked with
users.permissions.acting_party_id().

@file ledger/permissions.py
"""

from rest_framework.permissions import SAFE_METHODS, BasePermission

from parties.models import PartyType


def _is_staff(user) -> bool:
    return user.is_staff or user.is_superuser


class IsBatchOwner(BasePermission):
    """Object check: the caller's manufacturer owns the batch's product."""

    def has_object_permission(self, request, view, obj):
        if request.method in SAFE_METHODS:
            return True
        user = request.user
        if _is_staff(user):
            return True
        return user.acts_as(PartyType.MANUFACTURER) and obj.product.manufacturer_id == user.party_id


class IsPositionHolder(BasePermission):
    """Object check: the caller's retailer holds the inventory position."""

    def has_object_permission(self, request, view, obj):
        user = request.user
        if _is_staff(user):
            return True
        return user.acts_as(PartyType.RETAILER) and obj.retailer_id == user.party_id

