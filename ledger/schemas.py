"""
Ledger — Key/Value Map Schemas

Documented keys for the JSON maps the ledger stores: the order details
recorded with a Purchase and the context attached to a MovementRecord.

@file ledger/schemas.py
"""

from rest_framework import serializers

from core.schemas import StrictMapSerializer, validate_map


class OrderMetadataSchema(StrictMapSerializer):
    """Point-of-sale context for a purchase."""

    CHANNELS = ('in_store', 'online', 'click_and_collect', 'phone')

    channel = serializers.ChoiceField(choices=CHANNELS, required=False)
    register_id = serializers.CharField(required=False, max_length=50)
    cashier_ref = serializers.CharField(required=False, max_length=100)
    age_verified = serializers.BooleanField(required=False)
    age_verification_method = serializers.CharField(required=False, max_length=50)
    loyalty_ref = serializers.CharField(required=False, max_length=100)
    receipt_number = serializers.CharField(required=False, max_length=100)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=1000)


class MovementMetadataSchema(StrictMapSerializer):
    """Context the engine attaches to a movement record."""

    line = serializers.IntegerField(required=False, min_value=1)
    pos_transaction_id = serializers.CharField(required=False, max_length=100)
    payment_method = serializers.CharField(required=False, max_length=50)
    reason = serializers.CharField(required=False)


def validate_order_metadata(value) -> dict:
    return validate_map(OrderMetadataSchema, value, 'order_metadata')


def validate_movement_metadata(value) -> dict:
    return validate_map(MovementMetadataSchema, value, 'metadata')
