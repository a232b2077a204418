"""
Parties — Serializers

Read and write serializers for Manufacturer and Retailer.
Explicit field lists; no __all__.

@file parties/serializers.py
"""

from rest_framework import serializers

from core.schemas import StrictMapField

from .models import Manufacturer, Retailer
from .schemas import PartyMetadataSchema

__all__ = [
    'ManufacturerReadSerializer',
    'ManufacturerWriteSerializer',
    'RetailerReadSerializer',
    'RetailerWriteSerializer',
    'StatusReasonSerializer',
]


# ---------------------------------------------------------------------------
# Manufacturer
# ---------------------------------------------------------------------------

class ManufacturerReadSerializer(serializers.ModelSerializer):
    verification_status_display = serializers.CharField(
        source='get_verification_status_display', read_only=True,
    )

    class Meta:
        model = Manufacturer
        fields = [
            'id', 'company_name', 'license_number', 'address', 'contact_email',
            'verification_status', 'verification_status_display', 'metadata',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class ManufacturerWriteSerializer(serializers.ModelSerializer):
    metadata = StrictMapField(PartyMetadataSchema)

    class Meta:
        model = Manufacturer
        fields = ['company_name', 'license_number', 'address', 'contact_email', 'metadata']


# ---------------------------------------------------------------------------
# Retailer
# ---------------------------------------------------------------------------

class RetailerReadSerializer(serializers.ModelSerializer):
    verification_status_display = serializers.CharField(
        source='get_verification_status_display', read_only=True,
    )

    class Meta:
        model = Retailer
        fields = [
            'id', 'store_name', 'license_number', 'address',
            'latitude', 'longitude', 'phone', 'email', 'business_hours',
            'verification_status', 'verification_status_display', 'metadata',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class RetailerWriteSerializer(serializers.ModelSerializer):
    metadata = StrictMapField(PartyMetadataSchema)

    class Meta:
        model = Retailer
        fields = [
            'store_name', 'license_number', 'address',
            'latitude', 'longitude', 'phone', 'email', 'business_hours', 'metadata',
        ]

    def validate(self, attrs):
        lat, lng = attrs.get('latitude'), attrs.get('longitude')
        if (lat is None) != (lng is None):
            raise serializers.ValidationError('Latitude and longitude must be given together.')
        if lat is not None and not (-90 <= lat <= 90 and -180 <= lng <= 180):
            raise serializers.ValidationError('Coordinates out of range.')
        return attrs

    def validate_business_hours(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError('Business hours must be an object keyed by weekday.')
        for day, hours in value.items():
            if not isinstance(hours, dict) or not {'open', 'close'} <= set(hours):
                raise serializers.ValidationError(f'"{day}" needs "open" and "close" times.')
        return value


class StatusReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='', max_length=500)
