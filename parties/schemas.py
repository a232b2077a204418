"""
Parties — Key/Value Map Schemas

Documented keys for the `metadata` map on manufacturers and retailers.

@file parties/schemas.py
"""

from rest_framework import serializers

from core.schemas import StrictMapSerializer, validate_map


class PartyMetadataSchema(StrictMapSerializer):
    website = serializers.URLField(required=False)
    tax_id = serializers.CharField(required=False, max_length=50)
    registration_country = serializers.RegexField(r'^[A-Z]{2}$', required=False)
    contact_name = serializers.CharField(required=False, max_length=150)
    contact_phone = serializers.CharField(required=False, max_length=20)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=1000)


def validate_party_metadata(value) -> dict:
    return validate_map(PartyMetadataSchema, value, 'metadata')
