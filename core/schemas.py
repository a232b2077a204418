"""
Core — Key/Value Map Schemas

Base machinery for the open-ended JSON maps stored across the platform.
Each app declares its documented keys as a StrictMapSerializer; the map
must be an object, undeclared keys are rejected, and the validated
result is converted back to plain JSON before it is stored.

@file core/schemas.py
"""

from rest_framework import serializers

from core.exceptions import ValidationError


class StrictMapSerializer(serializers.Serializer):
    """Serializer for a flat JSON object that refuses undeclared keys."""

    def to_internal_value(self, data):
        if not isinstance(data, dict):
            raise serializers.ValidationError({'non_field_errors': ['Expected an object.']})
        unknown = sorted(set(data) - set(self.fields))
        if unknown:
            raise serializers.ValidationError({key: ['Unknown key.'] for key in unknown})
        return super().to_internal_value(data)


def as_json(validated: dict) -> dict:
    # Dates come back as date objects; JSON columns want ISO strings.
    return {
        key: value.isoformat() if hasattr(value, 'isoformat') else value
        for key, value in validated.items()
    }


def validate_map(schema_class, value, field: str) -> dict:
    """Run schema_class over value; None means an empty map."""
    schema = schema_class(data=value if value is not None else {})
    if not schema.is_valid():
        raise ValidationError(detail={field: schema.errors})
    return as_json(dict(schema.validated_data))


class StrictMapField(serializers.Field):
    """DRF field that validates a JSON map with a StrictMapSerializer."""

    default_error_messages = {'invalid': 'Invalid map.'}

    def __init__(self, schema_class, **kwargs):
        self.schema_class = schema_class
        kwargs.setdefault('required', False)
        kwargs.setdefault('default', dict)
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        schema = self.schema_class(data=data)
        if not schema.is_valid():
            raise serializers.ValidationError(schema.errors)
        return as_json(dict(schema.validated_data))

    def to_representation(self, value):
        return value
