"""
Catalog — Key/Value Map Schemas

The open-ended JSON maps stored on products and batches (category
attributes, compliance info, lab test results) are validated here before
they reach the database. Each map documents its optional keys; unknown
keys are rejected so typos do not silently become data.

@file catalog/schemas.py
"""

from rest_framework import serializers

from core.exceptions import ValidationError
from core.schemas import StrictMapSerializer, validate_map

SCALAR_TYPES = (str, int, float, bool)


class LabTestResultsSchema(StrictMapSerializer):
    """Lab results recorded for a batch at manufacture time."""

    nicotine_content = serializers.FloatField(required=False, min_value=0)
    purity = serializers.FloatField(required=False, min_value=0, max_value=100)
    tested_date = serializers.DateField(required=False)
    lab_name = serializers.CharField(required=False, max_length=255)
    certificate_ref = serializers.CharField(required=False, max_length=100)


class ComplianceInfoSchema(StrictMapSerializer):
    """Regulatory data carried by a product."""

    age_restriction = serializers.IntegerField(required=False, min_value=0, max_value=99)
    regulatory_approval = serializers.CharField(required=False, max_length=255)
    tpd_notification_id = serializers.CharField(required=False, max_length=100)
    child_resistant_packaging = serializers.BooleanField(required=False)
    health_warning_text = serializers.CharField(required=False, max_length=1000)


class ProductImageSchema(StrictMapSerializer):
    url = serializers.URLField()
    alt_text = serializers.CharField(required=False, allow_blank=True, default='')
    is_primary = serializers.BooleanField(required=False, default=False)


def validate_lab_results(value) -> dict:
    return validate_map(LabTestResultsSchema, value, 'lab_test_results')


def validate_compliance_info(value) -> dict:
    return validate_map(ComplianceInfoSchema, value, 'compliance_info')


def validate_images(value) -> list[dict]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(detail={'images': ['Expected a list.']})
    images = [validate_map(ProductImageSchema, item, 'images') for item in value]
    if sum(1 for img in images if img['is_primary']) > 1:
        raise ValidationError(detail={'images': ['At most one image can be primary.']})
    return images


def validate_string_list(value, field: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(detail={field: ['Expected a list of strings.']})
    return value


def validate_attributes_schema(schema) -> dict:
    """A category schema is {"required": [keys], "optional": [keys]}."""
    if schema is None:
        return {}
    if not isinstance(schema, dict) or set(schema) - {'required', 'optional'}:
        raise ValidationError(
            detail={'attributes_schema': ['Expected {"required": [...], "optional": [...]}.']},
        )
    for part in ('required', 'optional'):
        validate_string_list(schema.get(part, []), 'attributes_schema')
    return schema


def validate_attributes(attributes, category) -> dict:
    """
    Check product attributes against the category schema: every required
    key present, scalar values only, and no keys outside required +
    optional when the category declares any.
    """
    if attributes is None:
        attributes = {}
    if not isinstance(attributes, dict):
        raise ValidationError(detail={'attributes': ['Expected an object.']})

    errors = {}
    for key in category.required_attributes:
        if attributes.get(key) in (None, ''):
            errors[key] = ['This attribute is required for this category.']

    declared = set(category.required_attributes) | set(category.optional_attributes)
    for key, value in attributes.items():
        if declared and key not in declared:
            errors[key] = ['Unknown attribute for this category.']
        elif not isinstance(value, SCALAR_TYPES):
            errors[key] = ['Attribute values must be scalars.']

    if errors:
        raise ValidationError(detail={'attributes': errors})
    return attributes
