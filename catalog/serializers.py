"""
Catalog — Serializers

Read and write serializers for ProductCategory, Product and ProductReview. JSON map
fields are accepted as-is here and validated by catalog.schemas in the
service layer.

@file catalog/serializers.py
"""

from rest_framework import serializers

from .models import Product, ProductCategory, ProductReview

__all__ = [
    'ProductCategorySerializer',
    'ProductReadSerializer',
    'ProductWriteSerializer',
    'ProductUpdateSerializer',
    'ProductReviewSerializer',
    'ProductReviewCreateSerializer',
]


class ProductCategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = ProductCategory
        fields = ['id', 'name', 'slug', 'parent', 'attributes_schema']
        read_only_fields = fields


class ProductReadSerializer(serializers.ModelSerializer):
    manufacturer_name = serializers.CharField(source='manufacturer.company_name', read_only=True)
    category_slug = serializers.CharField(source='category.slug', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Product
        fields = [
            'id', 'manufacturer', 'manufacturer_name', 'category', 'category_slug',
            'product_name', 'sku', 'description', 'nicotine_strength', 'volume_ml',
            'flavor', 'ingredients', 'warnings', 'images', 'attributes',
            'compliance_info', 'status', 'status_display',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class ProductWriteSerializer(serializers.ModelSerializer):
    """
    Create payload. Manufacturer accounts may omit ``manufacturer``; it
    defaults to the caller's own party.
    """

    manufacturer = serializers.UUIDField(required=False)
    category = serializers.PrimaryKeyRelatedField(queryset=ProductCategory.objects.all())
    ingredients = serializers.JSONField(required=False)
    warnings = serializers.JSONField(required=False)
    images = serializers.JSONField(required=False)
    attributes = serializers.JSONField(required=False)
    compliance_info = serializers.JSONField(required=False)

    class Meta:
        model = Product
        fields = [
            'manufacturer', 'category', 'product_name', 'sku', 'description',
            'nicotine_strength', 'volume_ml', 'flavor', 'ingredients', 'warnings',
            'images', 'attributes', 'compliance_info',
        ]
        # (manufacturer, sku) uniqueness is checked by ProductService.
        validators = []


class ProductUpdateSerializer(ProductWriteSerializer):
    manufacturer = None

    class Meta(ProductWriteSerializer.Meta):
        fields = [
            'category', 'product_name', 'description', 'nicotine_strength',
            'volume_ml', 'flavor', 'ingredients', 'warnings', 'images',
            'attributes', 'compliance_info',
        ]


class ProductReviewSerializer(serializers.ModelSerializer):
    """Reviewer identity and the purchase behind a review are not published."""

    class Meta:
        model = ProductReview
        fields = [
            'id', 'product', 'rating', 'title', 'review',
            'is_verified_purchase', 'helpful_count', 'created_at',
        ]
        read_only_fields = fields


class ProductReviewCreateSerializer(serializers.Serializer):
    """Consumer accounts review as themselves; staff must name the consumer."""

    product_id = serializers.UUIDField()
    consumer_id = serializers.UUIDField(required=False)
    purchase_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    rating = serializers.IntegerField(min_value=1, max_value=5)
    title = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    review = serializers.CharField(required=False, allow_blank=True, default='')
