"""
Catalog — Service Layer

Product registration and lifecycle, plus ProductCatalog: the narrow
read interface the ledger uses to confirm a product exists and find the
manufacturer that owns it. ReviewService records consumer reviews.

@file catalog/services.py
"""

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import F

from core.constants import AUDIT_ACTION_CREATE, AUDIT_ACTION_STATUS_CHANGE
from core.exceptions import (
    DuplicateResourceError,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from core.services import AuditService
from ledger.models import Purchase, PurchaseItem
from parties.models import PartyType
from parties.services import PartyDirectory

from . import schemas
from .models import Product, ProductCategory, ProductReview

logger = logging.getLogger('quittrace')


PRODUCT_STATUS_TRANSITIONS = {
    Product.StatusChoices.DRAFT: {Product.StatusChoices.ACTIVE, Product.StatusChoices.DISCONTINUED},
    Product.StatusChoices.ACTIVE: {Product.StatusChoices.DISCONTINUED},
    Product.StatusChoices.DISCONTINUED: set(),
}

IMMUTABLE_PRODUCT_FIELDS = ('id', 'manufacturer', 'manufacturer_id', 'sku', 'status')


def _clean_product_maps(fields: dict, category: ProductCategory) -> dict:
    fields['attributes'] = schemas.validate_attributes(fields.get('attributes'), category)
    fields['compliance_info'] = schemas.validate_compliance_info(fields.get('compliance_info'))
    fields['images'] = schemas.validate_images(fields.get('images'))
    for key in ('ingredients', 'warnings'):
        fields[key] = schemas.validate_string_list(fields.get(key), key)
    return fields


class ProductService:
    """Product registration, update and status lifecycle."""

    @staticmethod
    @transaction.atomic
    def create_product(*, manufacturer_id, category_id, sku: str, actor=None, **fields) -> Product:
        manufacturer = PartyDirectory.get(PartyType.MANUFACTURER, manufacturer_id)
        PartyDirectory.require_active(manufacturer)
        try:
            category = ProductCategory.objects.get(pk=category_id)
        except (ProductCategory.DoesNotExist, DjangoValidationError):
            raise NotFoundError(detail=f'Category {category_id} not found.')

        if Product.objects.filter(manufacturer=manufacturer, sku=sku).exists():
            raise DuplicateResourceError(detail=f'SKU {sku} already registered for this manufacturer.')

        product = Product(
            manufacturer=manufacturer,
            category=category,
            sku=sku,
            **_clean_product_maps(fields, category),
        )
        product.created_by = actor
        product._current_user = actor
        try:
            with transaction.atomic():
                product.save()
        except IntegrityError:
            raise DuplicateResourceError(detail=f'SKU {sku} already registered for this manufacturer.')

        logger.info('Product %s (%s) created for manufacturer %s.', product.pk, sku, manufacturer.pk)
        return product

    @staticmethod
    @transaction.atomic
    def update_product(*, product_id, actor=None, **fields) -> Product:
        """Update descriptive fields; manufacturer and SKU are fixed at creation."""
        try:
            product = Product.objects.select_for_update().select_related('category').get(
                pk=product_id, is_deleted=False,
            )
        except Product.DoesNotExist:
            raise NotFoundError(detail=f'Product {product_id} not found.')

        for key in IMMUTABLE_PRODUCT_FIELDS:
            if key in fields and fields[key] != getattr(product, key, None):
                raise ValidationError(detail={key: ['This field cannot be changed.']})
            fields.pop(key, None)

        if 'category' in fields:
            product.category = fields.pop('category')
        merged = {
            'attributes': fields.pop('attributes', product.attributes),
            'compliance_info': fields.pop('compliance_info', product.compliance_info),
            'images': fields.pop('images', product.images),
            'ingredients': fields.pop('ingredients', product.ingredients),
            'warnings': fields.pop('warnings', product.warnings),
        }
        for field, value in _clean_product_maps(merged, product.category).items():
            setattr(product, field, value)
        for field, value in fields.items():
            if hasattr(product, field):
                setattr(product, field, value)

        product.updated_by = actor
        product._current_user = actor
        product.save()
        return product

    @staticmethod
    @transaction.atomic
    def change_status(*, product_id, new_status: str, actor=None) -> Product:
        try:
            product = Product.objects.select_for_update().get(pk=product_id, is_deleted=False)
        except Product.DoesNotExist:
            raise NotFoundError(detail=f'Product {product_id} not found.')

        old_status = product.status
        if new_status not in PRODUCT_STATUS_TRANSITIONS.get(old_status, set()):
            raise InvalidStateTransition(detail=f'Cannot transition from {old_status} to {new_status}.')

        product.status = new_status
        product.updated_by = actor
        product._skip_audit = True
        product.save(update_fields=['status', 'updated_by', 'updated_at'])

        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_STATUS_CHANGE,
            model_name='Product',
            object_id=str(product.pk),
            old_values={'status': old_status},
            new_values={'status': new_status},
        )
        return product

    @classmethod
    def activate_product(cls, *, product_id, actor=None) -> Product:
        return cls.change_status(product_id=product_id, new_status=Product.StatusChoices.ACTIVE, actor=actor)

    @classmethod
    def discontinue_product(cls, *, product_id, actor=None) -> Product:
        return cls.change_status(
            product_id=product_id, new_status=Product.StatusChoices.DISCONTINUED, actor=actor,
        )


class ProductCatalog:
    """Read interface consumed by the ledger."""

    @staticmethod
    def get(product_id, *, using=None) -> Product:
        try:
            return (
                Product.objects.using(using)
                .select_related('manufacturer')
                .get(pk=product_id, is_deleted=False)
            )
        except (Product.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFoundError(detail=f'Product {product_id} not found.')

    @classmethod
    def get_owner(cls, product_id, *, using=None):
        """Return the id of the manufacturer that owns the product."""
        product = cls.get(product_id, using=using)
        if product.manufacturer.is_deleted:
            raise NotFoundError(detail=f'Manufacturer of product {product_id} not found.')
        return product.manufacturer_id


class ReviewService:
    """Consumer product reviews. Verified-purchase status comes from the ledger, never from input."""

    @staticmethod
    @transaction.atomic
    def submit_review(
        *,
        product_id,
        consumer_id,
        rating: int,
        title: str = '',
        review: str = '',
        purchase_id=None,
        actor=None,
    ) -> ProductReview:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError(detail={'rating': ['Rating must be an integer from 1 to 5.']})
        try:
            product = Product.objects.get(pk=product_id, is_deleted=False)
        except (Product.DoesNotExist, DjangoValidationError):
            raise NotFoundError(detail=f'Product {product_id} not found.')
        consumer = PartyDirectory.get(PartyType.CONSUMER, consumer_id)
        if consumer.is_anonymized:
            raise ValidationError(detail={'consumer_id': ['Anonymized consumers cannot post reviews.']})

        purchase = None
        if purchase_id is not None:
            try:
                purchase = Purchase.objects.get(pk=purchase_id, consumer_id=consumer.pk)
            except (Purchase.DoesNotExist, DjangoValidationError):
                raise NotFoundError(detail=f'Purchase {purchase_id} not found for this consumer.')

        verified = purchase is not None and PurchaseItem.objects.filter(
            purchase=purchase, product_id=product.pk,
        ).exists()
        product_review = ProductReview(
            product=product,
            consumer=consumer,
            purchase=purchase,
            rating=rating,
            title=title,
            review=review,
            is_verified_purchase=verified,
            created_by=actor,
        )
        try:
            with transaction.atomic():
                product_review.save()
        except IntegrityError:
            raise DuplicateResourceError(detail='This consumer has already reviewed this product.')

        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_CREATE,
            model_name='ProductReview',
            object_id=str(product_review.pk),
            new_values=AuditService.snapshot(product_review),
        )
        logger.info(
            'Review %s (%s/5, verified=%s) posted for product %s.',
            product_review.pk, rating, verified, product.pk,
        )
        return product_review

    @staticmethod
    def mark_helpful(*, review_id) -> ProductReview:
        updated = ProductReview.objects.filter(pk=review_id).update(helpful_count=F('helpful_count') + 1)
        if not updated:
            raise NotFoundError(detail=f'Review {review_id} not found.')
        return ProductReview.objects.select_related('product').get(pk=review_id)
