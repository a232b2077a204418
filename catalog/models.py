"""
Catalog — Models

Product categories (with the attribute keys each category requires),
the products manufacturers register before producing batches of them,
and consumer reviews of those products.

@file catalog/models.py
"""

from django.db import models
from django.utils.translation import gettext_lazy as _

from core.models import BaseModel, RegulatedModel


class ProductCategory(BaseModel):
    """
    A product family (vapes, pouches, gum, ...). attributes_schema lists
    the attribute keys products of this category must / may carry:
    {"required": [...], "optional": [...]}.
    """

    name = models.CharField(_('name'), max_length=100)
    slug = models.SlugField(_('slug'), max_length=100, unique=True)
    parent = models.ForeignKey(
        'self',
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name='children',
        verbose_name=_('parent'),
    )
    attributes_schema = models.JSONField(_('attributes schema'), default=dict, blank=True)

    class Meta:
        verbose_name = _('product category')
        verbose_name_plural = _('product categories')
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def required_attributes(self) -> list[str]:
        return list(self.attributes_schema.get('required', []))

    @property
    def optional_attributes(self) -> list[str]:
        return list(self.attributes_schema.get('optional', []))


class Product(RegulatedModel):
    """
    A sellable item owned by exactly one manufacturer. The SKU is unique
    within that manufacturer; manufacturer and SKU never change after
    creation because batches and movements refer to them.
    """

    class StatusChoices(models.TextChoices):
        DRAFT = 'DRAFT', _('Draft')
        ACTIVE = 'ACTIVE', _('Active')
        DISCONTINUED = 'DISCONTINUED', _('Discontinued')

    manufacturer = models.ForeignKey(
        'parties.Manufacturer',
        on_delete=models.PROTECT,
        related_name='products',
        verbose_name=_('manufacturer'),
    )
    category = models.ForeignKey(
        ProductCategory,
        on_delete=models.PROTECT,
        related_name='products',
        verbose_name=_('category'),
    )
    product_name = models.CharField(_('product name'), max_length=255)
    sku = models.CharField(_('SKU'), max_length=100)
    description = models.TextField(_('description'), blank=True)
    nicotine_strength = models.DecimalField(
        _('nicotine strength (mg)'), max_digits=5, decimal_places=2,
        null=True, blank=True,
    )
    volume_ml = models.DecimalField(
        _('volume (ml)'), max_digits=10, decimal_places=2,
        null=True, blank=True,
    )
    flavor = models.CharField(_('flavor'), max_length=100, blank=True)
    ingredients = models.JSONField(_('ingredients'), default=list, blank=True)
    warnings = models.JSONField(_('warnings'), default=list, blank=True)
    images = models.JSONField(
        _('images'), default=list, blank=True,
        help_text=_('[{"url": ..., "alt_text": ..., "is_primary": bool}]'),
    )
    attributes = models.JSONField(_('attributes'), default=dict, blank=True)
    compliance_info = models.JSONField(_('compliance info'), default=dict, blank=True)
    status = models.CharField(
        _('status'), max_length=14,
        choices=StatusChoices.choices,
        default=StatusChoices.DRAFT,
        db_index=True,
    )

    class Meta:
        verbose_name = _('product')
        verbose_name_plural = _('products')
        ordering = ['product_name']
        indexes = [
            models.Index(fields=['status', 'is_deleted'], name='product_status_idx'),
            models.Index(fields=['manufacturer', 'status'], name='product_mfr_status_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['manufacturer', 'sku'],
                name='unique_sku_per_manufacturer',
            ),
            models.CheckConstraint(
                condition=models.Q(nicotine_strength__isnull=True) | models.Q(nicotine_strength__gte=0),
                name='product_nicotine_non_negative',
            ),
        ]

    def __str__(self):
        return f'{self.product_name} ({self.sku})'


class ProductReview(BaseModel):
    """
    A consumer's 1 to 5 star review of a product. is_verified_purchase is
    derived from the ledger when the review is submitted: the referenced
    purchase must belong to the reviewer and contain the product.
    """

    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        related_name='reviews',
        verbose_name=_('product'),
    )
    consumer = models.ForeignKey(
        'parties.Consumer',
        on_delete=models.CASCADE,
        related_name='reviews',
        verbose_name=_('consumer'),
    )
    purchase = models.ForeignKey(
        'ledger.Purchase',
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name='reviews',
        verbose_name=_('purchase'),
    )
    rating = models.PositiveSmallIntegerField(_('rating'))
    title = models.CharField(_('title'), max_length=255, blank=True)
    review = models.TextField(_('review'), blank=True)
    is_verified_purchase = models.BooleanField(_('verified purchase'), default=False)
    helpful_count = models.PositiveIntegerField(_('helpful count'), default=0)

    class Meta:
        verbose_name = _('product review')
        verbose_name_plural = _('product reviews')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['product', 'rating'], name='review_product_rating_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(rating__gte=1, rating__lte=5),
                name='review_rating_range',
            ),
            models.UniqueConstraint(
                fields=['product', 'consumer'],
                name='one_review_per_consumer',
            ),
        ]

    def __str__(self):
        return f'{self.rating}/5 for {self.product_id}'
