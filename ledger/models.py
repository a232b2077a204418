"""
Ledger — Models

The chain-of-custody ledger: Batch, InventoryPosition, the append-only
MovementRecord log, and Purchase / PurchaseItem.

MovementRecord is the system of record. Batch.quantity_available and
InventoryPosition.quantity_in_stock are cached balances that must always
equal the replay of the batch's movements (see ReconciliationService).
Records are INSERT ONLY; batches and positions are never deleted.

@file ledger/models.py
"""

import base64
import secrets
import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from core.models import BaseModel
from parties.models import PartyType

BATCH_REFERENCE_PREFIX = 'BT-'


def generate_batch_reference() -> str:
    """Shareable token printed on labels: BT- plus 12 base32 characters."""
    token = base64.b32encode(secrets.token_bytes(10)).decode('ascii')[:12]
    return f'{BATCH_REFERENCE_PREFIX}{token}'


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------

class Batch(BaseModel):
    """
    A produced lot of one product. quantity_produced is fixed at
    creation; quantity_available is what the manufacturer still holds.

    Depleted and expired are derived predicates, never stored states.
    """

    reference = models.CharField(
        _('reference'), max_length=20, unique=True,
        default=generate_batch_reference, editable=False,
    )
    product = models.ForeignKey(
        'catalog.Product',
        on_delete=models.PROTECT,
        related_name='batches',
        verbose_name=_('product'),
    )
    batch_number = models.CharField(_('batch number'), max_length=100)
    manufacture_date = models.DateField(_('manufacture date'))
    expiry_date = models.DateField(_('expiry date'), db_index=True)
    quantity_produced = models.IntegerField(_('quantity produced'))
    quantity_available = models.IntegerField(_('quantity available'))
    lab_test_results = models.JSONField(_('lab test results'), default=dict, blank=True)
    qr_code_data = models.JSONField(_('QR code data'), default=dict, blank=True)
    recalled_at = models.DateTimeField(_('recalled at'), null=True, blank=True)
    recall_reason = models.TextField(_('recall reason'), blank=True)

    class Meta:
        verbose_name = _('batch')
        verbose_name_plural = _('batches')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['product', 'expiry_date'], name='batch_product_expiry_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['product', 'batch_number'],
                name='unique_batch_per_product',
            ),
            models.CheckConstraint(
                condition=models.Q(expiry_date__gt=models.F('manufacture_date')),
                name='batch_expiry_after_manufacture',
            ),
            models.CheckConstraint(
                condition=models.Q(quantity_produced__gt=0),
                name='batch_produced_positive',
            ),
            models.CheckConstraint(
                condition=models.Q(quantity_available__gte=0),
                name='batch_available_non_negative',
            ),
            models.CheckConstraint(
                condition=models.Q(quantity_available__lte=models.F('quantity_produced')),
                name='batch_available_within_produced',
            ),
        ]

    def __str__(self):
        return f'{self.reference} ({self.batch_number})'

    def delete(self, *args, **kwargs):
        raise NotImplementedError('Batches are retained for audit and cannot be deleted.')

    @property
    def is_depleted(self) -> bool:
        return self.quantity_available == 0

    @property
    def is_expired(self) -> bool:
        return self.expiry_date < timezone.localdate()

    @property
    def is_recalled(self) -> bool:
        return self.recalled_at is not None


# ---------------------------------------------------------------------------
# Inventory Position
# ---------------------------------------------------------------------------

class InventoryPosition(BaseModel):
    """
    A retailer's holding of one (product, batch): stock on hand, the part
    of it reserved for pending orders, and the shelf price. Zero-quantity
    rows persist as history.
    """

    retailer = models.ForeignKey(
        'parties.Retailer',
        on_delete=models.PROTECT,
        related_name='inventory_positions',
        verbose_name=_('retailer'),
    )
    product = models.ForeignKey(
        'catalog.Product',
        on_delete=models.PROTECT,
        related_name='inventory_positions',
        verbose_name=_('product'),
    )
    batch = models.ForeignKey(
        Batch,
        on_delete=models.PROTECT,
        related_name='positions',
        verbose_name=_('batch'),
    )
    quantity_in_stock = models.IntegerField(_('quantity in stock'), default=0)
    quantity_reserved = models.IntegerField(_('quantity reserved'), default=0)
    price = models.DecimalField(_('price'), max_digits=10, decimal_places=2)
    discount_price = models.DecimalField(
        _('discount price'), max_digits=10, decimal_places=2,
        null=True, blank=True,
    )
    is_active = models.BooleanField(_('active'), default=True)
    display_priority = models.IntegerField(_('display priority'), default=0)
    last_restocked = models.DateTimeField(_('last restocked'), null=True, blank=True)
    last_sold = models.DateTimeField(_('last sold'), null=True, blank=True)

    class Meta:
        verbose_name = _('inventory position')
        verbose_name_plural = _('inventory positions')
        ordering = ['retailer', '-display_priority']
        indexes = [
            models.Index(fields=['product', 'is_active'], name='position_product_active_idx'),
            models.Index(fields=['batch'], name='position_batch_idx'),
            models.Index(fields=['updated_at'], name='position_updated_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['retailer', 'product', 'batch'],
                name='unique_retailer_product_batch',
            ),
            models.CheckConstraint(
                condition=models.Q(quantity_in_stock__gte=0),
                name='position_stock_non_negative',
            ),
            models.CheckConstraint(
                condition=models.Q(quantity_reserved__gte=0),
                name='position_reserved_non_negative',
            ),
            models.CheckConstraint(
                condition=models.Q(quantity_reserved__lte=models.F('quantity_in_stock')),
                name='position_reserved_within_stock',
            ),
            models.CheckConstraint(
                condition=models.Q(price__gt=0),
                name='position_price_positive',
            ),
            models.CheckConstraint(
                condition=models.Q(discount_price__isnull=True) | models.Q(discount_price__gt=0),
                name='position_discount_positive',
            ),
        ]

    def __str__(self):
        return f'{self.retailer_id} / {self.batch_id}: {self.quantity_in_stock}'

    def delete(self, *args, **kwargs):
        raise NotImplementedError('Inventory positions are kept as history and cannot be deleted.')

    @property
    def quantity_sellable(self) -> int:
        return self.quantity_in_stock - self.quantity_reserved


# ---------------------------------------------------------------------------
# Movement Record
# ---------------------------------------------------------------------------

class MovementRecordQuerySet(models.QuerySet):
    """Bulk paths that would rewrite history are closed."""

    def update(self, **kwargs):
        raise NotImplementedError('MovementRecord is insert-only; updates are not allowed.')

    def delete(self):
        raise NotImplementedError('MovementRecord rows cannot be deleted.')

    def in_commit_order(self):
        return self.order_by('created_at', 'id')


class MovementRecord(models.Model):
    """
    One immutable custody fact: `quantity` units of `batch` moved from
    source party to destination party.

    Parties are (type, id) pairs resolved in the application layer. A
    consumer side with a null id is an anonymous consumer. The BigAutoField
    id is the insertion sequence and breaks created_at ties.
    """

    class MovementType(models.TextChoices):
        MANUFACTURE = 'manufacture', _('Manufacture')
        SHIP_TO_RETAILER = 'ship_to_retailer', _('Ship to retailer')
        SALE_TO_CONSUMER = 'sale_to_consumer', _('Sale to consumer')
        RETURN = 'return', _('Return')
        DISPOSAL = 'disposal', _('Disposal')
        RECALL = 'recall', _('Recall')
        TRANSFER = 'transfer', _('Transfer')

    id = models.BigAutoField(primary_key=True)
    uuid = models.UUIDField(_('UUID'), default=uuid.uuid4, unique=True, editable=False)
    movement_type = models.CharField(
        _('movement type'), max_length=20,
        choices=MovementType.choices, db_index=True,
    )
    product = models.ForeignKey(
        'catalog.Product',
        on_delete=models.PROTECT,
        related_name='movements',
        verbose_name=_('product'),
    )
    batch = models.ForeignKey(
        Batch,
        on_delete=models.PROTECT,
        related_name='movements',
        verbose_name=_('batch'),
    )
    source_type = models.CharField(_('source type'), max_length=12, choices=PartyType.choices)
    source_id = models.UUIDField(_('source ID'), null=True, blank=True)
    destination_type = models.CharField(_('destination type'), max_length=12, choices=PartyType.choices)
    destination_id = models.UUIDField(_('destination ID'), null=True, blank=True)
    quantity = models.IntegerField(_('quantity'))
    unit_price = models.DecimalField(
        _('unit price'), max_digits=10, decimal_places=2,
        null=True, blank=True,
    )
    total_value = models.DecimalField(
        _('total value'), max_digits=14, decimal_places=2,
        null=True, blank=True,
    )
    reference_type = models.CharField(
        _('reference type'), max_length=100, blank=True,
        help_text=_('Model name of the source record, e.g. Purchase'),
    )
    reference_id = models.UUIDField(_('reference ID'), null=True, blank=True)
    metadata = models.JSONField(_('metadata'), default=dict, blank=True)
    notes = models.TextField(_('notes'), blank=True)
    verified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name='+',
        verbose_name=_('verified by'),
    )
    verified_at = models.DateTimeField(_('verified at'), null=True, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name='+',
        verbose_name=_('created by'),
    )
    created_at = models.DateTimeField(_('created at'), default=timezone.now, db_index=True)
    # No updated_at: immutable record.

    objects = MovementRecordQuerySet.as_manager()

    class Meta:
        verbose_name = _('movement record')
        verbose_name_plural = _('movement records')
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['batch', 'created_at', 'id'], name='movement_batch_trace_idx'),
            models.Index(fields=['source_type', 'source_id'], name='movement_source_idx'),
            models.Index(fields=['destination_type', 'destination_id'], name='movement_destination_idx'),
            models.Index(fields=['reference_type', 'reference_id'], name='movement_reference_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name='movement_quantity_positive',
            ),
            models.CheckConstraint(
                condition=models.Q(source_id__isnull=False) | models.Q(source_type=PartyType.CONSUMER),
                name='movement_source_resolved',
            ),
            models.CheckConstraint(
                condition=models.Q(destination_id__isnull=False) | models.Q(destination_type=PartyType.CONSUMER),
                name='movement_destination_resolved',
            ),
        ]

    def __str__(self):
        return (
            f'{self.movement_type} {self.quantity} batch={self.batch_id} '
            f'{self.source_type}:{self.source_id} -> {self.destination_type}:{self.destination_id}'
        )

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise NotImplementedError('MovementRecord is insert-only; updates are not allowed.')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise NotImplementedError('MovementRecord rows cannot be deleted.')


# ---------------------------------------------------------------------------
# Purchase
# ---------------------------------------------------------------------------

class Purchase(BaseModel):
    """A consumer transaction at one retailer. consumer_id is null for anonymous buyers."""

    retailer = models.ForeignKey(
        'parties.Retailer',
        on_delete=models.PROTECT,
        related_name='purchases',
        verbose_name=_('retailer'),
    )
    consumer_id = models.UUIDField(_('consumer ID'), null=True, blank=True, db_index=True)
    total_amount = models.DecimalField(_('total amount'), max_digits=14, decimal_places=2)
    payment_method = models.CharField(_('payment method'), max_length=50, blank=True)
    pos_transaction_id = models.CharField(_('POS transaction ID'), max_length=100, blank=True)
    order_metadata = models.JSONField(_('order metadata'), default=dict, blank=True)
    purchased_at = models.DateTimeField(_('purchased at'), default=timezone.now, db_index=True)
    ip_address = models.GenericIPAddressField(_('IP address'), null=True, blank=True)
    user_agent = models.TextField(_('user agent'), blank=True)

    class Meta:
        verbose_name = _('purchase')
        verbose_name_plural = _('purchases')
        ordering = ['-purchased_at']
        indexes = [
            models.Index(fields=['retailer', 'purchased_at'], name='purchase_retailer_ts_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount__gte=0),
                name='purchase_total_non_negative',
            ),
        ]

    def __str__(self):
        return f'Purchase {self.pk} at {self.retailer_id}: {self.total_amount}'

    @property
    def is_anonymous(self) -> bool:
        return self.consumer_id is None


class PurchaseItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    purchase = models.ForeignKey(
        Purchase,
        on_delete=models.CASCADE,
        related_name='items',
        verbose_name=_('purchase'),
    )
    product = models.ForeignKey(
        'catalog.Product',
        on_delete=models.PROTECT,
        related_name='+',
        verbose_name=_('product'),
    )
    batch = models.ForeignKey(
        Batch,
        on_delete=models.PROTECT,
        related_name='purchase_items',
        verbose_name=_('batch'),
    )
    quantity = models.IntegerField(_('quantity'))
    unit_price = models.DecimalField(_('unit price'), max_digits=10, decimal_places=2)
    total_price = models.DecimalField(_('total price'), max_digits=14, decimal_places=2)
    discount_applied = models.DecimalField(
        _('discount applied'), max_digits=10, decimal_places=2, default=0,
    )
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('purchase item')
        verbose_name_plural = _('purchase items')
        ordering = ['created_at']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name='purchase_item_quantity_positive',
            ),
            models.CheckConstraint(
                condition=models.Q(unit_price__gte=0),
                name='purchase_item_price_non_negative',
            ),
        ]

    def __str__(self):
        return f'{self.quantity} x {self.batch_id} @ {self.unit_price}'
