"""
Ledger — Serializers

Read serializers for batches, positions, movements and purchases, and
the input serializers that turn request bodies into MovementEngine
arguments. Quantities and prices are range-checked here; stock checks
happen under lock in the service layer.

@file ledger/serializers.py
"""

from decimal import Decimal

from rest_framework import serializers

from core.schemas import StrictMapField
from parties.models import PartyType
from parties.services import ANONYMOUS_CONSUMER_LABEL

from .models import Batch, InventoryPosition, MovementRecord, Purchase, PurchaseItem
from .schemas import OrderMetadataSchema
from .services import LineItem


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------

class BatchReadSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.product_name', read_only=True)
    sku = serializers.CharField(source='product.sku', read_only=True)
    manufacturer = serializers.UUIDField(source='product.manufacturer_id', read_only=True)
    is_depleted = serializers.BooleanField(read_only=True)
    is_expired = serializers.BooleanField(read_only=True)
    is_recalled = serializers.BooleanField(read_only=True)

    class Meta:
        model = Batch
        fields = [
            'id', 'reference', 'product', 'product_name', 'sku', 'manufacturer',
            'batch_number', 'manufacture_date', 'expiry_date',
            'quantity_produced', 'quantity_available',
            'lab_test_results', 'qr_code_data',
            'recalled_at', 'recall_reason',
            'is_depleted', 'is_expired', 'is_recalled',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class BatchCreateSerializer(serializers.Serializer):
    batch_number = serializers.CharField(max_length=100)
    manufacture_date = serializers.DateField()
    expiry_date = serializers.DateField()
    quantity_produced = serializers.IntegerField(min_value=1)
    lab_test_results = serializers.JSONField(required=False)

    def validate(self, attrs):
        if attrs['expiry_date'] <= attrs['manufacture_date']:
            raise serializers.ValidationError({
                'expiry_date': 'Expiry date must be after manufacture date.',
            })
        return attrs


class ShipSerializer(serializers.Serializer):
    retailer_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class RecallSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=2000)


class DisposalSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1)
    retailer_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class ReturnSerializer(serializers.Serializer):
    """Retailer -> manufacturer when no consumer is given; consumer -> retailer otherwise."""

    retailer_id = serializers.UUIDField(required=False, default=None)
    quantity = serializers.IntegerField(min_value=1)
    from_consumer = serializers.BooleanField(required=False, default=False)
    consumer_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if attrs['consumer_id'] is not None:
            attrs['from_consumer'] = True
        return attrs


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------

class InventoryPositionReadSerializer(serializers.ModelSerializer):
    retailer_name = serializers.CharField(source='retailer.store_name', read_only=True)
    batch_reference = serializers.CharField(source='batch.reference', read_only=True)
    expiry_date = serializers.DateField(source='batch.expiry_date', read_only=True)
    quantity_sellable = serializers.IntegerField(read_only=True)

    class Meta:
        model = InventoryPosition
        fields = [
            'id', 'retailer', 'retailer_name', 'product', 'batch', 'batch_reference',
            'expiry_date', 'quantity_in_stock', 'quantity_reserved', 'quantity_sellable',
            'price', 'discount_price', 'is_active', 'display_priority',
            'last_restocked', 'last_sold', 'updated_at',
        ]
        read_only_fields = fields


class QuantitySerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1)


class TransferSerializer(serializers.Serializer):
    to_retailer_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=Decimal('0.01'),
        required=False, allow_null=True, default=None,
    )
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class StockSnapshotRowSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    batch_id = serializers.UUIDField()
    batch_reference = serializers.CharField()
    retailer_id = serializers.UUIDField()
    quantity = serializers.IntegerField()
    price = serializers.DecimalField(max_digits=10, decimal_places=2)
    expiry_date = serializers.DateField()


# ---------------------------------------------------------------------------
# Movements / trace
# ---------------------------------------------------------------------------

class MovementRecordSerializer(serializers.ModelSerializer):
    batch_reference = serializers.CharField(source='batch.reference', read_only=True)
    movement_type_display = serializers.CharField(source='get_movement_type_display', read_only=True)

    class Meta:
        model = MovementRecord
        fields = [
            'id', 'uuid', 'movement_type', 'movement_type_display',
            'product', 'batch', 'batch_reference',
            'source_type', 'source_id', 'destination_type', 'destination_id',
            'quantity', 'unit_price', 'total_value',
            'reference_type', 'reference_id', 'notes', 'created_at',
        ]
        read_only_fields = fields


class PublicPartyRefSerializer(serializers.Serializer):
    """Consumers are shown by type only."""

    party_type = serializers.CharField()
    party_id = serializers.SerializerMethodField()

    def get_party_id(self, ref):
        if ref.party_type == PartyType.CONSUMER or ref.party_id is None:
            return None
        return str(ref.party_id)


class PublicCustodyStepSerializer(serializers.Serializer):
    """One hop of the public trace. Prices and notes are not published."""

    sequence = serializers.IntegerField()
    movement_id = serializers.UUIDField()
    movement_type = serializers.CharField()
    quantity = serializers.IntegerField()
    source = PublicPartyRefSerializer()
    source_label = serializers.SerializerMethodField()
    destination = PublicPartyRefSerializer()
    destination_label = serializers.SerializerMethodField()
    timestamp = serializers.DateTimeField()

    @staticmethod
    def _label(ref, label):
        return ANONYMOUS_CONSUMER_LABEL if ref.party_type == PartyType.CONSUMER else label

    def get_source_label(self, step):
        return self._label(step.source, step.source_label)

    def get_destination_label(self, step):
        return self._label(step.destination, step.destination_label)


class PublicCustodyChainSerializer(serializers.Serializer):
    batch_id = serializers.UUIDField()
    batch_reference = serializers.CharField()
    batch_number = serializers.CharField()
    product_id = serializers.UUIDField()
    product_name = serializers.CharField()
    sku = serializers.CharField()
    manufacturer_label = serializers.CharField()
    manufacture_date = serializers.DateField()
    expiry_date = serializers.DateField()
    quantity_produced = serializers.IntegerField()
    quantity_available = serializers.IntegerField()
    is_expired = serializers.BooleanField()
    is_recalled = serializers.BooleanField()
    steps = PublicCustodyStepSerializer(many=True)


# ---------------------------------------------------------------------------
# Purchase
# ---------------------------------------------------------------------------

class PurchaseItemSerializer(serializers.ModelSerializer):
    batch_reference = serializers.CharField(source='batch.reference', read_only=True)

    class Meta:
        model = PurchaseItem
        fields = [
            'id', 'product', 'batch', 'batch_reference',
            'quantity', 'unit_price', 'total_price', 'discount_applied',
        ]
        read_only_fields = fields


class PurchaseReadSerializer(serializers.ModelSerializer):
    items = PurchaseItemSerializer(many=True, read_only=True)
    is_anonymous = serializers.BooleanField(read_only=True)

    class Meta:
        model = Purchase
        fields = [
            'id', 'retailer', 'consumer_id', 'is_anonymous', 'total_amount',
            'payment_method', 'pos_transaction_id', 'order_metadata',
            'purchased_at', 'items', 'created_at',
        ]
        read_only_fields = fields


class LineItemSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    batch_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'))
    use_reservation = serializers.BooleanField(required=False, default=False)


class PurchaseCreateSerializer(serializers.Serializer):
    """
    POST body for a sale. Staff must name the retailer; retailer accounts
    sell from their own stock and may omit it.
    """

    retailer_id = serializers.UUIDField(required=False)
    consumer_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    items = LineItemSerializer(many=True, allow_empty=False)
    payment_method = serializers.CharField(required=False, allow_blank=True, max_length=50, default='')
    pos_transaction_id = serializers.CharField(required=False, allow_blank=True, max_length=100, default='')
    order_metadata = StrictMapField(OrderMetadataSchema)

    def validate_items(self, value):
        return [LineItem(**item) for item in value]


class SalesAnalyticsQuerySerializer(serializers.Serializer):
    """Query string for purchases/analytics. Both dates are inclusive."""

    start_date = serializers.DateField()
    end_date = serializers.DateField()
    group_by = serializers.ChoiceField(choices=['hour', 'day', 'week', 'month'], default='day')
    retailer_id = serializers.UUIDField(required=False, default=None)

    def validate(self, attrs):
        if attrs['end_date'] < attrs['start_date']:
            raise serializers.ValidationError({'end_date': 'Must not be before start_date.'})
        return attrs


class SalesPeriodSerializer(serializers.Serializer):
    period = serializers.DateTimeField()
    transaction_count = serializers.IntegerField()
    total_revenue = serializers.DecimalField(max_digits=16, decimal_places=2)
    unique_customers = serializers.IntegerField()
    average_order_value = serializers.DecimalField(max_digits=14, decimal_places=2)
