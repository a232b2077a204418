import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import ledger.models

PARTY_TYPE_CHOICES = [('manufacturer', 'Manufacturer'), ('retailer', 'Retailer'), ('consumer', 'Consumer')]


def base_fields():
    return [
        ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
        ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
        ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
        ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='created by')),
        ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='updated by')),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('catalog', '0002_default_categories'),
        ('parties', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Batch',
            fields=base_fields() + [
                ('reference', models.CharField(default=ledger.models.generate_batch_reference, editable=False, max_length=20, unique=True, verbose_name='reference')),
                ('batch_number', models.CharField(max_length=100, verbose_name='batch number')),
                ('manufacture_date', models.DateField(verbose_name='manufacture date')),
                ('expiry_date', models.DateField(db_index=True, verbose_name='expiry date')),
                ('quantity_produced', models.IntegerField(verbose_name='quantity produced')),
                ('quantity_available', models.IntegerField(verbose_name='quantity available')),
                ('lab_test_results', models.JSONField(blank=True, default=dict, verbose_name='lab test results')),
                ('qr_code_data', models.JSONField(blank=True, default=dict, verbose_name='QR code data')),
                ('recalled_at', models.DateTimeField(blank=True, null=True, verbose_name='recalled at')),
                ('recall_reason', models.TextField(blank=True, verbose_name='recall reason')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='batches', to='catalog.product', verbose_name='product')),
            ],
            options={
                'verbose_name': 'batch',
                'verbose_name_plural': 'batches',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['product', 'expiry_date'], name='batch_product_expiry_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('product', 'batch_number'), name='unique_batch_per_product'),
                    models.CheckConstraint(condition=models.Q(('expiry_date__gt', models.F('manufacture_date'))), name='batch_expiry_after_manufacture'),
                    models.CheckConstraint(condition=models.Q(('quantity_produced__gt', 0)), name='batch_produced_positive'),
                    models.CheckConstraint(condition=models.Q(('quantity_available__gte', 0)), name='batch_available_non_negative'),
                    models.CheckConstraint(condition=models.Q(('quantity_available__lte', models.F('quantity_produced'))), name='batch_available_within_produced'),
                ],
            },
        ),
        migrations.CreateModel(
            name='InventoryPosition',
            fields=base_fields() + [
                ('quantity_in_stock', models.IntegerField(default=0, verbose_name='quantity in stock')),
                ('quantity_reserved', models.IntegerField(default=0, verbose_name='quantity reserved')),
                ('price', models.DecimalField(decimal_places=2, max_digits=10, verbose_name='price')),
                ('discount_price', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True, verbose_name='discount price')),
                ('is_active', models.BooleanField(default=True, verbose_name='active')),
                ('display_priority', models.IntegerField(default=0, verbose_name='display priority')),
                ('last_restocked', models.DateTimeField(blank=True, null=True, verbose_name='last restocked')),
                ('last_sold', models.DateTimeField(blank=True, null=True, verbose_name='last sold')),
                ('retailer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='inventory_positions', to='parties.retailer', verbose_name='retailer')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='inventory_positions', to='catalog.product', verbose_name='product')),
                ('batch', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='positions', to='ledger.batch', verbose_name='batch')),
            ],
            options={
                'verbose_name': 'inventory position',
                'verbose_name_plural': 'inventory positions',
                'ordering': ['retailer', '-display_priority'],
                'indexes': [
                    models.Index(fields=['product', 'is_active'], name='position_product_active_idx'),
                    models.Index(fields=['batch'], name='position_batch_idx'),
                    models.Index(fields=['updated_at'], name='position_updated_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('retailer', 'product', 'batch'), name='unique_retailer_product_batch'),
                    models.CheckConstraint(condition=models.Q(('quantity_in_stock__gte', 0)), name='position_stock_non_negative'),
                    models.CheckConstraint(condition=models.Q(('quantity_reserved__gte', 0)), name='position_reserved_non_negative'),
                    models.CheckConstraint(condition=models.Q(('quantity_reserved__lte', models.F('quantity_in_stock'))), name='position_reserved_within_stock'),
                    models.CheckConstraint(condition=models.Q(('price__gt', 0)), name='position_price_positive'),
                    models.CheckConstraint(condition=models.Q(('discount_price__isnull', True), ('discount_price__gt', 0), _connector='OR'), name='position_discount_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='MovementRecord',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('uuid', models.UUIDField(default=uuid.uuid4, editable=False, unique=True, verbose_name='UUID')),
                ('movement_type', models.CharField(choices=[('manufacture', 'Manufacture'), ('ship_to_retailer', 'Ship to retailer'), ('sale_to_consumer', 'Sale to consumer'), ('return', 'Return'), ('disposal', 'Disposal'), ('recall', 'Recall'), ('transfer', 'Transfer')], db_index=True, max_length=20, verbose_name='movement type')),
                ('source_type', models.CharField(choices=PARTY_TYPE_CHOICES, max_length=12, verbose_name='source type')),
                ('source_id', models.UUIDField(blank=True, null=True, verbose_name='source ID')),
                ('destination_type', models.CharField(choices=PARTY_TYPE_CHOICES, max_length=12, verbose_name='destination type')),
                ('destination_id', models.UUIDField(blank=True, null=True, verbose_name='destination ID')),
                ('quantity', models.IntegerField(verbose_name='quantity')),
                ('unit_price', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True, verbose_name='unit price')),
                ('total_value', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True, verbose_name='total value')),
                ('reference_type', models.CharField(blank=True, help_text='Model name of the source record, e.g. Purchase', max_length=100, verbose_name='reference type')),
                ('reference_id', models.UUIDField(blank=True, null=True, verbose_name='reference ID')),
                ('metadata', models.JSONField(blank=True, default=dict, verbose_name='metadata')),
                ('notes', models.TextField(blank=True, verbose_name='notes')),
                ('verified_at', models.DateTimeField(blank=True, null=True, verbose_name='verified at')),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, verbose_name='created at')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='catalog.product', verbose_name='product')),
                ('batch', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='ledger.batch', verbose_name='batch')),
                ('verified_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='verified by')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='created by')),
            ],
            options={
                'verbose_name': 'movement record',
                'verbose_name_plural': 'movement records',
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['batch', 'created_at', 'id'], name='movement_batch_trace_idx'),
                    models.Index(fields=['source_type', 'source_id'], name='movement_source_idx'),
                    models.Index(fields=['destination_type', 'destination_id'], name='movement_destination_idx'),
                    models.Index(fields=['reference_type', 'reference_id'], name='movement_reference_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('quantity__gt', 0)), name='movement_quantity_positive'),
                    models.CheckConstraint(condition=models.Q(('source_id__isnull', False), ('source_type', 'consumer'), _connector='OR'), name='movement_source_resolved'),
                    models.CheckConstraint(condition=models.Q(('destination_id__isnull', False), ('destination_type', 'consumer'), _connector='OR'), name='movement_destination_resolved'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Purchase',
            fields=base_fields() + [
                ('consumer_id', models.UUIDField(blank=True, db_index=True, null=True, verbose_name='consumer ID')),
                ('total_amount', models.DecimalField(decimal_places=2, max_digits=14, verbose_name='total amount')),
                ('payment_method', models.CharField(blank=True, max_length=50, verbose_name='payment method')),
                ('pos_transaction_id', models.CharField(blank=True, max_length=100, verbose_name='POS transaction ID')),
                ('order_metadata', models.JSONField(blank=True, default=dict, verbose_name='order metadata')),
                ('purchased_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, verbose_name='purchased at')),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True, verbose_name='IP address')),
                ('user_agent', models.TextField(blank=True, verbose_name='user agent')),
                ('retailer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='purchases', to='parties.retailer', verbose_name='retailer')),
            ],
            options={
                'verbose_name': 'purchase',
                'verbose_name_plural': 'purchases',
                'ordering': ['-purchased_at'],
                'indexes': [
                    models.Index(fields=['retailer', 'purchased_at'], name='purchase_retailer_ts_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('total_amount__gte', 0)), name='purchase_total_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='PurchaseItem',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('quantity', models.IntegerField(verbose_name='quantity')),
                ('unit_price', models.DecimalField(decimal_places=2, max_digits=10, verbose_name='unit price')),
                ('total_price', models.DecimalField(decimal_places=2, max_digits=14, verbose_name='total price')),
                ('discount_applied', models.DecimalField(decimal_places=2, default=0, max_digits=10, verbose_name='discount applied')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('purchase', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='ledger.purchase', verbose_name='purchase')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='+', to='catalog.product', verbose_name='product')),
                ('batch', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='purchase_items', to='ledger.batch', verbose_name='batch')),
            ],
            options={
                'verbose_name': 'purchase item',
                'verbose_name_plural': 'purchase items',
                'ordering': ['created_at'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('quantity__gt', 0)), name='purchase_item_quantity_positive'),
                    models.CheckConstraint(condition=models.Q(('unit_price__gte', 0)), name='purchase_item_price_non_negative'),
                ],
            },
        ),
    ]
