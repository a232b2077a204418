"""
Ledger — Django Admin Configuration

Batches, positions and purchases are browsable but not editable: every
quantity change goes through MovementEngine. MovementRecord is
INSERT ONLY, so its admin has no add, change or delete.

@file ledger/admin.py
"""

from django.contrib import admin
from django.utils.html import format_html
from django.utils.translation import gettext_lazy as _

from .models import Batch, InventoryPosition, MovementRecord, Purchase, PurchaseItem


class _ReadOnlyAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Batch)
class BatchAdmin(_ReadOnlyAdmin):
    list_display = (
        'reference', 'batch_number', 'product', 'expiry_date',
        'quantity_produced', 'quantity_available', 'state_badge',
    )
    list_filter = ('expiry_date', 'recalled_at')
    search_fields = ('reference', 'batch_number', 'product__sku', 'product__product_name')
    list_select_related = ('product',)
    date_hierarchy = 'manufacture_date'
    ordering = ('-created_at',)

    fieldsets = (
        (_('Batch'), {
            'fields': ('reference', 'product', 'batch_number', 'manufacture_date', 'expiry_date'),
        }),
        (_('Quantities'), {
            'fields': ('quantity_produced', 'quantity_available'),
        }),
        (_('Quality'), {
            'fields': ('lab_test_results', 'qr_code_data'),
            'classes': ('collapse',),
        }),
        (_('Recall'), {
            'fields': ('recalled_at', 'recall_reason'),
        }),
    )

    @admin.display(description=_('State'))
    def state_badge(self, obj):
        if obj.is_recalled:
            label, color = 'RECALLED', '#ef4444'
        elif obj.is_expired:
            label, color = 'EXPIRED', '#f59e0b'
        elif obj.is_depleted:
            label, color = 'DEPLETED', '#6b7280'
        else:
            label, color = 'AVAILABLE', '#22c55e'
        return format_html(
            '<span style="background:{};color:#fff;padding:2px 8px;border-radius:4px;font-size:11px">{}</span>',
            color, label,
        )


@admin.register(InventoryPosition)
class InventoryPositionAdmin(_ReadOnlyAdmin):
    list_display = (
        'retailer', 'product', 'batch', 'quantity_in_stock',
        'quantity_reserved', 'price', 'is_active', 'updated_at',
    )
    list_filter = ('is_active',)
    search_fields = ('retailer__store_name', 'product__sku', 'batch__reference')
    list_select_related = ('retailer', 'product', 'batch')
    ordering = ('-updated_at',)


@admin.register(MovementRecord)
class MovementRecordAdmin(_ReadOnlyAdmin):
    list_display = (
        'id', 'movement_type', 'batch', 'quantity',
        'source_type', 'source_id', 'destination_type', 'destination_id',
        'created_by', 'created_at',
    )
    list_filter = ('movement_type', 'source_type', 'destination_type', 'created_at')
    search_fields = ('batch__reference', 'reference_type')
    readonly_fields = (
        'id', 'uuid', 'movement_type', 'product', 'batch',
        'source_type', 'source_id', 'destination_type', 'destination_id',
        'quantity', 'unit_price', 'total_value',
        'reference_type', 'reference_id', 'metadata', 'notes',
        'verified_by', 'verified_at', 'created_by', 'created_at',
    )
    list_select_related = ('batch', 'created_by')
    show_full_result_count = False
    list_per_page = 50
    date_hierarchy = 'created_at'
    ordering = ('-created_at', '-id')

    fieldsets = (
        (_('Movement'), {
            'fields': ('id', 'uuid', 'movement_type', 'product', 'batch', 'quantity', 'unit_price', 'total_value'),
        }),
        (_('Parties'), {
            'fields': ('source_type', 'source_id', 'destination_type', 'destination_id'),
        }),
        (_('Reference'), {
            'fields': ('reference_type', 'reference_id', 'metadata', 'notes'),
        }),
        (_('Audit'), {
            'fields': ('verified_by', 'verified_at', 'created_by', 'created_at'),
        }),
    )


class PurchaseItemInline(admin.TabularInline):
    model = PurchaseItem
    extra = 0
    can_delete = False
    readonly_fields = ('product', 'batch', 'quantity', 'unit_price', 'total_price', 'discount_applied')

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Purchase)
class PurchaseAdmin(_ReadOnlyAdmin):
    list_display = ('id', 'retailer', 'consumer_id', 'total_amount', 'payment_method', 'purchased_at')
    list_filter = ('payment_method', 'purchased_at')
    search_fields = ('pos_transaction_id', 'retailer__store_name')
    list_select_related = ('retailer',)
    date_hierarchy = 'purchased_at'
    inlines = [PurchaseItemInline]
