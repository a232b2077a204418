"""
Catalog — Django Admin Configuration

Categories and products with status colour coding and a batch inline,
plus product reviews (moderation view, verification is read-only).
Batches are shown read-only; production is recorded through the API.

@file catalog/admin.py
"""

from django.contrib import admin
from django.utils.html import format_html
from django.utils.translation import gettext_lazy as _

from ledger.models import Batch

from .models import Product, ProductCategory, ProductReview


@admin.register(ProductCategory)
class ProductCategoryAdmin(admin.ModelAdmin):
    list_display = ('name', 'slug', 'parent', 'created_at')
    search_fields = ('name', 'slug')
    prepopulated_fields = {'slug': ('name',)}
    ordering = ('name',)


class BatchInline(admin.TabularInline):
    model = Batch
    fk_name = 'product'
    extra = 0
    can_delete = False
    show_change_link = True
    fields = ('reference', 'batch_number', 'expiry_date', 'quantity_produced', 'quantity_available', 'recalled_at')
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = (
        'product_name', 'sku', 'manufacturer', 'category',
        'nicotine_strength', 'status_badge', 'created_at',
    )
    list_filter = ('status', 'category', 'is_deleted')
    search_fields = ('product_name', 'sku', 'manufacturer__company_name')
    readonly_fields = ('id', 'created_at', 'updated_at', 'created_by', 'updated_by')
    list_select_related = ('manufacturer', 'category')
    show_full_result_count = False
    list_per_page = 30
    ordering = ('product_name',)
    inlines = [BatchInline]

    fieldsets = (
        (_('Identification'), {
            'fields': ('id', 'manufacturer', 'category', 'product_name', 'sku', 'status'),
        }),
        (_('Product Details'), {
            'fields': ('description', 'nicotine_strength', 'volume_ml', 'flavor', 'ingredients', 'warnings'),
        }),
        (_('Attributes & Compliance'), {
            'fields': ('attributes', 'compliance_info', 'images'),
            'classes': ('collapse',),
        }),
        (_('Audit'), {
            'fields': ('created_at', 'updated_at', 'created_by', 'updated_by'),
            'classes': ('collapse',),
        }),
    )

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        if not request.GET.get('is_deleted__exact'):
            qs = qs.filter(is_deleted=False)
        return qs

    @admin.display(description=_('Status'))
    def status_badge(self, obj):
        colors = {'DRAFT': '#6b7280', 'ACTIVE': '#22c55e', 'DISCONTINUED': '#ef4444'}
        color = colors.get(obj.status, '#6b7280')
        return format_html(
            '<span style="background:{};color:#fff;padding:2px 8px;'
            'border-radius:4px;font-size:11px;font-weight:600;">{}</span>',
            color, obj.get_status_display(),
        )


@admin.register(ProductReview)
class ProductReviewAdmin(admin.ModelAdmin):
    list_display = ('product', 'rating', 'title', 'is_verified_purchase', 'helpful_count', 'created_at')
    list_filter = ('rating', 'is_verified_purchase')
    search_fields = ('title', 'product__product_name', 'product__sku')
    readonly_fields = (
        'id', 'product', 'consumer', 'purchase', 'is_verified_purchase',
        'helpful_count', 'created_at', 'updated_at', 'created_by',
    )
    list_select_related = ('product',)
    ordering = ('-created_at',)
