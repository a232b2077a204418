"""
Parties — Django Admin Configuration

Admin for Manufacturer, Retailer and Consumer with verification status
badges. Status changes go through the verify / suspend admin actions so
they are audited like API transitions.

@file parties/admin.py
"""

from django.contrib import admin, messages
from django.utils.html import format_html
from django.utils.translation import gettext_lazy as _

from core.exceptions import InvalidStateTransition

from .models import Consumer, Manufacturer, PartyType, Retailer
from .services import PartyService

_STATUS_COLORS = {'PENDING': '#f59e0b', 'VERIFIED': '#22c55e', 'SUSPENDED': '#dc2626'}

_AUDIT_FIELDSETS = (
    (_('Audit'), {
        'fields': ('created_at', 'updated_at', 'created_by', 'updated_by'),
        'classes': ('collapse',),
    }),
    (_('Soft Delete'), {
        'fields': ('is_deleted', 'deleted_at', 'deleted_by'),
        'classes': ('collapse',),
    }),
)


class _VerifiablePartyAdmin(admin.ModelAdmin):
    party_type = None
    list_filter = ('verification_status', 'is_deleted')
    readonly_fields = (
        'id', 'verification_status', 'created_at', 'updated_at',
        'created_by', 'updated_by', 'deleted_at', 'deleted_by',
    )
    show_full_result_count = False
    list_per_page = 30
    actions = ['verify_selected', 'suspend_selected']

    @admin.display(description=_('Status'))
    def status_badge(self, obj):
        color = _STATUS_COLORS.get(obj.verification_status, '#6b7280')
        return format_html(
            '<span style="background:{};color:#fff;padding:2px 8px;'
            'border-radius:4px;font-size:11px;font-weight:600;">{}</span>',
            color, obj.get_verification_status_display(),
        )

    def _transition(self, request, queryset, method):
        done = 0
        for party in queryset:
            try:
                method(party_type=self.party_type, party_id=party.pk, actor=request.user)
                done += 1
            except InvalidStateTransition as exc:
                self.message_user(request, f'{party}: {exc.detail}', level=messages.WARNING)
        if done:
            self.message_user(request, _('%d record(s) updated.') % done, level=messages.SUCCESS)

    @admin.action(description=_('Verify selected'))
    def verify_selected(self, request, queryset):
        self._transition(request, queryset, PartyService.verify)

    @admin.action(description=_('Suspend selected'))
    def suspend_selected(self, request, queryset):
        self._transition(request, queryset, PartyService.suspend)


@admin.register(Manufacturer)
class ManufacturerAdmin(_VerifiablePartyAdmin):
    party_type = PartyType.MANUFACTURER
    list_display = ('company_name', 'license_number', 'status_badge', 'contact_email', 'created_at')
    search_fields = ('company_name', 'license_number', 'contact_email')
    ordering = ('company_name',)

    fieldsets = (
        (_('Identification'), {
            'fields': ('id', 'company_name', 'license_number'),
        }),
        (_('Contact'), {
            'fields': ('address', 'contact_email'),
        }),
        (_('Status'), {
            'fields': ('verification_status',),
        }),
        (_('Metadata'), {
            'fields': ('metadata',),
            'classes': ('collapse',),
        }),
    ) + _AUDIT_FIELDSETS


@admin.register(Retailer)
class RetailerAdmin(_VerifiablePartyAdmin):
    party_type = PartyType.RETAILER
    list_display = ('store_name', 'license_number', 'status_badge', 'phone', 'created_at')
    search_fields = ('store_name', 'license_number', 'address', 'phone')
    ordering = ('store_name',)

    fieldsets = (
        (_('Identification'), {
            'fields': ('id', 'store_name', 'license_number'),
        }),
        (_('Location'), {
            'fields': ('address', 'latitude', 'longitude', 'phone', 'email', 'business_hours'),
        }),
        (_('Status'), {
            'fields': ('verification_status',),
        }),
        (_('Metadata'), {
            'fields': ('metadata',),
            'classes': ('collapse',),
        }),
    ) + _AUDIT_FIELDSETS


@admin.register(Consumer)
class ConsumerAdmin(admin.ModelAdmin):
    list_display = ('id', 'display_name', 'external_ref', 'is_anonymized', 'created_at')
    list_filter = ('is_anonymized', 'is_deleted')
    search_fields = ('display_name', 'external_ref')
    readonly_fields = ('id', 'is_anonymized', 'created_at', 'updated_at')
    actions = ['anonymize_selected']

    @admin.action(description=_('Anonymize selected'))
    def anonymize_selected(self, request, queryset):
        for consumer in queryset.filter(is_anonymized=False):
            PartyService.anonymize_consumer(consumer_id=consumer.pk, actor=request.user)
