"""
Parties — Models

The custodians a batch can pass through: Manufacturer, Retailer and
Consumer. Movement records refer to parties by (party_type, party_id)
rather than by foreign key, so a party row may later be soft-deleted or
anonymized without touching the append-only ledger.

@file parties/models.py
"""

from django.db import models
from django.utils.translation import gettext_lazy as _

from core.models import RegulatedModel


class PartyType(models.TextChoices):
    MANUFACTURER = 'manufacturer', _('Manufacturer')
    RETAILER = 'retailer', _('Retailer')
    CONSUMER = 'consumer', _('Consumer')


class VerificationStatus(models.TextChoices):
    PENDING = 'PENDING', _('Pending')
    VERIFIED = 'VERIFIED', _('Verified')
    SUSPENDED = 'SUSPENDED', _('Suspended')


class Manufacturer(RegulatedModel):
    """A licensed producer. Owns products and the batches made of them."""

    company_name = models.CharField(_('company name'), max_length=255)
    license_number = models.CharField(_('license number'), max_length=100, blank=True)
    address = models.TextField(_('address'), blank=True)
    contact_email = models.EmailField(_('contact email'), blank=True)
    verification_status = models.CharField(
        _('verification status'), max_length=12,
        choices=VerificationStatus.choices,
        default=VerificationStatus.PENDING,
        db_index=True,
    )
    metadata = models.JSONField(_('metadata'), default=dict, blank=True)

    class Meta:
        verbose_name = _('manufacturer')
        verbose_name_plural = _('manufacturers')
        ordering = ['company_name']
        indexes = [
            models.Index(fields=['verification_status', 'is_deleted'], name='mfr_status_idx'),
        ]

    def __str__(self):
        return self.company_name

    @property
    def is_suspended(self) -> bool:
        return self.verification_status == VerificationStatus.SUSPENDED


class Retailer(RegulatedModel):
    """
    A store that receives stock from manufacturers and sells to consumers.

    Coordinates are plain decimals; proximity search lives outside this
    system and only consumes inventory snapshots.
    """

    store_name = models.CharField(_('store name'), max_length=255)
    license_number = models.CharField(_('license number'), max_length=100, blank=True)
    address = models.TextField(_('address'), blank=True)
    latitude = models.DecimalField(
        _('latitude'), max_digits=9, decimal_places=6,
        null=True, blank=True,
    )
    longitude = models.DecimalField(
        _('longitude'), max_digits=9, decimal_places=6,
        null=True, blank=True,
    )
    phone = models.CharField(_('phone'), max_length=20, blank=True)
    email = models.EmailField(_('email'), blank=True)
    business_hours = models.JSONField(
        _('business hours'), default=dict, blank=True,
        help_text=_('{"monday": {"open": "09:00", "close": "17:00"}, ...}'),
    )
    verification_status = models.CharField(
        _('verification status'), max_length=12,
        choices=VerificationStatus.choices,
        default=VerificationStatus.PENDING,
        db_index=True,
    )
    metadata = models.JSONField(_('metadata'), default=dict, blank=True)

    class Meta:
        verbose_name = _('retailer')
        verbose_name_plural = _('retailers')
        ordering = ['store_name']
        indexes = [
            models.Index(fields=['verification_status', 'is_deleted'], name='retailer_status_idx'),
        ]

    def __str__(self):
        return self.store_name

    @property
    def is_suspended(self) -> bool:
        return self.verification_status == VerificationStatus.SUSPENDED


class Consumer(RegulatedModel):
    """
    A registered end customer. Purchases may also be anonymous, in which
    case no Consumer row is involved at all.
    """

    display_name = models.CharField(_('display name'), max_length=150, blank=True)
    external_ref = models.CharField(
        _('external reference'), max_length=64, blank=True, db_index=True,
        help_text=_('Identifier of the account in the storefront platform'),
    )
    is_anonymized = models.BooleanField(_('anonymized'), default=False)

    class Meta:
        verbose_name = _('consumer')
        verbose_name_plural = _('consumers')
        ordering = ['-created_at']

    def __str__(self):
        return self.display_name or f'Consumer #{self.pk}'

    def anonymize(self, user=None):
        """Strip personal data; ledger entries keep pointing at this id."""
        self.display_name = ''
        self.external_ref = ''
        self.is_anonymized = True
        self.updated_by = user
        self.save(update_fields=['display_name', 'external_ref', 'is_anonymized', 'updated_by', 'updated_at'])
