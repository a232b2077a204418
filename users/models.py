"""
Users — Models

Custom User model with UUID PK, email login and a status lifecycle.
A user acts on behalf of at most one ledger party (manufacturer,
retailer or consumer); the (party_type, party_id) pair is what the
identity service hands to the ledger.

@file users/models.py
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from core.models import RegulatedModel
from parties.models import PartyType
from users.managers import UserManager


class User(AbstractBaseUser, PermissionsMixin, RegulatedModel):
    """
    Custom user for Quit-Trace.

    Authentication is email-based. Staff users administer parties and
    the catalog; party users are scoped to their own manufacturer or
    retailer.
    """

    class StatusChoices(models.TextChoices):
        PENDING = 'PENDING', _('Pending')
        ACTIVE = 'ACTIVE', _('Active')
        SUSPENDED = 'SUSPENDED', _('Suspended')

    email = models.EmailField(_('email'), unique=True)
    first_name = models.CharField(_('first name'), max_length=100, blank=True)
    last_name = models.CharField(_('last name'), max_length=100, blank=True)

    status = models.CharField(
        _('status'), max_length=12,
        choices=StatusChoices.choices, default=StatusChoices.PENDING,
        db_index=True,
    )

    party_type = models.CharField(
        _('party type'), max_length=12,
        choices=PartyType.choices, blank=True, default='',
    )
    party_id = models.UUIDField(_('party ID'), null=True, blank=True, db_index=True)

    is_staff = models.BooleanField(_('staff status'), default=False)
    is_active = models.BooleanField(_('active'), default=True)
    date_joined = models.DateTimeField(_('date joined'), default=timezone.now)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'is_deleted'], name='user_status_idx'),
            models.Index(fields=['party_type', 'party_id'], name='user_party_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(party_type='', party_id__isnull=True)
                    | (~models.Q(party_type='') & models.Q(party_id__isnull=False))
                ),
                name='user_party_pair_complete',
            ),
        ]

    def __str__(self):
        return self.get_full_name() or self.email

    def get_full_name(self):
        full = f'{self.first_name} {self.last_name}'.strip()
        return full or self.email

    def get_short_name(self):
        return self.first_name or self.email

    def acts_as(self, party_type: str) -> bool:
        return bool(self.party_id) and self.party_type == party_type
