"""
Users — Service Layer

Account lifecycle and the identity resolution the ledger relies on.
No HTTP context: services receive plain Python arguments and raise
typed exceptions.

@file users/services.py
"""

import logging

from django.db import transaction

from core.constants import (
    AUDIT_ACTION_CREATE,
    AUDIT_ACTION_LOGIN,
    AUDIT_ACTION_STATUS_CHANGE,
    AUDIT_ACTION_UPDATE,
)
from core.exceptions import (
    DuplicateResourceError,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from core.services import AuditService
from parties.services import PartyDirectory, PartyRef

from .models import User

logger = logging.getLogger('quittrace')


# ---------------------------------------------------------------------------
# User service
# ---------------------------------------------------------------------------

class UserService:
    """Account creation, status lifecycle and party linking."""

    VALID_STATUS_TRANSITIONS = {
        'PENDING': {'ACTIVE', 'SUSPENDED'},
        'ACTIVE': {'SUSPENDED'},
        'SUSPENDED': {'ACTIVE'},
    }

    @staticmethod
    @transaction.atomic
    def create_user(*, email: str, password: str | None = None, actor=None, **extra_fields) -> User:
        if User.objects.filter(email__iexact=email).exists():
            raise DuplicateResourceError(detail=f'Email {email} already registered.')

        party_type = extra_fields.pop('party_type', '')
        party_id = extra_fields.pop('party_id', None)
        if party_type or party_id:
            PartyDirectory.get(party_type, party_id)

        user = User.objects.create_user(
            email=email, password=password,
            party_type=party_type or '', party_id=party_id,
            created_by=actor, **extra_fields,
        )
        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_CREATE,
            model_name='User',
            object_id=str(user.pk),
            new_values=AuditService.snapshot(user, fields=['email', 'status', 'party_type', 'party_id']),
        )
        return user

    @classmethod
    @transaction.atomic
    def change_status(cls, *, user_id, new_status: str, actor=None, reason: str = '') -> User:
        try:
            user = User.objects.select_for_update().get(pk=user_id, is_deleted=False)
        except User.DoesNotExist:
            raise NotFoundError()

        allowed = cls.VALID_STATUS_TRANSITIONS.get(user.status, set())
        if new_status not in allowed:
            raise InvalidStateTransition(
                detail=f'Cannot transition from {user.status} to {new_status}.',
            )

        old_status = user.status
        user.status = new_status
        user.updated_by = actor
        user.save(update_fields=['status', 'updated_by', 'updated_at'])

        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_STATUS_CHANGE,
            model_name='User',
            object_id=str(user.pk),
            old_values={'status': old_status},
            new_values={'status': new_status, 'reason': reason},
        )
        return user

    @staticmethod
    @transaction.atomic
    def link_party(*, user_id, party_type: str, party_id, actor=None) -> User:
        """Attach the account to an existing, live party."""
        try:
            user = User.objects.select_for_update().get(pk=user_id, is_deleted=False)
        except User.DoesNotExist:
            raise NotFoundError()

        party = PartyDirectory.get(party_type, party_id)
        old_values = {'party_type': user.party_type, 'party_id': str(user.party_id or '')}
        user.party_type = party_type
        user.party_id = party.pk
        user.updated_by = actor
        user.save(update_fields=['party_type', 'party_id', 'updated_by', 'updated_at'])

        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_UPDATE,
            model_name='User',
            object_id=str(user.pk),
            old_values=old_values,
            new_values={'party_type': party_type, 'party_id': str(party.pk)},
        )
        logger.info('User %s linked to %s %s.', user.pk, party_type, party.pk)
        return user


# ---------------------------------------------------------------------------
# Identity service
# ---------------------------------------------------------------------------

class IdentityService:
    """
    Resolves an authenticated caller to the ledger party it acts for.
    Credentials are verified upstream (JWT); this only reads the mapping.
    """

    @staticmethod
    def resolve(user) -> PartyRef:
        if user is None or not user.is_authenticated:
            raise ValidationError(detail='Caller is not authenticated.')
        if not user.party_type or user.party_id is None:
            raise ValidationError(detail='Account is not linked to a ledger party.')
        return PartyRef(party_type=user.party_type, party_id=user.party_id)

    @staticmethod
    def log_login(*, user, ip_address=None, user_agent='') -> None:
        AuditService.log(
            actor=user,
            action=AUDIT_ACTION_LOGIN,
            model_name='User',
            object_id=str(user.pk),
            ip_address=ip_address,
            user_agent=user_agent,
        )
