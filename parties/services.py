"""
Parties — Service Layer

Party lifecycle (create, verify, suspend, anonymize) and the
PartyDirectory used by the ledger to check that a movement's source and
destination exist and to label them in custody chains.
All status transitions are audited.

@file parties/services.py
"""

import logging
import uuid
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction

from core.constants import AUDIT_ACTION_CREATE, AUDIT_ACTION_STATUS_CHANGE, AUDIT_ACTION_UPDATE
from core.exceptions import InvalidStateTransition, NotFoundError, ValidationError
from core.services import AuditService

from .models import Consumer, Manufacturer, PartyType, Retailer, VerificationStatus
from .schemas import validate_party_metadata

logger = logging.getLogger('quittrace')

ANONYMOUS_CONSUMER_LABEL = 'Anonymous consumer'


@dataclass(frozen=True)
class PartyRef:
    """A custodian as referenced by the ledger: kind plus row id."""

    party_type: str
    party_id: uuid.UUID | None

    @property
    def is_anonymous(self) -> bool:
        return self.party_type == PartyType.CONSUMER and self.party_id is None


# Valid status transitions (from -> set of allowed to)
PARTY_STATUS_TRANSITIONS = {
    VerificationStatus.PENDING: {VerificationStatus.VERIFIED, VerificationStatus.SUSPENDED},
    VerificationStatus.VERIFIED: {VerificationStatus.SUSPENDED},
    VerificationStatus.SUSPENDED: {VerificationStatus.VERIFIED},
}

_PARTY_MODELS = {
    PartyType.MANUFACTURER: Manufacturer,
    PartyType.RETAILER: Retailer,
    PartyType.CONSUMER: Consumer,
}


class PartyService:
    """Party lifecycle: create, update, verify / suspend, anonymize."""

    @staticmethod
    @transaction.atomic
    def create_party(*, party_type: str, actor=None, **fields):
        model = PartyDirectory.model_for(party_type)
        if 'metadata' in fields:
            fields['metadata'] = validate_party_metadata(fields['metadata'])
        party = model(**fields)
        party.full_clean()
        party.created_by = actor
        party.save()

        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_CREATE,
            model_name=model.__name__,
            object_id=str(party.pk),
            new_values=AuditService.snapshot(party),
        )
        logger.info('%s %s created.', model.__name__, party.pk)
        return party

    @staticmethod
    @transaction.atomic
    def update_party(*, party_type: str, party_id, actor=None, **fields):
        """Update descriptive fields; status goes through change_status only."""
        model = PartyDirectory.model_for(party_type)
        try:
            party = model.objects.select_for_update().get(pk=party_id, is_deleted=False)
        except model.DoesNotExist:
            raise NotFoundError(detail=f'{model.__name__} {party_id} not found.')

        for key in ('verification_status', 'id', 'is_anonymized'):
            fields.pop(key, None)
        if 'metadata' in fields:
            fields['metadata'] = validate_party_metadata(fields['metadata'])

        old_snapshot = AuditService.snapshot(party)
        for field, value in fields.items():
            if hasattr(party, field):
                setattr(party, field, value)
        party.updated_by = actor
        party.full_clean()
        party.save()

        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_UPDATE,
            model_name=model.__name__,
            object_id=str(party.pk),
            old_values=old_snapshot,
            new_values=AuditService.snapshot(party),
        )
        return party

    @staticmethod
    @transaction.atomic
    def change_status(*, party_type: str, party_id, new_status: str, reason: str = '', actor=None):
        if party_type == PartyType.CONSUMER:
            raise ValidationError(detail='Consumers carry no verification status.')

        model = PartyDirectory.model_for(party_type)
        try:
            party = model.objects.select_for_update().get(pk=party_id, is_deleted=False)
        except model.DoesNotExist:
            raise NotFoundError(detail=f'{model.__name__} {party_id} not found.')

        old_status = party.verification_status
        allowed = PARTY_STATUS_TRANSITIONS.get(old_status, set())
        if new_status not in allowed:
            raise InvalidStateTransition(
                detail=f'Cannot transition from {old_status} to {new_status}.',
            )

        party.verification_status = new_status
        party.updated_by = actor
        party.save(update_fields=['verification_status', 'updated_by', 'updated_at'])

        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_STATUS_CHANGE,
            model_name=model.__name__,
            object_id=str(party.pk),
            old_values={'verification_status': old_status},
            new_values={'verification_status': new_status, 'reason': reason or ''},
        )
        logger.info('%s %s: %s -> %s by %s.', model.__name__, party_id, old_status, new_status, actor)
        return party

    @classmethod
    def verify(cls, *, party_type: str, party_id, reason: str = '', actor=None):
        return cls.change_status(
            party_type=party_type, party_id=party_id,
            new_status=VerificationStatus.VERIFIED, reason=reason, actor=actor,
        )

    @classmethod
    def suspend(cls, *, party_type: str, party_id, reason: str = '', actor=None):
        return cls.change_status(
            party_type=party_type, party_id=party_id,
            new_status=VerificationStatus.SUSPENDED, reason=reason, actor=actor,
        )

    @staticmethod
    @transaction.atomic
    def anonymize_consumer(*, consumer_id, actor=None) -> Consumer:
        try:
            consumer = Consumer.objects.select_for_update().get(pk=consumer_id, is_deleted=False)
        except Consumer.DoesNotExist:
            raise NotFoundError(detail=f'Consumer {consumer_id} not found.')

        consumer.anonymize(user=actor)
        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_UPDATE,
            model_name='Consumer',
            object_id=str(consumer.pk),
            new_values={'is_anonymized': True},
        )
        return consumer


class PartyDirectory:
    """Lookup and display-name resolution for ledger parties."""

    @staticmethod
    def model_for(party_type: str):
        try:
            return _PARTY_MODELS[party_type]
        except KeyError:
            raise ValidationError(detail=f'Unknown party type "{party_type}".')

    @classmethod
    def get(cls, party_type: str, party_id, *, using=None, for_update=False):
        """Fetch a live party row or raise NotFoundError."""
        model = cls.model_for(party_type)
        qs = model.objects.using(using)
        if for_update:
            qs = qs.select_for_update()
        try:
            return qs.get(pk=party_id, is_deleted=False)
        except (model.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFoundError(detail=f'{model.__name__} {party_id} not found.')

    @classmethod
    def exists(cls, ref: PartyRef, *, using=None) -> bool:
        if ref.is_anonymous:
            return True
        if ref.party_id is None:
            return False
        model = cls.model_for(ref.party_type)
        return model.objects.using(using).filter(pk=ref.party_id, is_deleted=False).exists()

    @staticmethod
    def require_active(party) -> None:
        """Suspended parties cannot take custody of, or hand over, stock."""
        if getattr(party, 'is_suspended', False):
            raise ValidationError(detail=f'{party.__class__.__name__} {party.pk} is suspended.')

    @staticmethod
    def _label_for(party_type: str, party) -> str:
        if party_type == PartyType.MANUFACTURER:
            return party.company_name
        if party_type == PartyType.RETAILER:
            return party.store_name
        return f'Consumer #{party.pk}'

    @classmethod
    def label(cls, ref: PartyRef, *, using=None) -> str:
        return cls.labels([ref], using=using)[ref]

    @classmethod
    def labels(cls, refs: Iterable[PartyRef], *, using=None) -> dict[PartyRef, str]:
        """
        Resolve display names for many parties with one query per party
        type. Parties that no longer resolve (deleted, anonymized, or never
        existed) get a generic "Party #<id>" label instead of an error.
        """
        refs = set(refs)
        wanted: dict[str, set] = defaultdict(set)
        for ref in refs:
            if not ref.is_anonymous and ref.party_id is not None:
                wanted[ref.party_type].add(ref.party_id)

        found: dict[tuple[str, uuid.UUID], str] = {}
        for party_type, ids in wanted.items():
            model = _PARTY_MODELS.get(party_type)
            if model is None:
                continue
            qs = model.objects.using(using).filter(pk__in=ids, is_deleted=False)
            if model is Consumer:
                qs = qs.filter(is_anonymized=False)
            for party in qs:
                found[(party_type, party.pk)] = cls._label_for(party_type, party)

        result = {}
        for ref in refs:
            if ref.is_anonymous:
                result[ref] = ANONYMOUS_CONSUMER_LABEL
            else:
                result[ref] = found.get((ref.party_type, ref.party_id), f'Party #{ref.party_id}')
        return result
