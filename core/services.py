"""
Core — Audit Service

Writes compliance log entries for every app. Ledger writes pass
`using=` so the audit row commits or rolls back with the movement it
describes.

@file core/services.py
"""

import logging
from decimal import Decimal
from typing import Any

from django.forms.models import model_to_dict

from core.constants import AUDIT_ACTION_MOVEMENT
from core.models import AuditLog

logger = logging.getLogger('quittrace')


class AuditService:
    """Centralised compliance logging for every write operation."""

    @staticmethod
    def log(
        *,
        actor,
        action: str,
        model_name: str,
        object_id: str,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str = '',
        using: str | None = None,
    ) -> AuditLog:
        entry = AuditLog(
            actor=actor,
            action=action,
            model_name=model_name,
            object_id=str(object_id),
            old_values=old_values,
            new_values=new_values,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        entry.save(using=using)
        return entry

    @classmethod
    def log_movement(cls, movement, *, actor=None, using: str | None = None) -> AuditLog:
        """Compliance row mirroring one custody movement, written in the same transaction."""
        source = f'{movement.source_type}:{movement.source_id or ""}'
        destination = f'{movement.destination_type}:{movement.destination_id or ""}'
        logger.debug(
            'Audit movement %s %s x%s %s -> %s',
            movement.uuid, movement.movement_type, movement.quantity, source, destination,
        )
        return cls.log(
            actor=actor,
            action=AUDIT_ACTION_MOVEMENT,
            model_name='MovementRecord',
            object_id=str(movement.uuid),
            new_values={
                'movement_type': movement.movement_type,
                'batch_id': str(movement.batch_id),
                'quantity': movement.quantity,
                'source': source,
                'destination': destination,
                'unit_price': str(movement.unit_price) if movement.unit_price is not None else None,
            },
            using=using,
        )

    @staticmethod
    def snapshot(instance, fields=None) -> dict[str, Any]:
        """
        Serialise a model instance to a plain dict suitable for JSON
        storage. Dates are ISO-formatted; UUIDs and Decimals stringified;
        M2M / querysets reduced to lists of PKs.
        """
        data = model_to_dict(instance, fields=fields)
        cleaned: dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                cleaned[key] = None
            elif isinstance(value, Decimal):
                cleaned[key] = str(value)
            elif hasattr(value, 'isoformat'):
                cleaned[key] = value.isoformat()
            elif hasattr(value, 'hex'):
                cleaned[key] = str(value)
            elif hasattr(value, 'all'):
                cleaned[key] = [str(obj.pk) for obj in value.all()]
            elif isinstance(value, (list, tuple)):
                cleaned[key] = [str(v.pk) if hasattr(v, 'pk') else v for v in value]
            else:
                cleaned[key] = value
        return cleaned

    @staticmethod
    def get_client_ip(request) -> str | None:
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            return x_forwarded_for.split(',')[0].strip()
        return request.META.get('REMOTE_ADDR')
