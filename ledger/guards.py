"""
Ledger — Consistency Guard

Invariant checks run inside every mutating ledger transaction, after the
in-memory changes are made and before anything is committed. A failed
check raises ConsistencyViolation, which aborts the enclosing
transaction: the caller never sees a partial effect.

A violation here means a logic bug or an uncaught race; input errors are
rejected earlier as ValidationError / InsufficientQuantityError.

@file ledger/guards.py
"""

import logging

from core.exceptions import ConsistencyViolation
from parties.models import PartyType
from parties.services import PartyDirectory, PartyRef

from .models import Batch, InventoryPosition, MovementRecord

logger = logging.getLogger('quittrace')

M = MovementRecord.MovementType
MANUFACTURER, RETAILER, CONSUMER = PartyType.MANUFACTURER, PartyType.RETAILER, PartyType.CONSUMER

# Allowed (source_type, destination_type) per movement kind.
MOVEMENT_ROUTES = {
    M.MANUFACTURE: {(MANUFACTURER, MANUFACTURER)},
    M.SHIP_TO_RETAILER: {(MANUFACTURER, RETAILER)},
    M.SALE_TO_CONSUMER: {(RETAILER, CONSUMER)},
    M.RETURN: {(RETAILER, MANUFACTURER), (CONSUMER, RETAILER)},
    M.DISPOSAL: {(MANUFACTURER, MANUFACTURER), (RETAILER, RETAILER)},
    M.RECALL: {(RETAILER, MANUFACTURER), (MANUFACTURER, MANUFACTURER)},
    M.TRANSFER: {(RETAILER, RETAILER)},
}

# Kinds whose source and destination must be the same party.
SELF_LOOP_KINDS = {M.MANUFACTURE, M.DISPOSAL}


def _violation(message: str) -> ConsistencyViolation:
    logger.error('Consistency violation: %s', message)
    return ConsistencyViolation(detail=message)


class ConsistencyGuard:
    """Stateless invariant checks over batches, positions and movements."""

    @staticmethod
    def check_batch(batch: Batch, *, locked_produced: int | None = None) -> None:
        if batch.quantity_available < 0:
            raise _violation(f'Batch {batch.pk}: quantity_available is negative ({batch.quantity_available}).')
        if batch.quantity_produced <= 0:
            raise _violation(f'Batch {batch.pk}: quantity_produced must be positive.')
        if batch.quantity_available > batch.quantity_produced:
            raise _violation(
                f'Batch {batch.pk}: quantity_available {batch.quantity_available} '
                f'exceeds quantity_produced {batch.quantity_produced}.',
            )
        if locked_produced is not None and batch.quantity_produced != locked_produced:
            raise _violation(f'Batch {batch.pk}: quantity_produced is write-once.')

    @staticmethod
    def check_position(position: InventoryPosition) -> None:
        if position.quantity_in_stock < 0:
            raise _violation(f'Position {position.pk}: quantity_in_stock is negative.')
        if position.quantity_reserved < 0:
            raise _violation(f'Position {position.pk}: quantity_reserved is negative.')
        if position.quantity_reserved > position.quantity_in_stock:
            raise _violation(
                f'Position {position.pk}: reserved {position.quantity_reserved} '
                f'exceeds in-stock {position.quantity_in_stock}.',
            )
        if position.batch_id and position.product_id and position.batch.product_id != position.product_id:
            raise _violation(f'Position {position.pk}: batch does not belong to product.')

    @staticmethod
    def check_movement(movement: MovementRecord, *, using: str) -> None:
        """Referential closure: no orphan or mis-typed references."""
        if movement.quantity is None or movement.quantity <= 0:
            raise _violation(f'Movement {movement.movement_type}: quantity must be positive.')

        try:
            batch = (
                Batch.objects.using(using)
                .values('product_id', 'product__manufacturer_id')
                .get(pk=movement.batch_id)
            )
        except Batch.DoesNotExist:
            raise _violation(f'Movement references missing batch {movement.batch_id}.')
        if batch['product_id'] != movement.product_id:
            raise _violation(f'Movement product {movement.product_id} does not match batch {movement.batch_id}.')
        owner_id = batch['product__manufacturer_id']

        route = (movement.source_type, movement.destination_type)
        if route not in MOVEMENT_ROUTES.get(movement.movement_type, set()):
            raise _violation(f'{movement.movement_type} cannot move {route[0]} -> {route[1]}.')
        if movement.movement_type in SELF_LOOP_KINDS and movement.source_id != movement.destination_id:
            raise _violation(f'{movement.movement_type} must have the same source and destination.')

        for side, ref in (
            ('source', PartyRef(movement.source_type, movement.source_id)),
            ('destination', PartyRef(movement.destination_type, movement.destination_id)),
        ):
            if ref.party_id is None and ref.party_type != CONSUMER:
                raise _violation(f'Movement {side} {ref.party_type} has no id.')
            if not PartyDirectory.exists(ref, using=using):
                raise _violation(f'Movement {side} {ref.party_type}:{ref.party_id} does not resolve.')
            if ref.party_type == MANUFACTURER and ref.party_id != owner_id:
                raise _violation(f'Movement {side} manufacturer does not own batch {movement.batch_id}.')

    @classmethod
    def verify(cls, *, using: str, batches=(), positions=(), movements=(), locked_produced=None) -> None:
        """
        Run every check for one operation. `locked_produced` maps batch pk
        to the quantity_produced read under lock.
        """
        locked_produced = locked_produced or {}
        for batch in batches:
            cls.check_batch(batch, locked_produced=locked_produced.get(batch.pk))
        for position in positions:
            cls.check_position(position)
        for movement in movements:
            cls.check_movement(movement, using=using)
