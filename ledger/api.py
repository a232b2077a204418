"""
Ledger — Transport-Agnostic Interface

The four operations other systems call: create_batch, ship, purchase and
trace. Each wraps a MovementEngine operation and returns a typed result;
failures propagate as the core exceptions.

@file ledger/api.py
"""

import datetime
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from .services import LineItem, MovementEngine


@dataclass(frozen=True)
class BatchCreated:
    batch_id: UUID
    batch_reference: str


@dataclass(frozen=True)
class Shipment:
    movement_id: UUID
    batch_id: UUID
    retailer_id: UUID
    quantity: int


@dataclass(frozen=True)
class PurchaseReceipt:
    purchase_id: UUID
    total_amount: Decimal


@dataclass(frozen=True)
class TraceEntry:
    movement_id: UUID
    movement_type: str
    quantity: int
    source_type: str
    source_id: UUID | None
    destination_type: str
    destination_id: UUID | None
    unit_price: Decimal | None
    timestamp: datetime.datetime


def create_batch(product_id, batch_fields: dict, *, actor=None, using=None) -> BatchCreated:
    batch = MovementEngine.record_manufacture(product_id=product_id, actor=actor, using=using, **batch_fields)
    return BatchCreated(batch_id=batch.pk, batch_reference=batch.reference)


def ship(batch_id, retailer_id, quantity: int, unit_price, *, actor=None, using=None) -> Shipment:
    movement = MovementEngine.ship_to_retailer(
        batch_id=batch_id,
        retailer_id=retailer_id,
        quantity=quantity,
        unit_price=unit_price,
        actor=actor,
        using=using,
    )
    return Shipment(
        movement_id=movement.uuid,
        batch_id=movement.batch_id,
        retailer_id=movement.destination_id,
        quantity=movement.quantity,
    )


def purchase(retailer_id, line_items: list[LineItem | dict], *, consumer_id=None, actor=None,
             using=None, **details) -> PurchaseReceipt:
    result = MovementEngine.sell_to_consumer(
        retailer_id=retailer_id,
        line_items=line_items,
        consumer_id=consumer_id,
        actor=actor,
        using=using,
        **details,
    )
    return PurchaseReceipt(purchase_id=result.pk, total_amount=result.total_amount)


def trace(batch_reference: str, *, using=None) -> list[TraceEntry]:
    return [
        TraceEntry(
            movement_id=movement.uuid,
            movement_type=movement.movement_type,
            quantity=movement.quantity,
            source_type=movement.source_type,
            source_id=movement.source_id,
            destination_type=movement.destination_type,
            destination_id=movement.destination_id,
            unit_price=movement.unit_price,
            timestamp=movement.created_at,
        )
        for movement in MovementEngine.trace(batch_reference, using=using)
    ]
