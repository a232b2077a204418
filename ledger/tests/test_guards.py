"""
Tests — ConsistencyGuard: balance bounds, write-once production,
movement routes and referential closure.

@file ledger/tests/test_guards.py
"""

import uuid

import pytest

from core.exceptions import ConsistencyViolation
from ledger.guards import ConsistencyGuard
from ledger.models import MovementRecord
from ledger.services import MovementEngine
from parties.models import PartyType
from tests.factories import BatchFactory, InventoryPositionFactory, ManufacturerFactory, RetailerFactory

pytestmark = pytest.mark.django_db

M = MovementRecord.MovementType


def _movement(batch, kind, source, destination, quantity=1):
    return MovementRecord(
        movement_type=kind,
        product_id=batch.product_id,
        batch=batch,
        source_type=source[0],
        source_id=source[1],
        destination_type=destination[0],
        destination_id=destination[1],
        quantity=quantity,
    )


class TestCheckBatch:

    def test_negative_available(self):
        batch = BatchFactory.build(quantity_produced=10, quantity_available=-1)
        with pytest.raises(ConsistencyViolation):
            ConsistencyGuard.check_batch(batch)

    def test_available_above_produced(self):
        batch = BatchFactory.build(quantity_produced=10, quantity_available=11)
        with pytest.raises(ConsistencyViolation):
            ConsistencyGuard.check_batch(batch)

    def test_produced_is_write_once(self):
        batch = BatchFactory.build(quantity_produced=12, quantity_available=10)
        with pytest.raises(ConsistencyViolation):
            ConsistencyGuard.check_batch(batch, locked_produced=10)

    def test_valid(self):
        ConsistencyGuard.check_batch(BatchFactory.build(quantity_produced=10, quantity_available=0))


class TestCheckPosition:

    def test_reserved_above_stock(self):
        position = InventoryPositionFactory()
        position.quantity_reserved = position.quantity_in_stock + 1
        with pytest.raises(ConsistencyViolation):
            ConsistencyGuard.check_position(position)

    def test_negative_stock(self):
        position = InventoryPositionFactory()
        position.quantity_in_stock = -1
        with pytest.raises(ConsistencyViolation):
            ConsistencyGuard.check_position(position)

    def test_batch_from_other_product(self):
        position = InventoryPositionFactory()
        position.product = BatchFactory().product
        with pytest.raises(ConsistencyViolation):
            ConsistencyGuard.check_position(position)


class TestCheckMovement:

    def test_valid_shipment(self):
        batch = BatchFactory()
        retailer = RetailerFactory()
        movement = _movement(
            batch, M.SHIP_TO_RETAILER,
            (PartyType.MANUFACTURER, batch.product.manufacturer_id),
            (PartyType.RETAILER, retailer.pk),
        )
        ConsistencyGuard.check_movement(movement, using='default')

    def test_anonymous_consumer_allowed(self):
        batch = BatchFactory()
        retailer = RetailerFactory()
        movement = _movement(
            batch, M.SALE_TO_CONSUMER,
            (PartyType.RETAILER, retailer.pk),
            (PartyType.CONSUMER, None),
        )
        ConsistencyGuard.check_movement(movement, using='default')

    def test_wrong_route(self):
        batch = BatchFactory()
        retailer = RetailerFactory()
        movement = _movement(
            batch, M.SHIP_TO_RETAILER,
            (PartyType.RETAILER, retailer.pk),
            (PartyType.RETAILER, retailer.pk),
        )
        with pytest.raises(ConsistencyViolation):
            ConsistencyGuard.check_movement(movement, using='default')

    def test_unresolved_party(self):
        batch = BatchFactory()
        movement = _movement(
            batch, M.SHIP_TO_RETAILER,
            (PartyType.MANUFACTURER, batch.product.manufacturer_id),
            (PartyType.RETAILER, uuid.uuid4()),
        )
        with pytest.raises(ConsistencyViolation):
            ConsistencyGuard.check_movement(movement, using='default')

    def test_foreign_manufacturer(self):
        batch = BatchFactory()
        stranger = ManufacturerFactory()
        movement = _movement(
            batch, M.MANUFACTURE,
            (PartyType.MANUFACTURER, stranger.pk),
            (PartyType.MANUFACTURER, stranger.pk),
        )
        with pytest.raises(ConsistencyViolation):
            ConsistencyGuard.check_movement(movement, using='default')

    def test_self_loop_required(self):
        batch = BatchFactory()
        retailer_a, retailer_b = RetailerFactory(), RetailerFactory()
        movement = _movement(
            batch, M.DISPOSAL,
            (PartyType.RETAILER, retailer_a.pk),
            (PartyType.RETAILER, retailer_b.pk),
        )
        with pytest.raises(ConsistencyViolation):
            ConsistencyGuard.check_movement(movement, using='default')

    def test_product_mismatch(self):
        batch = BatchFactory()
        movement = _movement(
            batch, M.MANUFACTURE,
            (PartyType.MANUFACTURER, batch.product.manufacturer_id),
            (PartyType.MANUFACTURER, batch.product.manufacturer_id),
        )
        movement.product_id = BatchFactory().product_id
        with pytest.raises(ConsistencyViolation):
            ConsistencyGuard.check_movement(movement, using='default')

    def test_non_positive_quantity(self):
        batch = BatchFactory()
        owner = (PartyType.MANUFACTURER, batch.product.manufacturer_id)
        with pytest.raises(ConsistencyViolation):
            ConsistencyGuard.check_movement(_movement(batch, M.DISPOSAL, owner, owner, quantity=0), using='default')


class TestVerifyAbortsTransaction:

    def test_violation_leaves_no_trace(self, batch, monkeypatch):
        def explode(*args, **kwargs):
            raise ConsistencyViolation(detail='forced')

        monkeypatch.setattr(ConsistencyGuard, 'verify', explode)
        with pytest.raises(ConsistencyViolation):
            MovementEngine.record_disposal(batch_id=batch.pk, quantity=5)

        batch.refresh_from_db()
        assert batch.quantity_available == 100
        assert MovementRecord.objects.filter(batch=batch).count() == 1
