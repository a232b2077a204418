"""
Tests — Ledger models: insert-only MovementRecord, undeletable batches
and positions, derived batch predicates, reference format.

@file ledger/tests/test_models.py
"""

import datetime

import pytest
from django.db import IntegrityError, transaction
from django.utils import timezone

from ledger.models import BATCH_REFERENCE_PREFIX, MovementRecord, generate_batch_reference
from parties.models import PartyType
from tests.factories import BatchFactory, InventoryPositionFactory

pytestmark = pytest.mark.django_db


class TestMovementRecordInsertOnly:

    def test_update_raises(self, batch):
        movement = MovementRecord.objects.get(batch=batch)
        movement.quantity = 999
        with pytest.raises(NotImplementedError) as exc_info:
            movement.save()
        assert 'insert-only' in str(exc_info.value)

    def test_delete_raises(self, batch):
        movement = MovementRecord.objects.get(batch=batch)
        with pytest.raises(NotImplementedError):
            movement.delete()

    def test_bulk_update_and_delete_raise(self, batch):
        qs = MovementRecord.objects.filter(batch=batch)
        with pytest.raises(NotImplementedError):
            qs.update(quantity=1)
        with pytest.raises(NotImplementedError):
            qs.delete()
        assert MovementRecord.objects.filter(batch=batch).count() == 1

    def test_quantity_must_be_positive_at_database_level(self, batch):
        movement = MovementRecord(
            movement_type=MovementRecord.MovementType.DISPOSAL,
            product_id=batch.product_id,
            batch=batch,
            source_type=PartyType.MANUFACTURER,
            source_id=batch.product.manufacturer_id,
            destination_type=PartyType.MANUFACTURER,
            destination_id=batch.product.manufacturer_id,
            quantity=0,
        )
        with pytest.raises(IntegrityError), transaction.atomic():
            movement.save()

    def test_only_consumer_side_may_be_anonymous(self, batch):
        movement = MovementRecord(
            movement_type=MovementRecord.MovementType.SHIP_TO_RETAILER,
            product_id=batch.product_id,
            batch=batch,
            source_type=PartyType.MANUFACTURER,
            source_id=batch.product.manufacturer_id,
            destination_type=PartyType.RETAILER,
            destination_id=None,
            quantity=1,
        )
        with pytest.raises(IntegrityError), transaction.atomic():
            movement.save()

    def test_in_commit_order(self, stocked_batch):
        kinds = list(
            MovementRecord.objects.filter(batch=stocked_batch)
            .in_commit_order()
            .values_list('movement_type', flat=True)
        )
        assert kinds == [
            MovementRecord.MovementType.MANUFACTURE,
            MovementRecord.MovementType.SHIP_TO_RETAILER,
        ]


class TestBatch:

    def test_reference_format(self):
        reference = generate_batch_reference()
        assert reference.startswith(BATCH_REFERENCE_PREFIX)
        assert len(reference) == len(BATCH_REFERENCE_PREFIX) + 12
        assert reference == reference.upper()

    def test_references_are_unique(self):
        assert len({generate_batch_reference() for _ in range(200)}) == 200

    def test_delete_raises(self):
        batch = BatchFactory()
        with pytest.raises(NotImplementedError):
            batch.delete()

    def test_derived_predicates(self):
        today = timezone.localdate()
        batch = BatchFactory(
            manufacture_date=today - datetime.timedelta(days=400),
            expiry_date=today - datetime.timedelta(days=1),
            quantity_produced=5,
            quantity_available=0,
        )
        assert batch.is_expired
        assert batch.is_depleted
        assert not batch.is_recalled

    def test_available_cannot_exceed_produced(self):
        with pytest.raises(IntegrityError), transaction.atomic():
            BatchFactory(quantity_produced=10, quantity_available=11)

    def test_expiry_must_follow_manufacture(self):
        today = timezone.localdate()
        with pytest.raises(IntegrityError), transaction.atomic():
            BatchFactory(manufacture_date=today, expiry_date=today)


class TestInventoryPosition:

    def test_quantity_sellable(self):
        position = InventoryPositionFactory(quantity_in_stock=10, quantity_reserved=4)
        assert position.quantity_sellable == 6

    def test_reserved_cannot_exceed_stock(self):
        with pytest.raises(IntegrityError), transaction.atomic():
            InventoryPositionFactory(quantity_in_stock=2, quantity_reserved=3)

    def test_delete_raises(self):
        position = InventoryPositionFactory()
        with pytest.raises(NotImplementedError):
            position.delete()
