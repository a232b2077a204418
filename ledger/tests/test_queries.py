"""
Tests — read side and the transport-agnostic interface: custody chain,
stock snapshot, QR label and ledger.api.

@file ledger/tests/test_queries.py
"""

import datetime
from decimal import Decimal

import pytest
from django.utils import timezone

from core.exceptions import InsufficientQuantityError, NotFoundError
from ledger import api
from ledger.models import InventoryPosition, MovementRecord, Purchase
from ledger.services import (
    BatchLabelService,
    InventorySnapshotService,
    LineItem,
    MovementEngine,
    TraceabilityService,
)
from parties.models import VerificationStatus
from parties.services import ANONYMOUS_CONSUMER_LABEL
from tests.factories import InventoryPositionFactory

pytestmark = pytest.mark.django_db

M = MovementRecord.MovementType


class TestCustodyChain:

    def test_labels_and_sequence(self, stocked_batch, manufacturer, retailer):
        MovementEngine.sell_to_consumer(
            retailer_id=retailer.pk,
            line_items=[LineItem(stocked_batch.product_id, stocked_batch.pk, 2, Decimal('10.00'))],
        )
        chain = TraceabilityService.custody_chain(stocked_batch.reference)

        assert chain.batch_reference == stocked_batch.reference
        assert chain.manufacturer_label == manufacturer.company_name
        assert [step.sequence for step in chain.steps] == [1, 2, 3]
        assert [step.movement_type for step in chain.steps] == [M.MANUFACTURE, M.SHIP_TO_RETAILER, M.SALE_TO_CONSUMER]
        assert chain.steps[1].destination_label == retailer.store_name
        assert chain.steps[2].destination_label == ANONYMOUS_CONSUMER_LABEL
        assert chain.steps[2].destination.is_anonymous

    def test_deleted_party_gets_generic_label(self, stocked_batch, retailer):
        retailer.is_deleted = True
        retailer.save()
        chain = TraceabilityService.custody_chain(stocked_batch.reference)
        assert chain.steps[1].destination_label == f'Party #{retailer.pk}'

    def test_unknown_reference(self):
        with pytest.raises(NotFoundError):
            TraceabilityService.custody_chain('BT-UNKNOWN')


class TestInventorySnapshot:

    def test_sellable_rows_only(self, stocked_batch, retailer):
        position = InventoryPosition.objects.get(batch=stocked_batch, retailer=retailer)
        MovementEngine.reserve_stock(position_id=position.pk, quantity=15)

        rows = list(InventorySnapshotService.rows(product_id=stocked_batch.product_id))
        assert len(rows) == 1
        row = rows[0]
        assert row.quantity == 25
        assert row.price == Decimal('10.00')
        assert row.batch_reference == stocked_batch.reference
        assert row.expiry_date == stocked_batch.expiry_date

    def test_discount_price_wins(self, stocked_batch, retailer):
        InventoryPosition.objects.filter(batch=stocked_batch).update(discount_price=Decimal('8.00'))
        rows = list(InventorySnapshotService.rows(retailer_id=retailer.pk))
        assert rows[0].price == Decimal('8.00')

    def test_excludes_recalled_expired_and_suspended(self, stocked_batch, retailer):
        today = timezone.localdate()
        InventoryPositionFactory(
            batch__manufacture_date=today - datetime.timedelta(days=400),
            batch__expiry_date=today - datetime.timedelta(days=1),
        )
        InventoryPositionFactory(retailer__verification_status=VerificationStatus.SUSPENDED)
        assert {row.retailer_id for row in InventorySnapshotService.rows()} == {retailer.pk}

        MovementEngine.recall_batch(batch_id=stocked_batch.pk, reason='Recall')
        assert list(InventorySnapshotService.rows()) == []


class TestBatchLabel:

    def test_png(self, batch):
        png = BatchLabelService.render_qr_png(batch)
        assert png.startswith(b'\x89PNG\r\n\x1a\n')


class TestTransportInterface:

    def test_create_ship_purchase_trace(self, product, retailer):
        today = timezone.localdate()
        created = api.create_batch(product.pk, {
            'batch_number': 'API-1',
            'manufacture_date': today - datetime.timedelta(days=1),
            'expiry_date': today + datetime.timedelta(days=90),
            'quantity_produced': 1000,
        })
        assert created.batch_reference.startswith('BT-')

        shipment = api.ship(created.batch_id, retailer.pk, 200, Decimal('5.00'))
        assert shipment.quantity == 200
        assert shipment.retailer_id == retailer.pk

        receipt = api.purchase(retailer.pk, [
            {'product_id': product.pk, 'batch_id': created.batch_id, 'quantity': 50, 'unit_price': '7.00'},
        ], payment_method='cash')
        assert receipt.total_amount == Decimal('350.00')
        assert Purchase.objects.get(pk=receipt.purchase_id).payment_method == 'cash'

        entries = api.trace(created.batch_reference)
        assert [entry.movement_type for entry in entries] == [M.MANUFACTURE, M.SHIP_TO_RETAILER, M.SALE_TO_CONSUMER]
        assert entries[2].destination_id is None

    def test_failed_ship_is_an_exception(self, batch, retailer):
        with pytest.raises(InsufficientQuantityError):
            api.ship(batch.pk, retailer.pk, 101, Decimal('1.00'))
