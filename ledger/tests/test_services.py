"""
Tests — MovementEngine: manufacture, ship, sale, returns, disposal,
recall, transfer and reservations. Every failure path must leave the
ledger untouched; conservation and reconciliation hold after every
sequence.

@file ledger/tests/test_services.py
"""

import datetime
from decimal import Decimal

import pytest
from django.utils import timezone

from core.exceptions import (
    DuplicateResourceError,
    InsufficientQuantityError,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from core.models import AuditLog
from ledger.models import Batch, InventoryPosition, MovementRecord, Purchase, PurchaseItem
from ledger.services import LineItem, MovementEngine, ReconciliationService
from parties.models import PartyType, VerificationStatus
from tests.factories import ConsumerFactory, ProductFactory, RetailerFactory, SuperuserFactory

pytestmark = pytest.mark.django_db

M = MovementRecord.MovementType


def _dates(days_left=365):
    today = timezone.localdate()
    return today - datetime.timedelta(days=5), today + datetime.timedelta(days=days_left)


def _make_batch(product, quantity=1000, batch_number='B1'):
    manufacture_date, expiry_date = _dates()
    return MovementEngine.record_manufacture(
        product_id=product.pk,
        batch_number=batch_number,
        manufacture_date=manufacture_date,
        expiry_date=expiry_date,
        quantity_produced=quantity,
    )


def _position(retailer, batch):
    return InventoryPosition.objects.get(retailer=retailer, batch=batch)


def _assert_conserved(batch):
    report = ReconciliationService.reconcile_batch(batch.pk)
    assert report.is_consistent, report


# ---------------------------------------------------------------------------
# End-to-end flow
# ---------------------------------------------------------------------------

class TestCustodyFlow:

    def test_manufacture(self, product):
        batch = MovementEngine.record_manufacture(
            product_id=product.pk,
            batch_number='P1-B1',
            manufacture_date=datetime.date(2024, 1, 1),
            expiry_date=datetime.date(2025, 1, 1),
            quantity_produced=1000,
        )
        assert batch.quantity_available == 1000
        records = MovementRecord.objects.filter(batch=batch)
        assert records.count() == 1
        record = records.get()
        assert record.movement_type == M.MANUFACTURE
        assert record.source_type == record.destination_type == PartyType.MANUFACTURER
        assert record.source_id == record.destination_id == product.manufacturer_id
        assert batch.qr_code_data['reference'] == batch.reference
        assert batch.qr_code_data['trace_url'].endswith(f'/{batch.reference}/')

    def test_ship_sell_trace(self, product, retailer):
        batch = _make_batch(product)

        MovementEngine.ship_to_retailer(
            batch_id=batch.pk, retailer_id=retailer.pk, quantity=200, unit_price='5.00',
        )
        batch.refresh_from_db()
        assert batch.quantity_available == 800
        assert _position(retailer, batch).quantity_in_stock == 200
        assert _position(retailer, batch).price == Decimal('5.00')

        purchase = MovementEngine.sell_to_consumer(
            retailer_id=retailer.pk,
            line_items=[LineItem(product.pk, batch.pk, 50, Decimal('7.00'))],
        )
        assert _position(retailer, batch).quantity_in_stock == 150
        assert purchase.total_amount == Decimal('350.00')
        assert purchase.is_anonymous
        sale = MovementRecord.objects.get(batch=batch, movement_type=M.SALE_TO_CONSUMER)
        assert sale.destination_type == PartyType.CONSUMER
        assert sale.destination_id is None
        assert sale.reference_type == 'Purchase'
        assert sale.reference_id == purchase.pk
        assert sale.total_value == Decimal('350.00')

        kinds = [m.movement_type for m in MovementEngine.trace(batch.reference)]
        assert kinds == [M.MANUFACTURE, M.SHIP_TO_RETAILER, M.SALE_TO_CONSUMER]
        _assert_conserved(batch)

    def test_overship_changes_nothing(self, product, retailer):
        batch = _make_batch(product)
        MovementEngine.ship_to_retailer(batch_id=batch.pk, retailer_id=retailer.pk, quantity=200, unit_price='5.00')

        with pytest.raises(InsufficientQuantityError):
            MovementEngine.ship_to_retailer(
                batch_id=batch.pk, retailer_id=retailer.pk, quantity=900, unit_price='5.00',
            )

        batch.refresh_from_db()
        assert batch.quantity_available == 800
        assert _position(retailer, batch).quantity_in_stock == 200
        assert MovementRecord.objects.filter(batch=batch).count() == 2

    def test_trace_is_reiterable(self, stocked_batch):
        movements = MovementEngine.trace(stocked_batch.reference)
        assert [m.pk for m in movements] == [m.pk for m in movements]

    def test_trace_reference_is_case_insensitive(self, stocked_batch):
        assert len(list(MovementEngine.trace(stocked_batch.reference.lower()))) == 2

    def test_trace_unknown_reference(self):
        with pytest.raises(NotFoundError):
            list(MovementEngine.trace('BT-DOESNOTEXIST'))


# ---------------------------------------------------------------------------
# Manufacture
# ---------------------------------------------------------------------------

class TestRecordManufacture:

    def test_expiry_must_follow_manufacture(self, product):
        with pytest.raises(ValidationError):
            MovementEngine.record_manufacture(
                product_id=product.pk, batch_number='X',
                manufacture_date='2025-01-01', expiry_date='2025-01-01',
                quantity_produced=10,
            )
        assert not Batch.objects.exists()

    @pytest.mark.parametrize('quantity', [0, -5, '10', 2.5, True])
    def test_quantity_must_be_positive_int(self, product, quantity):
        manufacture_date, expiry_date = _dates()
        with pytest.raises(ValidationError):
            MovementEngine.record_manufacture(
                product_id=product.pk, batch_number='X',
                manufacture_date=manufacture_date, expiry_date=expiry_date,
                quantity_produced=quantity,
            )

    def test_bad_date(self, product):
        with pytest.raises(ValidationError):
            MovementEngine.record_manufacture(
                product_id=product.pk, batch_number='X',
                manufacture_date='yesterday', expiry_date='2030-01-01',
                quantity_produced=10,
            )

    def test_unknown_product(self):
        manufacture_date, expiry_date = _dates()
        with pytest.raises(NotFoundError):
            MovementEngine.record_manufacture(
                product_id='00000000-0000-0000-0000-000000000000', batch_number='X',
                manufacture_date=manufacture_date, expiry_date=expiry_date,
                quantity_produced=10,
            )

    def test_duplicate_batch_number(self, product):
        _make_batch(product, batch_number='DUP')
        with pytest.raises(DuplicateResourceError):
            _make_batch(product, batch_number='DUP')
        assert MovementRecord.objects.count() == 1

    def test_discontinued_product(self):
        product = ProductFactory(status='DISCONTINUED')
        with pytest.raises(ValidationError):
            _make_batch(product)

    def test_suspended_manufacturer(self, product, manufacturer):
        manufacturer.verification_status = VerificationStatus.SUSPENDED
        manufacturer.save()
        with pytest.raises(ValidationError):
            _make_batch(product)

    def test_lab_results_validated(self, product):
        manufacture_date, expiry_date = _dates()
        batch = MovementEngine.record_manufacture(
            product_id=product.pk, batch_number='LAB',
            manufacture_date=manufacture_date, expiry_date=expiry_date,
            quantity_produced=10,
            lab_test_results={'purity': 99.5, 'lab_name': 'Lab A'},
        )
        assert batch.lab_test_results == {'purity': 99.5, 'lab_name': 'Lab A'}

        with pytest.raises(ValidationError):
            MovementEngine.record_manufacture(
                product_id=product.pk, batch_number='LAB-2',
                manufacture_date=manufacture_date, expiry_date=expiry_date,
                quantity_produced=10,
                lab_test_results={'colour': 'blue'},
            )

    def test_audited(self, product):
        actor = SuperuserFactory()
        batch = MovementEngine.record_manufacture(
            product_id=product.pk, batch_number='AUD',
            manufacture_date=_dates()[0], expiry_date=_dates()[1],
            quantity_produced=10, actor=actor,
        )
        movement = MovementRecord.objects.get(batch=batch)
        assert movement.created_by == actor
        assert AuditLog.objects.filter(
            action=AuditLog.ActionChoices.MOVEMENT, object_id=str(movement.uuid), actor=actor,
        ).exists()


# ---------------------------------------------------------------------------
# Ship
# ---------------------------------------------------------------------------

class TestShipToRetailer:

    def test_second_shipment_adds_to_position(self, stocked_batch, retailer):
        MovementEngine.ship_to_retailer(
            batch_id=stocked_batch.pk, retailer_id=retailer.pk, quantity=5, unit_price='11.00',
        )
        position = _position(retailer, stocked_batch)
        assert position.quantity_in_stock == 45
        assert position.price == Decimal('11.00')
        assert InventoryPosition.objects.filter(batch=stocked_batch).count() == 1
        _assert_conserved(stocked_batch)

    def test_exact_quantity_depletes(self, batch, retailer):
        MovementEngine.ship_to_retailer(batch_id=batch.pk, retailer_id=retailer.pk, quantity=100, unit_price='1.00')
        batch.refresh_from_db()
        assert batch.is_depleted

    def test_unknown_retailer(self, batch):
        with pytest.raises(NotFoundError):
            MovementEngine.ship_to_retailer(
                batch_id=batch.pk, retailer_id='00000000-0000-0000-0000-000000000000',
                quantity=1, unit_price='1.00',
            )

    def test_unknown_batch(self, retailer):
        with pytest.raises(NotFoundError):
            MovementEngine.ship_to_retailer(
                batch_id='not-a-uuid', retailer_id=retailer.pk, quantity=1, unit_price='1.00',
            )

    def test_suspended_retailer(self, batch):
        retailer = RetailerFactory(verification_status=VerificationStatus.SUSPENDED)
        with pytest.raises(ValidationError):
            MovementEngine.ship_to_retailer(batch_id=batch.pk, retailer_id=retailer.pk, quantity=1, unit_price='1.00')

    @pytest.mark.parametrize('price', ['0', '-1.00', 'abc'])
    def test_bad_unit_price(self, batch, retailer, price):
        with pytest.raises(ValidationError):
            MovementEngine.ship_to_retailer(batch_id=batch.pk, retailer_id=retailer.pk, quantity=1, unit_price=price)

    def test_expired_batch_cannot_ship(self, retailer):
        today = timezone.localdate()
        product = ProductFactory()
        batch = MovementEngine.record_manufacture(
            product_id=product.pk, batch_number='OLD',
            manufacture_date=today - datetime.timedelta(days=400),
            expiry_date=today - datetime.timedelta(days=1),
            quantity_produced=10,
        )
        with pytest.raises(ValidationError):
            MovementEngine.ship_to_retailer(batch_id=batch.pk, retailer_id=retailer.pk, quantity=1, unit_price='1.00')


# ---------------------------------------------------------------------------
# Sale
# ---------------------------------------------------------------------------

class TestSellToConsumer:

    def test_mixed_valid_and_invalid_lines_roll_back(self, stocked_batch, retailer):
        product_id = stocked_batch.product_id
        with pytest.raises(InsufficientQuantityError):
            MovementEngine.sell_to_consumer(
                retailer_id=retailer.pk,
                line_items=[
                    LineItem(product_id, stocked_batch.pk, 5, Decimal('10.00')),
                    LineItem(product_id, stocked_batch.pk, 500, Decimal('10.00')),
                ],
            )
        assert not Purchase.objects.exists()
        assert not PurchaseItem.objects.exists()
        assert _position(retailer, stocked_batch).quantity_in_stock == 40
        assert not MovementRecord.objects.filter(movement_type=M.SALE_TO_CONSUMER).exists()

    def test_line_for_unheld_batch_rolls_back_everything(self, stocked_batch, retailer, product):
        other = _make_batch(product, quantity=10, batch_number='OTHER')
        with pytest.raises(InsufficientQuantityError):
            MovementEngine.sell_to_consumer(
                retailer_id=retailer.pk,
                line_items=[
                    {'product_id': product.pk, 'batch_id': stocked_batch.pk, 'quantity': 1, 'unit_price': '10.00'},
                    {'product_id': product.pk, 'batch_id': other.pk, 'quantity': 1, 'unit_price': '10.00'},
                ],
            )
        assert not Purchase.objects.exists()
        assert InventoryPosition.objects.filter(retailer=retailer).count() == 1

    def test_two_lines_same_batch(self, stocked_batch, retailer):
        purchase = MovementEngine.sell_to_consumer(
            retailer_id=retailer.pk,
            line_items=[
                LineItem(stocked_batch.product_id, stocked_batch.pk, 3, Decimal('10.00')),
                LineItem(stocked_batch.product_id, stocked_batch.pk, 2, Decimal('9.50')),
            ],
        )
        assert purchase.total_amount == Decimal('49.00')
        assert purchase.items.count() == 2
        assert _position(retailer, stocked_batch).quantity_in_stock == 35
        _assert_conserved(stocked_batch)

    def test_named_consumer(self, stocked_batch, retailer):
        consumer = ConsumerFactory()
        purchase = MovementEngine.sell_to_consumer(
            retailer_id=retailer.pk,
            consumer_id=consumer.pk,
            line_items=[LineItem(stocked_batch.product_id, stocked_batch.pk, 1, Decimal('10.00'))],
            payment_method='card',
            pos_transaction_id='POS-1',
        )
        assert purchase.consumer_id == consumer.pk
        assert not purchase.is_anonymous
        sale = MovementRecord.objects.get(movement_type=M.SALE_TO_CONSUMER)
        assert sale.destination_id == consumer.pk
        assert sale.metadata == {'line': 1, 'pos_transaction_id': 'POS-1', 'payment_method': 'card'}

    def test_unknown_consumer(self, stocked_batch, retailer):
        with pytest.raises(NotFoundError):
            MovementEngine.sell_to_consumer(
                retailer_id=retailer.pk,
                consumer_id='00000000-0000-0000-0000-000000000000',
                line_items=[LineItem(stocked_batch.product_id, stocked_batch.pk, 1, Decimal('10.00'))],
            )

    def test_product_batch_mismatch(self, stocked_batch, retailer):
        with pytest.raises(ValidationError):
            MovementEngine.sell_to_consumer(
                retailer_id=retailer.pk,
                line_items=[LineItem(ProductFactory().pk, stocked_batch.pk, 1, Decimal('10.00'))],
            )

    def test_empty_basket(self, retailer):
        with pytest.raises(ValidationError):
            MovementEngine.sell_to_consumer(retailer_id=retailer.pk, line_items=[])

    def test_reserved_stock_is_not_sellable(self, stocked_batch, retailer):
        position = _position(retailer, stocked_batch)
        MovementEngine.reserve_stock(position_id=position.pk, quantity=35)
        with pytest.raises(InsufficientQuantityError):
            MovementEngine.sell_to_consumer(
                retailer_id=retailer.pk,
                line_items=[LineItem(stocked_batch.product_id, stocked_batch.pk, 6, Decimal('10.00'))],
            )

    def test_sale_consumes_reservation(self, stocked_batch, retailer):
        position = _position(retailer, stocked_batch)
        MovementEngine.reserve_stock(position_id=position.pk, quantity=5)
        MovementEngine.sell_to_consumer(
            retailer_id=retailer.pk,
            line_items=[LineItem(stocked_batch.product_id, stocked_batch.pk, 5, Decimal('10.00'), use_reservation=True)],
        )
        position.refresh_from_db()
        assert position.quantity_in_stock == 35
        assert position.quantity_reserved == 0

    def test_recalled_batch_cannot_be_sold(self, stocked_batch, retailer):
        MovementEngine.recall_batch(batch_id=stocked_batch.pk, reason='Contamination')
        with pytest.raises(ValidationError):
            MovementEngine.sell_to_consumer(
                retailer_id=retailer.pk,
                line_items=[LineItem(stocked_batch.product_id, stocked_batch.pk, 1, Decimal('10.00'))],
            )

    @pytest.mark.parametrize('order_metadata', [
        ['not', {'a': 1}, 3],
        {'channel': 'in_store', 'basket': {'nested': True}},
        {'channel': 'carrier_pigeon'},
    ])
    def test_order_metadata_validated(self, stocked_batch, retailer, order_metadata):
        with pytest.raises(ValidationError):
            MovementEngine.sell_to_consumer(
                retailer_id=retailer.pk,
                line_items=[LineItem(stocked_batch.product_id, stocked_batch.pk, 1, Decimal('10.00'))],
                order_metadata=order_metadata,
            )
        assert not Purchase.objects.exists()
        assert _position(retailer, stocked_batch).quantity_in_stock == 40

    def test_malformed_batch_id(self, stocked_batch, retailer):
        with pytest.raises(ValidationError):
            MovementEngine.sell_to_consumer(
                retailer_id=retailer.pk,
                line_items=[{
                    'product_id': stocked_batch.product_id, 'batch_id': 'not-a-uuid',
                    'quantity': 1, 'unit_price': '10.00',
                }],
            )

    def test_integer_batch_id_is_coerced(self, stocked_batch, retailer):
        with pytest.raises(NotFoundError):
            MovementEngine.sell_to_consumer(
                retailer_id=retailer.pk,
                line_items=[{
                    'product_id': stocked_batch.product_id, 'batch_id': 12345,
                    'quantity': 1, 'unit_price': '10.00',
                }],
            )


# ---------------------------------------------------------------------------
# Returns and disposal
# ---------------------------------------------------------------------------

class TestReturns:

    def test_return_to_manufacturer(self, stocked_batch, retailer):
        movement = MovementEngine.return_to_manufacturer(
            batch_id=stocked_batch.pk, retailer_id=retailer.pk, quantity=15,
        )
        stocked_batch.refresh_from_db()
        assert stocked_batch.quantity_available == 75
        assert _position(retailer, stocked_batch).quantity_in_stock == 25
        assert movement.destination_type == PartyType.MANUFACTURER
        _assert_conserved(stocked_batch)

    def test_return_more_than_held(self, stocked_batch, retailer):
        with pytest.raises(InsufficientQuantityError):
            MovementEngine.return_to_manufacturer(batch_id=stocked_batch.pk, retailer_id=retailer.pk, quantity=41)

    def test_consumer_return_capped_by_net_sales(self, stocked_batch, retailer):
        MovementEngine.sell_to_consumer(
            retailer_id=retailer.pk,
            line_items=[LineItem(stocked_batch.product_id, stocked_batch.pk, 4, Decimal('10.00'))],
        )
        MovementEngine.accept_consumer_return(retailer_id=retailer.pk, batch_id=stocked_batch.pk, quantity=3)
        assert _position(retailer, stocked_batch).quantity_in_stock == 39

        with pytest.raises(InsufficientQuantityError):
            MovementEngine.accept_consumer_return(retailer_id=retailer.pk, batch_id=stocked_batch.pk, quantity=2)
        _assert_conserved(stocked_batch)

    def test_consumer_return_without_sale(self, stocked_batch, retailer):
        with pytest.raises(InsufficientQuantityError):
            MovementEngine.accept_consumer_return(retailer_id=retailer.pk, batch_id=stocked_batch.pk, quantity=1)


class TestDisposal:

    def test_manufacturer_pool(self, batch):
        movement = MovementEngine.record_disposal(batch_id=batch.pk, quantity=10, reason='Damaged')
        batch.refresh_from_db()
        assert batch.quantity_available == 90
        assert movement.source_id == movement.destination_id == batch.product.manufacturer_id
        assert movement.notes == 'Damaged'
        assert movement.metadata == {'reason': 'Damaged'}
        _assert_conserved(batch)

    def test_retailer_position(self, stocked_batch, retailer):
        MovementEngine.record_disposal(batch_id=stocked_batch.pk, quantity=5, retailer_id=retailer.pk)
        stocked_batch.refresh_from_db()
        assert stocked_batch.quantity_available == 60
        assert _position(retailer, stocked_batch).quantity_in_stock == 35
        _assert_conserved(stocked_batch)

    def test_more_than_available(self, batch):
        with pytest.raises(InsufficientQuantityError):
            MovementEngine.record_disposal(batch_id=batch.pk, quantity=101)


# ---------------------------------------------------------------------------
# Recall
# ---------------------------------------------------------------------------

class TestRecall:

    def test_recall_pulls_back_all_stock(self, stocked_batch, retailer, other_retailer):
        MovementEngine.transfer(
            batch_id=stocked_batch.pk, from_retailer_id=retailer.pk,
            to_retailer_id=other_retailer.pk, quantity=10,
        )
        position = _position(retailer, stocked_batch)
        MovementEngine.reserve_stock(position_id=position.pk, quantity=5)

        batch = MovementEngine.recall_batch(batch_id=stocked_batch.pk, reason='Mislabelled strength')

        assert batch.is_recalled
        assert batch.quantity_available == 0
        for holder in (retailer, other_retailer):
            position = _position(holder, batch)
            assert position.quantity_in_stock == 0
            assert position.quantity_reserved == 0
            assert not position.is_active
        recalls = MovementRecord.objects.filter(batch=batch, movement_type=M.RECALL)
        assert sorted(recalls.values_list('quantity', flat=True)) == [10, 30, 60]
        assert AuditLog.objects.filter(
            action=AuditLog.ActionChoices.STATUS_CHANGE, object_id=str(batch.pk),
        ).exists()
        _assert_conserved(batch)

    def test_second_recall_rejected(self, batch):
        MovementEngine.recall_batch(batch_id=batch.pk, reason='First')
        with pytest.raises(InvalidStateTransition):
            MovementEngine.recall_batch(batch_id=batch.pk, reason='Again')

    def test_reason_required(self, batch):
        with pytest.raises(ValidationError):
            MovementEngine.recall_batch(batch_id=batch.pk, reason='  ')

    def test_recalled_batch_cannot_ship(self, batch, retailer):
        MovementEngine.recall_batch(batch_id=batch.pk, reason='Recall')
        with pytest.raises(ValidationError):
            MovementEngine.ship_to_retailer(batch_id=batch.pk, retailer_id=retailer.pk, quantity=1, unit_price='1.00')


# ---------------------------------------------------------------------------
# Transfer and reservations
# ---------------------------------------------------------------------------

class TestTransfer:

    def test_transfer_creates_receiving_position(self, stocked_batch, retailer, other_retailer):
        MovementEngine.transfer(
            batch_id=stocked_batch.pk, from_retailer_id=retailer.pk,
            to_retailer_id=other_retailer.pk, quantity=12,
        )
        assert _position(retailer, stocked_batch).quantity_in_stock == 28
        incoming = _position(other_retailer, stocked_batch)
        assert incoming.quantity_in_stock == 12
        assert incoming.price == Decimal('10.00')
        stocked_batch.refresh_from_db()
        assert stocked_batch.quantity_available == 60
        _assert_conserved(stocked_batch)

    def test_transfer_sets_price(self, stocked_batch, retailer, other_retailer):
        MovementEngine.transfer(
            batch_id=stocked_batch.pk, from_retailer_id=retailer.pk,
            to_retailer_id=other_retailer.pk, quantity=1, price='14.99',
        )
        assert _position(other_retailer, stocked_batch).price == Decimal('14.99')

    def test_same_retailer(self, stocked_batch, retailer):
        with pytest.raises(ValidationError):
            MovementEngine.transfer(
                batch_id=stocked_batch.pk, from_retailer_id=retailer.pk,
                to_retailer_id=retailer.pk, quantity=1,
            )

    def test_more_than_sellable(self, stocked_batch, retailer, other_retailer):
        with pytest.raises(InsufficientQuantityError):
            MovementEngine.transfer(
                batch_id=stocked_batch.pk, from_retailer_id=retailer.pk,
                to_retailer_id=other_retailer.pk, quantity=41,
            )
        assert not InventoryPosition.objects.filter(retailer=other_retailer).exists()


class TestReservations:

    def test_reserve_and_release(self, stocked_batch, retailer):
        position = _position(retailer, stocked_batch)
        position = MovementEngine.reserve_stock(position_id=position.pk, quantity=10)
        assert position.quantity_reserved == 10
        assert position.quantity_sellable == 30

        position = MovementEngine.release_reservation(position_id=position.pk, quantity=4)
        assert position.quantity_reserved == 6
        assert MovementRecord.objects.filter(batch=stocked_batch).count() == 2

    def test_reserve_beyond_sellable(self, stocked_batch, retailer):
        position = _position(retailer, stocked_batch)
        with pytest.raises(InsufficientQuantityError):
            MovementEngine.reserve_stock(position_id=position.pk, quantity=41)

    def test_release_more_than_reserved(self, stocked_batch, retailer):
        position = _position(retailer, stocked_batch)
        with pytest.raises(InsufficientQuantityError):
            MovementEngine.release_reservation(position_id=position.pk, quantity=1)

    def test_unknown_position(self):
        with pytest.raises(NotFoundError):
            MovementEngine.reserve_stock(position_id='00000000-0000-0000-0000-000000000000', quantity=1)
