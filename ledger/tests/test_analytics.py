"""
Tests — Purchase analytics: per-period sales rollups and the
purchases/analytics endpoint scoping.

@file ledger/tests/test_analytics.py
"""

import datetime
from decimal import Decimal

import pytest
from django.urls import reverse
from rest_framework import status

from core.exceptions import ValidationError
from ledger.models import Purchase
from ledger.services import MovementEngine, PurchaseAnalyticsService
from tests.factories import ConsumerFactory

pytestmark = pytest.mark.django_db

UTC = datetime.timezone.utc
URL = 'api-v1:ledger:purchase-analytics'


def _at(day, hour, minute=0):
    return datetime.datetime(2026, 3, day, hour, minute, tzinfo=UTC)


def _sell(retailer, batch, quantity, *, at, consumer=None):
    purchase = MovementEngine.sell_to_consumer(
        retailer_id=retailer.pk,
        consumer_id=consumer.pk if consumer else None,
        line_items=[{
            'product_id': batch.product_id, 'batch_id': batch.pk,
            'quantity': quantity, 'unit_price': '10.00',
        }],
    )
    Purchase.objects.filter(pk=purchase.pk).update(purchased_at=at)
    return purchase


@pytest.fixture
def sales(stocked_batch, retailer, other_retailer):
    """Four March sales at `retailer`/`other_retailer` plus one in April."""
    regular = ConsumerFactory()
    MovementEngine.ship_to_retailer(
        batch_id=stocked_batch.pk, retailer_id=other_retailer.pk, quantity=5, unit_price='10.00',
    )
    _sell(retailer, stocked_batch, 2, at=_at(2, 9, 15), consumer=regular)
    _sell(retailer, stocked_batch, 1, at=_at(2, 9, 45))
    _sell(retailer, stocked_batch, 3, at=_at(4, 14), consumer=regular)
    _sell(other_retailer, stocked_batch, 1, at=_at(2, 10))
    _sell(retailer, stocked_batch, 1, at=datetime.datetime(2026, 4, 1, 8, tzinfo=UTC))
    return regular


class TestPurchaseAnalyticsService:

    def test_daily_for_one_retailer(self, sales, retailer):
        rows = PurchaseAnalyticsService.sales(
            start_date=datetime.date(2026, 3, 1), end_date=datetime.date(2026, 3, 31),
            retailer_id=retailer.pk,
        )
        assert [row.period for row in rows] == [_at(2, 0), _at(4, 0)]
        first, second = rows
        assert first.transaction_count == 2
        assert first.total_revenue == Decimal('30.00')
        assert first.unique_customers == 1
        assert first.average_order_value == Decimal('15.00')
        assert (second.transaction_count, second.total_revenue) == (1, Decimal('30.00'))

    def test_hourly(self, sales, retailer):
        rows = PurchaseAnalyticsService.sales(
            start_date='2026-03-01', end_date='2026-03-31', group_by='hour', retailer_id=retailer.pk,
        )
        assert [(row.period, row.transaction_count) for row in rows] == [
            (_at(2, 9), 2), (_at(4, 14), 1),
        ]

    def test_weekly_buckets_start_on_monday(self, sales, retailer):
        rows = PurchaseAnalyticsService.sales(
            start_date=datetime.date(2026, 3, 1), end_date=datetime.date(2026, 3, 31),
            group_by='week', retailer_id=retailer.pk,
        )
        assert len(rows) == 1
        assert rows[0].period == _at(2, 0)
        assert rows[0].transaction_count == 3
        assert rows[0].average_order_value == Decimal('20.00')

    def test_monthly_across_retailers_with_inclusive_end(self, sales):
        rows = PurchaseAnalyticsService.sales(
            start_date=datetime.date(2026, 3, 1), end_date=datetime.date(2026, 4, 1), group_by='month',
        )
        march, april = rows
        assert march.transaction_count == 4
        assert march.total_revenue == Decimal('70.00')
        assert march.unique_customers == 1
        assert march.average_order_value == Decimal('17.50')
        assert april.transaction_count == 1

    def test_empty_window(self, sales):
        assert PurchaseAnalyticsService.sales(
            start_date=datetime.date(2025, 1, 1), end_date=datetime.date(2025, 1, 31),
        ) == []

    def test_unknown_grouping(self):
        with pytest.raises(ValidationError):
            PurchaseAnalyticsService.sales(
                start_date=datetime.date(2026, 3, 1), end_date=datetime.date(2026, 3, 31), group_by='year',
            )

    def test_reversed_window(self):
        with pytest.raises(ValidationError):
            PurchaseAnalyticsService.sales(
                start_date=datetime.date(2026, 3, 31), end_date=datetime.date(2026, 3, 1),
            )


class TestPurchaseAnalyticsEndpoint:
    params = {'start_date': '2026-03-01', 'end_date': '2026-03-31'}

    def test_retailer_sees_own_store(self, sales, retailer_client):
        resp = retailer_client.get(reverse(URL), {**self.params, 'group_by': 'week'})
        assert resp.status_code == status.HTTP_200_OK
        data = resp.json()['data']
        assert len(data) == 1
        assert data[0]['transaction_count'] == 3
        assert Decimal(str(data[0]['total_revenue'])) == Decimal('60.00')

    def test_retailer_cannot_read_another_store(self, sales, retailer_client, other_retailer):
        resp = retailer_client.get(reverse(URL), {**self.params, 'retailer_id': str(other_retailer.pk)})
        assert resp.status_code == status.HTTP_403_FORBIDDEN

    def test_staff_sees_everything_or_filters(self, sales, admin_client, other_retailer):
        resp = admin_client.get(reverse(URL), {**self.params, 'group_by': 'month'})
        assert resp.status_code == status.HTTP_200_OK
        assert resp.json()['data'][0]['transaction_count'] == 4

        resp = admin_client.get(reverse(URL), {**self.params, 'retailer_id': str(other_retailer.pk)})
        data = resp.json()['data']
        assert [row['transaction_count'] for row in data] == [1]
        assert data[0]['unique_customers'] == 0

    def test_non_retailer_forbidden(self, authenticated_client):
        resp = authenticated_client.get(reverse(URL), self.params)
        assert resp.status_code == status.HTTP_403_FORBIDDEN

    def test_bad_query(self, retailer_client):
        resp = retailer_client.get(reverse(URL), {**self.params, 'group_by': 'fortnight'})
        assert resp.status_code == status.HTTP_400_BAD_REQUEST
        resp = retailer_client.get(reverse(URL), {'start_date': '2026-03-31', 'end_date': '2026-03-01'})
        assert resp.status_code == status.HTTP_400_BAD_REQUEST
