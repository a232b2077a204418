"""
Quit-Trace — Root conftest for pytest

Shared fixtures available to all test modules.

@file conftest.py
"""

import datetime
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from ledger.services import MovementEngine
from parties.models import PartyType
from tests.factories import (
    ManufacturerFactory,
    ProductFactory,
    RetailerFactory,
    SuperuserFactory,
    UserFactory,
)


@pytest.fixture
def api_client():
    """Unauthenticated DRF test client."""
    return APIClient()


@pytest.fixture
def user(db):
    """Active user with default password TestPass2026! and no party."""
    return UserFactory()


@pytest.fixture
def admin_user(db):
    """Superuser with default password TestPass2026!"""
    return SuperuserFactory()


@pytest.fixture
def authenticated_client(api_client, user):
    """API client authenticated as a regular user."""
    api_client.force_authenticate(user=user)
    return api_client


@pytest.fixture
def admin_client(api_client, admin_user):
    """API client authenticated as a superuser."""
    api_client.force_authenticate(user=admin_user)
    return api_client


# ---------------------------------------------------------------------------
# Ledger parties and a produced batch
# ---------------------------------------------------------------------------

@pytest.fixture
def manufacturer(db):
    return ManufacturerFactory()


@pytest.fixture
def retailer(db):
    return RetailerFactory()


@pytest.fixture
def other_retailer(db):
    return RetailerFactory()


@pytest.fixture
def product(manufacturer):
    return ProductFactory(manufacturer=manufacturer)


@pytest.fixture
def batch(product):
    """Batch of 100 made through the engine, so the log has its manufacture record."""
    today = timezone.localdate()
    return MovementEngine.record_manufacture(
        product_id=product.pk,
        batch_number='LOT-0001',
        manufacture_date=today - datetime.timedelta(days=10),
        expiry_date=today + datetime.timedelta(days=365),
        quantity_produced=100,
    )


@pytest.fixture
def stocked_batch(batch, retailer):
    """The batch above with 40 units shipped to `retailer` at 10.00."""
    MovementEngine.ship_to_retailer(
        batch_id=batch.pk, retailer_id=retailer.pk, quantity=40, unit_price=Decimal('10.00'),
    )
    batch.refresh_from_db()
    return batch


@pytest.fixture
def manufacturer_client(manufacturer):
    """API client for a user acting on behalf of `manufacturer`."""
    client = APIClient()
    client.force_authenticate(user=UserFactory(party_type=PartyType.MANUFACTURER, party_id=manufacturer.pk))
    return client


@pytest.fixture
def retailer_client(retailer):
    """API client for a user acting on behalf of `retailer`."""
    client = APIClient()
    client.force_authenticate(user=UserFactory(party_type=PartyType.RETAILER, party_id=retailer.pk))
    return client
