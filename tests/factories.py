"""
Quit-Trace — Test Factories

Factory Boy factories for generating test data. Used across all test
modules.

BatchFactory / InventoryPositionFactory write rows directly and append
no movement records; use MovementEngine (or the ledger_* fixtures in
conftest.py) wherever the movement log has to agree with the balances.

@file tests/factories.py
"""

import datetime
from decimal import Decimal

import factory
from django.utils import timezone

from catalog.models import Product, ProductCategory
from ledger.models import Batch, InventoryPosition
from parties.models import Consumer, Manufacturer, PartyType, Retailer, VerificationStatus
from users.models import User


# ---------------------------------------------------------------------------
# Parties
# ---------------------------------------------------------------------------

class ManufacturerFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Manufacturer

    company_name = factory.Sequence(lambda n: f'Manufacturer-{n}')
    license_number = factory.Sequence(lambda n: f'MFR-LIC-{n:05d}')
    address = factory.Faker('address')
    contact_email = factory.Sequence(lambda n: f'mfr-{n}@test.quittrace')
    verification_status = VerificationStatus.VERIFIED


class RetailerFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Retailer

    store_name = factory.Sequence(lambda n: f'Store-{n}')
    license_number = factory.Sequence(lambda n: f'RTL-LIC-{n:05d}')
    address = factory.Faker('address')
    latitude = factory.LazyFunction(lambda: Decimal('48.856600'))
    longitude = factory.LazyFunction(lambda: Decimal('2.352200'))
    phone = factory.Sequence(lambda n: f'+3310{n:07d}')
    verification_status = VerificationStatus.VERIFIED


class ConsumerFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Consumer

    display_name = factory.Faker('name')
    external_ref = factory.Sequence(lambda n: f'wc-{n:06d}')


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = User
        skip_postgeneration_save = True

    email = factory.Sequence(lambda n: f'user-{n}@test.quittrace')
    first_name = factory.Faker('first_name')
    last_name = factory.Faker('last_name')
    status = User.StatusChoices.ACTIVE
    is_active = True

    @factory.post_generation
    def password(self, create, extracted, **kwargs):
        password = extracted or 'TestPass2026!'
        self.set_password(password)
        if create:
            self.save(update_fields=['password'])


class SuperuserFactory(UserFactory):
    is_staff = True
    is_superuser = True


class ManufacturerUserFactory(UserFactory):
    party_type = PartyType.MANUFACTURER
    party_id = factory.LazyFunction(lambda: ManufacturerFactory().pk)


class RetailerUserFactory(UserFactory):
    party_type = PartyType.RETAILER
    party_id = factory.LazyFunction(lambda: RetailerFactory().pk)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class ProductCategoryFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = ProductCategory
        django_get_or_create = ('slug',)

    name = 'Nicotine Patches'
    slug = 'nicotine-patches'


class ProductFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Product

    manufacturer = factory.SubFactory(ManufacturerFactory)
    category = factory.SubFactory(ProductCategoryFactory)
    product_name = factory.Sequence(lambda n: f'QuitPatch {n}')
    sku = factory.Sequence(lambda n: f'QP-{n:05d}')
    nicotine_strength = factory.LazyFunction(lambda: Decimal('21.00'))
    flavor = ''
    status = Product.StatusChoices.ACTIVE


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

class BatchFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Batch

    product = factory.SubFactory(ProductFactory)
    batch_number = factory.Sequence(lambda n: f'LOT-{n:05d}')
    manufacture_date = factory.LazyFunction(lambda: timezone.localdate() - datetime.timedelta(days=30))
    expiry_date = factory.LazyFunction(lambda: timezone.localdate() + datetime.timedelta(days=365))
    quantity_produced = 100
    quantity_available = factory.SelfAttribute('quantity_produced')


class InventoryPositionFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = InventoryPosition

    retailer = factory.SubFactory(RetailerFactory)
    batch = factory.SubFactory(BatchFactory)
    product = factory.SelfAttribute('batch.product')
    quantity_in_stock = 10
    quantity_reserved = 0
    price = factory.LazyFunction(lambda: Decimal('12.50'))
