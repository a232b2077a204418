"""
Users — Model Tests

@file users/tests/test_models.py
"""

import uuid

import pytest
from django.db import IntegrityError, transaction

from parties.models import PartyType
from tests.factories import RetailerUserFactory, UserFactory
from users.models import User


@pytest.mark.django_db
class TestUserModel:
    def test_create_user_normalizes_email(self):
        user = User.objects.create_user(email='Someone@EXAMPLE.com', password='Secret2026!!')
        assert user.email == 'Someone@example.com'
        assert user.check_password('Secret2026!!')
        assert user.status == User.StatusChoices.PENDING
        assert not user.is_staff

    def test_create_user_requires_email(self):
        with pytest.raises(ValueError):
            User.objects.create_user(email='', password='x')

    def test_create_superuser_is_active(self):
        admin = User.objects.create_superuser(email='root@example.com', password='Secret2026!!')
        assert admin.is_staff and admin.is_superuser
        assert admin.status == User.StatusChoices.ACTIVE

    def test_full_name_falls_back_to_email(self):
        user = UserFactory(first_name='', last_name='')
        assert user.get_full_name() == user.email
        assert str(user) == user.email

    def test_acts_as(self):
        user = RetailerUserFactory()
        assert user.acts_as(PartyType.RETAILER)
        assert not user.acts_as(PartyType.MANUFACTURER)
        assert not UserFactory().acts_as(PartyType.RETAILER)

    def test_party_pair_must_be_complete(self):
        with pytest.raises(IntegrityError), transaction.atomic():
            UserFactory(party_type=PartyType.RETAILER, party_id=None)
        with pytest.raises(IntegrityError), transaction.atomic():
            UserFactory(party_type='', party_id=uuid.uuid4())

    def test_active_manager_excludes_suspended(self):
        active = UserFactory()
        UserFactory(status=User.StatusChoices.SUSPENDED)
        assert list(User.objects.active()) == [active]
