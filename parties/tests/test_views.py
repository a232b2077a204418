"""
Parties — API Integration Tests

@file parties/tests/test_views.py
"""

import pytest
from django.urls import reverse
from rest_framework import status

from parties.models import Retailer, VerificationStatus
from tests.factories import ManufacturerFactory, RetailerFactory

pytestmark = pytest.mark.django_db


class TestRetailerEndpoints:

    def test_unauthenticated(self, api_client):
        resp = api_client.get(reverse('api-v1:parties:retailer-list'))
        assert resp.status_code == status.HTTP_401_UNAUTHORIZED

    def test_list(self, authenticated_client):
        RetailerFactory.create_batch(3)
        resp = authenticated_client.get(reverse('api-v1:parties:retailer-list'))
        assert resp.status_code == status.HTTP_200_OK
        assert resp.json()['meta']['count'] == 3

    def test_non_staff_cannot_create(self, authenticated_client):
        resp = authenticated_client.post(
            reverse('api-v1:parties:retailer-list'), {'store_name': 'Nope'}, format='json',
        )
        assert resp.status_code == status.HTTP_403_FORBIDDEN

    def test_staff_creates(self, admin_client):
        resp = admin_client.post(
            reverse('api-v1:parties:retailer-list'),
            {
                'store_name': 'Harbour Pharmacy',
                'latitude': '51.507400',
                'longitude': '-0.127800',
                'business_hours': {'monday': {'open': '09:00', 'close': '17:00'}},
            },
            format='json',
        )
        assert resp.status_code == status.HTTP_201_CREATED
        data = resp.json()['data']
        assert data['verification_status'] == VerificationStatus.PENDING
        assert Retailer.objects.filter(pk=data['id']).exists()

    def test_coordinates_come_in_pairs(self, admin_client):
        resp = admin_client.post(
            reverse('api-v1:parties:retailer-list'),
            {'store_name': 'Half', 'latitude': '10.000000'},
            format='json',
        )
        assert resp.status_code == status.HTTP_400_BAD_REQUEST

    def test_metadata_must_be_an_object(self, admin_client):
        resp = admin_client.post(
            reverse('api-v1:parties:retailer-list'),
            {'store_name': 'Listy', 'metadata': ['website']},
            format='json',
        )
        assert resp.status_code == status.HTTP_400_BAD_REQUEST
        assert not Retailer.objects.filter(store_name='Listy').exists()

    def test_metadata_rejects_unknown_keys(self, admin_client):
        resp = admin_client.post(
            reverse('api-v1:parties:retailer-list'),
            {'store_name': 'Keys', 'metadata': {'website': 'https://keys.example.com', 'mood': 'sunny'}},
            format='json',
        )
        assert resp.status_code == status.HTTP_400_BAD_REQUEST
        assert 'metadata' in resp.json()['errors']

    def test_metadata_stored(self, admin_client):
        resp = admin_client.post(
            reverse('api-v1:parties:retailer-list'),
            {'store_name': 'Kept', 'metadata': {'website': 'https://kept.example.com', 'registration_country': 'FR'}},
            format='json',
        )
        assert resp.status_code == status.HTTP_201_CREATED
        assert resp.json()['data']['metadata'] == {
            'website': 'https://kept.example.com', 'registration_country': 'FR',
        }

    def test_suspend(self, admin_client):
        retailer = RetailerFactory()
        resp = admin_client.post(
            reverse('api-v1:parties:retailer-suspend', kwargs={'pk': retailer.pk}),
            {'reason': 'Inspection failed'}, format='json',
        )
        assert resp.status_code == status.HTTP_200_OK
        retailer.refresh_from_db()
        assert retailer.is_suspended


class TestManufacturerEndpoints:

    def test_verify(self, admin_client):
        manufacturer = ManufacturerFactory(verification_status=VerificationStatus.PENDING)
        resp = admin_client.post(
            reverse('api-v1:parties:manufacturer-verify', kwargs={'pk': manufacturer.pk}), {}, format='json',
        )
        assert resp.status_code == status.HTTP_200_OK
        assert resp.json()['data']['verification_status'] == VerificationStatus.VERIFIED

    def test_invalid_transition(self, admin_client):
        manufacturer = ManufacturerFactory()
        resp = admin_client.post(
            reverse('api-v1:parties:manufacturer-verify', kwargs={'pk': manufacturer.pk}), {}, format='json',
        )
        assert resp.status_code == status.HTTP_400_BAD_REQUEST
        assert resp.json()['code'] == 'INVALID_STATE_TRANSITION'
