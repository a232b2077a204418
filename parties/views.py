"""
Parties — Views

DRF ViewSets for manufacturers and retailers. Verify / suspend actions
go through the party state machine in PartyService.

@file parties/views.py
"""

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .models import Manufacturer, PartyType, Retailer
from .permissions import CanManageParties
from .serializers import (
    ManufacturerReadSerializer,
    ManufacturerWriteSerializer,
    RetailerReadSerializer,
    RetailerWriteSerializer,
    StatusReasonSerializer,
)
from .services import PartyService


class _PartyViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    """Shared create / update / verify / suspend wiring for one party type."""

    permission_classes = [IsAuthenticated, CanManageParties]
    party_type = None
    read_serializer_class = None
    write_serializer_class = None

    def get_serializer_class(self):
        if self.action in ('list', 'retrieve'):
            return self.read_serializer_class
        if self.action in ('verify', 'suspend'):
            return StatusReasonSerializer
        return self.write_serializer_class

    def _read(self, party, status_code=status.HTTP_200_OK):
        data = self.read_serializer_class(party, context={'request': self.request}).data
        return Response(data, status=status_code)

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        party = PartyService.create_party(
            party_type=self.party_type,
            actor=request.user,
            **serializer.validated_data,
        )
        return self._read(party, status.HTTP_201_CREATED)

    def perform_update(self, serializer):
        party = PartyService.update_party(
            party_type=self.party_type,
            party_id=self.get_object().pk,
            actor=self.request.user,
            **serializer.validated_data,
        )
        serializer.instance = party

    @action(detail=True, methods=['post'], url_path='verify')
    def verify(self, request, pk=None):
        ser = StatusReasonSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        party = PartyService.verify(
            party_type=self.party_type,
            party_id=pk,
            reason=ser.validated_data['reason'],
            actor=request.user,
        )
        return self._read(party)

    @action(detail=True, methods=['post'], url_path='suspend')
    def suspend(self, request, pk=None):
        ser = StatusReasonSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        party = PartyService.suspend(
            party_type=self.party_type,
            party_id=pk,
            reason=ser.validated_data['reason'],
            actor=request.user,
        )
        return self._read(party)


class ManufacturerViewSet(_PartyViewSet):
    party_type = PartyType.MANUFACTURER
    read_serializer_class = ManufacturerReadSerializer
    write_serializer_class = ManufacturerWriteSerializer
    filterset_fields = ['verification_status']
    search_fields = ['company_name', 'license_number', 'contact_email']
    ordering_fields = ['company_name', 'created_at', 'verification_status']
    ordering = ['company_name']

    def get_queryset(self):
        return Manufacturer.objects.filter(is_deleted=False)


class RetailerViewSet(_PartyViewSet):
    party_type = PartyType.RETAILER
    read_serializer_class = RetailerReadSerializer
    write_serializer_class = RetailerWriteSerializer
    filterset_fields = ['verification_status']
    search_fields = ['store_name', 'license_number', 'address', 'phone']
    ordering_fields = ['store_name', 'created_at', 'verification_status']
    ordering = ['store_name']

    def get_queryset(self):
        return Retailer.objects.filter(is_deleted=False)
