"""
Ledger — Views

DRF endpoints over the MovementEngine: batch actions (ship, recall,
dispose, return), purchases, inventory positions and reservations, the
public trace endpoint and the stock snapshot feed. Views only parse
input and pick the acting party; every quantity change happens in
ledger.services.

@file ledger/views.py
"""

from django.http import HttpResponse
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.pagination import MovementCursorPagination
from core.services import AuditService
from parties.models import PartyType
from users.permissions import IsManufacturerParty, IsRetailerParty, acting_party_id

from .models import Batch, InventoryPosition, MovementRecord, Purchase
from .permissions import IsBatchOwner, IsPositionHolder
from .serializers import (
    BatchReadSerializer,
    DisposalSerializer,
    InventoryPositionReadSerializer,
    MovementRecordSerializer,
    PublicCustodyChainSerializer,
    PurchaseCreateSerializer,
    PurchaseReadSerializer,
    QuantitySerializer,
    RecallSerializer,
    ReturnSerializer,
    SalesAnalyticsQuerySerializer,
    SalesPeriodSerializer,
    ShipSerializer,
    StockSnapshotRowSerializer,
    TransferSerializer,
)
from .services import (
    BatchLabelService,
    InventorySnapshotService,
    MovementEngine,
    PurchaseAnalyticsService,
    TraceabilityService,
)


def _is_staff(user) -> bool:
    return user.is_staff or user.is_superuser


def _require_owner(user, batch: Batch) -> None:
    if _is_staff(user):
        return
    if not (user.acts_as(PartyType.MANUFACTURER) and batch.product.manufacturer_id == user.party_id):
        raise PermissionDenied('Only the manufacturer that owns this batch can do this.')


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------

class BatchViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Batches visible to the caller: own products for manufacturers, held
    stock for retailers, everything for staff. Batches are created through
    /catalog/products/<id>/batches/.
    """

    serializer_class = BatchReadSerializer
    permission_classes = [IsAuthenticated, IsBatchOwner]
    filterset_fields = ['product', 'expiry_date']
    search_fields = ['reference', 'batch_number', 'product__sku', 'product__product_name']
    ordering_fields = ['expiry_date', 'manufacture_date', 'quantity_available', 'created_at']
    ordering = ['-created_at']

    def get_queryset(self):
        user = self.request.user
        qs = Batch.objects.select_related('product')
        if _is_staff(user):
            return qs
        if user.acts_as(PartyType.MANUFACTURER):
            return qs.filter(product__manufacturer_id=user.party_id)
        if user.acts_as(PartyType.RETAILER):
            return qs.filter(positions__retailer_id=user.party_id).distinct()
        return qs.none()

    @action(
        detail=True, methods=['post'], url_path='ship',
        permission_classes=[IsAuthenticated, IsManufacturerParty, IsBatchOwner],
    )
    def ship(self, request, pk=None):
        batch = self.get_object()
        ser = ShipSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        movement = MovementEngine.ship_to_retailer(
            batch_id=batch.pk,
            actor=request.user,
            **ser.validated_data,
        )
        return Response(MovementRecordSerializer(movement).data, status=status.HTTP_201_CREATED)

    @action(
        detail=True, methods=['post'], url_path='recall',
        permission_classes=[IsAuthenticated, IsManufacturerParty, IsBatchOwner],
    )
    def recall(self, request, pk=None):
        batch = self.get_object()
        ser = RecallSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        batch = MovementEngine.recall_batch(
            batch_id=batch.pk,
            reason=ser.validated_data['reason'],
            actor=request.user,
        )
        return Response(BatchReadSerializer(batch).data)

    @action(detail=True, methods=['post'], url_path='dispose', permission_classes=[IsAuthenticated])
    def dispose(self, request, pk=None):
        """Manufacturer pool by default; a retailer (or staff naming retailer_id) disposes from a position."""
        batch = self.get_object()
        ser = DisposalSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        retailer_id = ser.validated_data['retailer_id']
        if retailer_id is not None or request.user.acts_as(PartyType.RETAILER):
            retailer_id = acting_party_id(request.user, PartyType.RETAILER, retailer_id)
        else:
            _require_owner(request.user, batch)
        movement = MovementEngine.record_disposal(
            batch_id=batch.pk,
            quantity=ser.validated_data['quantity'],
            retailer_id=retailer_id,
            reason=ser.validated_data['reason'],
            actor=request.user,
        )
        return Response(MovementRecordSerializer(movement).data, status=status.HTTP_201_CREATED)

    @action(
        detail=True, methods=['post'], url_path='return', url_name='return',
        permission_classes=[IsAuthenticated, IsRetailerParty],
    )
    def return_stock(self, request, pk=None):
        batch = self.get_object()
        ser = ReturnSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        retailer_id = acting_party_id(request.user, PartyType.RETAILER, data['retailer_id'])
        if data['from_consumer']:
            movement = MovementEngine.accept_consumer_return(
                retailer_id=retailer_id,
                batch_id=batch.pk,
                quantity=data['quantity'],
                consumer_id=data['consumer_id'],
                notes=data['notes'],
                actor=request.user,
            )
        else:
            movement = MovementEngine.return_to_manufacturer(
                batch_id=batch.pk,
                retailer_id=retailer_id,
                quantity=data['quantity'],
                notes=data['notes'],
                actor=request.user,
            )
        return Response(MovementRecordSerializer(movement).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'], url_path='qr')
    def qr(self, request, pk=None):
        batch = self.get_object()
        png = BatchLabelService.render_qr_png(batch)
        response = HttpResponse(png, content_type='image/png')
        response['Content-Disposition'] = f'inline; filename="{batch.reference}.png"'
        return response

    @action(detail=True, methods=['get'], url_path='movements')
    def movements(self, request, pk=None):
        batch = self.get_object()
        qs = MovementRecord.objects.filter(batch=batch).select_related('batch').in_commit_order()
        # No view: the ordering filter must not override commit order.
        paginator = MovementCursorPagination()
        page = paginator.paginate_queryset(qs, request, view=None)
        ser = MovementRecordSerializer(page, many=True)
        return paginator.get_paginated_response(ser.data)


# ---------------------------------------------------------------------------
# Purchases
# ---------------------------------------------------------------------------

class PurchaseViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    """Sales at a retailer. POST runs sell_to_consumer for the whole basket."""

    permission_classes = [IsAuthenticated]
    filterset_fields = ['retailer', 'payment_method']
    ordering_fields = ['purchased_at', 'total_amount']
    ordering = ['-purchased_at']

    def get_queryset(self):
        user = self.request.user
        qs = Purchase.objects.prefetch_related('items__batch')
        if _is_staff(user):
            return qs
        if user.acts_as(PartyType.RETAILER):
            return qs.filter(retailer_id=user.party_id)
        if user.acts_as(PartyType.CONSUMER):
            return qs.filter(consumer_id=user.party_id)
        return qs.none()

    def get_serializer_class(self):
        if self.action == 'create':
            return PurchaseCreateSerializer
        return PurchaseReadSerializer

    def create(self, request, *args, **kwargs):
        ser = PurchaseCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        retailer_id = acting_party_id(request.user, PartyType.RETAILER, data.get('retailer_id'))
        purchase = MovementEngine.sell_to_consumer(
            retailer_id=retailer_id,
            line_items=data['items'],
            consumer_id=data['consumer_id'],
            payment_method=data['payment_method'],
            pos_transaction_id=data['pos_transaction_id'],
            order_metadata=data['order_metadata'],
            ip_address=AuditService.get_client_ip(request),
            user_agent=request.META.get('HTTP_USER_AGENT', ''),
            actor=request.user,
        )
        purchase = Purchase.objects.prefetch_related('items__batch').get(pk=purchase.pk)
        return Response(PurchaseReadSerializer(purchase).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'], url_path='analytics')
    def analytics(self, request):
        """Per-period sales totals. Retailer accounts see their own store only; staff may pass ?retailer_id=."""
        ser = SalesAnalyticsQuerySerializer(data=request.query_params)
        ser.is_valid(raise_exception=True)
        params = dict(ser.validated_data)
        if not _is_staff(request.user):
            params['retailer_id'] = acting_party_id(request.user, PartyType.RETAILER, params['retailer_id'])
        rows = PurchaseAnalyticsService.sales(**params)
        return Response(SalesPeriodSerializer(rows, many=True).data)


# ---------------------------------------------------------------------------
# Trace
# ---------------------------------------------------------------------------

class TraceView(APIView):
    """GET /v1/ledger/trace/<reference>/ — public custody chain behind a label QR."""

    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, reference):
        chain = TraceabilityService.custody_chain(reference)
        return Response(PublicCustodyChainSerializer(chain).data)


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------

class InventoryViewSet(viewsets.ReadOnlyModelViewSet):
    """Retailer stock positions, reservations and retailer-to-retailer transfers."""

    serializer_class = InventoryPositionReadSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ['retailer', 'product', 'batch', 'is_active']
    ordering_fields = ['quantity_in_stock', 'price', 'updated_at', 'display_priority']
    ordering = ['-updated_at']

    def get_queryset(self):
        user = self.request.user
        qs = InventoryPosition.objects.select_related('retailer', 'batch')
        if _is_staff(user):
            return qs
        if user.acts_as(PartyType.RETAILER):
            return qs.filter(retailer_id=user.party_id)
        if user.acts_as(PartyType.MANUFACTURER):
            return qs.filter(product__manufacturer_id=user.party_id)
        return qs.none()

    def _quantity(self, request):
        ser = QuantitySerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return ser.validated_data['quantity']

    @action(detail=True, methods=['post'], url_path='reserve', permission_classes=[IsAuthenticated, IsPositionHolder])
    def reserve(self, request, pk=None):
        position = self.get_object()
        position = MovementEngine.reserve_stock(
            position_id=position.pk, quantity=self._quantity(request), actor=request.user,
        )
        return Response(InventoryPositionReadSerializer(position).data)

    @action(detail=True, methods=['post'], url_path='release', permission_classes=[IsAuthenticated, IsPositionHolder])
    def release(self, request, pk=None):
        position = self.get_object()
        position = MovementEngine.release_reservation(
            position_id=position.pk, quantity=self._quantity(request), actor=request.user,
        )
        return Response(InventoryPositionReadSerializer(position).data)

    @action(detail=True, methods=['post'], url_path='transfer', permission_classes=[IsAuthenticated, IsPositionHolder])
    def transfer(self, request, pk=None):
        position = self.get_object()
        ser = TransferSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        movement = MovementEngine.transfer(
            batch_id=position.batch_id,
            from_retailer_id=position.retailer_id,
            actor=request.user,
            **ser.validated_data,
        )
        return Response(MovementRecordSerializer(movement).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'], url_path='snapshot')
    def snapshot(self, request):
        """Sellable stock rows for search consumers; filter with ?product= and ?retailer=."""
        rows = list(InventorySnapshotService.rows(
            product_id=request.query_params.get('product') or None,
            retailer_id=request.query_params.get('retailer') or None,
        ))
        page = self.paginate_queryset(rows)
        if page is not None:
            ser = StockSnapshotRowSerializer(page, many=True)
            return self.get_paginated_response(ser.data)
        return Response(StockSnapshotRowSerializer(rows, many=True).data)
