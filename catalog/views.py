"""
Catalog — Views

DRF ViewSets for product categories and products. The nested batches
action is where manufacturers record production (record_manufacture).
ProductReviewViewSet takes consumer reviews.

@file catalog/views.py
"""

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ledger.models import Batch
from ledger.serializers import BatchCreateSerializer, BatchReadSerializer
from ledger.services import MovementEngine
from parties.models import PartyType
from users.permissions import acting_party_id

from .models import Product, ProductCategory, ProductReview
from .permissions import CanManageProduct
from .serializers import (
    ProductCategorySerializer,
    ProductReadSerializer,
    ProductReviewCreateSerializer,
    ProductReviewSerializer,
    ProductUpdateSerializer,
    ProductWriteSerializer,
)
from .services import ProductService, ReviewService


class ProductCategoryViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = ProductCategory.objects.all()
    serializer_class = ProductCategorySerializer
    permission_classes = [IsAuthenticated]
    search_fields = ['name', 'slug']
    ordering = ['name']
    pagination_class = None


class ProductViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    mixins.UpdateModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    """
    Product catalog. Anyone authenticated can browse; the owning
    manufacturer (or staff) registers, edits and retires products.
    """

    permission_classes = [IsAuthenticated, CanManageProduct]
    filterset_fields = ['status', 'category', 'manufacturer']
    search_fields = ['product_name', 'sku', 'flavor', 'manufacturer__company_name']
    ordering_fields = ['product_name', 'nicotine_strength', 'created_at']
    ordering = ['product_name']

    def get_queryset(self):
        return (
            Product.objects
            .filter(is_deleted=False)
            .select_related('manufacturer', 'category')
        )

    def get_serializer_class(self):
        if self.action in ('list', 'retrieve'):
            return ProductReadSerializer
        if self.action in ('update', 'partial_update'):
            return ProductUpdateSerializer
        return ProductWriteSerializer

    def create(self, request, *args, **kwargs):
        serializer = ProductWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        manufacturer_id = acting_party_id(request.user, PartyType.MANUFACTURER, data.pop('manufacturer', None))
        category = data.pop('category')
        product = ProductService.create_product(
            manufacturer_id=manufacturer_id,
            category_id=category.pk,
            actor=request.user,
            **data,
        )
        return Response(ProductReadSerializer(product).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop('partial', False)
        product = self.get_object()
        serializer = ProductUpdateSerializer(product, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        product = ProductService.update_product(
            product_id=product.pk,
            actor=request.user,
            **serializer.validated_data,
        )
        return Response(ProductReadSerializer(product).data)

    def perform_destroy(self, instance):
        instance.soft_delete(user=self.request.user)

    @action(detail=True, methods=['post'], url_path='activate')
    def activate(self, request, pk=None):
        product = ProductService.activate_product(product_id=self.get_object().pk, actor=request.user)
        return Response(ProductReadSerializer(product).data)

    @action(detail=True, methods=['post'], url_path='discontinue')
    def discontinue(self, request, pk=None):
        product = ProductService.discontinue_product(product_id=self.get_object().pk, actor=request.user)
        return Response(ProductReadSerializer(product).data)

    # --- Nested batches ---

    @action(detail=True, methods=['get', 'post'], url_path='batches')
    def batches(self, request, pk=None):
        product = self.get_object()

        if request.method == 'GET':
            batches = Batch.objects.filter(product=product).select_related('product').order_by('-expiry_date')
            page = self.paginate_queryset(batches)
            if page is not None:
                ser = BatchReadSerializer(page, many=True)
                return self.get_paginated_response(ser.data)
            return Response(BatchReadSerializer(batches, many=True).data)

        ser = BatchCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        batch = MovementEngine.record_manufacture(
            product_id=product.pk,
            actor=request.user,
            **ser.validated_data,
        )
        return Response(BatchReadSerializer(batch).data, status=status.HTTP_201_CREATED)


class ProductReviewViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    """Consumer reviews. Anyone authenticated reads; consumer accounts post their own."""

    serializer_class = ProductReviewSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ['product', 'rating', 'is_verified_purchase']
    ordering_fields = ['created_at', 'rating', 'helpful_count']
    ordering = ['-created_at']

    def get_queryset(self):
        return ProductReview.objects.filter(product__is_deleted=False)

    def get_serializer_class(self):
        if self.action == 'create':
            return ProductReviewCreateSerializer
        return ProductReviewSerializer

    def create(self, request, *args, **kwargs):
        ser = ProductReviewCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        consumer_id = acting_party_id(request.user, PartyType.CONSUMER, data.pop('consumer_id', None))
        review = ReviewService.submit_review(consumer_id=consumer_id, actor=request.user, **data)
        return Response(ProductReviewSerializer(review).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='helpful')
    def helpful(self, request, pk=None):
        review = ReviewService.mark_helpful(review_id=self.get_object().pk)
        return Response(ProductReviewSerializer(review).data)
