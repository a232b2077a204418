"""
Ledger — URL Configuration

@file ledger/urls.py
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import BatchViewSet, InventoryViewSet, PurchaseViewSet, TraceView

app_name = 'ledger'

router = DefaultRouter()
router.register('batches', BatchViewSet, basename='batch')
router.register('purchases', PurchaseViewSet, basename='purchase')
router.register('inventory', InventoryViewSet, basename='inventory')

urlpatterns = [
    path('trace/<str:reference>/', TraceView.as_view(), name='trace'),
    path('', include(router.urls)),
]
