"""
Parties — URL Configuration

@file parties/urls.py
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import ManufacturerViewSet, RetailerViewSet

app_name = 'parties'

router = DefaultRouter()
router.register('manufacturers', ManufacturerViewSet, basename='manufacturer')
router.register('retailers', RetailerViewSet, basename='retailer')

urlpatterns = [
    path('', include(router.urls)),
]
