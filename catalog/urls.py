"""
Catalog — URL Configuration

@file catalog/urls.py
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import ProductCategoryViewSet, ProductReviewViewSet, ProductViewSet

app_name = 'catalog'

router = DefaultRouter()
router.register('categories', ProductCategoryViewSet, basename='category')
router.register('products', ProductViewSet, basename='product')
router.register('reviews', ProductReviewViewSet, basename='review')

urlpatterns = [
    path('', include(router.urls)),
]
