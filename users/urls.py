"""
Users — URL Configuration

Auth endpoints (token, refresh, me) and the staff account router.

@file users/urls.py
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import MeView, TokenObtainView, TokenRefreshAPIView, UserViewSet

app_name = 'auth'

router = DefaultRouter()
router.register('users', UserViewSet, basename='user')

urlpatterns = [
    path('token/', TokenObtainView.as_view(), name='token'),
    path('token/refresh/', TokenRefreshAPIView.as_view(), name='token-refresh'),
    path('me/', MeView.as_view(), name='me'),
    path('', include(router.urls)),
]
