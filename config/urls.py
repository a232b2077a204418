"""
Quit-Trace — Root URL Configuration

All API endpoints are namespaced under /api/v1/.
The DRF browsable API is available for route inspection in development.

@file config/urls.py
"""

from django.contrib import admin
from django.urls import include, path
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.reverse import reverse

admin.site.site_header = 'Quit-Trace Administration'
admin.site.site_title = 'Quit-Trace'
admin.site.index_title = 'Nicotine Replacement Supply-Chain Ledger'


@api_view(['GET'])
@permission_classes([AllowAny])
def api_root(request, format=None):
    """Quit-Trace API v1 — endpoint directory."""
    return Response({
        'auth': {
            'token': reverse('api-v1:auth:token', request=request, format=format),
            'refresh': reverse('api-v1:auth:token-refresh', request=request, format=format),
            'me': reverse('api-v1:auth:me', request=request, format=format),
            'users': reverse('api-v1:auth:user-list', request=request, format=format),
        },
        'parties': {
            'manufacturers': reverse('api-v1:parties:manufacturer-list', request=request, format=format),
            'retailers': reverse('api-v1:parties:retailer-list', request=request, format=format),
        },
        'catalog': {
            'categories': reverse('api-v1:catalog:category-list', request=request, format=format),
            'products': reverse('api-v1:catalog:product-list', request=request, format=format),
        },
        'ledger': {
            'batches': reverse('api-v1:ledger:batch-list', request=request, format=format),
            'purchases': reverse('api-v1:ledger:purchase-list', request=request, format=format),
            'inventory': reverse('api-v1:ledger:inventory-list', request=request, format=format),
            'snapshot': reverse('api-v1:ledger:inventory-snapshot', request=request, format=format),
        },
    })


api_v1_patterns = [
    path('', api_root, name='api-root'),
    path('auth/', include('users.urls', namespace='auth')),
    path('parties/', include('parties.urls', namespace='parties')),
    path('catalog/', include('catalog.urls', namespace='catalog')),
    path('ledger/', include('ledger.urls', namespace='ledger')),
]

urlpatterns = [
    path('admin/', admin.site.urls),

    # DRF session auth (powers the "Log in" button on the browsable API)
    path('api/auth/', include('rest_framework.urls', namespace='rest_framework')),

    # Versioned API
    path('api/v1/', include((api_v1_patterns, 'api-v1'))),
]
