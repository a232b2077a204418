"""
Users — Views

Token endpoints (obtain with party claims, refresh), the current-user
endpoint and a staff-only account management ViewSet.

@file users/views.py
"""

import logging

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenRefreshView

from core.services import AuditService

from .models import User
from .permissions import IsActiveUser, IsStaffUser
from .serializers import (
    ChangeStatusSerializer,
    LinkPartySerializer,
    PartyTokenObtainPairSerializer,
    UserReadSerializer,
    UserWriteSerializer,
)
from .services import IdentityService, UserService

logger = logging.getLogger('quittrace')


# ---------------------------------------------------------------------------
# Auth views
# ---------------------------------------------------------------------------

class TokenObtainView(APIView):
    """POST /v1/auth/token/ — Authenticate and obtain a JWT pair."""
    permission_classes = [AllowAny]
    throttle_scope = 'anon'

    def post(self, request):
        serializer = PartyTokenObtainPairSerializer(
            data=request.data, context={'request': request},
        )
        serializer.is_valid(raise_exception=True)

        IdentityService.log_login(
            user=serializer.user,
            ip_address=AuditService.get_client_ip(request),
            user_agent=request.META.get('HTTP_USER_AGENT', ''),
        )

        return Response({
            'success': True,
            'data': {
                'access': serializer.validated_data['access'],
                'refresh': serializer.validated_data['refresh'],
                'user': serializer.validated_data['user'],
            },
        })


class TokenRefreshAPIView(TokenRefreshView):
    """POST /v1/auth/token/refresh/ — Rotate refresh token."""
    pass


class MeView(APIView):
    """GET /v1/auth/me/ — Return the current authenticated user."""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response({
            'success': True,
            'data': UserReadSerializer(request.user).data,
        })


# ---------------------------------------------------------------------------
# User management ViewSet
# ---------------------------------------------------------------------------

class UserViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    """Account administration for staff: create, list, status, party link."""

    permission_classes = [IsActiveUser, IsStaffUser]
    filterset_fields = ['status', 'is_staff', 'party_type']
    search_fields = ['email', 'first_name', 'last_name']
    ordering_fields = ['created_at', 'email', 'status']
    ordering = ['-created_at']

    def get_queryset(self):
        return User.objects.filter(is_deleted=False)

    def get_serializer_class(self):
        if self.action in ('list', 'retrieve'):
            return UserReadSerializer
        return UserWriteSerializer

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        user = UserService.create_user(
            email=data.pop('email'),
            password=data.pop('password', None),
            actor=request.user,
            **data,
        )
        return Response(UserReadSerializer(user).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='change-status')
    def change_status(self, request, pk=None):
        serializer = ChangeStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = UserService.change_status(
            user_id=pk,
            new_status=serializer.validated_data['status'],
            actor=request.user,
            reason=serializer.validated_data.get('reason', ''),
        )
        return Response(UserReadSerializer(user).data)

    @action(detail=True, methods=['post'], url_path='link-party')
    def link_party(self, request, pk=None):
        serializer = LinkPartySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = UserService.link_party(
            user_id=pk,
            party_type=serializer.validated_data['party_type'],
            party_id=serializer.validated_data['party_id'],
            actor=request.user,
        )
        return Response(UserReadSerializer(user).data)
