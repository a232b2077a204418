"""
Users — Serializers

User representations and the JWT pair serializer that stamps the
caller's ledger party into the token claims.

@file users/serializers.py
"""

from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from parties.models import PartyType

from .models import User


# ---------------------------------------------------------------------------
# JWT — custom claims
# ---------------------------------------------------------------------------

class PartyTokenObtainPairSerializer(TokenObtainPairSerializer):
    """Inject status and party mapping into the JWT payload."""

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['email'] = user.email
        token['status'] = user.status
        token['party_type'] = user.party_type or None
        token['party_id'] = str(user.party_id) if user.party_id else None
        return token

    def validate(self, attrs):
        data = super().validate(attrs)
        if self.user.status != User.StatusChoices.ACTIVE:
            raise serializers.ValidationError(
                {'detail': f'Account status is {self.user.status}. Only ACTIVE accounts can log in.'},
                code='account_inactive',
            )
        data['user'] = UserReadSerializer(self.user).data
        return data


# ---------------------------------------------------------------------------
# User serializers
# ---------------------------------------------------------------------------

class UserReadSerializer(serializers.ModelSerializer):
    """Read-only user representation, returned in list / detail views."""

    class Meta:
        model = User
        fields = [
            'id', 'email', 'first_name', 'last_name', 'status',
            'party_type', 'party_id', 'is_staff', 'is_active',
            'date_joined', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class UserWriteSerializer(serializers.ModelSerializer):
    """Create users. Password is write-only."""

    password = serializers.CharField(write_only=True, required=False, min_length=10)

    class Meta:
        model = User
        fields = ['email', 'first_name', 'last_name', 'password', 'status', 'party_type', 'party_id']

    def validate_email(self, value):
        qs = User.objects.filter(email__iexact=value)
        if self.instance:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise serializers.ValidationError('Email already in use.')
        return value

    def validate(self, attrs):
        if bool(attrs.get('party_type')) != bool(attrs.get('party_id')):
            raise serializers.ValidationError('party_type and party_id must be given together.')
        return attrs


class ChangeStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=User.StatusChoices.choices)
    reason = serializers.CharField(required=False, default='')


class LinkPartySerializer(serializers.Serializer):
    party_type = serializers.ChoiceField(choices=PartyType.choices)
    party_id = serializers.UUIDField()
