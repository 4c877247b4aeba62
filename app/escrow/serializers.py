"""
DRF serializers for the escrow API.

Request serializers validate shape only; amounts, currencies and state
rules are checked by EscrowService so every caller gets the same errors.

Related files:
    - views.py: Escrow API views
    - services/escrow_service.py: Business rules
"""

from __future__ import annotations

from rest_framework import serializers

from escrow.state_machines import DisputeType


class CreateEscrowSerializer(serializers.Serializer):
    """
    Create an escrow hold for a campaign.

    Used by POST /api/v1/escrow/escrow/create/
    """

    campaign_id = serializers.UUIDField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    currency = serializers.CharField(max_length=3, required=False)
    metadata = serializers.DictField(
        child=serializers.CharField(),
        required=False,
        help_text="Extra metadata stored on the provider hold",
    )


class FundEscrowSerializer(serializers.Serializer):
    """Used by POST /api/v1/escrow/escrow/fund/"""

    escrow_id = serializers.CharField(max_length=255)
    payment_method_ref = serializers.CharField(
        max_length=255,
        help_text="Stripe PaymentMethod id (pm_xxx)",
    )


class ReleaseFundsSerializer(serializers.Serializer):
    """
    Release escrow to an application.

    Used by POST /api/v1/escrow/funds/release/
    """

    application_id = serializers.UUIDField()
    release_amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        required=False,
        allow_null=True,
        help_text="Defaults to the full escrow amount",
    )
    reason = serializers.CharField(max_length=100, required=False, default="campaign_completed")


class RefundSerializer(serializers.Serializer):
    """Used by POST /api/v1/escrow/refund/"""

    campaign_id = serializers.UUIDField()
    refund_amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        required=False,
        allow_null=True,
    )
    reason = serializers.CharField(max_length=100, required=False, default="campaign_cancelled")


class DisputeSerializer(serializers.Serializer):
    """Used by POST /api/v1/escrow/dispute/"""

    escrow_id = serializers.CharField(max_length=255)
    dispute_type = serializers.ChoiceField(choices=DisputeType.choices)
    evidence = serializers.JSONField(required=False)


class FeeQuerySerializer(serializers.Serializer):
    """Query parameters of GET /api/v1/escrow/fees/calculate/"""

    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    currency = serializers.CharField(max_length=3, required=False)


class FeeBreakdownSerializer(serializers.Serializer):
    """Fee breakdown; amounts are decimal strings."""

    gross_amount = serializers.CharField()
    platform_fee = serializers.CharField()
    provider_fee = serializers.CharField()
    net_payee_amount = serializers.CharField()
    currency = serializers.CharField()


class EscrowResultSerializer(serializers.Serializer):
    """Envelope returned by every escrow endpoint."""

    success = serializers.BooleanField()
    data = serializers.DictField(required=False)
    error = serializers.CharField(required=False)
    error_code = serializers.CharField(required=False)
    details = serializers.DictField(required=False)
