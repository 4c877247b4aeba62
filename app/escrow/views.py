"""
DRF views for the escrow app.

Endpoints (prefixed with /api/v1/escrow/):
    POST escrow/create/                 - Create an escrow hold for a campaign
    POST escrow/fund/                   - Confirm the hold with a payment method
    POST funds/release/                 - Release escrow to an application
    POST refund/                        - Refund a campaign's escrow to the brand
    POST dispute/                       - Open a dispute on a funded hold
    GET  escrow/<escrow_id>/status/     - Local and provider status of a hold
    GET  fees/calculate/                - Fee breakdown, no state change
    POST escrow/<escrow_id>/reconcile/  - Reconcile with Stripe (admin only)
    POST webhooks/stripe/               - Stripe webhooks (escrow.webhooks.views)

Every response uses the ServiceResult envelope:
    {"success": true, "data": {...}}
    {"success": false, "error": "...", "error_code": "...", "details": {...}}

Related files:
    - services/escrow_service.py: EscrowService
    - serializers.py: Request validation
    - urls.py: URL routing
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiExample, OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.permissions import IsPlatformAdmin
from core.services import ServiceResult

from escrow.adapters import StripeEscrowGateway
from escrow.serializers import (
    CreateEscrowSerializer,
    DisputeSerializer,
    EscrowResultSerializer,
    FeeBreakdownSerializer,
    FeeQuerySerializer,
    FundEscrowSerializer,
    RefundSerializer,
    ReleaseFundsSerializer,
)
from escrow.services import EscrowService

logger = logging.getLogger(__name__)


# =============================================================================
# Helpers
# =============================================================================


ERROR_STATUS_MAP: dict[str, int] = {
    "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "REFUND_EXCEEDS_CAPTURED": status.HTTP_400_BAD_REQUEST,
    "PAYMENT_DECLINED": status.HTTP_402_PAYMENT_REQUIRED,
    "PERMISSION_DENIED": status.HTTP_403_FORBIDDEN,
    "ESCROW_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "CAMPAIGN_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "APPLICATION_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVALID_STATE": status.HTTP_409_CONFLICT,
    "PENDING_CONFIRMATION": status.HTTP_202_ACCEPTED,
    "GATEWAY_ERROR": status.HTTP_502_BAD_GATEWAY,
    "GATEWAY_TIMEOUT": status.HTTP_502_BAD_GATEWAY,
    "INTERNAL_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def build_escrow_service() -> EscrowService:
    """EscrowService wired to Stripe."""
    return EscrowService(gateway=StripeEscrowGateway())


def result_response(result: ServiceResult, success_status: int = status.HTTP_200_OK) -> Response:
    """Convert a ServiceResult to a Response with the mapped HTTP status."""
    if result.success:
        return Response(result.to_response(), status=success_status)
    http_status = ERROR_STATUS_MAP.get(result.error_code or "", status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response(result.to_response(), status=http_status)


def invalid_request(serializer) -> Response:
    result = ServiceResult.failure(
        "Invalid request",
        error_code="VALIDATION_ERROR",
        errors=serializer.errors,
    )
    return Response(result.to_response(), status=status.HTTP_400_BAD_REQUEST)


ERROR_RESPONSES = {
    400: OpenApiResponse(response=EscrowResultSerializer, description="Invalid input"),
    403: OpenApiResponse(response=EscrowResultSerializer, description="Caller does not own the campaign"),
    404: OpenApiResponse(response=EscrowResultSerializer, description="Escrow, campaign or application not found"),
    409: OpenApiResponse(response=EscrowResultSerializer, description="Illegal state or concurrent change"),
    502: OpenApiResponse(response=EscrowResultSerializer, description="Payment provider error"),
}


# =============================================================================
# Lifecycle Views
# =============================================================================


class CreateEscrowView(APIView):
    """
    Create an escrow hold for a campaign.

    POST /api/v1/escrow/escrow/create/

    Request body:
        {"campaign_id": "uuid", "amount": "1000.00", "currency": "usd"}

    Returns:
        201 with escrow_id, status "pending_payment" and client_token
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Create campaign escrow",
        description=(
            "Authorize the campaign budget with Stripe (manual capture). "
            "A campaign can have only one active escrow."
        ),
        tags=["Escrow"],
        request=CreateEscrowSerializer,
        responses={201: EscrowResultSerializer, **ERROR_RESPONSES},
        examples=[
            OpenApiExample(
                "Create Request",
                value={"campaign_id": "4f1c7d1e-1111-4c3b-9a55-0c6f0e0b7a10", "amount": "1000.00", "currency": "usd"},
                request_only=True,
            ),
        ],
    )
    def post(self, request):
        serializer = CreateEscrowSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_request(serializer)

        data = serializer.validated_data
        result = build_escrow_service().create_escrow_account(
            campaign_id=data["campaign_id"],
            caller=request.user,
            amount=data["amount"],
            currency=data.get("currency"),
            metadata=data.get("metadata"),
        )
        return result_response(result, success_status=status.HTTP_201_CREATED)


class FundEscrowView(APIView):
    """
    Confirm an escrow hold with the brand's payment method.

    POST /api/v1/escrow/escrow/fund/

    A declined card returns 402 and the hold stays pending_payment.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Fund campaign escrow",
        tags=["Escrow"],
        request=FundEscrowSerializer,
        responses={
            200: EscrowResultSerializer,
            202: OpenApiResponse(response=EscrowResultSerializer, description="Pending confirmation"),
            402: OpenApiResponse(response=EscrowResultSerializer, description="Payment declined"),
            **ERROR_RESPONSES,
        },
    )
    def post(self, request):
        serializer = FundEscrowSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_request(serializer)

        result = build_escrow_service().fund_escrow(
            escrow_id=serializer.validated_data["escrow_id"],
            caller=request.user,
            payment_method_ref=serializer.validated_data["payment_method_ref"],
        )
        return result_response(result)


class ReleaseFundsView(APIView):
    """
    Release a campaign's escrow to an application's influencer.

    POST /api/v1/escrow/funds/release/

    Request body:
        {"application_id": "uuid", "release_amount": "1000.00"}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Release escrow funds",
        description=(
            "Capture the hold and record the influencer payout net of platform "
            "and provider fees. Replaying a completed release returns the original result."
        ),
        tags=["Escrow"],
        request=ReleaseFundsSerializer,
        responses={200: EscrowResultSerializer, **ERROR_RESPONSES},
    )
    def post(self, request):
        serializer = ReleaseFundsSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_request(serializer)

        data = serializer.validated_data
        result = build_escrow_service().release_for_application(
            application_id=data["application_id"],
            caller=request.user,
            release_amount=data.get("release_amount"),
            reason=data["reason"],
        )
        return result_response(result)


class RefundView(APIView):
    """
    Refund a campaign's escrow to the brand.

    POST /api/v1/escrow/refund/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Refund escrow to brand",
        description=(
            "Cancels an unfunded hold, voids an uncaptured authorization, or "
            "refunds captured funds. The campaign is cancelled."
        ),
        tags=["Escrow"],
        request=RefundSerializer,
        responses={200: EscrowResultSerializer, **ERROR_RESPONSES},
    )
    def post(self, request):
        serializer = RefundSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_request(serializer)

        data = serializer.validated_data
        result = build_escrow_service().refund_campaign(
            campaign_id=data["campaign_id"],
            caller=request.user,
            refund_amount=data.get("refund_amount"),
            reason=data["reason"],
        )
        return result_response(result)


class DisputeView(APIView):
    """
    Open a dispute on a funded escrow.

    POST /api/v1/escrow/dispute/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Open escrow dispute",
        tags=["Escrow"],
        request=DisputeSerializer,
        responses={200: EscrowResultSerializer, **ERROR_RESPONSES},
    )
    def post(self, request):
        serializer = DisputeSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_request(serializer)

        data = serializer.validated_data
        result = build_escrow_service().handle_dispute(
            escrow_id=data["escrow_id"],
            caller=request.user,
            dispute_type=data["dispute_type"],
            evidence=data.get("evidence"),
        )
        return result_response(result)


class EscrowStatusView(APIView):
    """
    Local and provider status of an escrow hold.

    GET /api/v1/escrow/escrow/<escrow_id>/status/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get escrow status",
        description="Compares the stored hold with Stripe and reports any discrepancy.",
        tags=["Escrow"],
        responses={200: EscrowResultSerializer, **ERROR_RESPONSES},
    )
    def get(self, request, escrow_id: str):
        result = build_escrow_service().get_escrow_status(escrow_id, caller=request.user)
        return result_response(result)


class CalculateFeesView(APIView):
    """
    Fee breakdown for a gross amount.

    GET /api/v1/escrow/fees/calculate/?amount=1000&currency=usd
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Calculate escrow fees",
        tags=["Escrow"],
        parameters=[
            OpenApiParameter("amount", str, required=True, description="Gross amount"),
            OpenApiParameter("currency", str, required=False, description="ISO 4217 code"),
        ],
        responses={200: FeeBreakdownSerializer, 400: ERROR_RESPONSES[400]},
    )
    def get(self, request):
        serializer = FeeQuerySerializer(data=request.query_params)
        if not serializer.is_valid():
            return invalid_request(serializer)

        result = build_escrow_service().calculate_fees(
            serializer.validated_data["amount"],
            serializer.validated_data.get("currency"),
        )
        return result_response(result)


# =============================================================================
# Operator Views
# =============================================================================


class ReconcileEscrowView(APIView):
    """
    Reconcile an escrow hold with Stripe.

    POST /api/v1/escrow/escrow/<escrow_id>/reconcile/

    Admin only. Heals clear-cut mismatches and flags the rest for review.
    """

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    @extend_schema(
        summary="Reconcile escrow hold",
        tags=["Escrow - Admin"],
        request=None,
        responses={200: EscrowResultSerializer, **ERROR_RESPONSES},
    )
    def post(self, request, escrow_id: str):
        logger.info(
            "Reconciliation requested",
            extra={"escrow_id": escrow_id, "actor_id": request.user.pk},
        )
        result = build_escrow_service().reconcile_escrow(escrow_id, caller=request.user)
        return result_response(result)
