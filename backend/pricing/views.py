from __future__ import annotations

import logging

from django.apps import apps

from rest_framework import status, views
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response

from .serializers import (
    CalculateRequestSerializer,
    PublicRatesQuerySerializer,
    QuoteResultSerializer,
    RateCardSerializer,
)
from .services.errors import (
    InvalidQuantity,
    NoCorridorFound,
    PricingConfigurationError,
    RateCardNotFound,
    TenantNotFound,
)

logger = logging.getLogger(__name__)

TENANT_HEADER = "X-Tenant-ID"


def get_quote_engine():
    return apps.get_app_config("pricing").quote_engine


def tenant_from(request, fallback=None):
    return (request.headers.get(TENANT_HEADER) or fallback or "").strip() or None


def missing_tenant():
    return Response(
        {"detail": f"Tenant id is required ({TENANT_HEADER} header or tenant_id).", "code": "TenantRequired"},
        status=status.HTTP_400_BAD_REQUEST,
    )


def pricing_error_response(e, corridors_key: str = "available_corridors"):
    """Map engine errors onto HTTP; input problems are 4xx, configuration problems 500."""
    if isinstance(e, NoCorridorFound):
        return Response(
            {"detail": str(e), "code": e.code, corridors_key: e.available_corridors},
            status=status.HTTP_404_NOT_FOUND,
        )
    if isinstance(e, InvalidQuantity):
        return Response({"detail": str(e), "code": e.code}, status=status.HTTP_400_BAD_REQUEST)
    if isinstance(e, (TenantNotFound, RateCardNotFound)):
        return Response({"detail": str(e), "code": e.code}, status=status.HTTP_404_NOT_FOUND)
    logger.error("Pricing configuration error: %s", e)
    return Response({"detail": str(e), "code": e.code}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


class QuoteCalculateView(views.APIView):
    permission_classes = [AllowAny]

    def post(self, request):
        ser = CalculateRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        tenant_id = tenant_from(request, ser.validated_data.get("tenant_id"))
        if not tenant_id:
            return missing_tenant()

        try:
            result = get_quote_engine().calculate(ser.to_request(tenant_id))
        except (NoCorridorFound, InvalidQuantity, TenantNotFound, PricingConfigurationError) as e:
            return pricing_error_response(e)
        return Response(QuoteResultSerializer(result).data, status=status.HTTP_200_OK)


class PublicRatesView(views.APIView):
    """Transport-only estimate for public rate widgets."""

    permission_classes = [AllowAny]

    def get(self, request):
        ser = PublicRatesQuerySerializer(data=request.query_params)
        ser.is_valid(raise_exception=True)
        tenant_id = tenant_from(request, ser.validated_data.get("tenant"))
        if not tenant_id:
            return missing_tenant()

        try:
            result = get_quote_engine().calculate(ser.to_request(tenant_id))
        except (NoCorridorFound, InvalidQuantity, TenantNotFound, PricingConfigurationError) as e:
            return pricing_error_response(e, corridors_key="available_routes")
        quote = result.quote
        return Response({
            "corridor": quote.corridor,
            "rate_card_id": quote.rate_card_id,
            "currency": quote.currency,
            "rate_basis": quote.rate_basis,
            "quantity": str(quote.quantity),
            "unit_price": str(quote.unit_price),
            "transport_subtotal": str(quote.transport_subtotal),
            "surcharge_total": str(quote.surcharge_total),
            "subtotal": str(quote.subtotal),
            "tax_amount": str(quote.tax_amount),
            "total": str(quote.total),
        })


class RateCardListView(views.APIView):
    """GET lists the tenant's cards; POST (admin) validates tiers and upserts one."""

    def get_permissions(self):
        if self.request.method == "POST":
            return [IsAdminUser()]
        return [AllowAny()]

    def get(self, request):
        tenant_id = tenant_from(request, request.query_params.get("tenant"))
        if not tenant_id:
            return missing_tenant()
        mode = request.query_params.get("mode") or None
        cards = get_quote_engine().rate_cards.list(tenant_id, mode=mode, include_inactive=True)
        return Response(RateCardSerializer(cards, many=True).data)

    def post(self, request):
        tenant_id = tenant_from(request, request.data.get("tenant_id"))
        if not tenant_id:
            return missing_tenant()
        ser = RateCardSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            card = get_quote_engine().rate_cards.upsert(ser.to_snapshot(tenant_id))
        except (TenantNotFound, RateCardNotFound) as e:
            return pricing_error_response(e)
        logger.info("Rate card %s upserted for tenant %s (%s)", card.id, tenant_id, card.corridor_label)
        return Response(RateCardSerializer(card).data, status=status.HTTP_200_OK)
