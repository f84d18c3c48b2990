from __future__ import annotations

import logging

from django.apps import apps

from rest_framework import status, views
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response

from .fx import FxRateUnavailable, FxRefreshError
from .serializers import ConvertQuerySerializer, conversion_payload, snapshot_payload

logger = logging.getLogger(__name__)


def get_fx_service():
    return apps.get_app_config("core").fx_service


class FxRatesView(views.APIView):
    permission_classes = [AllowAny]

    def get(self, request):
        try:
            snapshot = get_fx_service().snapshot()
        except FxRateUnavailable as e:
            return Response({"detail": str(e), "code": "FxRateUnavailable"},
                            status=status.HTTP_503_SERVICE_UNAVAILABLE)
        return Response(snapshot_payload(snapshot))


class FxConvertView(views.APIView):
    permission_classes = [AllowAny]

    def get(self, request):
        ser = ConvertQuerySerializer(data=request.query_params)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        try:
            result = get_fx_service().convert(data["amount"], data["from"], data["to"])
        except FxRateUnavailable as e:
            return Response({"detail": str(e), "code": "FxRateUnavailable"},
                            status=status.HTTP_503_SERVICE_UNAVAILABLE)
        return Response(conversion_payload(result))


class FxRefreshView(views.APIView):
    permission_classes = [IsAdminUser]

    def post(self, request):
        try:
            snapshot = get_fx_service().refresh()
        except FxRefreshError as e:
            logger.warning("Administrative FX refresh failed: %s", e)
            return Response({"detail": str(e), "code": "FxRefreshError"}, status=status.HTTP_502_BAD_GATEWAY)
        return Response(snapshot_payload(snapshot))
