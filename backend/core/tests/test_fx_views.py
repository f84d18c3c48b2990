from __future__ import annotations

from unittest.mock import patch

from django.apps import apps
from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from core.fx import DatabaseRateStore, FxService
from core.models import CurrencyRates

from .stubs import FakeClock, StubProvider


class FxEndpointTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.provider = StubProvider()
        self.svc = FxService(
            self.provider, reference_currency="XOF", max_attempts=1,
            store=DatabaseRateStore(), clock=FakeClock(), sleep=lambda s: None,
        )
        patcher = patch.object(apps.get_app_config("core"), "fx_service", self.svc)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.addCleanup(self.svc.shutdown)

    def test_rates(self):
        resp = self.client.get("/api/fx/rates")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["reference"], "XOF")
        self.assertEqual(body["rates"], {"EUR": "0.002", "USD": "0.0025"})
        self.assertFalse(body["stale"])

    def test_convert(self):
        resp = self.client.get("/api/fx/convert", {"amount": "100", "from": "eur", "to": "USD"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["amount"], "125.00")
        self.assertEqual(resp.json()["currency"], "USD")

    def test_convert_validation(self):
        resp = self.client.get("/api/fx/convert", {"amount": "abc", "from": "EUR", "to": "USD"})
        self.assertEqual(resp.status_code, 400)

    def test_convert_unknown_currency(self):
        resp = self.client.get("/api/fx/convert", {"amount": "1", "from": "EUR", "to": "ZZZ"})
        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.json()["code"], "FxRateUnavailable")

    def test_rates_unavailable(self):
        self.provider.tables = [RuntimeError("down")]
        resp = self.client.get("/api/fx/rates")
        self.assertEqual(resp.status_code, 503)

    def test_refresh_requires_admin(self):
        resp = self.client.post("/api/fx/refresh")
        self.assertIn(resp.status_code, (401, 403))
        self.assertEqual(self.provider.calls, 0)

    def test_refresh_as_admin_persists(self):
        admin = get_user_model().objects.create_user("ops", password="x", is_staff=True)
        self.client.force_authenticate(user=admin)
        resp = self.client.post("/api/fx/refresh")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(CurrencyRates.objects.filter(base_ccy="XOF").count(), 2)

    def test_refresh_failure_is_bad_gateway(self):
        self.provider.tables = [RuntimeError("down")]
        admin = get_user_model().objects.create_user("ops", password="x", is_staff=True)
        self.client.force_authenticate(user=admin)
        resp = self.client.post("/api/fx/refresh")
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.json()["code"], "FxRefreshError")
