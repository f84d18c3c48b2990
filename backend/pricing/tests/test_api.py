from __future__ import annotations

from decimal import Decimal
from unittest.mock import patch

from django.apps import apps
from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from core.fx import FxService
from core.tests.stubs import FakeClock, StubProvider
from pricing.models import OwnerServiceAddons, RateCards, RateTiers, ServiceAddons
from tenants.models import OwnerPlan, Tenant, TenantPlan

CALCULATE_URL = "/api/quotes/calculate"
PUBLIC_RATES_URL = "/api/public/rates"
RATE_CARDS_URL = "/api/tenant/rate-cards"


class PricingApiTestBase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.tenant = Tenant.objects.create(code="demo-xof", name="Demo Fret Abidjan",
                                            default_currency="XOF", vat_rate=Decimal("0"))
        card = RateCards.objects.create(
            tenant=self.tenant, mode="air", rate_basis="per_kg",
            origin_country="China", origin_city="Guangzhou",
            destination_country="Ivory Coast", destination_city="Abidjan",
            currency="XOF", min_charge=Decimal("5000"), fuel_surcharge_pct=Decimal("10"),
        )
        RateTiers.objects.create(rate_card=card, lower=Decimal("0"), upper=Decimal("10"), unit_price=Decimal("1000"))
        RateTiers.objects.create(rate_card=card, lower=Decimal("10"), upper=None, unit_price=Decimal("800"))
        self.card = card

    def calculate(self, tenant="demo-xof", **payload):
        body = {"mode": "air", "origin": "Guangzhou", "destination": "Abidjan", "rate_basis": "per_kg",
                "weight_kg": "5"}
        body.update(payload)
        headers = {"HTTP_X_TENANT_ID": tenant} if tenant else {}
        return self.client.post(CALCULATE_URL, body, format="json", **headers)


class QuoteCalculateApiTests(PricingApiTestBase):
    def test_itemized_quote(self):
        resp = self.calculate()
        self.assertEqual(resp.status_code, 200, resp.content)
        quote = resp.json()["quote"]
        self.assertEqual(quote["corridor"], "Guangzhou → Abidjan")
        self.assertEqual(quote["transport_subtotal"], "5000")
        self.assertEqual(quote["surcharges"][0]["code"], "fuel")
        self.assertEqual(quote["surcharges"][0]["amount"], "500")
        self.assertEqual(quote["subtotal"], "5500")
        self.assertEqual(quote["taxable_amount"], "5500")
        self.assertEqual(quote["total"], "5500")
        self.assertEqual(quote["margin"], [])
        self.assertIsNone(resp.json()["conversion"])

    def test_tenant_id_in_body(self):
        resp = self.calculate(tenant=None, tenant_id="demo-xof")
        self.assertEqual(resp.status_code, 200)

    def test_tenant_required(self):
        resp = self.calculate(tenant=None)
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "TenantRequired")

    def test_unknown_tenant(self):
        resp = self.calculate(tenant="nobody")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["code"], "TenantNotFound")

    def test_no_corridor(self):
        resp = self.calculate(origin="Lagos", destination="Nairobi")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["code"], "NoCorridorFound")
        self.assertEqual(resp.json()["available_corridors"], ["Guangzhou → Abidjan"])

    def test_invalid_quantity(self):
        resp = self.calculate(weight_kg="0")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "InvalidQuantity")

    def test_schema_validation(self):
        resp = self.calculate(mode="rail")
        self.assertEqual(resp.status_code, 400)
        self.assertIn("mode", resp.json())

    def test_addons_margin_and_plan(self):
        owner = OwnerServiceAddons.objects.create(code="insurance", name="Insurance", pricing_type="fixed",
                                                  price=Decimal("1000"), currency="XOF")
        ServiceAddons.objects.create(tenant=self.tenant, owner_addon=owner, code="assurance", name="Assurance",
                                     pricing_type="fixed", price=Decimal("0"), currency="XOF",
                                     margin_mode="fixed", margin_value=Decimal("150"))
        plan = OwnerPlan.objects.create(code="starter", name="Starter", price_month=Decimal("29"),
                                        price_year=Decimal("290"))
        TenantPlan.objects.create(tenant=self.tenant, owner_plan=plan, code="starter",
                                  resell_price_month=Decimal("35"))
        resp = self.calculate(selected_addons=[{"addon_id": "assurance"}, {"addon_id": "ghost"}], plan_id="starter")
        self.assertEqual(resp.status_code, 200, resp.content)
        body = resp.json()
        self.assertEqual(body["quote"]["addons"][0]["amount"], "1000")
        self.assertEqual(body["quote"]["margin"][0]["amount"], "150")
        self.assertEqual(body["quote"]["total"], "6650")
        self.assertEqual(body["plan"]["price_month"], "35.00")
        self.assertEqual(body["warnings"], ["Add-on 'ghost' ignored: unknown or inactive."])

    def test_broken_margin_is_a_server_error(self):
        plan = OwnerPlan.objects.create(code="starter", name="Starter", price_month=Decimal("29"),
                                        price_year=Decimal("290"))
        TenantPlan.objects.create(tenant=self.tenant, owner_plan=plan, code="starter", margin_mode="percent")
        resp = self.calculate(plan_id="starter")
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json()["code"], "MarginConfigurationError")

    def test_fx_outage_still_quotes(self):
        fx = FxService(StubProvider(RuntimeError("down")), reference_currency="XOF", max_attempts=1,
                       clock=FakeClock(), sleep=lambda s: None)
        self.addCleanup(fx.shutdown)
        with patch.object(apps.get_app_config("pricing").quote_engine, "fx", fx):
            resp = self.calculate(display_currency="eur")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["quote"]["total"], "5500")
        self.assertEqual(resp.json()["conversion"]["currency"], "EUR")
        self.assertEqual(resp.json()["conversion"]["error"], "FxRateUnavailable")

    def test_display_conversion(self):
        fx = FxService(StubProvider(), reference_currency="XOF", clock=FakeClock(), sleep=lambda s: None)
        self.addCleanup(fx.shutdown)
        with patch.object(apps.get_app_config("pricing").quote_engine, "fx", fx):
            resp = self.calculate(display_currency="EUR")
        self.assertEqual(resp.json()["conversion"]["total"], "11.00")
        self.assertFalse(resp.json()["conversion"]["stale"])


class PublicRatesApiTests(PricingApiTestBase):
    def test_transport_estimate(self):
        resp = self.client.get(PUBLIC_RATES_URL, {"tenant": "demo-xof", "origin": "Guangzhou",
                                                  "destination": "Abidjan", "weight_kg": "20"})
        self.assertEqual(resp.status_code, 200, resp.content)
        self.assertEqual(resp.json()["transport_subtotal"], "16000")
        self.assertEqual(resp.json()["total"], "17600")

    def test_unknown_route(self):
        resp = self.client.get(PUBLIC_RATES_URL, {"origin": "Lagos", "destination": "Nairobi", "weight_kg": "5"},
                               HTTP_X_TENANT_ID="demo-xof")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["available_routes"], ["Guangzhou → Abidjan"])


class RateCardApiTests(PricingApiTestBase):
    PAYLOAD = {
        "mode": "sea",
        "rate_basis": "per_m3",
        "origin_country": "China",
        "origin_city": "Ningbo",
        "destination_country": "Senegal",
        "destination_city": "Dakar",
        "currency": "xof",
        "min_charge": "50000",
        "tiers": [
            {"lower": "10", "upper": None, "unit_price": "40000"},
            {"lower": "0", "upper": "10", "unit_price": "45000"},
        ],
    }

    def admin(self):
        user = get_user_model().objects.create_user("ops", password="x", is_staff=True)
        self.client.force_authenticate(user=user)

    def test_list(self):
        resp = self.client.get(RATE_CARDS_URL, HTTP_X_TENANT_ID="demo-xof")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()[0]["corridor"], "Guangzhou → Abidjan")
        self.assertEqual(len(resp.json()[0]["tiers"]), 2)

    def test_upsert_requires_admin(self):
        resp = self.client.post(RATE_CARDS_URL, self.PAYLOAD, format="json", HTTP_X_TENANT_ID="demo-xof")
        self.assertIn(resp.status_code, (401, 403))

    def test_admin_upsert(self):
        self.admin()
        resp = self.client.post(RATE_CARDS_URL, self.PAYLOAD, format="json", HTTP_X_TENANT_ID="demo-xof")
        self.assertEqual(resp.status_code, 200, resp.content)
        self.assertEqual(resp.json()["currency"], "XOF")
        self.assertEqual(RateCards.objects.filter(mode="sea").count(), 1)
        self.assertEqual(RateTiers.objects.filter(rate_card__mode="sea").count(), 2)

    def test_admin_upsert_rejects_gaps(self):
        self.admin()
        payload = dict(self.PAYLOAD, tiers=[
            {"lower": "0", "upper": "10", "unit_price": "45000"},
            {"lower": "12", "upper": None, "unit_price": "40000"},
        ])
        resp = self.client.post(RATE_CARDS_URL, payload, format="json", HTTP_X_TENANT_ID="demo-xof")
        self.assertEqual(resp.status_code, 400)
        self.assertIn("tiers", resp.json())
        self.assertFalse(RateCards.objects.filter(mode="sea").exists())

    def test_admin_cannot_overwrite_another_tenants_card(self):
        other = Tenant.objects.create(code="other", name="Other", default_currency="XOF", vat_rate=Decimal("0"))
        theirs = RateCards.objects.create(
            tenant=other, mode="sea", rate_basis="per_m3", origin_country="China",
            destination_country="Senegal", currency="XOF", min_charge=Decimal("100"),
        )
        self.admin()
        payload = dict(self.PAYLOAD, id=theirs.id)
        resp = self.client.post(RATE_CARDS_URL, payload, format="json", HTTP_X_TENANT_ID="demo-xof")
        self.assertEqual(resp.status_code, 404, resp.content)
        self.assertEqual(resp.json()["code"], "RateCardNotFound")
        theirs.refresh_from_db()
        self.assertEqual(theirs.tenant_id, other.id)
        self.assertEqual(theirs.min_charge, Decimal("100"))
