from __future__ import annotations

from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import TestCase

from pricing.dataclasses import CalculationRequest
from pricing.models import RateCards, RateTiers, ServiceAddons
from pricing.services.pricing_service import QuoteEngine
from pricing.services.repository import DjangoRateCardRepository, DjangoTenantConfigStore
from tenants.models import Tenant, TenantPlan


class SeedPricingDemoTests(TestCase):
    def test_seed_is_idempotent(self):
        call_command("seed_pricing_demo", stdout=StringIO())
        counts = (Tenant.objects.count(), RateCards.objects.count(), RateTiers.objects.count(),
                  ServiceAddons.objects.count(), TenantPlan.objects.count())
        call_command("seed_pricing_demo", stdout=StringIO())
        self.assertEqual(counts, (Tenant.objects.count(), RateCards.objects.count(), RateTiers.objects.count(),
                                  ServiceAddons.objects.count(), TenantPlan.objects.count()))
        self.assertEqual(counts[0], 2)

    def test_seeded_xof_quote(self):
        call_command("seed_pricing_demo", stdout=StringIO())
        engine = QuoteEngine(DjangoRateCardRepository(), DjangoTenantConfigStore())
        quote = engine.calculate(CalculationRequest(
            tenant_id="demo-xof", mode="air", origin="Guangzhou", destination="Abidjan",
            rate_basis="per_kg", weight_kg=Decimal("5"),
        )).quote
        self.assertEqual(quote.total, Decimal("5500"))

    def test_seeded_eur_plan_and_addon_margin(self):
        call_command("seed_pricing_demo", stdout=StringIO())
        engine = QuoteEngine(DjangoRateCardRepository(), DjangoTenantConfigStore())
        result = engine.calculate(CalculationRequest(
            tenant_id="nextmove-chine-afrique", mode="air", origin="Shenzhen", destination="Dakar",
            rate_basis="per_kg", weight_kg=Decimal("150"), plan_id="starter",
        ))
        # 150 kg in the 100-500 tier at 5.80; fuel 8%, security 2%, documentation 10
        self.assertEqual(result.quote.transport_subtotal, Decimal("870.00"))
        self.assertEqual(result.quote.surcharge_total, Decimal("97.00"))
        self.assertEqual(result.quote.tax_amount, Decimal("193.40"))
        self.assertEqual(result.plan.price_month, Decimal("39.15"))


class ValidateRateTiersTests(TestCase):
    def setUp(self):
        self.tenant = Tenant.objects.create(code="acme", name="Acme", default_currency="EUR")

    def card(self, tiers):
        card = RateCards.objects.create(tenant=self.tenant, mode="air", rate_basis="per_kg",
                                        origin_country="China", destination_country="Togo", currency="EUR")
        for lower, upper, price in tiers:
            RateTiers.objects.create(rate_card=card, lower=Decimal(lower),
                                     upper=Decimal(upper) if upper is not None else None,
                                     unit_price=Decimal(price))
        return card

    def run_command(self, *args):
        out = StringIO()
        call_command("validate_rate_tiers", *args, stdout=out)
        return out.getvalue()

    def test_no_cards(self):
        self.assertIn("No rate cards found", self.run_command())

    def test_clean_cards(self):
        self.card([("0", "100", "6.5"), ("100", None, "5.8")])
        self.assertIn("All 1 cards look good", self.run_command())

    def test_gap_is_an_error(self):
        self.card([("0", "100", "6.5"), ("120", None, "5.8")])
        output = self.run_command()
        self.assertIn("ERROR: Gap between tier 1", output)
        self.assertIn("1 out of 1 cards cannot be priced", output)

    def test_rising_price_is_a_warning(self):
        self.card([("0", "100", "5.8"), ("100", None, "6.5")])
        output = self.run_command("--tenant", "acme")
        self.assertIn("exceeds previous tier", output)
        self.assertIn("Found warnings in 1 out of 1 cards", output)
