from __future__ import annotations

from contextlib import contextmanager
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal

import pytest

from core.fx import FxService
from core.tests.stubs import FakeClock, StubProvider
from pricing.dataclasses import AddonRequest, PlanCatalogEntry, SurchargeRule
from pricing.services.errors import (
    InvalidQuantity,
    MarginConfigurationError,
    NoCorridorFound,
    PricingConfigurationError,
    TenantNotFound,
)

from pricing.services.pricing_service import QuoteEngine
from pricing.services.repository import InMemoryRateCardRepository, InMemoryTenantConfigStore

from .factories import TENANT, make_addon, make_card, make_engine, make_request, make_tenant


@pytest.fixture
def fx():
    svc = FxService(StubProvider(), reference_currency="XOF", max_attempts=1,
                    clock=FakeClock(), sleep=lambda s: None)
    yield svc
    svc.shutdown()


@pytest.fixture
def broken_fx():
    svc = FxService(StubProvider(RuntimeError("provider down")), reference_currency="XOF",
                    max_attempts=1, clock=FakeClock(), sleep=lambda s: None)
    yield svc
    svc.shutdown()


class TestQuoteScenarios:
    def test_small_shipment_hits_minimum(self):
        quote = make_engine().calculate(make_request(weight_kg=Decimal("5"))).quote
        assert quote.corridor == "Guangzhou → Abidjan"
        assert quote.transport_subtotal == Decimal("5000")
        assert [(s.code, s.amount) for s in quote.surcharges] == [("fuel", Decimal("500"))]
        assert quote.subtotal == Decimal("5500")
        assert quote.tax_amount == Decimal("0")
        assert quote.total == Decimal("5500")

    def test_second_tier(self):
        quote = make_engine().calculate(make_request(weight_kg=Decimal("20"))).quote
        assert quote.unit_price == Decimal("800")
        assert quote.transport_subtotal == Decimal("16000")
        assert quote.surcharge_total == Decimal("1600")
        assert quote.total == Decimal("17600")
        assert not quote.min_charge_applied

    def test_unknown_corridor_lists_what_exists(self):
        engine = make_engine(cards=[
            make_card(),
            make_card(origin_city="Shenzhen", destination_country="Senegal", destination_city="Dakar"),
            make_card(mode="sea", rate_basis="per_m3", destination_city="Lome", destination_country="Togo"),
            make_card(origin_city="Yiwu", active=False),
        ])
        with pytest.raises(NoCorridorFound) as exc:
            engine.calculate(make_request(origin="Lagos", destination="Nairobi"))
        assert exc.value.available_corridors == ["Guangzhou → Abidjan", "Shenzhen → Dakar"]

    def test_basis_must_match(self):
        with pytest.raises(NoCorridorFound):
            make_engine().calculate(make_request(rate_basis="per_m3", weight_kg=None, volume_m3=Decimal("2")))

    def test_vat_is_applied_to_the_full_subtotal(self):
        engine = make_engine(tenants=[make_tenant(vat_rate=Decimal("0.18"))])
        quote = engine.calculate(make_request()).quote
        assert quote.tax_amount == Decimal("990")
        assert quote.total == Decimal("6490")
        assert quote.taxable_amount == quote.subtotal

    def test_non_taxable_addon_and_its_margin_stay_out_of_vat(self):
        engine = make_engine(
            tenants=[make_tenant(vat_rate=Decimal("0.18"))],
            addons=[
                make_addon("duty", "fixed", "2000", taxable=False, owner_addon_code="duty",
                           margin_mode="fixed", margin_value=Decimal("100")),
                make_addon("packing", "fixed", "1500"),
            ],
        )
        quote = engine.calculate(make_request(selected_addons=(AddonRequest("duty"), AddonRequest("packing")))).quote
        assert quote.subtotal == Decimal("9100")
        assert quote.taxable_amount == Decimal("7000")
        assert quote.tax_amount == Decimal("1260")
        assert quote.total == Decimal("10360")

    def test_vat_out_of_range(self):
        engine = make_engine(tenants=[make_tenant(vat_rate=Decimal("1.5"))])
        with pytest.raises(PricingConfigurationError):
            engine.calculate(make_request())

    def test_unknown_tenant(self):
        with pytest.raises(TenantNotFound):
            make_engine().calculate(make_request(tenant_id="nobody"))

    def test_calculation_is_repeatable(self):
        engine = make_engine(addons=[make_addon("packing")])
        req = make_request(selected_addons=(AddonRequest("packing"),))
        assert engine.calculate(req) == engine.calculate(req)

    def test_tenant_rules_join_card_surcharges(self):
        engine = make_engine(rules=[
            SurchargeRule(code="documentation", name="Documentation", kind="fixed", value=Decimal("2500")),
        ])
        quote = engine.calculate(make_request()).quote
        assert [s.code for s in quote.surcharges] == ["fuel", "documentation"]
        assert quote.total == Decimal("8000")


class TestQuantityValidation:
    @pytest.mark.parametrize("weight", [Decimal("0"), Decimal("-3")])
    def test_non_positive_weight(self, weight):
        with pytest.raises(InvalidQuantity):
            make_engine().calculate(make_request(weight_kg=weight))

    def test_volume_on_per_kg_card(self):
        with pytest.raises(InvalidQuantity) as exc:
            make_engine().calculate(make_request(weight_kg=None, volume_m3=Decimal("2")))
        assert "volume given for a per_kg rate" in str(exc.value)

    def test_rejected_before_any_lookup(self):
        # Unknown tenant would raise TenantNotFound if the lookup ran first
        with pytest.raises(InvalidQuantity):
            make_engine().calculate(make_request(tenant_id="nobody", weight_kg=Decimal("0")))


class TestCorridorSelection:
    def test_city_card_beats_country_card(self):
        engine = make_engine(cards=[
            make_card(origin_city="", destination_city="", min_charge=Decimal("0")),
            make_card(),
        ])
        quote = engine.calculate(make_request(origin="Guangzhou China", destination="Abidjan Ivory Coast")).quote
        assert quote.corridor == "Guangzhou → Abidjan"

    def test_country_query_ties_go_to_first_created(self):
        engine = make_engine(cards=[make_card(origin_city="Shenzhen"), make_card()])
        first = engine.rate_cards.list(TENANT)[0]
        quote = engine.calculate(make_request(origin="China", destination="Ivory Coast")).quote
        assert quote.rate_card_id == first.id
        assert quote.corridor == "Shenzhen → Abidjan"

    def test_matching_ignores_case_and_spacing(self):
        quote = make_engine().calculate(make_request(origin="  guangzhou ", destination="ABIDJAN")).quote
        assert quote.corridor == "Guangzhou → Abidjan"

    def test_expired_and_inactive_cards_are_skipped(self):
        expired = date.today() - timedelta(days=2)
        engine = make_engine(cards=[make_card(valid_until=expired), make_card(active=False)])
        with pytest.raises(NoCorridorFound) as exc:
            engine.calculate(make_request())
        assert exc.value.available_corridors == []


class TestMargins:
    def engine(self, **addon_margin):
        addons = [
            make_addon("insurance", "fixed", "1000", owner_addon_code="insurance", **addon_margin),
            make_addon("packing", "fixed", "1500"),
        ]
        return make_engine(addons=addons)

    def request(self):
        return make_request(selected_addons=(AddonRequest("insurance"), AddonRequest("packing")))

    def test_margin_is_its_own_line(self):
        quote = self.engine(margin_mode="percent", margin_value=Decimal("0.10")).calculate(self.request()).quote
        assert [(m.component, m.amount) for m in quote.margins] == [("insurance", Decimal("100"))]
        assert quote.subtotal == Decimal("5000") + Decimal("500") + Decimal("2500") + Decimal("100")

    def test_margin_mode_does_not_touch_other_lines(self):
        pct = self.engine(margin_mode="percent", margin_value=Decimal("0.10")).calculate(self.request()).quote
        fixed = self.engine(margin_mode="fixed", margin_value=Decimal("100")).calculate(self.request()).quote
        assert pct.surcharges == fixed.surcharges
        assert pct.addons == fixed.addons
        assert pct.margin_total == fixed.margin_total == Decimal("100")

    def test_broken_margin_fails_the_quote(self):
        with pytest.raises(MarginConfigurationError):
            self.engine(margin_mode="percent").calculate(self.request())

    def test_dropped_addons_become_warnings(self):
        req = make_request(selected_addons=(AddonRequest("ghost"), AddonRequest("packing")))
        result = self.engine().calculate(req)
        assert [a.id for a in result.quote.addons] == ["packing"]
        assert result.warnings == ("Add-on 'ghost' ignored: unknown or inactive.",)


class TestPlans:
    PLAN = PlanCatalogEntry(
        code="starter", name="Starter", currency="EUR", owner_plan_code="starter",
        owner_price_month=Decimal("29"), owner_price_year=Decimal("290"),
        margin_mode="percent", margin_value=Decimal("0.35"),
    )

    def test_plan_priced_alongside_quote(self):
        result = make_engine(plans=[self.PLAN]).calculate(make_request(plan_id="starter"))
        assert result.plan.price_month == Decimal("39.15")
        assert result.quote.total == Decimal("5500")

    def test_unknown_or_inactive_plan_is_a_warning(self):
        engine = make_engine(plans=[replace(self.PLAN, active=False)])
        result = engine.calculate(make_request(plan_id="starter"))
        assert result.plan is None
        assert result.warnings == ("Plan 'starter' ignored: unknown or inactive.",)

    def test_plan_without_margin_value(self):
        engine = make_engine(plans=[replace(self.PLAN, margin_value=None)])
        with pytest.raises(MarginConfigurationError):
            engine.calculate(make_request(plan_id="starter"))


class TestDisplayCurrency:
    def test_same_currency_needs_no_conversion(self, broken_fx):
        result = make_engine(fx=broken_fx).calculate(make_request())
        assert result.conversion is None

    def test_totals_converted_after_tax(self, fx):
        result = make_engine(fx=fx).calculate(make_request(display_currency="EUR"))
        conv = result.conversion
        assert conv.error is None
        assert conv.subtotal == Decimal("11.00")
        assert conv.tax_amount == Decimal("0.00")
        assert conv.total == Decimal("11.00")
        assert result.quote.total == Decimal("5500")

    def test_tenant_default_currency_is_the_display_default(self, fx):
        engine = make_engine(fx=fx, tenants=[make_tenant(default_currency="USD")])
        assert engine.calculate(make_request()).conversion.currency == "USD"

    def test_fx_outage_keeps_native_quote(self, broken_fx):
        result = make_engine(fx=broken_fx).calculate(make_request(display_currency="EUR"))
        assert result.quote.total == Decimal("5500")
        assert result.conversion.error == "FxRateUnavailable"
        assert result.conversion.total is None

    def test_no_fx_service(self):
        result = make_engine().calculate(make_request(display_currency="EUR"))
        assert result.conversion.error == "FxRateUnavailable"


class ScopedStore(InMemoryTenantConfigStore):
    """Records whether each read happened inside ``consistent_read``."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.open = False
        self.reads = []

    @contextmanager
    def consistent_read(self):
        self.open = True
        try:
            yield
        finally:
            self.open = False

    def tenant_context(self, tenant_id):
        self.reads.append(("tenant", self.open))
        return super().tenant_context(tenant_id)

    def surcharge_rules(self, tenant_id):
        self.reads.append(("rules", self.open))
        return super().surcharge_rules(tenant_id)

    def addon_catalog(self, tenant_id):
        self.reads.append(("addons", self.open))
        return super().addon_catalog(tenant_id)

    def plan(self, tenant_id, plan_id):
        self.reads.append(("plan", self.open))
        return super().plan(tenant_id, plan_id)


class ScopedRepository(InMemoryRateCardRepository):
    def __init__(self, store, cards):
        super().__init__(cards)
        self.store = store

    def list(self, tenant_id, mode=None, rate_basis=None, include_inactive=False):
        self.store.reads.append(("cards", self.store.open))
        return super().list(tenant_id, mode, rate_basis, include_inactive)


class TestSnapshotReads:
    def test_all_reads_share_one_scope(self):
        store = ScopedStore(tenants=[make_tenant()], addons={TENANT: [make_addon("packing")]})
        engine = QuoteEngine(ScopedRepository(store, [make_card()]), store)
        engine.calculate(make_request(selected_addons=(AddonRequest("packing"),), plan_id="starter"))
        assert [name for name, _ in store.reads] == ["tenant", "cards", "rules", "addons", "plan"]
        assert all(inside for _, inside in store.reads)
        assert not store.open

    def test_scope_closes_when_a_read_fails(self):
        store = ScopedStore(tenants=[make_tenant()])
        engine = QuoteEngine(ScopedRepository(store, [make_card()]), store)
        with pytest.raises(NoCorridorFound):
            engine.calculate(make_request(origin="Lagos"))
        assert not store.open
