from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from django.utils import timezone

from core.fx import FxRateUnavailable, FxService
from core.money import ONE, ZERO, d, round_money

from ..dataclasses import (
    AddonCatalogEntry,
    AddonLine,
    CalculationRequest,
    ConvertedTotals,
    MarginLine,
    PlanCatalogEntry,
    PlanQuote,
    Quote,
    QuoteResult,
    RateCardSnapshot,
    SurchargeRule,
    TenantPricingContext,
)
from .addons import addon_total, resolve_addons
from .errors import InvalidQuantity, PricingConfigurationError
from .margin import margin_lines, price_plan
from .repository import RateCardRepository, TenantConfigStore
from .surcharges import applicable_rules, compute_surcharges, surcharge_total
from .tiers import transport_cost

logger = logging.getLogger(__name__)

RATE_BASES = ("per_kg", "per_m3")
MODES = ("air", "sea", "road")


@dataclass(frozen=True)
class PricingSnapshot:
    """Everything a calculation reads, captured once at entry."""

    tenant: TenantPricingContext
    card: RateCardSnapshot
    surcharge_rules: List[SurchargeRule]
    addon_catalog: Dict[str, AddonCatalogEntry]
    plan: Optional[PlanCatalogEntry]


def validate_quantity(req: CalculationRequest) -> Decimal:
    """Reject missing, non-positive or basis-mismatched quantities before any lookup."""
    if req.rate_basis not in RATE_BASES:
        raise InvalidQuantity(f"Unknown rate basis '{req.rate_basis}'.")
    if req.rate_basis == "per_kg":
        if req.weight_kg is None:
            hint = " (volume given for a per_kg rate)" if req.volume_m3 else ""
            raise InvalidQuantity(f"weight_kg is required for per_kg pricing{hint}.")
        qty = d(req.weight_kg)
        label = "weight_kg"
    else:
        if req.volume_m3 is None:
            hint = " (weight given for a per_m3 rate)" if req.weight_kg else ""
            raise InvalidQuantity(f"volume_m3 is required for per_m3 pricing{hint}.")
        qty = d(req.volume_m3)
        label = "volume_m3"
    if qty <= ZERO:
        raise InvalidQuantity(f"{label} must be positive, got {qty}.")
    return qty


def validate_vat(tenant: TenantPricingContext) -> Decimal:
    vat = d(tenant.vat_rate)
    if vat < ZERO or vat > ONE:
        raise PricingConfigurationError(f"Tenant {tenant.tenant_id} VAT rate {vat} is outside [0, 1].")
    return vat


def taxable_base(subtotal: Decimal, addons: Sequence[AddonLine], margins: Sequence[MarginLine]) -> Decimal:
    """Subtotal less non-taxable add-ons and the markup charged on them."""
    exempt = {line.id for line in addons if not line.taxable}
    if not exempt:
        return subtotal
    excluded = sum((line.amount for line in addons if line.id in exempt), ZERO)
    excluded += sum((m.amount for m in margins if m.component in exempt), ZERO)
    return subtotal - excluded


class QuoteEngine:
    """
    Computes itemized, tax-inclusive quotes. Collaborators are injected once
    at startup; each ``calculate`` call is independent and safe to run
    concurrently.
    """

    def __init__(
        self,
        rate_cards: RateCardRepository,
        config_store: TenantConfigStore,
        fx: Optional[FxService] = None,
    ) -> None:
        self.rate_cards = rate_cards
        self.config_store = config_store
        self.fx = fx

    def load_snapshot(self, req: CalculationRequest) -> PricingSnapshot:
        """All reads share one consistent view so a concurrent admin write is seen entirely or not at all."""
        with self.config_store.consistent_read():
            tenant = self.config_store.tenant_context(req.tenant_id)
            card = self.rate_cards.find(
                req.tenant_id, req.mode, req.rate_basis, req.origin, req.destination,
                on_date=req.on_date or timezone.localdate(),
            )
            return PricingSnapshot(
                tenant=tenant,
                card=card,
                surcharge_rules=self.config_store.surcharge_rules(req.tenant_id),
                addon_catalog=self.config_store.addon_catalog(req.tenant_id) if req.selected_addons else {},
                plan=self.config_store.plan(req.tenant_id, req.plan_id) if req.plan_id else None,
            )

    def calculate(self, req: CalculationRequest) -> QuoteResult:
        quantity = validate_quantity(req)
        snap = self.load_snapshot(req)
        quote, warnings = self.assemble(req, quantity, snap)

        plan = self.price_plan(req, snap, warnings)
        conversion = self.convert_totals(quote, req.display_currency or snap.tenant.default_currency)
        return QuoteResult(quote=quote, plan=plan, warnings=tuple(warnings), conversion=conversion)

    def assemble(self, req: CalculationRequest, quantity: Decimal, snap: PricingSnapshot):
        card = snap.card
        ccy = card.currency
        vat_rate = validate_vat(snap.tenant)
        declared_value = d(req.declared_value or ZERO)

        transport = transport_cost(card, quantity)

        rules = applicable_rules(card, snap.surcharge_rules)
        surcharges = compute_surcharges(rules, transport.amount, declared_value, ccy)

        addon_lines, warnings = resolve_addons(
            req.selected_addons,
            snap.addon_catalog,
            ccy,
            weight_kg=d(req.weight_kg) if req.weight_kg is not None else None,
            volume_m3=d(req.volume_m3) if req.volume_m3 is not None else None,
            declared_value=declared_value,
        )
        margins = margin_lines(addon_lines, snap.addon_catalog, snap.tenant, ccy)

        s_total = surcharge_total(surcharges)
        a_total = addon_total(addon_lines)
        m_total = sum((m.amount for m in margins), ZERO)
        subtotal = transport.amount + s_total + a_total + m_total
        taxable = taxable_base(subtotal, addon_lines, margins)
        tax = round_money(taxable * vat_rate, ccy)

        quote = Quote(
            rate_card_id=card.id,
            corridor=card.corridor_label,
            currency=ccy,
            rate_basis=card.rate_basis,
            quantity=quantity,
            unit_price=transport.tier.unit_price,
            tiered_amount=transport.tiered_amount,
            min_charge=transport.min_charge,
            min_charge_applied=transport.min_charge_applied,
            transport_subtotal=transport.amount,
            surcharges=tuple(surcharges),
            addons=tuple(addon_lines),
            margins=tuple(margins),
            surcharge_total=s_total,
            addon_total=a_total,
            margin_total=m_total,
            subtotal=subtotal,
            vat_rate=vat_rate,
            taxable_amount=taxable,
            tax_amount=tax,
            total=subtotal + tax,
        )
        return quote, warnings

    def price_plan(self, req: CalculationRequest, snap: PricingSnapshot, warnings: List[str]) -> Optional[PlanQuote]:
        if not req.plan_id:
            return None
        if snap.plan is None or not snap.plan.active:
            msg = f"Plan '{req.plan_id}' ignored: unknown or inactive."
            logger.warning("Plan %s ignored for tenant %s: unknown or inactive", req.plan_id, req.tenant_id)
            warnings.append(msg)
            return None
        return price_plan(snap.plan, snap.tenant)

    def convert_totals(self, quote: Quote, display_currency: Optional[str]) -> Optional[ConvertedTotals]:
        """
        Display conversion runs after tax and margin and never feeds back into
        them. A missing rate is reported here and leaves the native quote intact.
        """
        target = (display_currency or "").upper()
        if not target or target == quote.currency:
            return None
        if self.fx is None:
            return ConvertedTotals(currency=target, error="FxRateUnavailable",
                                   message="No currency conversion service configured.")
        try:
            sub = self.fx.convert(quote.subtotal, quote.currency, target)
            tax = self.fx.convert(quote.tax_amount, quote.currency, target)
        except FxRateUnavailable as e:
            logger.warning("Quote on card %s not converted to %s: %s", quote.rate_card_id, target, e)
            return ConvertedTotals(currency=target, error="FxRateUnavailable", message=str(e))
        return ConvertedTotals(
            currency=target,
            subtotal=sub.amount,
            tax_amount=tax.amount,
            total=sub.amount + tax.amount,
            rate=sub.rate,
            converted_at=sub.converted_at,
            stale=sub.stale or tax.stale,
        )
