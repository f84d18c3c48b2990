from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import List, Optional, Sequence

from core.money import ZERO, d, round_money

from ..dataclasses import (
    AddonCatalogEntry,
    AddonLine,
    FixedMargin,
    MarginConfig,
    MarginLine,
    PercentMargin,
    PlanCatalogEntry,
    PlanQuote,
    TenantPricingContext,
)
from .errors import MarginConfigurationError

FIXED = "fixed"
PERCENT = "percent"


def parse_margin(mode: Optional[str], value, where: str = "margin") -> Optional[MarginConfig]:
    """
    Turn the stored (mode, value) pair into a typed margin.

    - no mode -> None (no markup)
    - 'fixed' -> FixedMargin(amount)
    - 'percent' -> PercentMargin(fraction), 0.35 meaning +35%
    """
    key = (mode or "").strip().lower()
    if not key:
        return None
    if value is None or value == "":
        raise MarginConfigurationError(f"{where}: margin mode '{key}' requires a margin value")
    try:
        amount = d(value)
    except (InvalidOperation, ValueError, TypeError) as e:
        raise MarginConfigurationError(f"{where}: margin value '{value}' is not a number") from e
    if amount < ZERO:
        raise MarginConfigurationError(f"{where}: margin value must be >= 0, got {amount}")
    if key == FIXED:
        return FixedMargin(amount)
    if key == PERCENT:
        return PercentMargin(amount)
    raise MarginConfigurationError(f"{where}: unknown margin mode '{mode}'")


def resolve_margin(
    own_mode: Optional[str],
    own_value,
    tenant: TenantPricingContext,
    where: str,
) -> Optional[MarginConfig]:
    """A component's own margin wins; otherwise the tenant-wide margin applies."""
    own = parse_margin(own_mode, own_value, where)
    if own is not None:
        return own
    return parse_margin(tenant.margin_mode, tenant.margin_value, f"tenant {tenant.tenant_id}")


def mode_name(margin: MarginConfig) -> str:
    return FIXED if isinstance(margin, FixedMargin) else PERCENT


def margin_lines(
    addon_lines: Sequence[AddonLine],
    catalog: dict,
    tenant: TenantPricingContext,
    currency: str,
) -> List[MarginLine]:
    """
    One markup line per owner-based add-on. The add-on line itself stays at the
    owner's base price, so tenant markup remains auditable on its own line.
    """
    lines: List[MarginLine] = []
    for line in addon_lines:
        if not line.owner_based:
            continue
        entry: AddonCatalogEntry = catalog[line.id]
        margin = resolve_margin(entry.margin_mode, entry.margin_value, tenant, f"add-on {entry.code}")
        if margin is None:
            continue
        amount = round_money(margin.markup(line.amount), currency)
        if amount == ZERO:
            continue
        lines.append(MarginLine(
            component=line.id,
            name=f"{line.name} margin",
            base=line.amount,
            amount=amount,
            mode=mode_name(margin),
        ))
    return lines


def price_plan(plan: PlanCatalogEntry, tenant: TenantPricingContext) -> PlanQuote:
    """
    Resell price per period: the tenant's explicit override, else the owner
    price with the margin applied, else the owner price unchanged.
    """
    margin = resolve_margin(plan.margin_mode, plan.margin_value, tenant, f"plan {plan.code}")

    def resell(override: Optional[Decimal], owner_price: Decimal) -> Decimal:
        if override is not None:
            return round_money(override, plan.currency)
        if margin is not None:
            return round_money(margin.apply(owner_price), plan.currency)
        return round_money(owner_price, plan.currency)

    return PlanQuote(
        id=plan.code,
        name=plan.name,
        currency=plan.currency,
        price_month=resell(plan.resell_price_month, plan.owner_price_month),
        price_year=resell(plan.resell_price_year, plan.owner_price_year),
        owner_price_month=round_money(plan.owner_price_month, plan.currency),
        owner_price_year=round_money(plan.owner_price_year, plan.currency),
    )
