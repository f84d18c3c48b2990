from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Tuple, Union

from core.money import ONE, ZERO


@dataclass(frozen=True)
class RateTier:
    lower: Decimal
    upper: Optional[Decimal]  # exclusive; None is the open-ended terminal tier
    unit_price: Decimal

    def contains(self, quantity: Decimal) -> bool:
        return quantity >= self.lower and (self.upper is None or quantity < self.upper)


@dataclass(frozen=True)
class RateCardSnapshot:
    id: int
    tenant_id: str
    mode: str
    rate_basis: str
    origin_country: str
    destination_country: str
    currency: str
    tiers: Tuple[RateTier, ...]
    min_charge: Decimal = ZERO
    origin_city: str = ""
    destination_city: str = ""
    origin_region: str = ""
    destination_region: str = ""
    fuel_surcharge_pct: Decimal = ZERO
    security_surcharge_pct: Decimal = ZERO
    peak_season_surcharge_pct: Decimal = ZERO
    active: bool = True
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    created_at: Optional[datetime] = None

    @property
    def corridor_label(self) -> str:
        origin = self.origin_city or self.origin_country
        destination = self.destination_city or self.destination_country
        return f"{origin} → {destination}"

    def is_valid_on(self, day: Optional[date]) -> bool:
        if day is None:
            return True
        if self.valid_from and day < self.valid_from:
            return False
        if self.valid_until and day > self.valid_until:
            return False
        return True

    def is_eligible(self, day: Optional[date] = None) -> bool:
        return self.active and self.is_valid_on(day)


@dataclass(frozen=True)
class SurchargeRule:
    code: str
    name: str
    kind: str  # 'percent' (value is a fraction) or 'fixed' (value is an amount)
    value: Decimal
    base: str = "transport"  # or 'declared_value'
    compounding: bool = False
    rate_card_id: Optional[int] = None  # None applies to every card of the tenant
    position: int = 0


@dataclass(frozen=True)
class FixedMargin:
    amount: Decimal

    def apply(self, base: Decimal) -> Decimal:
        return base + self.amount

    def markup(self, base: Decimal) -> Decimal:
        return self.amount


@dataclass(frozen=True)
class PercentMargin:
    fraction: Decimal

    def apply(self, base: Decimal) -> Decimal:
        return base * (ONE + self.fraction)

    def markup(self, base: Decimal) -> Decimal:
        return base * self.fraction


MarginConfig = Union[FixedMargin, PercentMargin]


@dataclass(frozen=True)
class TenantPricingContext:
    tenant_id: str
    default_currency: str
    vat_rate: Decimal
    name: str = ""
    # Raw tenant-wide margin fields; parsed with pricing.services.margin.parse_margin
    margin_mode: Optional[str] = None
    margin_value: Optional[Decimal] = None


@dataclass(frozen=True)
class AddonCatalogEntry:
    code: str
    name: str
    pricing_type: str  # fixed | per_kg | per_m3 | percent_of_value
    price: Decimal  # owner base price when owner_addon_code is set
    currency: str
    taxable: bool = True
    active: bool = True
    owner_addon_code: Optional[str] = None
    margin_mode: Optional[str] = None
    margin_value: Optional[Decimal] = None

    @property
    def owner_based(self) -> bool:
        return self.owner_addon_code is not None


@dataclass(frozen=True)
class PlanCatalogEntry:
    code: str
    name: str
    currency: str
    owner_plan_code: str
    owner_price_month: Decimal
    owner_price_year: Decimal
    resell_price_month: Optional[Decimal] = None
    resell_price_year: Optional[Decimal] = None
    margin_mode: Optional[str] = None
    margin_value: Optional[Decimal] = None
    active: bool = True


@dataclass(frozen=True)
class AddonRequest:
    addon_id: str
    quantity: Decimal = ONE


@dataclass(frozen=True)
class SurchargeLine:
    code: str
    name: str
    amount: Decimal
    base: str = "transport"


@dataclass(frozen=True)
class AddonLine:
    id: str
    name: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal
    pricing_type: str
    owner_based: bool = False
    taxable: bool = True


@dataclass(frozen=True)
class MarginLine:
    component: str  # add-on id the markup applies to
    name: str
    base: Decimal
    amount: Decimal
    mode: str


@dataclass(frozen=True)
class Quote:
    rate_card_id: int
    corridor: str
    currency: str
    rate_basis: str
    quantity: Decimal
    unit_price: Decimal
    tiered_amount: Decimal
    min_charge: Decimal
    min_charge_applied: bool
    transport_subtotal: Decimal
    surcharges: Tuple[SurchargeLine, ...]
    addons: Tuple[AddonLine, ...]
    margins: Tuple[MarginLine, ...]
    surcharge_total: Decimal
    addon_total: Decimal
    margin_total: Decimal
    subtotal: Decimal
    vat_rate: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    total: Decimal


@dataclass(frozen=True)
class PlanQuote:
    id: str
    name: str
    currency: str
    price_month: Decimal
    price_year: Decimal
    owner_price_month: Decimal
    owner_price_year: Decimal


@dataclass(frozen=True)
class ConvertedTotals:
    currency: str
    subtotal: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    total: Optional[Decimal] = None
    rate: Optional[Decimal] = None
    converted_at: Optional[datetime] = None
    stale: bool = False
    error: Optional[str] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class QuoteResult:
    quote: Quote
    plan: Optional[PlanQuote] = None
    warnings: Tuple[str, ...] = ()
    conversion: Optional[ConvertedTotals] = None


@dataclass(frozen=True)
class CalculationRequest:
    tenant_id: str
    mode: str
    origin: str
    destination: str
    rate_basis: str
    weight_kg: Optional[Decimal] = None
    volume_m3: Optional[Decimal] = None
    declared_value: Decimal = ZERO
    selected_addons: Tuple[AddonRequest, ...] = field(default_factory=tuple)
    plan_id: Optional[str] = None
    display_currency: Optional[str] = None
    on_date: Optional[date] = None

    def quantity(self) -> Optional[Decimal]:
        """Weight or volume, whichever the basis prices against."""
        return self.weight_kg if self.rate_basis == "per_kg" else self.volume_m3
