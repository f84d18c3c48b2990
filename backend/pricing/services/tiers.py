from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

from core.money import ZERO, d, round_money

from ..dataclasses import RateCardSnapshot, RateTier
from .errors import InvalidQuantity, RateCardConfigurationError


@dataclass(frozen=True)
class TransportCost:
    quantity: Decimal
    tier: RateTier
    tiered_amount: Decimal
    min_charge: Decimal
    amount: Decimal  # post-floor

    @property
    def min_charge_applied(self) -> bool:
        return self.amount > self.tiered_amount


def validate_tiers(tiers: Sequence[RateTier]) -> List[str]:
    """Return invariant violations (empty list when the table is usable)."""
    errors: List[str] = []
    if not tiers:
        return ["Rate card has no tiers."]
    if tiers[0].lower < ZERO:
        errors.append(f"First tier starts below zero ({tiers[0].lower}).")
    for i, tier in enumerate(tiers):
        if tier.unit_price < ZERO:
            errors.append(f"Tier {i + 1} has a negative unit price ({tier.unit_price}).")
        is_last = i == len(tiers) - 1
        if is_last:
            if tier.upper is not None:
                errors.append(f"Last tier must be open-ended, got upper bound {tier.upper}.")
            continue
        if tier.upper is None:
            errors.append(f"Tier {i + 1} is open-ended but is not the last tier.")
            continue
        if tier.lower >= tier.upper:
            errors.append(f"Tier {i + 1} has lower {tier.lower} >= upper {tier.upper}.")
        nxt = tiers[i + 1]
        if nxt.lower != tier.upper:
            if nxt.lower > tier.upper:
                errors.append(f"Gap between tier {i + 1} (upper {tier.upper}) and tier {i + 2} (lower {nxt.lower}).")
            else:
                errors.append(f"Tier {i + 2} (lower {nxt.lower}) overlaps tier {i + 1} (upper {tier.upper}).")
    return errors


def validate_price_monotonic(tiers: Sequence[RateTier]) -> List[str]:
    """Return warnings if per-unit prices rise with quantity (usually a data-entry slip)."""
    warnings: List[str] = []
    last: Optional[Decimal] = None
    for tier in tiers:
        if last is not None and tier.unit_price > last:
            warnings.append(
                f"Unit price from {tier.lower} ({tier.unit_price}) exceeds previous tier ({last}) - check data."
            )
        last = tier.unit_price
    return warnings


def ensure_valid_tiers(card: RateCardSnapshot) -> None:
    errors = validate_tiers(card.tiers)
    if errors:
        raise RateCardConfigurationError(f"Rate card {card.id}: " + " ".join(errors))


def resolve_tier(tiers: Sequence[RateTier], quantity: Decimal) -> RateTier:
    """Find the half-open [lower, upper) tier holding ``quantity``."""
    if quantity <= ZERO:
        raise InvalidQuantity(f"Quantity must be positive, got {quantity}.")
    for tier in tiers:
        if tier.contains(quantity):
            return tier
    raise InvalidQuantity(f"Quantity {quantity} is below the first tier ({tiers[0].lower}).")


def enforce_minimum(amount: Decimal, min_charge: Decimal, currency: str) -> Decimal:
    """Floor the transport component only; surcharges are computed on the result."""
    return max(amount, round_money(min_charge, currency))


def transport_cost(card: RateCardSnapshot, quantity) -> TransportCost:
    quantity = d(quantity)
    ensure_valid_tiers(card)
    tier = resolve_tier(card.tiers, quantity)
    tiered = round_money(quantity * tier.unit_price, card.currency)
    floor = round_money(card.min_charge, card.currency)
    return TransportCost(
        quantity=quantity,
        tier=tier,
        tiered_amount=tiered,
        min_charge=floor,
        amount=enforce_minimum(tiered, card.min_charge, card.currency),
    )
