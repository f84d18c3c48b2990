from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List, Sequence

from core.money import ZERO, round_money

from ..dataclasses import RateCardSnapshot, SurchargeLine, SurchargeRule

PERCENT = "percent"
FIXED = "fixed"
BASE_TRANSPORT = "transport"
BASE_DECLARED_VALUE = "declared_value"

HUNDRED = Decimal("100")

CARD_SURCHARGES = (
    ("fuel", "Fuel surcharge", "fuel_surcharge_pct"),
    ("security", "Security surcharge", "security_surcharge_pct"),
    ("peak_season", "Peak season surcharge", "peak_season_surcharge_pct"),
)


def card_rules(card: RateCardSnapshot) -> List[SurchargeRule]:
    """Turn the card's percent columns (8 means 8%) into transport-based rules."""
    rules: List[SurchargeRule] = []
    for position, (code, name, attr) in enumerate(CARD_SURCHARGES):
        pct = getattr(card, attr) or ZERO
        if pct > ZERO:
            rules.append(SurchargeRule(code=code, name=name, kind=PERCENT, value=pct / HUNDRED,
                                       rate_card_id=card.id, position=position))
    return rules


def applicable_rules(card: RateCardSnapshot, tenant_rules: Iterable[SurchargeRule]) -> List[SurchargeRule]:
    """Card surcharges first, then tenant rules that are global or attached to this card."""
    extra = [r for r in tenant_rules if r.rate_card_id is None or r.rate_card_id == card.id]
    extra.sort(key=lambda r: (r.position, r.code))
    return card_rules(card) + extra


def _rule_amount(rule: SurchargeRule, base: Decimal, currency: str) -> Decimal:
    if rule.kind == FIXED:
        return rule.value
    return round_money(base * rule.value, currency)


def compute_surcharges(
    rules: Sequence[SurchargeRule],
    transport: Decimal,
    declared_value: Decimal,
    currency: str,
) -> List[SurchargeLine]:
    """
    Each rule is priced against its own base and the results are summed, so
    the total does not depend on rule order. A compounding rule's base is the
    transport amount plus every non-compounding transport-based surcharge;
    compounding rules never feed each other.
    """
    simple = [r for r in rules if not r.compounding]
    compounding = [r for r in rules if r.compounding]

    amounts = {}
    for rule in simple:
        base = declared_value if rule.base == BASE_DECLARED_VALUE else transport
        amounts[id(rule)] = _rule_amount(rule, base, currency)

    if compounding:
        layered = transport + sum(
            (amounts[id(r)] for r in simple if r.base == BASE_TRANSPORT), ZERO
        )
        for rule in compounding:
            amounts[id(rule)] = _rule_amount(rule, layered, currency)

    lines: List[SurchargeLine] = []
    for rule in rules:
        amount = amounts[id(rule)]
        if amount == ZERO:
            continue
        lines.append(SurchargeLine(code=rule.code, name=rule.name, amount=amount, base=rule.base))
    return lines


def surcharge_total(lines: Iterable[SurchargeLine]) -> Decimal:
    return sum((line.amount for line in lines), ZERO)
