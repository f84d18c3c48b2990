from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Mapping, Optional, Sequence, Tuple

from core.money import ZERO, d, round_money

from ..dataclasses import AddonCatalogEntry, AddonLine, AddonRequest
from .errors import UnknownAddon

logger = logging.getLogger(__name__)


def lookup_addon(catalog: Mapping[str, AddonCatalogEntry], addon_id: str) -> AddonCatalogEntry:
    entry = catalog.get(addon_id)
    if entry is None or not entry.active:
        raise UnknownAddon(addon_id)
    return entry


def price_addon(
    entry: AddonCatalogEntry,
    quantity: Decimal,
    weight_kg: Optional[Decimal],
    volume_m3: Optional[Decimal],
    declared_value: Decimal,
) -> Tuple[Decimal, Decimal, Decimal]:
    """
    Return ``(line_quantity, unit_price, amount)`` for one selection.

    Only ``fixed`` add-ons are multiplied by the requested quantity. Measured
    types report the shipment measure as the line quantity (weight for
    ``per_kg``, volume for ``per_m3``) and ``percent_of_value`` is a single
    unit worth the whole amount. Raises ValueError when a needed measure is
    missing.
    """
    price = d(entry.price)
    if entry.pricing_type == "fixed":
        return quantity, price, price * quantity
    if entry.pricing_type == "per_kg":
        if not weight_kg or weight_kg <= ZERO:
            raise ValueError("requires a weight")
        return weight_kg, price, price * weight_kg
    if entry.pricing_type == "per_m3":
        if not volume_m3 or volume_m3 <= ZERO:
            raise ValueError("requires a volume")
        return volume_m3, price, price * volume_m3
    if entry.pricing_type == "percent_of_value":
        if declared_value <= ZERO:
            raise ValueError("requires a declared value")
        amount = declared_value * price
        return Decimal(1), amount, amount
    raise ValueError(f"has unsupported pricing type '{entry.pricing_type}'")


def resolve_addons(
    selections: Sequence[AddonRequest],
    catalog: Mapping[str, AddonCatalogEntry],
    currency: str,
    weight_kg: Optional[Decimal] = None,
    volume_m3: Optional[Decimal] = None,
    declared_value: Decimal = ZERO,
) -> Tuple[List[AddonLine], List[str]]:
    """
    Price selected add-ons against the catalog as it is now. Selections that
    cannot be priced are dropped and reported as warnings; they never fail
    the quote.
    """
    lines: List[AddonLine] = []
    warnings: List[str] = []

    def drop(addon_id: str, reason: str) -> None:
        msg = f"Add-on '{addon_id}' ignored: {reason}."
        logger.warning("Add-on %s ignored: %s", addon_id, reason)
        warnings.append(msg)

    for sel in selections:
        try:
            entry = lookup_addon(catalog, sel.addon_id)
        except UnknownAddon:
            drop(sel.addon_id, "unknown or inactive")
            continue
        quantity = d(sel.quantity)
        if quantity <= ZERO:
            drop(sel.addon_id, f"quantity must be positive, got {quantity}")
            continue
        if entry.currency.upper() != currency.upper():
            drop(sel.addon_id, f"priced in {entry.currency}, quote is in {currency}")
            continue
        try:
            line_qty, unit_price, amount = price_addon(entry, quantity, weight_kg, volume_m3, d(declared_value))
        except ValueError as e:
            drop(sel.addon_id, f"{entry.pricing_type} pricing {e}")
            continue
        lines.append(AddonLine(
            id=entry.code,
            name=entry.name,
            quantity=line_qty,
            unit_price=round_money(unit_price, currency),
            amount=round_money(amount, currency),
            pricing_type=entry.pricing_type,
            owner_based=entry.owner_based,
            taxable=entry.taxable,
        ))
    return lines, warnings


def addon_total(lines: Sequence[AddonLine]) -> Decimal:
    return sum((line.amount for line in lines), ZERO)
