from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict

ZERO = Decimal("0")
ONE = Decimal("1")

# ISO 4217 exponents that differ from the usual two decimals.
MINOR_UNITS: Dict[str, int] = {
    "BIF": 0, "CLP": 0, "DJF": 0, "GNF": 0, "ISK": 0, "JPY": 0, "KMF": 0,
    "KRW": 0, "PYG": 0, "RWF": 0, "UGX": 0, "VND": 0, "VUV": 0, "XAF": 0,
    "XOF": 0, "XPF": 0,
    "BHD": 3, "IQD": 3, "JOD": 3, "KWD": 3, "LYD": 3, "OMR": 3, "TND": 3,
}
DEFAULT_MINOR_UNITS = 2


def d(val) -> Decimal:
    """Coerce incoming values to Decimal safely."""
    if isinstance(val, Decimal):
        return val
    return Decimal(str(val))


def minor_units(currency: str) -> int:
    return MINOR_UNITS.get((currency or "").upper(), DEFAULT_MINOR_UNITS)


def quantum_for(currency: str) -> Decimal:
    """Smallest representable step for the currency, e.g. Decimal('0.01') for EUR."""
    return Decimal(1).scaleb(-minor_units(currency))


def round_money(amount, currency: str) -> Decimal:
    """The one rounding policy for every monetary figure: half-up to the minor unit."""
    return d(amount).quantize(quantum_for(currency), rounding=ROUND_HALF_UP)
