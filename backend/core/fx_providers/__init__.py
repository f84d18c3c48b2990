from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional


@dataclass(frozen=True)
class RateRow:
    as_of_ts: datetime
    base_ccy: str  # always the reference currency
    quote_ccy: str
    rate: Decimal  # units of quote_ccy per 1 base_ccy
    source: str


def rebase(rates: Dict[str, Decimal], from_base: str, to_base: str) -> Dict[str, Decimal]:
    """
    Re-express a table of ``units per 1 from_base`` as ``units per 1 to_base``.
    ``rates`` must contain ``to_base``; ``from_base`` is implied at 1.
    """
    from_base = from_base.upper(); to_base = to_base.upper()
    table = {k.upper(): v for k, v in rates.items()}
    table[from_base] = Decimal(1)
    pivot = table.get(to_base)
    if not pivot:
        raise ValueError(f"Cannot rebase {from_base} table onto {to_base}: no rate for {to_base}")
    return {ccy: (val / pivot) for ccy, val in table.items() if val and ccy != to_base}


def load(name: Optional[str], timeout: float = 10.0):
    """
    Lazy-load an FX provider by name.
    - 'open_exchange', 'openexchangerates', 'oxr' -> OpenExchangeRatesProvider
    - 'bceao', 'bceao_html' -> BceaoHtmlProvider
    - 'env', 'env_provider', None -> EnvProvider (from core.fx)
    """
    key = (name or "env").strip().lower()
    if key in {"open_exchange", "openexchangerates", "oxr"}:
        from django.conf import settings

        from .open_exchange import OpenExchangeRatesProvider  # local import to avoid circulars
        return OpenExchangeRatesProvider(app_id=settings.OPEN_EXCHANGE_APP_ID, timeout=timeout)
    if key in {"bceao", "bceao_html"}:
        from .bceao_html import BceaoHtmlProvider
        return BceaoHtmlProvider(timeout=timeout)
    if key not in {"env", "env_provider"}:
        raise ValueError(f"Unknown FX provider '{name}'")
    from core.fx import EnvProvider
    return EnvProvider()
