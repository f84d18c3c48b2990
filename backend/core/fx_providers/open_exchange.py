from __future__ import annotations

from datetime import datetime, timezone
from typing import List

import requests

from core.money import d

from . import RateRow, rebase


class OpenExchangeRatesProvider:
    """
    Latest rates from openexchangerates.org. The free plan only serves USD-based
    tables, so the response is rebased onto the requested reference currency.
    """

    name = "open_exchange"

    def __init__(
        self,
        app_id: str,
        url: str = "https://openexchangerates.org/api/latest.json",
        timeout: float = 10.0,
    ) -> None:
        self.app_id = app_id
        self.url = url
        self.timeout = timeout

    def _fetch_json(self) -> dict:
        if not self.app_id:
            raise RuntimeError("OPEN_EXCHANGE_APP_ID is not configured")
        resp = requests.get(self.url, params={"app_id": self.app_id}, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def fetch(self, reference: str) -> List[RateRow]:
        payload = self._fetch_json()
        base = (payload.get("base") or "USD").upper()
        raw = payload.get("rates") or {}
        if not raw:
            raise RuntimeError("Open Exchange Rates: empty rates table")
        ts = payload.get("timestamp")
        as_of = datetime.fromtimestamp(ts, tz=timezone.utc) if ts else datetime.now(timezone.utc)

        table = rebase({code: d(val) for code, val in raw.items()}, base, reference)
        return [
            RateRow(as_of, reference.upper(), code, rate, self.name)
            for code, rate in sorted(table.items())
        ]
