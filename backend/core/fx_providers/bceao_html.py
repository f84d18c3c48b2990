from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Dict, List

import requests
from bs4 import BeautifulSoup

from core.money import d

from . import RateRow, rebase

HOME_CCY = "XOF"


class BceaoHtmlProvider:
    """
    Scrapes the BCEAO (West African central bank) rate table. The bank publishes
    XOF per 1 unit of foreign currency with Achat (buy) and Vente (sell) columns,
    French decimal commas. The mid is inverted to foreign units per 1 XOF and
    then rebased onto the requested reference.
    """

    name = "bceao_html"

    def __init__(
        self,
        url: str = "https://www.bceao.int/fr/cours/cours-des-devises-contre-Franc-CFA-appliquer-aux-transferts",
        timeout: float = 10.0,
    ) -> None:
        self.url = url
        self.timeout = timeout

    def _fetch_html(self) -> str:
        headers = {
            "User-Agent": "CargoPricingFXBot/1.0",
            "Accept": "text/html,application/xhtml+xml",
        }
        resp = requests.get(self.url, headers=headers, timeout=self.timeout)
        resp.raise_for_status()
        return resp.text

    @staticmethod
    def _number(text: str) -> Decimal:
        cleaned = text.replace("\xa0", "").replace(" ", "").replace(",", ".")
        return d(cleaned)

    @classmethod
    def _parse_rates(cls, html: str) -> Dict[str, Decimal]:
        """Return mapping currency_code -> mid XOF price of one unit."""
        soup = BeautifulSoup(html, "html.parser")
        table = None
        for t in soup.find_all("table"):
            headers = [th.get_text(strip=True).lower() for th in t.find_all("th")]
            if any("achat" in h for h in headers) and any("vente" in h for h in headers):
                table = t
                break
        if table is None:
            raise RuntimeError("BCEAO FX: table not found")

        # Expect rows: Devise | Code | Achat | Vente
        mids: Dict[str, Decimal] = {}
        for tr in table.find_all("tr"):
            tds = tr.find_all("td")
            if len(tds) < 4:
                continue
            code = tds[1].get_text(strip=True).upper()
            if len(code) != 3 or not code.isalpha():
                continue
            try:
                buy = cls._number(tds[2].get_text(strip=True))
                sell = cls._number(tds[3].get_text(strip=True))
            except InvalidOperation:
                continue
            if buy <= 0 or sell <= 0:
                continue
            mids[code] = (buy + sell) / 2
        return mids

    def fetch(self, reference: str) -> List[RateRow]:
        mids = self._parse_rates(self._fetch_html())
        as_of = datetime.now(timezone.utc)
        per_xof = {code: Decimal(1) / mid for code, mid in mids.items()}
        table = per_xof if reference.upper() == HOME_CCY else rebase(per_xof, HOME_CCY, reference)
        return [
            RateRow(as_of, reference.upper(), code, rate, self.name)
            for code, rate in sorted(table.items())
        ]
