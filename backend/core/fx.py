from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
import json
import logging
import os
import threading
import time
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from django.utils.timezone import now

from .fx_providers import RateRow
from .models import CurrencyRates
from .money import ONE, d, round_money

logger = logging.getLogger(__name__)


class FxError(Exception):
    """Base exception for currency conversion errors"""
    pass


class FxRateUnavailable(FxError):
    """Raised when no cached, stored or fetchable rate exists for a currency"""
    pass


class FxRefreshError(FxError):
    """Raised when a provider refresh fails after all retries"""
    pass


@dataclass(frozen=True)
class RateSnapshot:
    """
    Immutable table of ``units of currency per 1 reference``. A new refresh
    produces a new snapshot; readers holding an old one are never affected.
    """

    reference: str
    rates: Mapping[str, Decimal]
    fetched_at: datetime
    source: str
    stale: bool = False

    def rate_for(self, currency: str) -> Decimal:
        ccy = currency.upper()
        if ccy == self.reference:
            return ONE
        rate = self.rates.get(ccy)
        if rate is None:
            raise FxRateUnavailable(f"No {self.reference}->{ccy} rate in snapshot from {self.source}")
        return rate

    def cross_rate(self, from_ccy: str, to_ccy: str) -> Decimal:
        """Compose from->reference and reference->to."""
        return self.rate_for(to_ccy) / self.rate_for(from_ccy)

    def as_stale(self) -> "RateSnapshot":
        return self if self.stale else replace(self, stale=True)

    def rows(self) -> List[RateRow]:
        return [RateRow(self.fetched_at, self.reference, ccy, rate, self.source) for ccy, rate in sorted(self.rates.items())]


@dataclass(frozen=True)
class ConversionResult:
    amount: Decimal
    currency: str
    source_amount: Decimal
    source_currency: str
    rate: Decimal
    converted_at: datetime
    rates_as_of: Optional[datetime] = None
    stale: bool = False


def build_snapshot(rows: Iterable[RateRow], reference: str, stale: bool = False) -> RateSnapshot:
    """Validate provider rows into a snapshot. Non-positive and foreign-based rows are dropped."""
    reference = reference.upper()
    rates: Dict[str, Decimal] = {}
    as_of: Optional[datetime] = None
    sources = set()
    for row in rows:
        if row.base_ccy.upper() != reference:
            logger.warning("FX row %s->%s ignored: not based on %s", row.base_ccy, row.quote_ccy, reference)
            continue
        rate = d(row.rate)
        if rate <= 0:
            logger.warning("FX row %s->%s ignored: non-positive rate %s", row.base_ccy, row.quote_ccy, rate)
            continue
        rates[row.quote_ccy.upper()] = rate
        sources.add(row.source)
        as_of = row.as_of_ts if as_of is None else min(as_of, row.as_of_ts)
    if not rates:
        raise FxRefreshError(f"Provider returned no usable rates for reference {reference}")
    rates.pop(reference, None)
    return RateSnapshot(
        reference=reference,
        rates=MappingProxyType(rates),
        fetched_at=as_of or now(),
        source=",".join(sorted(sources)),
        stale=stale,
    )


class FXProvider:
    name = "base"

    def fetch(self, reference: str) -> List[RateRow]:
        raise NotImplementedError


class EnvProvider(FXProvider):
    """
    Reads mid rates from FX_MID_RATES env var as JSON.
    Example:
      FX_MID_RATES='{"XOF": {"EUR": 0.0015245, "USD": 0.00165}, "CNY": {"XOF": 84.1}}'
    """

    name = "env"

    def __init__(self, table: Optional[Dict[str, Dict[str, float]]] = None, as_of: datetime | None = None):
        self.as_of = as_of
        if table is not None:
            self.table = table
            return
        blob = os.environ.get("FX_MID_RATES", "{}")
        try:
            self.table = json.loads(blob)
        except ValueError:
            logger.exception("Invalid FX_MID_RATES JSON; falling back to empty table")
            self.table = {}

    def fetch(self, reference: str) -> List[RateRow]:
        reference = reference.upper()
        as_of = self.as_of or now()
        out: Dict[str, Decimal] = {}
        for quote, val in (self.table.get(reference) or {}).items():
            out[quote.upper()] = d(val)
        for base, quotes in self.table.items():
            base_u = base.upper()
            if base_u == reference or base_u in out:
                continue
            val = (quotes or {}).get(reference)
            if val:
                # Use reciprocal if only reverse is provided
                out[base_u] = Decimal(1) / d(val)
        return [RateRow(as_of, reference, ccy, rate, self.name) for ccy, rate in sorted(out.items())]


def upsert_rate(as_of: datetime, base: str, quote: str, rate: Decimal, source: str) -> None:
    CurrencyRates.objects.update_or_create(
        as_of_ts=as_of,
        base_ccy=base.upper(),
        quote_ccy=quote.upper(),
        defaults={"rate": d(rate), "source": source},
    )


class DatabaseRateStore:
    """Last-known rates persisted in ``currency_rates``; survives process restarts."""

    def save(self, rows: Iterable[RateRow]) -> int:
        count = 0
        for r in rows:
            upsert_rate(r.as_of_ts, r.base_ccy, r.quote_ccy, r.rate, r.source)
            count += 1
        return count

    def latest(self, reference: str, quote: str) -> Optional[CurrencyRates]:
        return (CurrencyRates.objects
                .filter(base_ccy=reference.upper(), quote_ccy=quote.upper())
                .order_by("-as_of_ts").first())

    def load(self, reference: str) -> List[RateRow]:
        seen = set()
        rows: List[RateRow] = []
        qs = CurrencyRates.objects.filter(base_ccy=reference.upper()).order_by("quote_ccy", "-as_of_ts")
        for r in qs:
            if r.quote_ccy in seen:
                continue
            seen.add(r.quote_ccy)
            rows.append(RateRow(r.as_of_ts, r.base_ccy, r.quote_ccy, d(r.rate), r.source or "db"))
        return rows


@dataclass(frozen=True)
class _CacheEntry:
    snapshot: RateSnapshot
    expires_at: float


class FxService:
    """
    Rate cache in front of an FX provider, pivoting every conversion through one
    reference currency.

    - Fresh entries are served without locking; the lock only guards the swap
      of the cache entry and the in-flight refresh handle.
    - Refreshes run on a single background worker so at most one is in flight
      and a caller that gives up waiting does not cancel it.
    - A refresh that fails after ``max_attempts`` falls back to the last-known
      snapshot (memory, then store) flagged ``stale``.
    """

    def __init__(
        self,
        provider: FXProvider,
        reference_currency: str = "XOF",
        ttl_seconds: float = 15 * 60,
        refresh_timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        retry_after_seconds: float = 60.0,
        store: Optional[DatabaseRateStore] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.provider = provider
        self.reference = reference_currency.upper()
        self.ttl_seconds = ttl_seconds
        self.refresh_timeout = refresh_timeout
        self.max_attempts = max(1, int(max_attempts))
        self.backoff_seconds = backoff_seconds
        self.retry_after_seconds = retry_after_seconds
        self.store = store
        self._clock = clock
        self._sleep = sleep
        self._entry: Optional[_CacheEntry] = None
        self._inflight: Optional[Future] = None
        self._swap_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="fx-refresh")

    # -------- cache --------
    def current(self) -> Optional[RateSnapshot]:
        entry = self._entry
        return entry.snapshot if entry else None

    def _swap(self, snapshot: RateSnapshot, lifetime: float, expected: Optional[_CacheEntry] = ...) -> None:
        """Install a new entry. With ``expected`` given, only replace that exact entry."""
        with self._swap_lock:
            if expected is not ... and self._entry is not expected:
                return
            self._entry = _CacheEntry(snapshot, self._clock() + lifetime)

    def _refresh_with_retry(self) -> RateSnapshot:
        last_exc: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                rows = self.provider.fetch(self.reference)
                snapshot = build_snapshot(rows, self.reference)
            except Exception as e:
                last_exc = e
                logger.warning(
                    "FX refresh attempt %s/%s via %s failed: %s",
                    attempt, self.max_attempts, getattr(self.provider, "name", self.provider), e,
                )
                if attempt < self.max_attempts:
                    self._sleep(self.backoff_seconds * (2 ** (attempt - 1)))
                continue
            self._swap(snapshot, self.ttl_seconds)
            logger.info("FX rates refreshed: %s currencies against %s from %s",
                        len(snapshot.rates), self.reference, snapshot.source)
            return snapshot
        raise FxRefreshError(f"FX refresh failed after {self.max_attempts} attempts: {last_exc}") from last_exc

    def _start_refresh(self) -> Tuple[Future, bool]:
        with self._swap_lock:
            if self._inflight is not None and not self._inflight.done():
                return self._inflight, False
            self._inflight = self._executor.submit(self._refresh_with_retry)
            return self._inflight, True

    def _fallback(self, entry: Optional[_CacheEntry], reason: str) -> RateSnapshot:
        if entry is not None:
            logger.warning("Serving stale FX rates from %s (%s)", entry.snapshot.fetched_at.isoformat(), reason)
            stale = entry.snapshot.as_stale()
            self._swap(stale, self.retry_after_seconds, expected=entry)
            return stale
        if self.store is not None:
            rows = self.store.load(self.reference)
            if rows:
                stale = build_snapshot(rows, self.reference, stale=True)
                logger.warning("Serving stored FX rates from %s (%s)", stale.fetched_at.isoformat(), reason)
                self._swap(stale, self.retry_after_seconds, expected=None)
                return stale
        raise FxRateUnavailable(f"No FX rates available against {self.reference}: {reason}")

    def snapshot(self) -> RateSnapshot:
        entry = self._entry
        if entry is not None and self._clock() < entry.expires_at:
            return entry.snapshot

        future, owner = self._start_refresh()
        if entry is not None and not owner:
            # Another caller is refreshing; keep serving what we have.
            return entry.snapshot.as_stale()
        try:
            return future.result(timeout=self.refresh_timeout)
        except FutureTimeout:
            return self._fallback(entry, f"refresh exceeded {self.refresh_timeout}s")
        except FxRefreshError as e:
            return self._fallback(entry, str(e))

    def refresh(self) -> RateSnapshot:
        """Administrative refresh: bypasses the cache and raises on failure."""
        future = self._executor.submit(self._refresh_with_retry)
        budget = self.refresh_timeout * self.max_attempts + self.backoff_seconds * (2 ** self.max_attempts)
        try:
            snapshot = future.result(timeout=budget)
        except FutureTimeout as e:
            raise FxRefreshError(f"FX refresh exceeded {budget:.1f}s") from e
        if self.store is not None:
            self.store.save(snapshot.rows())
        return snapshot

    # -------- conversion --------
    def convert(self, amount, from_ccy: str, to_ccy: str) -> ConversionResult:
        from_u = from_ccy.upper(); to_u = to_ccy.upper()
        amount = d(amount)
        if from_u == to_u:
            return ConversionResult(amount, to_u, amount, from_u, ONE, now())
        snap = self.snapshot()
        rate = snap.cross_rate(from_u, to_u)
        return ConversionResult(
            amount=round_money(amount * rate, to_u),
            currency=to_u,
            source_amount=amount,
            source_currency=from_u,
            rate=rate,
            converted_at=now(),
            rates_as_of=snap.fetched_at,
            stale=snap.stale,
        )

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)


def build_fx_service(settings) -> FxService:
    """Wire the process-wide service from Django settings."""
    from .fx_providers import load as load_provider

    provider = load_provider(settings.FX_PROVIDER, timeout=settings.FX_REFRESH_TIMEOUT_SECONDS)
    return FxService(
        provider,
        reference_currency=settings.FX_REFERENCE_CURRENCY,
        ttl_seconds=settings.FX_CACHE_TTL_SECONDS,
        refresh_timeout=settings.FX_REFRESH_TIMEOUT_SECONDS,
        max_attempts=settings.FX_REFRESH_ATTEMPTS,
        backoff_seconds=settings.FX_RETRY_BACKOFF_SECONDS,
        store=DatabaseRateStore(),
    )
