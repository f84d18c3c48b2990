from __future__ import annotations

from typing import List

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

import logging
from django.utils.timezone import now
from core.fx import DatabaseRateStore, FxRefreshError, FxService
from core.fx_providers import load as load_provider
from core.money import d


def parse_currencies(arg: str) -> List[str]:
    out: List[str] = []
    for part in (arg or "").split(","):
        part = part.strip().upper()
        if not part:
            continue
        if len(part) != 3 or not part.isalpha():
            raise CommandError(f"Invalid currency '{part}'. Use ISO codes, e.g., EUR,USD")
        out.append(part)
    return out


class Command(BaseCommand):
    help = "Fetch FX rates against the reference currency and persist them (bypasses the rate cache)."

    def add_arguments(self, parser):
        parser.add_argument("--provider", type=str, default=None,
                            help="FX provider to use (env|open_exchange|bceao_html); defaults to FX_PROVIDER")
        parser.add_argument("--reference", type=str, default=None,
                            help="Reference currency; defaults to FX_REFERENCE_CURRENCY")
        parser.add_argument("--only", type=str, default="",
                            help="Comma-separated currencies to persist, e.g., EUR,USD (default: all)")

    def handle(self, *args, **options):
        provider_name = (options.get("provider") or settings.FX_PROVIDER).strip().lower()
        reference = (options.get("reference") or settings.FX_REFERENCE_CURRENCY).upper()
        only = set(parse_currencies(options.get("only") or ""))

        stale_hours = settings.FX_STALE_HOURS
        anomaly_pct = settings.FX_ANOMALY_PCT
        store = DatabaseRateStore()

        def maybe_warn_stale(quote: str, latest_row):
            if not latest_row:
                return None
            age_hours = (now() - latest_row.as_of_ts).total_seconds() / 3600.0
            if age_hours > stale_hours:
                logging.warning("FX staleness: %s->%s latest %.1fh old", reference, quote, age_hours)
            return age_hours

        def maybe_warn_anomaly(quote: str, prev_rate, new_rate):
            if prev_rate and d(prev_rate) > 0:
                pct = float(abs(d(new_rate) - d(prev_rate)) / d(prev_rate))
                if pct > anomaly_pct:
                    logging.warning("FX anomaly: %s->%s changed by %.2f%% (old=%s new=%s)",
                                    reference, quote, pct * 100.0, prev_rate, new_rate)

        try:
            provider = load_provider(provider_name, timeout=settings.FX_REFRESH_TIMEOUT_SECONDS)
        except ValueError as e:
            raise CommandError(str(e))

        service = FxService(
            provider,
            reference_currency=reference,
            refresh_timeout=settings.FX_REFRESH_TIMEOUT_SECONDS,
            max_attempts=settings.FX_REFRESH_ATTEMPTS,
            backoff_seconds=settings.FX_RETRY_BACKOFF_SECONDS,
        )
        try:
            snapshot = service.refresh()
        except FxRefreshError as e:
            raise CommandError(str(e))
        finally:
            service.shutdown()

        rows = [r for r in snapshot.rows() if not only or r.quote_ccy in only]
        if only and not rows:
            raise CommandError(f"Provider {provider_name} returned none of {', '.join(sorted(only))}")

        for r in rows:
            prev = store.latest(reference, r.quote_ccy)
            maybe_warn_stale(r.quote_ccy, prev)
            maybe_warn_anomaly(r.quote_ccy, prev.rate if prev else None, r.rate)
        store.save(rows)
        for r in rows:
            self.stdout.write(self.style.SUCCESS(
                f"Saved {r.base_ccy}->{r.quote_ccy} {r.rate} @ {r.as_of_ts.isoformat()} [{r.source}]"
            ))
