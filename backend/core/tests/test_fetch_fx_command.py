from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase, override_settings
from django.utils.timezone import now

from core.models import CurrencyRates

from .stubs import StubProvider

ENV_RATES = '{"XOF": {"EUR": "0.0015245", "USD": "0.00165"}}'


@override_settings(FX_REFRESH_ATTEMPTS=1, FX_RETRY_BACKOFF_SECONDS=0)
class FetchFxCommandTests(TestCase):
    def test_env_provider_rows_are_saved(self):
        with patch.dict("os.environ", {"FX_MID_RATES": ENV_RATES}):
            call_command("fetch_fx", "--provider", "env", "--reference", "XOF")
        rows = dict(CurrencyRates.objects.values_list("quote_ccy", "rate"))
        self.assertEqual(rows, {"EUR": Decimal("0.0015245"), "USD": Decimal("0.00165")})

    def test_only_filters_currencies(self):
        with patch.dict("os.environ", {"FX_MID_RATES": ENV_RATES}):
            call_command("fetch_fx", "--provider", "env", "--only", "usd")
        self.assertEqual(list(CurrencyRates.objects.values_list("quote_ccy", flat=True)), ["USD"])

    def test_command_idempotent(self):
        with patch("core.management.commands.fetch_fx.load_provider", return_value=StubProvider()):
            call_command("fetch_fx")
            first = CurrencyRates.objects.count()
            call_command("fetch_fx")
        self.assertEqual(first, CurrencyRates.objects.count())

    def test_anomaly_is_logged(self):
        CurrencyRates.objects.create(
            as_of_ts=now() - timedelta(hours=1), base_ccy="XOF", quote_ccy="EUR",
            rate=Decimal("0.001"), source="stub",
        )
        with patch("core.management.commands.fetch_fx.load_provider", return_value=StubProvider()):
            with self.assertLogs(level="WARNING") as logs:
                call_command("fetch_fx", "--only", "EUR")
        self.assertTrue(any("FX anomaly: XOF->EUR" in line for line in logs.output))

    def test_invalid_currency(self):
        with self.assertRaises(CommandError):
            call_command("fetch_fx", "--only", "EURO")

    def test_unknown_provider(self):
        with self.assertRaises(CommandError):
            call_command("fetch_fx", "--provider", "ecb")

    def test_provider_failure(self):
        with patch("core.management.commands.fetch_fx.load_provider",
                   return_value=StubProvider(RuntimeError("down"))):
            with self.assertRaises(CommandError):
                call_command("fetch_fx")
        self.assertEqual(CurrencyRates.objects.count(), 0)
