from django.contrib import admin

from core.models import CurrencyRates


@admin.register(CurrencyRates)
class CurrencyRatesAdmin(admin.ModelAdmin):
    list_display = ("id", "base_ccy", "quote_ccy", "rate", "as_of_ts", "source")
    list_filter = ("base_ccy", "quote_ccy", "source")
    ordering = ("-as_of_ts",)
