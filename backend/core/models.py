from django.db import models


class CurrencyRates(models.Model):
    """One persisted rate: units of ``quote_ccy`` per one unit of the reference ``base_ccy``."""

    id = models.BigAutoField(primary_key=True)
    as_of_ts = models.DateTimeField()
    base_ccy = models.CharField(max_length=3)
    quote_ccy = models.CharField(max_length=3)
    rate = models.DecimalField(max_digits=20, decimal_places=10)
    source = models.TextField(blank=True, null=True)

    class Meta:
        db_table = "currency_rates"
        constraints = [
            models.UniqueConstraint(
                fields=["as_of_ts", "base_ccy", "quote_ccy"],
                name="currency_rates_unique",
            ),
        ]
        indexes = [
            models.Index(fields=["base_ccy", "-as_of_ts"], name="currency_rates_base_asof"),
        ]

    def __str__(self):
        return f"{self.base_ccy}->{self.quote_ccy} {self.rate} @ {self.as_of_ts:%Y-%m-%d %H:%M}"
