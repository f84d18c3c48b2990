from __future__ import annotations

from rest_framework import serializers


class CurrencyCodeField(serializers.CharField):
    def __init__(self, **kwargs):
        kwargs.setdefault("min_length", 3)
        kwargs.setdefault("max_length", 3)
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        value = super().to_internal_value(data).strip().upper()
        if not value.isalpha():
            raise serializers.ValidationError("Currency must be a 3-letter ISO code.")
        return value


class ConvertQuerySerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=20, decimal_places=6)
    to = CurrencyCodeField()

    def get_fields(self):
        # "from" is a keyword and cannot be declared in the class body.
        fields = super().get_fields()
        fields["from"] = CurrencyCodeField()
        return fields


def snapshot_payload(snapshot) -> dict:
    return {
        "reference": snapshot.reference,
        "fetched_at": snapshot.fetched_at.isoformat(),
        "source": snapshot.source,
        "stale": snapshot.stale,
        "rates": {ccy: str(rate) for ccy, rate in sorted(snapshot.rates.items())},
    }


def conversion_payload(result) -> dict:
    return {
        "amount": str(result.amount),
        "currency": result.currency,
        "source_amount": str(result.source_amount),
        "source_currency": result.source_currency,
        "rate": str(result.rate),
        "converted_at": result.converted_at.isoformat(),
        "rates_as_of": result.rates_as_of.isoformat() if result.rates_as_of else None,
        "stale": result.stale,
    }
