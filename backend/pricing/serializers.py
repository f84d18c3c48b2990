from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from core.serializers import CurrencyCodeField

from .dataclasses import AddonRequest, CalculationRequest, RateCardSnapshot, RateTier
from .services.pricing_service import MODES, RATE_BASES
from .services import tiers as tier_rules


class AmountField(serializers.Field):
    """Decimal rendered as a string exactly as computed; no re-rounding on the way out."""

    def to_representation(self, value):
        return None if value is None else str(value)

    def to_internal_value(self, data):
        raise NotImplementedError("AmountField is read-only")


# -------- requests --------
class AddonSelectionSerializer(serializers.Serializer):
    addon_id = serializers.CharField(max_length=64)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3, required=False, default=Decimal("1"))


class CalculateRequestSerializer(serializers.Serializer):
    tenant_id = serializers.CharField(max_length=64, required=False)
    mode = serializers.ChoiceField(choices=MODES)
    origin = serializers.CharField(max_length=128)
    destination = serializers.CharField(max_length=128)
    rate_basis = serializers.ChoiceField(choices=RATE_BASES)
    weight_kg = serializers.DecimalField(max_digits=14, decimal_places=3, required=False, allow_null=True)
    volume_m3 = serializers.DecimalField(max_digits=14, decimal_places=4, required=False, allow_null=True)
    declared_value = serializers.DecimalField(max_digits=16, decimal_places=2, required=False, default=Decimal("0"))
    selected_addons = AddonSelectionSerializer(many=True, required=False, default=list)
    plan_id = serializers.CharField(max_length=64, required=False, allow_null=True, allow_blank=True)
    display_currency = CurrencyCodeField(required=False, allow_null=True)

    def validate_declared_value(self, value):
        if value < 0:
            raise serializers.ValidationError("declared_value must be >= 0.")
        return value

    def to_request(self, tenant_id: str) -> CalculationRequest:
        data = self.validated_data
        return CalculationRequest(
            tenant_id=tenant_id,
            mode=data["mode"],
            origin=data["origin"].strip(),
            destination=data["destination"].strip(),
            rate_basis=data["rate_basis"],
            weight_kg=data.get("weight_kg"),
            volume_m3=data.get("volume_m3"),
            declared_value=data.get("declared_value") or Decimal("0"),
            selected_addons=tuple(
                AddonRequest(addon_id=a["addon_id"], quantity=a.get("quantity") or Decimal("1"))
                for a in data.get("selected_addons") or []
            ),
            plan_id=data.get("plan_id") or None,
            display_currency=data.get("display_currency") or None,
        )


class PublicRatesQuerySerializer(serializers.Serializer):
    tenant = serializers.CharField(max_length=64, required=False)
    mode = serializers.ChoiceField(choices=MODES, default="air")
    origin = serializers.CharField(max_length=128)
    destination = serializers.CharField(max_length=128)
    basis = serializers.ChoiceField(choices=RATE_BASES, default="per_kg")
    weight_kg = serializers.DecimalField(max_digits=14, decimal_places=3, required=False)
    volume_m3 = serializers.DecimalField(max_digits=14, decimal_places=4, required=False)
    declared_value = serializers.DecimalField(max_digits=16, decimal_places=2, required=False, default=Decimal("0"))

    def to_request(self, tenant_id: str) -> CalculationRequest:
        data = self.validated_data
        return CalculationRequest(
            tenant_id=tenant_id,
            mode=data["mode"],
            origin=data["origin"].strip(),
            destination=data["destination"].strip(),
            rate_basis=data["basis"],
            weight_kg=data.get("weight_kg"),
            volume_m3=data.get("volume_m3"),
            declared_value=data.get("declared_value") or Decimal("0"),
        )


class RateTierSerializer(serializers.Serializer):
    lower = serializers.DecimalField(max_digits=14, decimal_places=3)
    upper = serializers.DecimalField(max_digits=14, decimal_places=3, required=False, allow_null=True)
    unit_price = serializers.DecimalField(max_digits=14, decimal_places=4, min_value=Decimal("0"))


class RateCardSerializer(serializers.Serializer):
    id = serializers.IntegerField(required=False, allow_null=True)
    mode = serializers.ChoiceField(choices=MODES)
    rate_basis = serializers.ChoiceField(choices=RATE_BASES)
    origin_region = serializers.CharField(required=False, allow_blank=True, default="")
    origin_country = serializers.CharField()
    origin_city = serializers.CharField(required=False, allow_blank=True, default="")
    destination_region = serializers.CharField(required=False, allow_blank=True, default="")
    destination_country = serializers.CharField()
    destination_city = serializers.CharField(required=False, allow_blank=True, default="")
    currency = CurrencyCodeField()
    min_charge = serializers.DecimalField(max_digits=14, decimal_places=3, min_value=Decimal("0"), default=Decimal("0"))
    fuel_surcharge_pct = serializers.DecimalField(max_digits=7, decimal_places=3, min_value=Decimal("0"), default=Decimal("0"))
    security_surcharge_pct = serializers.DecimalField(max_digits=7, decimal_places=3, min_value=Decimal("0"), default=Decimal("0"))
    peak_season_surcharge_pct = serializers.DecimalField(max_digits=7, decimal_places=3, min_value=Decimal("0"), default=Decimal("0"))
    active = serializers.BooleanField(default=True)
    valid_from = serializers.DateField(required=False, allow_null=True)
    valid_until = serializers.DateField(required=False, allow_null=True)
    tiers = RateTierSerializer(many=True)
    corridor = serializers.CharField(read_only=True, source="corridor_label")

    def validate_tiers(self, value):
        tiers = [RateTier(t["lower"], t.get("upper"), t["unit_price"]) for t in sorted(value, key=lambda t: t["lower"])]
        errors = tier_rules.validate_tiers(tiers)
        if errors:
            raise serializers.ValidationError(errors)
        return value

    def validate(self, attrs):
        vf, vu = attrs.get("valid_from"), attrs.get("valid_until")
        if vf and vu and vu < vf:
            raise serializers.ValidationError({"valid_until": "valid_until must not precede valid_from."})
        return attrs

    def to_snapshot(self, tenant_id: str) -> RateCardSnapshot:
        data = self.validated_data
        tiers = tuple(
            RateTier(t["lower"], t.get("upper"), t["unit_price"])
            for t in sorted(data["tiers"], key=lambda t: t["lower"])
        )
        return RateCardSnapshot(
            id=data.get("id") or 0,
            tenant_id=tenant_id,
            mode=data["mode"],
            rate_basis=data["rate_basis"],
            origin_region=data.get("origin_region", ""),
            origin_country=data["origin_country"].strip(),
            origin_city=data.get("origin_city", "").strip(),
            destination_region=data.get("destination_region", ""),
            destination_country=data["destination_country"].strip(),
            destination_city=data.get("destination_city", "").strip(),
            currency=data["currency"],
            tiers=tiers,
            min_charge=data["min_charge"],
            fuel_surcharge_pct=data["fuel_surcharge_pct"],
            security_surcharge_pct=data["security_surcharge_pct"],
            peak_season_surcharge_pct=data["peak_season_surcharge_pct"],
            active=data["active"],
            valid_from=data.get("valid_from"),
            valid_until=data.get("valid_until"),
        )


# -------- responses --------
class SurchargeLineSerializer(serializers.Serializer):
    code = serializers.CharField()
    name = serializers.CharField()
    base = serializers.CharField()
    amount = AmountField()


class AddonLineSerializer(serializers.Serializer):
    id = serializers.CharField()
    name = serializers.CharField()
    pricing_type = serializers.CharField()
    quantity = AmountField()
    unit_price = AmountField()
    amount = AmountField()
    taxable = serializers.BooleanField()


class MarginLineSerializer(serializers.Serializer):
    component = serializers.CharField()
    name = serializers.CharField()
    mode = serializers.CharField()
    base = AmountField()
    amount = AmountField()


class QuoteSerializer(serializers.Serializer):
    rate_card_id = serializers.IntegerField()
    corridor = serializers.CharField()
    currency = serializers.CharField()
    rate_basis = serializers.CharField()
    quantity = AmountField()
    unit_price = AmountField()
    min_charge = AmountField()
    min_charge_applied = serializers.BooleanField()
    transport_subtotal = AmountField()
    surcharges = SurchargeLineSerializer(many=True)
    addons = AddonLineSerializer(many=True)
    margin = MarginLineSerializer(many=True, source="margins")
    surcharge_total = AmountField()
    addon_total = AmountField()
    margin_total = AmountField()
    subtotal = AmountField()
    vat_rate = AmountField()
    taxable_amount = AmountField()
    tax_amount = AmountField()
    total = AmountField()


class PlanQuoteSerializer(serializers.Serializer):
    id = serializers.CharField()
    name = serializers.CharField()
    currency = serializers.CharField()
    price_month = AmountField()
    price_year = AmountField()
    owner_price_month = AmountField()
    owner_price_year = AmountField()


class ConversionSerializer(serializers.Serializer):
    currency = serializers.CharField()
    subtotal = AmountField()
    tax_amount = AmountField()
    total = AmountField()
    rate = AmountField()
    converted_at = serializers.DateTimeField(allow_null=True)
    stale = serializers.BooleanField()
    error = serializers.CharField(allow_null=True)
    message = serializers.CharField(allow_null=True)


class QuoteResultSerializer(serializers.Serializer):
    quote = QuoteSerializer()
    plan = PlanQuoteSerializer(allow_null=True)
    warnings = serializers.ListField(child=serializers.CharField())
    conversion = ConversionSerializer(allow_null=True)
