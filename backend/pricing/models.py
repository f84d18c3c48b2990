from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from tenants.models import MarginMode, Tenant, validate_margin_fields


class TransportMode(models.TextChoices):
    AIR = "air", "Air"
    SEA = "sea", "Sea"
    ROAD = "road", "Road"


class RateBasis(models.TextChoices):
    PER_KG = "per_kg", "Per kilogram"
    PER_M3 = "per_m3", "Per cubic meter"


class AddonPricingType(models.TextChoices):
    FIXED = "fixed", "Fixed"
    PER_KG = "per_kg", "Per kilogram"
    PER_M3 = "per_m3", "Per cubic meter"
    PERCENT_OF_VALUE = "percent_of_value", "Percent of declared value"


class RateCards(models.Model):
    id = models.BigAutoField(primary_key=True)
    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name="rate_cards")
    mode = models.CharField(max_length=8, choices=TransportMode.choices)
    rate_basis = models.CharField(max_length=8, choices=RateBasis.choices)
    origin_region = models.TextField(blank=True, default="")
    origin_country = models.TextField()
    origin_city = models.TextField(blank=True, default="")
    destination_region = models.TextField(blank=True, default="")
    destination_country = models.TextField()
    destination_city = models.TextField(blank=True, default="")
    currency = models.CharField(max_length=3)
    min_charge = models.DecimalField(max_digits=14, decimal_places=3, default=Decimal("0"),
                                     validators=[MinValueValidator(Decimal("0"))])
    # Percent numbers as entered by tenants (8 means 8%)
    fuel_surcharge_pct = models.DecimalField(max_digits=7, decimal_places=3, default=Decimal("0"),
                                             validators=[MinValueValidator(Decimal("0"))])
    security_surcharge_pct = models.DecimalField(max_digits=7, decimal_places=3, default=Decimal("0"),
                                                 validators=[MinValueValidator(Decimal("0"))])
    peak_season_surcharge_pct = models.DecimalField(max_digits=7, decimal_places=3, default=Decimal("0"),
                                                    validators=[MinValueValidator(Decimal("0"))])
    active = models.BooleanField(default=True)
    valid_from = models.DateField(blank=True, null=True)
    valid_until = models.DateField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "rate_cards"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["tenant", "mode", "rate_basis"], name="rate_cards_lookup"),
        ]

    def clean(self):
        self.currency = (self.currency or "").upper()
        if self.valid_from and self.valid_until and self.valid_until < self.valid_from:
            raise ValidationError({"valid_until": "valid_until must not precede valid_from."})

    @property
    def corridor_label(self) -> str:
        origin = self.origin_city or self.origin_country
        destination = self.destination_city or self.destination_country
        return f"{origin} → {destination}"

    def __str__(self):
        return f"{self.tenant_id}:{self.mode}:{self.corridor_label} ({self.rate_basis})"


class RateTiers(models.Model):
    id = models.BigAutoField(primary_key=True)
    rate_card = models.ForeignKey(RateCards, on_delete=models.CASCADE, related_name="tiers")
    lower = models.DecimalField(max_digits=14, decimal_places=3)
    upper = models.DecimalField(max_digits=14, decimal_places=3, blank=True, null=True,
                                help_text="Exclusive; empty means open-ended")
    unit_price = models.DecimalField(max_digits=14, decimal_places=4,
                                     validators=[MinValueValidator(Decimal("0"))])

    class Meta:
        db_table = "rate_tiers"
        ordering = ["lower"]
        constraints = [
            models.UniqueConstraint(fields=["rate_card", "lower"], name="rate_tiers_unique_lower"),
        ]

    def __str__(self):
        upper = self.upper if self.upper is not None else "∞"
        return f"[{self.lower}, {upper}) @ {self.unit_price}"


class SurchargeRules(models.Model):
    class Kind(models.TextChoices):
        PERCENT = "percent", "Percent"
        FIXED = "fixed", "Fixed"

    class Base(models.TextChoices):
        TRANSPORT = "transport", "Transport subtotal"
        DECLARED_VALUE = "declared_value", "Declared value"

    id = models.BigAutoField(primary_key=True)
    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name="surcharge_rules")
    # Null applies the rule to every card of the tenant
    rate_card = models.ForeignKey(RateCards, on_delete=models.CASCADE, related_name="surcharge_rules",
                                  blank=True, null=True)
    code = models.SlugField(max_length=64)
    name = models.TextField()
    kind = models.CharField(max_length=16, choices=Kind.choices, default=Kind.PERCENT)
    value = models.DecimalField(max_digits=14, decimal_places=4,
                                validators=[MinValueValidator(Decimal("0"))],
                                help_text="Fraction for percent rules (0.05 = 5%), amount for fixed rules")
    base = models.CharField(max_length=16, choices=Base.choices, default=Base.TRANSPORT)
    compounding = models.BooleanField(default=False)
    active = models.BooleanField(default=True)
    position = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "surcharge_rules"
        ordering = ["position", "id"]

    def clean(self):
        if self.compounding and self.base != self.Base.TRANSPORT:
            raise ValidationError({"compounding": "Only transport-based rules can compound."})
        if self.kind == self.Kind.PERCENT and self.value is not None and self.value > 1:
            raise ValidationError({"value": "Percent rules take a fraction, e.g. 0.05 for 5%."})

    def __str__(self):
        return f"{self.code} ({self.kind} {self.value})"


class OwnerServiceAddons(models.Model):
    """Service offered by the platform owner at a base price; tenants resell it."""

    id = models.BigAutoField(primary_key=True)
    code = models.SlugField(max_length=64, unique=True)
    name = models.TextField()
    description = models.TextField(blank=True, default="")
    pricing_type = models.CharField(max_length=20, choices=AddonPricingType.choices)
    price = models.DecimalField(max_digits=14, decimal_places=4, validators=[MinValueValidator(Decimal("0"))])
    currency = models.CharField(max_length=3)
    taxable = models.BooleanField(default=True)
    active = models.BooleanField(default=True)
    display_order = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "owner_service_addons"
        ordering = ["display_order", "id"]

    def __str__(self):
        return self.name


class ServiceAddons(models.Model):
    id = models.BigAutoField(primary_key=True)
    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name="service_addons")
    owner_addon = models.ForeignKey(OwnerServiceAddons, on_delete=models.PROTECT, related_name="resold_as",
                                    blank=True, null=True)
    code = models.SlugField(max_length=64)
    name = models.TextField()
    description = models.TextField(blank=True, default="")
    pricing_type = models.CharField(max_length=20, choices=AddonPricingType.choices)
    price = models.DecimalField(max_digits=14, decimal_places=4, validators=[MinValueValidator(Decimal("0"))],
                                help_text="Ignored for owner-based add-ons (owner base price applies)")
    currency = models.CharField(max_length=3)
    taxable = models.BooleanField(default=True)
    margin_mode = models.CharField(max_length=16, choices=MarginMode.choices, blank=True, null=True)
    margin_value = models.DecimalField(max_digits=12, decimal_places=4, blank=True, null=True)
    active = models.BooleanField(default=True)
    display_order = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "service_addons"
        ordering = ["display_order", "id"]
        constraints = [
            models.UniqueConstraint(fields=["tenant", "code"], name="service_addons_unique_code"),
        ]

    def clean(self):
        validate_margin_fields(self.margin_mode, self.margin_value)
        if self.pricing_type == AddonPricingType.PERCENT_OF_VALUE and self.price is not None and self.price > 1:
            raise ValidationError({"price": "percent_of_value add-ons take a fraction, e.g. 0.02 for 2%."})

    def __str__(self):
        return f"{self.tenant_id}:{self.code}"
