from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models


class MarginMode(models.TextChoices):
    FIXED = "fixed", "Fixed amount"
    PERCENT = "percent", "Percentage"


def validate_margin_fields(mode, value):
    """Model-level guard; the pricing core re-parses margins on every calculation."""
    if mode and value is None:
        raise ValidationError({"margin_value": f"margin_value is required when margin_mode is '{mode}'."})
    if value is not None and value < 0:
        raise ValidationError({"margin_value": "margin_value must be >= 0."})


class Tenant(models.Model):
    id = models.BigAutoField(primary_key=True)
    code = models.SlugField(max_length=64, unique=True, help_text="Tenant id sent by clients, e.g. X-Tenant-ID")
    name = models.TextField()
    default_currency = models.CharField(max_length=3, default="XOF")
    vat_rate = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        default=Decimal("0.20"),
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("1"))],
        help_text="Fraction, e.g. 0.18 for 18%",
    )
    # Tenant-wide markup on resold components that carry no margin of their own
    margin_mode = models.CharField(max_length=16, choices=MarginMode.choices, blank=True, null=True)
    margin_value = models.DecimalField(max_digits=12, decimal_places=4, blank=True, null=True,
                                       help_text="Amount for fixed mode, fraction for percent mode")
    active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "tenants"
        ordering = ["code"]

    def clean(self):
        validate_margin_fields(self.margin_mode, self.margin_value)
        self.default_currency = (self.default_currency or "").upper()

    def __str__(self):
        return f"{self.code} ({self.name})"


class OwnerPlan(models.Model):
    """Subscription plan defined by the platform owner and resold by tenants."""

    id = models.BigAutoField(primary_key=True)
    code = models.SlugField(max_length=64, unique=True)
    name = models.TextField()
    description = models.TextField(blank=True, default="")
    currency = models.CharField(max_length=3, default="EUR")
    price_month = models.DecimalField(max_digits=12, decimal_places=2)
    price_year = models.DecimalField(max_digits=12, decimal_places=2)
    active = models.BooleanField(default=True)
    display_order = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "owner_plans"
        ordering = ["display_order", "id"]

    def __str__(self):
        return self.name


class TenantPlan(models.Model):
    id = models.BigAutoField(primary_key=True)
    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name="plans")
    owner_plan = models.ForeignKey(OwnerPlan, on_delete=models.PROTECT, related_name="resold_as")
    code = models.SlugField(max_length=64)
    name = models.TextField(blank=True, default="")
    resell_price_month = models.DecimalField(max_digits=12, decimal_places=2, blank=True, null=True)
    resell_price_year = models.DecimalField(max_digits=12, decimal_places=2, blank=True, null=True)
    margin_mode = models.CharField(max_length=16, choices=MarginMode.choices, blank=True, null=True)
    margin_value = models.DecimalField(max_digits=12, decimal_places=4, blank=True, null=True)
    active = models.BooleanField(default=True)

    class Meta:
        db_table = "tenant_plans"
        constraints = [
            models.UniqueConstraint(fields=["tenant", "code"], name="tenant_plans_unique_code"),
        ]

    def clean(self):
        validate_margin_fields(self.margin_mode, self.margin_value)

    def __str__(self):
        return f"{self.tenant.code}:{self.code}"
