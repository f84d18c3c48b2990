from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models

NON_NEGATIVE = [django.core.validators.MinValueValidator(Decimal("0"))]
MARGIN_CHOICES = [("fixed", "Fixed amount"), ("percent", "Percentage")]
ADDON_PRICING_CHOICES = [
    ("fixed", "Fixed"),
    ("per_kg", "Per kilogram"),
    ("per_m3", "Per cubic meter"),
    ("percent_of_value", "Percent of declared value"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("tenants", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="RateCards",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("mode", models.CharField(choices=[("air", "Air"), ("sea", "Sea"), ("road", "Road")], max_length=8)),
                ("rate_basis", models.CharField(choices=[("per_kg", "Per kilogram"), ("per_m3", "Per cubic meter")], max_length=8)),
                ("origin_region", models.TextField(blank=True, default="")),
                ("origin_country", models.TextField()),
                ("origin_city", models.TextField(blank=True, default="")),
                ("destination_region", models.TextField(blank=True, default="")),
                ("destination_country", models.TextField()),
                ("destination_city", models.TextField(blank=True, default="")),
                ("currency", models.CharField(max_length=3)),
                ("min_charge", models.DecimalField(decimal_places=3, default=Decimal("0"), max_digits=14, validators=NON_NEGATIVE)),
                ("fuel_surcharge_pct", models.DecimalField(decimal_places=3, default=Decimal("0"), max_digits=7, validators=NON_NEGATIVE)),
                ("security_surcharge_pct", models.DecimalField(decimal_places=3, default=Decimal("0"), max_digits=7, validators=NON_NEGATIVE)),
                ("peak_season_surcharge_pct", models.DecimalField(decimal_places=3, default=Decimal("0"), max_digits=7, validators=NON_NEGATIVE)),
                ("active", models.BooleanField(default=True)),
                ("valid_from", models.DateField(blank=True, null=True)),
                ("valid_until", models.DateField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("tenant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="rate_cards", to="tenants.tenant")),
            ],
            options={
                "db_table": "rate_cards",
                "ordering": ["created_at", "id"],
            },
        ),
        migrations.AddIndex(
            model_name="ratecards",
            index=models.Index(fields=["tenant", "mode", "rate_basis"], name="rate_cards_lookup"),
        ),
        migrations.CreateModel(
            name="RateTiers",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("lower", models.DecimalField(decimal_places=3, max_digits=14)),
                ("upper", models.DecimalField(blank=True, decimal_places=3, help_text="Exclusive; empty means open-ended", max_digits=14, null=True)),
                ("unit_price", models.DecimalField(decimal_places=4, max_digits=14, validators=NON_NEGATIVE)),
                ("rate_card", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="tiers", to="pricing.ratecards")),
            ],
            options={
                "db_table": "rate_tiers",
                "ordering": ["lower"],
            },
        ),
        migrations.AddConstraint(
            model_name="ratetiers",
            constraint=models.UniqueConstraint(fields=("rate_card", "lower"), name="rate_tiers_unique_lower"),
        ),
        migrations.CreateModel(
            name="SurchargeRules",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("code", models.SlugField(max_length=64)),
                ("name", models.TextField()),
                ("kind", models.CharField(choices=[("percent", "Percent"), ("fixed", "Fixed")], default="percent", max_length=16)),
                ("value", models.DecimalField(decimal_places=4, help_text="Fraction for percent rules (0.05 = 5%), amount for fixed rules", max_digits=14, validators=NON_NEGATIVE)),
                ("base", models.CharField(choices=[("transport", "Transport subtotal"), ("declared_value", "Declared value")], default="transport", max_length=16)),
                ("compounding", models.BooleanField(default=False)),
                ("active", models.BooleanField(default=True)),
                ("position", models.PositiveIntegerField(default=0)),
                ("rate_card", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name="surcharge_rules", to="pricing.ratecards")),
                ("tenant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="surcharge_rules", to="tenants.tenant")),
            ],
            options={
                "db_table": "surcharge_rules",
                "ordering": ["position", "id"],
            },
        ),
        migrations.CreateModel(
            name="OwnerServiceAddons",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("code", models.SlugField(max_length=64, unique=True)),
                ("name", models.TextField()),
                ("description", models.TextField(blank=True, default="")),
                ("pricing_type", models.CharField(choices=ADDON_PRICING_CHOICES, max_length=20)),
                ("price", models.DecimalField(decimal_places=4, max_digits=14, validators=NON_NEGATIVE)),
                ("currency", models.CharField(max_length=3)),
                ("taxable", models.BooleanField(default=True)),
                ("active", models.BooleanField(default=True)),
                ("display_order", models.PositiveIntegerField(default=0)),
            ],
            options={
                "db_table": "owner_service_addons",
                "ordering": ["display_order", "id"],
            },
        ),
        migrations.CreateModel(
            name="ServiceAddons",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("code", models.SlugField(max_length=64)),
                ("name", models.TextField()),
                ("description", models.TextField(blank=True, default="")),
                ("pricing_type", models.CharField(choices=ADDON_PRICING_CHOICES, max_length=20)),
                ("price", models.DecimalField(decimal_places=4, help_text="Ignored for owner-based add-ons (owner base price applies)", max_digits=14, validators=NON_NEGATIVE)),
                ("currency", models.CharField(max_length=3)),
                ("taxable", models.BooleanField(default=True)),
                ("margin_mode", models.CharField(blank=True, choices=MARGIN_CHOICES, max_length=16, null=True)),
                ("margin_value", models.DecimalField(blank=True, decimal_places=4, max_digits=12, null=True)),
                ("active", models.BooleanField(default=True)),
                ("display_order", models.PositiveIntegerField(default=0)),
                ("owner_addon", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="resold_as", to="pricing.ownerserviceaddons")),
                ("tenant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="service_addons", to="tenants.tenant")),
            ],
            options={
                "db_table": "service_addons",
                "ordering": ["display_order", "id"],
            },
        ),
        migrations.AddConstraint(
            model_name="serviceaddons",
            constraint=models.UniqueConstraint(fields=("tenant", "code"), name="service_addons_unique_code"),
        ),
    ]
