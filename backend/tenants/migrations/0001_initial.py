from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Tenant",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("code", models.SlugField(help_text="Tenant id sent by clients, e.g. X-Tenant-ID", max_length=64, unique=True)),
                ("name", models.TextField()),
                ("default_currency", models.CharField(default="XOF", max_length=3)),
                ("vat_rate", models.DecimalField(
                    decimal_places=4, default=Decimal("0.20"), help_text="Fraction, e.g. 0.18 for 18%", max_digits=5,
                    validators=[
                        django.core.validators.MinValueValidator(Decimal("0")),
                        django.core.validators.MaxValueValidator(Decimal("1")),
                    ],
                )),
                ("margin_mode", models.CharField(blank=True, choices=[("fixed", "Fixed amount"), ("percent", "Percentage")], max_length=16, null=True)),
                ("margin_value", models.DecimalField(blank=True, decimal_places=4, help_text="Amount for fixed mode, fraction for percent mode", max_digits=12, null=True)),
                ("active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "db_table": "tenants",
                "ordering": ["code"],
            },
        ),
        migrations.CreateModel(
            name="OwnerPlan",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("code", models.SlugField(max_length=64, unique=True)),
                ("name", models.TextField()),
                ("description", models.TextField(blank=True, default="")),
                ("currency", models.CharField(default="EUR", max_length=3)),
                ("price_month", models.DecimalField(decimal_places=2, max_digits=12)),
                ("price_year", models.DecimalField(decimal_places=2, max_digits=12)),
                ("active", models.BooleanField(default=True)),
                ("display_order", models.PositiveIntegerField(default=0)),
            ],
            options={
                "db_table": "owner_plans",
                "ordering": ["display_order", "id"],
            },
        ),
        migrations.CreateModel(
            name="TenantPlan",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("code", models.SlugField(max_length=64)),
                ("name", models.TextField(blank=True, default="")),
                ("resell_price_month", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("resell_price_year", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("margin_mode", models.CharField(blank=True, choices=[("fixed", "Fixed amount"), ("percent", "Percentage")], max_length=16, null=True)),
                ("margin_value", models.DecimalField(blank=True, decimal_places=4, max_digits=12, null=True)),
                ("active", models.BooleanField(default=True)),
                ("owner_plan", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="resold_as", to="tenants.ownerplan")),
                ("tenant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="plans", to="tenants.tenant")),
            ],
            options={
                "db_table": "tenant_plans",
            },
        ),
        migrations.AddConstraint(
            model_name="tenantplan",
            constraint=models.UniqueConstraint(fields=("tenant", "code"), name="tenant_plans_unique_code"),
        ),
    ]
