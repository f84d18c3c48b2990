# backend/pricing/management/commands/seed_pricing_demo.py

from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from pricing.models import OwnerServiceAddons, RateCards, RateTiers, ServiceAddons, SurchargeRules
from tenants.models import OwnerPlan, Tenant, TenantPlan

#region -------- Helper Functions --------
def upsert_tenant(code, name, currency, vat_rate, margin_mode=None, margin_value=None):
    tenant, _ = Tenant.objects.update_or_create(
        code=code,
        defaults={
            "name": name,
            "default_currency": currency,
            "vat_rate": Decimal(vat_rate),
            "margin_mode": margin_mode,
            "margin_value": Decimal(margin_value) if margin_value is not None else None,
            "active": True,
        },
    )
    return tenant


def upsert_owner_plan(code, name, price_month, price_year, order):
    plan, _ = OwnerPlan.objects.update_or_create(
        code=code,
        defaults={
            "name": name,
            "currency": "EUR",
            "price_month": Decimal(price_month),
            "price_year": Decimal(price_year),
            "display_order": order,
            "active": True,
        },
    )
    return plan


def upsert_owner_addon(code, name, pricing_type, price, order):
    addon, _ = OwnerServiceAddons.objects.update_or_create(
        code=code,
        defaults={
            "name": name,
            "pricing_type": pricing_type,
            "price": Decimal(price),
            "currency": "EUR",
            "display_order": order,
            "active": True,
        },
    )
    return addon


def upsert_tenant_addon(tenant, code, name, pricing_type, price, currency, order,
                        owner=None, margin_mode=None, margin_value=None):
    addon, _ = ServiceAddons.objects.update_or_create(
        tenant=tenant,
        code=code,
        defaults={
            "name": name,
            "pricing_type": pricing_type,
            "price": Decimal(price),
            "currency": currency,
            "owner_addon": owner,
            "margin_mode": margin_mode,
            "margin_value": Decimal(margin_value) if margin_value is not None else None,
            "display_order": order,
            "active": True,
        },
    )
    return addon


def replace_rate_card(tenant, mode, basis, origin, destination, currency, min_charge, tiers,
                      fuel=0, security=0, peak=0):
    """Cards are keyed by (tenant, mode, basis, corridor) so re-running the seed is idempotent."""
    o_region, o_country, o_city = origin
    d_region, d_country, d_city = destination
    card, _ = RateCards.objects.update_or_create(
        tenant=tenant,
        mode=mode,
        rate_basis=basis,
        origin_country=o_country,
        origin_city=o_city,
        destination_country=d_country,
        destination_city=d_city,
        defaults={
            "origin_region": o_region,
            "destination_region": d_region,
            "currency": currency,
            "min_charge": Decimal(min_charge),
            "fuel_surcharge_pct": Decimal(fuel),
            "security_surcharge_pct": Decimal(security),
            "peak_season_surcharge_pct": Decimal(peak),
            "active": True,
        },
    )
    card.tiers.all().delete()
    RateTiers.objects.bulk_create([
        RateTiers(
            rate_card=card,
            lower=Decimal(lower),
            upper=Decimal(upper) if upper is not None else None,
            unit_price=Decimal(price),
        )
        for lower, upper, price in tiers
    ])
    return card
#endregion


class Command(BaseCommand):
    help = "Seeds demo tenants, rate cards, add-ons and plans for the quote engine."

    @transaction.atomic
    def handle(self, *args, **options):
        # -------- Platform owner catalog --------
        starter = upsert_owner_plan("starter", "Starter", "29", "290", 1)
        business = upsert_owner_plan("business", "Business", "79", "790", 2)
        enterprise = upsert_owner_plan("enterprise", "Enterprise", "199", "1990", 3)

        insurance = upsert_owner_addon("insurance", "Assurance Transport", "percent_of_value", "0.02", 1)
        packaging = upsert_owner_addon("packaging", "Emballage Renforcé", "fixed", "15", 2)
        upsert_owner_addon("express", "Livraison Express", "per_kg", "2", 3)
        storage = upsert_owner_addon("storage", "Stockage Temporaire", "per_m3", "5", 4)

        # -------- Reselling tenant (EUR) --------
        nextmove = upsert_tenant("nextmove-chine-afrique", "NextMove Cargo Chine-Afrique", "EUR", "0.20")
        for owner_plan in (starter, business, enterprise):
            TenantPlan.objects.update_or_create(
                tenant=nextmove,
                code=owner_plan.code,
                defaults={"owner_plan": owner_plan, "margin_mode": "percent", "margin_value": Decimal("0.35")},
            )

        upsert_tenant_addon(nextmove, "assurance-cargo", "Assurance Cargo Premium", "percent_of_value", "0.025",
                            "EUR", 1, owner=insurance, margin_mode="percent", margin_value="0.25")
        upsert_tenant_addon(nextmove, "emballage-securise", "Emballage Sécurisé", "fixed", "15",
                            "EUR", 2, owner=packaging, margin_mode="percent", margin_value="0.30")
        upsert_tenant_addon(nextmove, "livraison-domicile", "Livraison à Domicile", "fixed", "24", "EUR", 3)
        upsert_tenant_addon(nextmove, "stockage-temporaire", "Stockage Temporaire", "per_m3", "3",
                            "EUR", 4, owner=storage, margin_mode="percent", margin_value="0.40")
        upsert_tenant_addon(nextmove, "dedouanement-express", "Dédouanement Express", "fixed", "40", "EUR", 5)

        replace_rate_card(
            nextmove, "air", "per_kg",
            ("Asia", "China", "Shenzhen"), ("Africa", "Senegal", "Dakar"), "EUR", "50",
            [(0, 100, "6.50"), (100, 500, "5.80"), (500, None, "5.20")],
            fuel=8, security=2,
        )
        replace_rate_card(
            nextmove, "sea", "per_m3",
            ("Asia", "China", "Guangzhou"), ("Africa", "Senegal", "Dakar"), "EUR", "120",
            [(0, 10, "85"), (10, 50, "75"), (50, None, "65")],
            fuel=15, security=3, peak=5,
        )
        replace_rate_card(
            nextmove, "air", "per_kg",
            ("Asia", "China", ""), ("Africa", "Ivory Coast", "Abidjan"), "EUR", "60",
            [(0, 100, "7.20"), (100, 500, "6.50"), (500, None, "5.90")],
            fuel=8, security=2,
        )
        SurchargeRules.objects.update_or_create(
            tenant=nextmove,
            code="documentation",
            defaults={"name": "Frais de dossier", "kind": "fixed", "value": Decimal("10"), "base": "transport"},
        )

        # -------- West African tenant (XOF, VAT exempt) --------
        abidjan = upsert_tenant("demo-xof", "Demo Fret Abidjan", "XOF", "0")
        replace_rate_card(
            abidjan, "air", "per_kg",
            ("Asia", "China", "Guangzhou"), ("Africa", "Ivory Coast", "Abidjan"), "XOF", "5000",
            [(0, 10, "1000"), (10, None, "800")],
            fuel=10,
        )

        self.stdout.write(self.style.SUCCESS(
            f"Seeded {Tenant.objects.count()} tenants, {RateCards.objects.count()} rate cards, "
            f"{ServiceAddons.objects.count()} tenant add-ons, {TenantPlan.objects.count()} resold plans."
        ))
