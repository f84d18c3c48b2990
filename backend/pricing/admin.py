from django.contrib import admin, messages

from pricing.models import OwnerServiceAddons, RateCards, RateTiers, ServiceAddons, SurchargeRules
from pricing.services.repository import card_from_model
from pricing.services.tiers import validate_price_monotonic, validate_tiers


class RateTiersInline(admin.TabularInline):
    model = RateTiers
    extra = 0


@admin.register(RateCards)
class RateCardsAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "tenant",
        "mode",
        "rate_basis",
        "origin_country",
        "origin_city",
        "destination_country",
        "destination_city",
        "currency",
        "min_charge",
        "active",
        "valid_from",
        "valid_until",
    )
    list_filter = ("tenant", "mode", "rate_basis", "currency", "active")
    search_fields = ("origin_country", "origin_city", "destination_country", "destination_city")
    inlines = [RateTiersInline]
    actions = ["check_tiers"]

    def check_tiers(self, request, queryset):
        any_warn = False
        for obj in queryset.select_related("tenant").prefetch_related("tiers"):
            card = card_from_model(obj)
            for error in validate_tiers(card.tiers):
                any_warn = True
                messages.error(request, f"Rate card {card.id} ({card.corridor_label}): {error}")
            for warning in validate_price_monotonic(card.tiers):
                any_warn = True
                messages.warning(request, f"Rate card {card.id} ({card.corridor_label}): {warning}")
        if not any_warn:
            messages.info(request, "Selected rate cards have valid tiers.")


@admin.register(SurchargeRules)
class SurchargeRulesAdmin(admin.ModelAdmin):
    list_display = ("id", "tenant", "rate_card", "code", "kind", "value", "base", "compounding", "active", "position")
    list_filter = ("tenant", "kind", "base", "compounding", "active")
    search_fields = ("code", "name")


@admin.register(OwnerServiceAddons)
class OwnerServiceAddonsAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "pricing_type", "price", "currency", "taxable", "active")
    list_filter = ("pricing_type", "currency", "active")
    search_fields = ("code", "name")


@admin.register(ServiceAddons)
class ServiceAddonsAdmin(admin.ModelAdmin):
    list_display = ("code", "tenant", "owner_addon", "pricing_type", "price", "currency", "margin_mode", "margin_value", "active")
    list_filter = ("tenant", "pricing_type", "currency", "active")
    search_fields = ("code", "name")
    autocomplete_fields = ("owner_addon",)
