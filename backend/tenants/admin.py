from django.contrib import admin

from tenants.models import OwnerPlan, Tenant, TenantPlan


class TenantPlanInline(admin.TabularInline):
    model = TenantPlan
    extra = 0
    autocomplete_fields = ("owner_plan",)


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "default_currency", "vat_rate", "margin_mode", "margin_value", "active")
    list_filter = ("active", "default_currency", "margin_mode")
    search_fields = ("code", "name")
    inlines = [TenantPlanInline]


@admin.register(OwnerPlan)
class OwnerPlanAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "currency", "price_month", "price_year", "active", "display_order")
    list_filter = ("active", "currency")
    search_fields = ("code", "name")
