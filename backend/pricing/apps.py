from django.apps import AppConfig, apps


class PricingConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "pricing"

    quote_engine = None

    def ready(self):
        from .services.pricing_service import QuoteEngine
        from .services.repository import DjangoRateCardRepository, DjangoTenantConfigStore

        self.quote_engine = QuoteEngine(
            rate_cards=DjangoRateCardRepository(),
            config_store=DjangoTenantConfigStore(),
            fx=apps.get_app_config("core").fx_service,
        )
