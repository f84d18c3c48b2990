from django.apps import AppConfig


class CoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "core"

    fx_service = None

    def ready(self):
        from django.conf import settings

        from .fx import build_fx_service

        # One FX cache per process, handed to the pricing app at startup.
        self.fx_service = build_fx_service(settings)
