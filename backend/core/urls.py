from django.urls import path

from .views import FxConvertView, FxRatesView, FxRefreshView

urlpatterns = [
    path("rates", FxRatesView.as_view(), name="fx-rates"),
    path("convert", FxConvertView.as_view(), name="fx-convert"),
    path("refresh", FxRefreshView.as_view(), name="fx-refresh"),
]
