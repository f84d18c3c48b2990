from django.urls import path

from .views import PublicRatesView, QuoteCalculateView, RateCardListView

urlpatterns = [
    path("quotes/calculate", QuoteCalculateView.as_view(), name="quote-calculate"),
    path("public/rates", PublicRatesView.as_view(), name="public-rates"),
    path("tenant/rate-cards", RateCardListView.as_view(), name="tenant-rate-cards"),
]
