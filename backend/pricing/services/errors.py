"""
Error taxonomy of the quote engine.

Input problems (``NoCorridorFound``, ``InvalidQuantity``) are returned to the
caller as-is and never retried. Configuration problems derive from
``PricingConfigurationError`` so the API can tell them apart from bad input.
"""

from typing import Iterable, Optional


class PricingError(Exception):
    """Base exception for quote calculation errors"""
    code = "PricingError"


class TenantNotFound(PricingError):
    """Raised when the tenant id is unknown or inactive"""
    code = "TenantNotFound"


class NoCorridorFound(PricingError):
    """Raised when no active rate card matches the requested corridor"""
    code = "NoCorridorFound"

    def __init__(
        self,
        mode: str,
        rate_basis: str,
        origin: str,
        destination: str,
        available_corridors: Optional[Iterable[str]] = None,
    ):
        self.mode = mode
        self.rate_basis = rate_basis
        self.origin = origin
        self.destination = destination
        self.available_corridors = list(available_corridors or [])
        super().__init__(
            f"No {mode} {rate_basis} rate card for {origin} → {destination}"
        )


class InvalidQuantity(PricingError):
    """Raised when weight/volume is missing, non-positive or outside the tier table"""
    code = "InvalidQuantity"


class UnknownAddon(PricingError):
    """Raised by catalog lookups for retired or nonexistent add-ons"""
    code = "UnknownAddon"

    def __init__(self, addon_id: str):
        self.addon_id = addon_id
        super().__init__(f"Unknown or inactive add-on '{addon_id}'")


class PricingConfigurationError(PricingError):
    """Raised when tenant pricing configuration is unusable"""
    code = "PricingConfigurationError"


class MarginConfigurationError(PricingConfigurationError):
    """Raised when a margin mode is unknown or lacks its value"""
    code = "MarginConfigurationError"


class RateCardConfigurationError(PricingConfigurationError):
    """Raised when a rate card tier table is malformed"""
    code = "RateCardConfigurationError"


class RateCardNotFound(PricingError):
    """Raised when a rate card id does not exist for the tenant"""
    code = "RateCardNotFound"
