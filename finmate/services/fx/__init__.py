"""FX rate services."""

from finmate.services.fx.cache import CachedRate, RateCache
from finmate.services.fx.rate_service import ExchangeRateService, RateUnavailableError

__all__ = [
    "CachedRate",
    "ExchangeRateService",
    "RateCache",
    "RateUnavailableError",
]
