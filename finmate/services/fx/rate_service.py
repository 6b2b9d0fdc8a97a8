"""
Exchange Rate Service

Fetches the single rate the dashboard needs (USD -> reporting currency) from
an open rates endpoint that answers ``{"rates": {"COP": 4000.0, ...}}``.

DESIGN DECISION: A missing rate never blocks rendering. Callers that cannot
wait use ``get_rate_or_none`` and treat None as "leave amounts unconverted";
the totals correct themselves on the next pass once the rate resolves.
"""

import math
from typing import Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finmate.config import ExchangeRateSettings, get_settings
from finmate.services.fx.cache import RateCache


class RateUnavailableError(Exception):
    """The exchange rate could not be fetched (or parsed)."""

    def __init__(self, pair: str, message: str):
        self.pair = pair
        super().__init__(f"{pair}: {message}")


class ExchangeRateService:
    """
    Rate lookup with caching and a bounded retry.

    The HTTP client can be injected (tests pass one built on
    ``httpx.MockTransport``); otherwise a short-lived client is opened per
    fetch.
    """

    def __init__(
        self,
        settings: Optional[ExchangeRateSettings] = None,
        cache: Optional[RateCache] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or get_settings().exchange_rate
        self._cache = cache or RateCache(
            fresh_seconds=self._settings.fresh_seconds,
            evict_seconds=self._settings.evict_seconds,
        )
        self._client = client
        self._logger = structlog.get_logger(__name__)

    @property
    def base_currency(self) -> str:
        return self._settings.base_currency.upper()

    @property
    def cache(self) -> RateCache:
        return self._cache

    def pair_key(self, target: str) -> str:
        return f"{self.base_currency}:{target.strip().upper()}"

    async def get_rate(self, target: str) -> float:
        """
        Units of ``target`` per one unit of the base currency.

        Raises:
            RateUnavailableError: If the rate cannot be fetched and nothing is cached
        """
        target = target.strip().upper()
        if target == self.base_currency:
            return 1.0
        return await self._cache.get_or_fetch(
            self.pair_key(target),
            lambda: self._fetch_with_retry(target),
        )

    async def get_rate_or_none(self, target: str) -> Optional[float]:
        """Like get_rate, but degrades to None instead of raising."""
        try:
            return await self.get_rate(target)
        except RateUnavailableError as e:
            self._logger.warning("fx_rate_unavailable", pair=e.pair, error=str(e))
            return None

    async def _fetch_with_retry(self, target: str) -> float:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._settings.max_attempts),
            wait=wait_exponential(multiplier=self._settings.retry_backoff_seconds, max=10),
            retry=retry_if_exception_type(RateUnavailableError),
            reraise=True,
        ):
            with attempt:
                return await self._fetch_rate(target)
        # AsyncRetrying either returns or reraises; this keeps type checkers quiet
        raise RateUnavailableError(self.pair_key(target), "no attempts made")

    async def _fetch_rate(self, target: str) -> float:
        pair = self.pair_key(target)
        client = self._client or httpx.AsyncClient(timeout=self._settings.timeout_seconds)
        try:
            response = await client.get(self._settings.endpoint_url)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise RateUnavailableError(pair, f"FX HTTP error: {e}") from e
        except ValueError as e:
            raise RateUnavailableError(pair, "FX response is not JSON") from e
        finally:
            if self._client is None:
                await client.aclose()

        rates = payload.get("rates") if isinstance(payload, dict) else None
        value = rates.get(target) if isinstance(rates, dict) else None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise RateUnavailableError(pair, f"{target} rate unavailable")
        try:
            rate = float(value)
        except OverflowError:
            raise RateUnavailableError(pair, f"{target} rate is out of range") from None
        if not math.isfinite(rate) or rate <= 0:
            raise RateUnavailableError(pair, f"{target} rate is not a positive number")
        return rate
