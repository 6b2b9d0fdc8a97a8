"""
Currency Converter

Converts amounts into the reporting currency with a single rate:
units of reporting currency per one unit of the base currency (USD -> COP).

DESIGN DECISION: The converter holds an already-resolved rate (or None) and is
fully synchronous. Resolving the rate is the FX service's job; when the rate
is missing the converter is a no-op and returns amounts unconverted, so the
dashboard renders with slightly wrong totals instead of not rendering.
Signs are preserved; callers take abs() first when only magnitude matters.
"""

from typing import Optional


class CurrencyConverter:
    """Converts between the reporting currency and the base currency."""

    def __init__(
        self,
        reporting_currency: str = "COP",
        base_currency: str = "USD",
        rate: Optional[float] = None,
    ):
        self.reporting_currency = reporting_currency.strip().upper()
        self.base_currency = base_currency.strip().upper()
        self.rate = rate if rate and rate > 0 else None

    @property
    def has_rate(self) -> bool:
        return self.rate is not None

    def _code(self, currency: Optional[str]) -> str:
        code = (currency or "").strip().upper()
        return code or self.reporting_currency

    def to_reporting_currency(self, amount: float, currency: Optional[str] = None) -> float:
        """Convert ``amount`` in ``currency`` (default: reporting) to reporting currency."""
        return self.convert(amount, currency, self.reporting_currency)

    def convert(
        self,
        amount: float,
        source: Optional[str],
        target: Optional[str],
    ) -> float:
        """
        Convert between any two supported currencies.

        Supported pairs are base <-> reporting. Unsupported pairs and a
        missing rate leave the amount unchanged.
        """
        source_code, target_code = self._code(source), self._code(target)
        if source_code == target_code or self.rate is None:
            return amount
        if source_code == self.base_currency and target_code == self.reporting_currency:
            return amount * self.rate
        if source_code == self.reporting_currency and target_code == self.base_currency:
            return amount / self.rate
        return amount
