"""
Currency Converter

Converts account-currency amounts into the ledger's base currency.

Rates are direct multipliers: one unit of ``currency`` is worth
``rate`` units of the base currency.

DESIGN DECISION: A currency with no configured rate is assumed to be at
parity with the base currency (multiplier 1). That keeps old ledgers
working, but it is a silent correctness risk, so every such fallback is
logged and ``strict=True`` turns it into MissingExchangeRateError.
"""

from decimal import Decimal
from typing import Union

import structlog

from src.models.ledger import Currency, FinanceSettings

CurrencyCode = Union[Currency, str]
Amount = Union[Decimal, int, float, str]

PARITY = Decimal("1")


class MissingExchangeRateError(Exception):
    """No exchange rate is configured for a currency (strict mode only)."""

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"No exchange rate configured for currency: {currency}")


def _code(currency: CurrencyCode) -> str:
    return currency.value if isinstance(currency, Currency) else str(currency)


def _as_decimal(amount: Amount) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    # str() first so 0.1 becomes Decimal("0.1"), not its binary expansion
    return Decimal(str(amount))


class CurrencyConverter:
    """
    Converts amounts using one FinanceSettings snapshot.

    Lookups are exact and case-sensitive: "usd" is not "USD".
    """

    def __init__(self, settings: FinanceSettings, strict: bool = False):
        self._base_currency = settings.base_currency
        self._rates = {_code(c): rate for c, rate in settings.exchange_rates.items()}
        self._strict = strict
        self._missing: set[str] = set()
        self._logger = structlog.get_logger(__name__)

    @property
    def base_currency(self) -> Currency:
        return self._base_currency

    @property
    def missing_currencies(self) -> frozenset[str]:
        """Currencies that fell back to parity so far."""
        return frozenset(self._missing)

    def rate_of(self, currency: CurrencyCode) -> Decimal:
        """
        Multiplier from ``currency`` into the base currency.

        Raises:
            MissingExchangeRateError: In strict mode, when no rate is configured
        """
        code = _code(currency)
        rate = self._rates.get(code)
        if rate is not None:
            return rate

        if self._strict:
            raise MissingExchangeRateError(code)

        if code not in self._missing:
            self._missing.add(code)
            self._logger.warning(
                "missing_exchange_rate",
                currency=code,
                base_currency=self._base_currency.value,
                assumed_rate=str(PARITY),
            )
        return PARITY

    def convert_to_base(self, amount: Amount, currency: CurrencyCode) -> Decimal:
        """``amount * rate_of(currency)``. Sign is preserved."""
        return _as_decimal(amount) * self.rate_of(currency)

    def convert_from_base(self, amount: Amount, currency: CurrencyCode) -> Decimal:
        """
        Express a base-currency amount in ``currency``.

        A zero rate is treated as parity, since dividing by it is meaningless.
        """
        rate = self.rate_of(currency)
        if rate == 0:
            rate = PARITY
        return _as_decimal(amount) / rate

    def convert(
        self,
        amount: Amount,
        from_currency: CurrencyCode,
        to_currency: CurrencyCode,
    ) -> Decimal:
        """
        Convert between two currencies through the base currency.

        Identical currencies pass through unconverted.
        """
        if _code(from_currency) == _code(to_currency):
            return _as_decimal(amount)
        return self.convert_from_base(
            self.convert_to_base(amount, from_currency),
            to_currency,
        )
