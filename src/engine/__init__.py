"""Accounting engine package: periods, currency conversion and aggregation."""

from src.engine.aggregator import Aggregator, quantize
from src.engine.currency import CurrencyConverter, MissingExchangeRateError
from src.engine.period import (
    add_months,
    current_recurrence_window,
    period_for,
    recurrence_window,
)

__all__ = [
    "Aggregator",
    "CurrencyConverter",
    "MissingExchangeRateError",
    "add_months",
    "current_recurrence_window",
    "period_for",
    "quantize",
    "recurrence_window",
]
