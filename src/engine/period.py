"""
Period Resolver

Computes the custom "month" a ledger reports on. A period starts on the
configured month start day and ends the day before the next start day.

DESIGN DECISION: Start days that don't exist in a month are clamped.
With a start day of 31, February's period starts on the 28th/29th and
April's on the 30th. Every period ends the day before the *next* anchor
(also clamped), so consecutive periods always tile the calendar with no
gaps or overlaps.
"""

import calendar
from datetime import date, datetime, timedelta

from src.models.ledger import Recurrence
from src.models.reports import Period


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def month_anchor(year: int, month: int, day: int) -> date:
    """``date(year, month, day)`` with ``day`` clamped to the month's length."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def add_months(day: date, months: int) -> date:
    """Shift ``day`` by whole months, clamping to the target month's last day."""
    year, month = _shift_month(day.year, day.month, months)
    return month_anchor(year, month, day.day)


def _as_date(value: date) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def period_for(reference_date: date, month_start_day: int) -> Period:
    """
    Return the period containing ``reference_date``.

    Args:
        reference_date: Any calendar date (datetimes are truncated)
        month_start_day: Day of month periods start on (1-31)

    Raises:
        ValueError: If month_start_day is outside 1..31
    """
    if not 1 <= month_start_day <= 31:
        raise ValueError(f"month_start_day must be between 1 and 31, got {month_start_day}")

    reference = _as_date(reference_date)

    start = month_anchor(reference.year, reference.month, month_start_day)
    if start > reference:
        year, month = _shift_month(reference.year, reference.month, -1)
        start = month_anchor(year, month, month_start_day)

    next_year, next_month = _shift_month(start.year, start.month, 1)
    end = month_anchor(next_year, next_month, month_start_day) - timedelta(days=1)

    return Period(start=start, end=end)


def _step(start: date, recurrence: Recurrence, count: int) -> date:
    if recurrence == Recurrence.WEEKLY:
        return start + timedelta(weeks=count)
    if recurrence == Recurrence.YEARLY:
        return add_months(start, 12 * count)
    return add_months(start, count)


def recurrence_window(start_date: date, recurrence: Recurrence) -> Period:
    """First window of a recurrence: ``[start, start + 1 step - 1 day]``."""
    start = _as_date(start_date)
    return Period(start=start, end=_step(start, recurrence, 1) - timedelta(days=1))


def current_recurrence_window(
    start_date: date,
    recurrence: Recurrence,
    reference_date: date,
) -> Period:
    """
    Window of ``recurrence`` anchored at ``start_date`` that contains
    ``reference_date``.

    References before ``start_date`` get the first window. Steps are always
    taken from the original anchor, so clamping in short months never
    drifts later windows.
    """
    start = _as_date(start_date)
    reference = _as_date(reference_date)

    if reference < start:
        return recurrence_window(start, recurrence)

    if recurrence == Recurrence.WEEKLY:
        count = (reference - start).days // 7
    else:
        months = (reference.year - start.year) * 12 + (reference.month - start.month)
        count = months // 12 if recurrence == Recurrence.YEARLY else months

    # The month arithmetic above can overshoot by one step
    while count > 0 and _step(start, recurrence, count) > reference:
        count -= 1
    while _step(start, recurrence, count + 1) <= reference:
        count += 1

    return Period(
        start=_step(start, recurrence, count),
        end=_step(start, recurrence, count + 1) - timedelta(days=1),
    )
