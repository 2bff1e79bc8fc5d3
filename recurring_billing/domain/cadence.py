"""
Pure cadence arithmetic.

Contract:
    ``next_occurrence()`` and ``period_bounds()`` are PURE -- no I/O, no
    clock reads.  Callers pass every date they want evaluated.

Architecture: recurring_billing/domain.  ZERO I/O.

Invariants enforced:
    - Every cadence step is strictly positive, so repeated application
      always advances.
    - Month arithmetic clamps the day of month to the target month
      (Jan 31 + 1 month = Feb 28/29), never rolling into the next month.
    - The monthly billing period is the full previous calendar month;
      every other cadence bills a window that ends on the invoice date.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import TypeVar

from dateutil.relativedelta import relativedelta

from recurring_billing.domain.types import Frequency

D = TypeVar("D", date, datetime)

_STEPS: dict[Frequency, relativedelta] = {
    Frequency.WEEKLY: relativedelta(weeks=1),
    Frequency.BIWEEKLY: relativedelta(weeks=2),
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.QUARTERLY: relativedelta(months=3),
    Frequency.YEARLY: relativedelta(years=1),
}


def cadence_step(frequency: Frequency | str) -> relativedelta:
    """Return the calendar step for a frequency.

    Raises:
        InvalidFrequencyError: If frequency is unknown.
    """
    return _STEPS[Frequency.parse(frequency)]


def next_occurrence(value: D, frequency: Frequency | str) -> D:
    """Advance ``value`` by one cadence step.

    Works for both ``date`` and ``datetime`` (time of day and tzinfo are
    preserved).

    Raises:
        InvalidFrequencyError: If frequency is unknown.
    """
    return value + cadence_step(frequency)


def period_bounds(invoice_date: date, frequency: Frequency | str) -> tuple[date, date]:
    """Return the inclusive ``(start, end)`` billing period for an invoice.

    Rules:
        - weekly: 7 days ending on the invoice date.
        - biweekly: 14 days ending on the invoice date.
        - monthly: the whole previous calendar month.
        - quarterly: 3 months ending on the invoice date.
        - yearly: 1 year ending on the invoice date.

    A ``datetime`` is reduced to its calendar date; callers that care about
    a display time zone convert before calling.

    Raises:
        InvalidFrequencyError: If frequency is unknown.
    """
    frequency = Frequency.parse(frequency)
    if isinstance(invoice_date, datetime):
        invoice_date = invoice_date.date()

    end = invoice_date

    if frequency == Frequency.WEEKLY:
        return end - timedelta(days=6), end

    if frequency == Frequency.BIWEEKLY:
        return end - timedelta(days=13), end

    if frequency == Frequency.MONTHLY:
        first_of_this_month = end.replace(day=1)
        last_of_previous = first_of_this_month - timedelta(days=1)
        return last_of_previous.replace(day=1), last_of_previous

    if frequency == Frequency.QUARTERLY:
        return end - relativedelta(months=3) + timedelta(days=1), end

    return end - relativedelta(years=1) + timedelta(days=1), end
