"""
Period placeholder expansion for line-item descriptions.

Contract:
    ``expand_description()`` substitutes ``{{NAME}}`` placeholders with
    calendar labels derived from the invoice date and cadence.  Formatting
    is locale invariant (fixed English month names) and evaluated in the
    caller-supplied IANA time zone.

Architecture: recurring_billing/domain.  No database access; the only
    side effect is a warning log when input is neutralised.

Supported placeholders:
    {{PERIOD_START}}  "Dec 1"
    {{PERIOD_END}}    "Dec 31"
    {{MONTH_NAME}}    "December"
    {{MONTH_SHORT}}   "Dec"
    {{YEAR}}          "2024"
    {{WEEK_NUMBER}}   Sunday-start week of year, week 1 holds 1 January
    {{QUARTER}}       "4"

Monthly invoices take month, year and quarter labels from the period
start (the month being billed); every other cadence takes them from the
period end.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from billing_kernel.logging_config import get_logger

from recurring_billing.domain.cadence import next_occurrence, period_bounds
from recurring_billing.domain.types import Frequency, LineItem

logger = get_logger("recurring.period_template")

DEFAULT_TIMEZONE = "America/New_York"

_MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
_MONTH_SHORT = tuple(name[:3] for name in _MONTH_NAMES)

_MARKUP_PREFIXES = ("<!doctype", "<html")


def resolve_zone(tz_name: str | None, fallback: str = DEFAULT_TIMEZONE) -> ZoneInfo:
    """ZoneInfo for ``tz_name``; unknown names fall back with a warning."""
    try:
        return ZoneInfo(tz_name or fallback)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(
            "unknown_timezone",
            extra={"timezone": tz_name, "fallback": fallback},
        )
        return ZoneInfo(fallback)


def local_invoice_date(invoice_date: date, tz_name: str | None,
                       fallback: str = DEFAULT_TIMEZONE) -> date:
    """Calendar date of the invoice as seen in ``tz_name``.

    A plain ``date`` has no instant to convert and is returned as is.
    Naive datetimes are taken to be UTC.
    """
    if not isinstance(invoice_date, datetime):
        return invoice_date
    if invoice_date.tzinfo is None:
        invoice_date = invoice_date.replace(tzinfo=timezone.utc)
    return invoice_date.astimezone(resolve_zone(tz_name, fallback)).date()


def local_midnight(day: date, tz_name: str | None,
                   fallback: str = DEFAULT_TIMEZONE) -> datetime:
    """Start of ``day`` in ``tz_name``, as an aware UTC instant.

    Plain dates (record start dates, date-only invoice dates) are anchored
    here so the calendar date seen by the owner is the date given.
    """
    zone = resolve_zone(tz_name, fallback)
    return datetime.combine(day, time.min, tzinfo=zone).astimezone(timezone.utc)


def next_local_occurrence(instant: datetime, frequency: Frequency | str,
                          tz_name: str | None,
                          fallback: str = DEFAULT_TIMEZONE) -> datetime:
    """Advance ``instant`` one cadence step on the owner's wall clock.

    Local midnight stays local midnight across DST changes.  The result is
    an aware UTC instant.
    """
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    local = instant.astimezone(resolve_zone(tz_name, fallback))
    return next_occurrence(local, frequency).astimezone(timezone.utc)


def week_number(value: date) -> int:
    """Week of year with Sunday-start weeks; the week holding 1 January is 1.

    The last days of December belong to week 1 of the next year when they
    share a week with the next 1 January.
    """

    def week_start(d: date) -> date:
        return d - timedelta(days=(d.weekday() + 1) % 7)

    if value >= week_start(date(value.year + 1, 1, 1)):
        return 1
    return (value - week_start(date(value.year, 1, 1))).days // 7 + 1


def quarter(value: date) -> int:
    return (value.month - 1) // 3 + 1


def _short_day(value: date) -> str:
    return f"{_MONTH_SHORT[value.month - 1]} {value.day}"


def is_markup(text: str) -> bool:
    """True when a description is really an HTML document (corrupted upstream)."""
    head = text.lstrip()[:9].lower()
    return head.startswith(_MARKUP_PREFIXES)


def expand_description(
    template: Any,
    invoice_date: date,
    frequency: Frequency | str,
    tz_name: str | None = None,
    fallback_timezone: str = DEFAULT_TIMEZONE,
) -> str:
    """Substitute period placeholders in a single description.

    Strings without ``{{`` are returned unchanged.  Non-string input and
    HTML documents are neutralised to an empty string.

    Raises:
        InvalidFrequencyError: If frequency is unknown and the template
            holds placeholders.
    """
    if not isinstance(template, str):
        if template is not None:
            logger.warning(
                "template_not_a_string",
                extra={"template_type": type(template).__name__},
            )
        return ""

    if is_markup(template):
        logger.warning(
            "template_markup_detected",
            extra={"template_head": template[:100]},
        )
        return ""

    if "{{" not in template:
        return template

    frequency = Frequency.parse(frequency)
    local_date = local_invoice_date(invoice_date, tz_name, fallback_timezone)
    start, end = period_bounds(local_date, frequency)
    label_date = start if frequency == Frequency.MONTHLY else end

    replacements = {
        "{{PERIOD_START}}": _short_day(start),
        "{{PERIOD_END}}": _short_day(end),
        "{{MONTH_NAME}}": _MONTH_NAMES[label_date.month - 1],
        "{{MONTH_SHORT}}": _MONTH_SHORT[label_date.month - 1],
        "{{YEAR}}": str(label_date.year),
        "{{WEEK_NUMBER}}": str(week_number(end)),
        "{{QUARTER}}": str(quarter(label_date)),
    }

    expanded = template
    for placeholder, value in replacements.items():
        expanded = expanded.replace(placeholder, value)
    return expanded


def expand_line_items(
    items: Iterable[LineItem],
    invoice_date: date,
    frequency: Frequency | str,
    tz_name: str | None = None,
    fallback_timezone: str = DEFAULT_TIMEZONE,
) -> tuple[LineItem, ...]:
    """Expand every line item description; quantity and rate are kept."""
    return tuple(
        LineItem(
            description=expand_description(
                item.description, invoice_date, frequency, tz_name, fallback_timezone,
            ),
            quantity=item.quantity,
            rate=item.rate,
        )
        for item in items
    )
