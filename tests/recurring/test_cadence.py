"""
Tests for recurring_billing.domain.cadence.

Validates next_occurrence() step sizes and month clamping, and
period_bounds() windows for every frequency.  Pure functions, no DB.
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from hypothesis import given, strategies as st

from billing_kernel.exceptions import InvalidFrequencyError

from recurring_billing.domain.cadence import next_occurrence, period_bounds
from recurring_billing.domain.types import Frequency

dates = st.dates(min_value=date(1900, 1, 1), max_value=date(2200, 12, 31))
frequencies = st.sampled_from(list(Frequency))


# =============================================================================
# next_occurrence
# =============================================================================


class TestNextOccurrence:
    @pytest.mark.parametrize(
        "frequency, expected",
        [
            (Frequency.WEEKLY, date(2025, 1, 8)),
            (Frequency.BIWEEKLY, date(2025, 1, 15)),
            (Frequency.MONTHLY, date(2025, 2, 1)),
            (Frequency.QUARTERLY, date(2025, 4, 1)),
            (Frequency.YEARLY, date(2026, 1, 1)),
        ],
    )
    def test_step_sizes(self, frequency, expected):
        assert next_occurrence(date(2025, 1, 1), frequency) == expected

    def test_accepts_raw_string(self):
        assert next_occurrence(date(2025, 1, 1), "weekly") == date(2025, 1, 8)

    def test_month_end_clamps_to_february(self):
        assert next_occurrence(date(2025, 1, 31), Frequency.MONTHLY) == date(2025, 2, 28)

    def test_month_end_clamps_to_leap_day(self):
        assert next_occurrence(date(2024, 1, 31), Frequency.MONTHLY) == date(2024, 2, 29)

    def test_quarter_from_month_end(self):
        assert next_occurrence(date(2024, 11, 30), Frequency.QUARTERLY) == date(2025, 2, 28)

    def test_leap_day_yearly(self):
        assert next_occurrence(date(2024, 2, 29), Frequency.YEARLY) == date(2025, 2, 28)

    def test_datetime_keeps_time_and_zone(self):
        start = datetime(2025, 1, 31, 9, 30, tzinfo=timezone.utc)
        result = next_occurrence(start, Frequency.MONTHLY)
        assert result == datetime(2025, 2, 28, 9, 30, tzinfo=timezone.utc)
        assert result.tzinfo is timezone.utc

    def test_unknown_frequency_rejected(self):
        with pytest.raises(InvalidFrequencyError) as exc_info:
            next_occurrence(date(2025, 1, 1), "fortnightly")
        assert exc_info.value.code == "INVALID_FREQUENCY"
        assert exc_info.value.frequency == "fortnightly"

    @given(day=dates, frequency=frequencies)
    def test_advancement_is_strictly_monotonic(self, day, frequency):
        once = next_occurrence(day, frequency)
        twice = next_occurrence(once, frequency)
        assert once > day
        assert twice > once

    @given(day=dates)
    def test_monthly_never_skips_a_month(self, day):
        result = next_occurrence(day, Frequency.MONTHLY)
        months_apart = (result.year - day.year) * 12 + result.month - day.month
        assert months_apart == 1


# =============================================================================
# period_bounds
# =============================================================================


class TestPeriodBounds:
    def test_monthly_is_previous_calendar_month(self):
        assert period_bounds(date(2025, 1, 15), Frequency.MONTHLY) == (
            date(2024, 12, 1),
            date(2024, 12, 31),
        )

    def test_monthly_from_march_covers_february(self):
        assert period_bounds(date(2024, 3, 1), Frequency.MONTHLY) == (
            date(2024, 2, 1),
            date(2024, 2, 29),
        )

    def test_weekly_ends_on_invoice_date(self):
        assert period_bounds(date(2025, 9, 14), Frequency.WEEKLY) == (
            date(2025, 9, 8),
            date(2025, 9, 14),
        )

    def test_biweekly_spans_fourteen_days(self):
        start, end = period_bounds(date(2025, 3, 14), Frequency.BIWEEKLY)
        assert (start, end) == (date(2025, 3, 1), date(2025, 3, 14))
        assert (end - start).days + 1 == 14

    def test_quarterly(self):
        assert period_bounds(date(2025, 3, 31), Frequency.QUARTERLY) == (
            date(2025, 1, 1),
            date(2025, 3, 31),
        )

    def test_yearly(self):
        assert period_bounds(date(2025, 6, 30), Frequency.YEARLY) == (
            date(2024, 7, 1),
            date(2025, 6, 30),
        )

    def test_datetime_reduced_to_date(self):
        moment = datetime(2025, 1, 15, 23, 59, tzinfo=timezone.utc)
        assert period_bounds(moment, Frequency.WEEKLY) == (date(2025, 1, 9), date(2025, 1, 15))

    @given(day=dates)
    def test_weekly_always_spans_seven_days(self, day):
        start, end = period_bounds(day, Frequency.WEEKLY)
        assert end == day
        assert end - start == timedelta(days=6)

    @given(day=dates)
    def test_monthly_is_a_whole_month_before_the_invoice(self, day):
        start, end = period_bounds(day, Frequency.MONTHLY)
        assert start.day == 1
        assert end + timedelta(days=1) == day.replace(day=1)
