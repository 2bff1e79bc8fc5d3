"""Tests for the injectable clocks."""

from datetime import datetime, timedelta, timezone

import pytest

from billing_kernel.domain.clock import DeterministicClock, SystemClock


class TestDeterministicClock:
    def test_default_time(self):
        assert DeterministicClock().now() == datetime(2025, 1, 1, 12, tzinfo=timezone.utc)

    def test_frozen_until_moved(self):
        clock = DeterministicClock(datetime(2025, 6, 1, tzinfo=timezone.utc))
        assert clock.now() == clock.now()

    def test_advance(self):
        clock = DeterministicClock(datetime(2025, 6, 1, tzinfo=timezone.utc))
        clock.advance(90)
        clock.advance_days(2)
        assert clock.now() == datetime(2025, 6, 3, 0, 1, 30, tzinfo=timezone.utc)

    def test_set_time_resets_advance(self):
        clock = DeterministicClock()
        clock.advance_days(5)
        clock.set_time(datetime(2030, 1, 1, tzinfo=timezone.utc))
        assert clock.now() == datetime(2030, 1, 1, tzinfo=timezone.utc)

    def test_naive_rejected(self):
        with pytest.raises(ValueError):
            DeterministicClock(datetime(2025, 1, 1))
        with pytest.raises(ValueError):
            DeterministicClock().set_time(datetime(2025, 1, 1))


class TestSystemClock:
    def test_aware_utc(self):
        now = SystemClock().now()
        assert now.tzinfo is not None
        assert abs(now - datetime.now(timezone.utc)) < timedelta(seconds=5)
