"""Calendar arithmetic for billing cycles and ledger periods."""

from datetime import datetime, timedelta, timezone

import pytest

from commission_kernel.domain.clock import DeterministicClock
from commission_kernel.domain.periods import (
    add_months,
    ensure_aware,
    iter_periods,
    parse_period,
    period_label,
    shift_period,
)


class TestAddMonths:

    def test_simple(self):
        assert add_months(datetime(2025, 1, 15), 1) == datetime(2025, 2, 15)

    def test_clamps_to_month_end(self):
        assert add_months(datetime(2025, 1, 31), 1) == datetime(2025, 2, 28)
        assert add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)

    def test_crosses_year(self):
        assert add_months(datetime(2025, 11, 30), 3) == datetime(2026, 2, 28)

    def test_negative(self):
        assert add_months(datetime(2025, 3, 31), -1) == datetime(2025, 2, 28)

    def test_keeps_timezone(self):
        value = datetime(2025, 1, 1, 12, tzinfo=timezone.utc)
        assert add_months(value, 6).tzinfo is timezone.utc


class TestPeriodLabels:

    def test_period_label_is_utc(self):
        plus_two = timezone(timedelta(hours=2))
        # 00:30 on Feb 1 at UTC+2 is still January in UTC.
        assert period_label(datetime(2025, 2, 1, 0, 30, tzinfo=plus_two)) == "2025-01"

    def test_naive_treated_as_utc(self):
        assert ensure_aware(datetime(2025, 1, 1)).tzinfo is timezone.utc
        assert period_label(datetime(2025, 7, 4)) == "2025-07"

    @pytest.mark.parametrize("label", ["2025-13", "2025-1", "25-01", "", "2025/01"])
    def test_parse_rejects_malformed(self, label):
        with pytest.raises(ValueError):
            parse_period(label)

    def test_shift(self):
        assert shift_period("2025-01", -1) == "2024-12"
        assert shift_period("2025-12", 1) == "2026-01"
        assert shift_period("2025-06", 0) == "2025-06"

    def test_iter_inclusive(self):
        assert list(iter_periods("2024-11", "2025-02")) == [
            "2024-11", "2024-12", "2025-01", "2025-02",
        ]

    def test_iter_inverted_is_empty(self):
        assert list(iter_periods("2025-03", "2025-01")) == []


class TestDeterministicClock:

    def test_fixed_until_advanced(self):
        start = datetime(2025, 5, 1, tzinfo=timezone.utc)
        clock = DeterministicClock(start)
        assert clock.now() == clock.now() == start
        clock.advance(60)
        assert clock.now() == start + timedelta(seconds=60)

    def test_set_time_resets_advance(self):
        clock = DeterministicClock()
        clock.advance(10)
        target = datetime(2026, 1, 1, tzinfo=timezone.utc)
        clock.set_time(target)
        assert clock.now() == target
