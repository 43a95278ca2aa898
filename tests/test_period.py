"""
Tests for the period calculator — month windows, overrides, weekly buckets.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from site_reports.errors import ValidationError
from site_reports.schemas.report import DailyTrafficPoint
from site_reports.services.period import (
    build_month_period,
    build_weekly_breakdown,
    format_month_label,
    parse_month_key,
    week_windows,
)

NOW = datetime(2026, 2, 14, 9, 30, tzinfo=timezone.utc)

ALL_MONTHS = [f"{y}-{m:02d}" for y in (2023, 2024, 2025, 2026) for m in range(1, 13)]


class TestMonthOverride:
    def test_override_used(self):
        p = build_month_period(NOW, "2025-07")
        assert p.month_key == "2025-07"
        assert p.start_date == date(2025, 7, 1)
        assert p.end_date_exclusive == date(2025, 8, 1)
        assert p.prev_month_key == "2025-06"
        assert p.prev_start_date == date(2025, 6, 1)
        assert p.prev_end_date_exclusive == date(2025, 7, 1)

    def test_datetime_bounds_are_utc_midnight(self):
        p = build_month_period(NOW, "2026-01")
        assert p.start_datetime == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert p.end_datetime_exclusive == datetime(2026, 2, 1, tzinfo=timezone.utc)
        assert p.prev_start_datetime == datetime(2025, 12, 1, tzinfo=timezone.utc)
        assert p.prev_end_datetime_exclusive == datetime(2026, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("bad", ["2026-13", "2026-00", "2026-1", "26-01", "2026/01", "", "january", "2026-01-01"])
    def test_invalid_override_rejected(self, bad):
        with pytest.raises(ValidationError):
            build_month_period(NOW, bad)

    def test_year_zero_rejected(self):
        with pytest.raises(ValidationError):
            parse_month_key("0000-05")

    def test_first_supported_month_has_no_previous(self):
        with pytest.raises(ValidationError):
            build_month_period(NOW, "0001-01")


class TestDefaultMonth:
    def test_defaults_to_previous_month(self):
        assert build_month_period(NOW).month_key == "2026-01"

    def test_january_rolls_back_a_year(self):
        p = build_month_period(datetime(2026, 1, 1, 0, 0, tzinfo=timezone.utc))
        assert p.month_key == "2025-12"
        assert p.prev_month_key == "2025-11"

    def test_uses_utc_month_of_reference_instant(self):
        # 2026-03-01 01:00 in UTC+05:00 is still February in UTC
        tz = timezone(timedelta(hours=5))
        p = build_month_period(datetime(2026, 3, 1, 1, 0, tzinfo=tz))
        assert p.month_key == "2026-01"

    def test_naive_datetime_treated_as_utc(self):
        assert build_month_period(datetime(2026, 2, 14)).month_key == "2026-01"

    def test_deterministic(self):
        assert build_month_period(NOW, "2024-02") == build_month_period(NOW, "2024-02")


class TestPeriodProperties:
    @pytest.mark.parametrize("month", ALL_MONTHS)
    def test_end_equals_next_period_start(self, month):
        p = build_month_period(NOW, month)
        y, m = int(month[:4]), int(month[5:])
        nxt = f"{y + m // 12}-{m % 12 + 1:02d}"
        assert p.end_date_exclusive == build_month_period(NOW, nxt).start_date

    @pytest.mark.parametrize("month", ALL_MONTHS)
    def test_previous_is_contiguous_and_one_month_back(self, month):
        p = build_month_period(NOW, month)
        prev = build_month_period(NOW, p.prev_month_key)
        assert p.prev_end_date_exclusive == p.start_date
        assert p.prev_start_date == prev.start_date
        assert p.prev_end_date_exclusive == prev.end_date_exclusive


class TestWeeklyBuckets:
    @pytest.mark.parametrize("month", ALL_MONTHS)
    def test_windows_partition_the_month(self, month):
        p = build_month_period(NOW, month)
        windows = week_windows(p.start_date, p.end_date_exclusive)

        covered = []
        for start, end in windows:
            assert 1 <= (end - start).days <= 7
            d = start
            while d < end:
                covered.append(d)
                d += timedelta(days=1)

        expected = [p.start_date + timedelta(days=i) for i in range((p.end_date_exclusive - p.start_date).days)]
        assert covered == expected
        assert windows[0][0] == p.start_date
        assert all(a[1] == b[0] for a, b in zip(windows, windows[1:]))

    def test_february_leap_year_last_window(self):
        windows = week_windows(date(2024, 2, 1), date(2024, 3, 1))
        assert len(windows) == 5
        assert windows[-1] == (date(2024, 2, 29), date(2024, 3, 1))

    def test_february_non_leap_has_four_full_weeks(self):
        windows = week_windows(date(2026, 2, 1), date(2026, 3, 1))
        assert len(windows) == 4
        assert all((e - s).days == 7 for s, e in windows)

    def test_breakdown_sums_and_labels(self):
        daily = [
            DailyTrafficPoint(date=date(2026, 1, 1), requests=10, uniques=2, bytes=100),
            DailyTrafficPoint(date=date(2026, 1, 7), requests=5, uniques=1, bytes=50),
            DailyTrafficPoint(date=date(2026, 1, 8), requests=3, uniques=1, bytes=30),
            DailyTrafficPoint(date=date(2026, 1, 31), requests=7, uniques=3, bytes=70),
        ]
        rows = build_weekly_breakdown(daily, date(2026, 1, 1), date(2026, 2, 1))

        assert len(rows) == 5
        assert rows[0].label == "Week 1 (Jan 1 - Jan 7)"
        assert (rows[0].requests, rows[0].uniques, rows[0].bytes) == (15, 3, 150)
        assert rows[1].label == "Week 2 (Jan 8 - Jan 14)"
        assert rows[1].requests == 3
        assert rows[4].label == "Week 5 (Jan 29 - Jan 31)"
        assert rows[4].requests == 7

    def test_sparse_days_are_not_zero_filled_errors(self):
        rows = build_weekly_breakdown([], date(2026, 1, 1), date(2026, 2, 1))
        assert [r.requests for r in rows] == [0, 0, 0, 0, 0]

    def test_points_outside_month_ignored(self):
        daily = [DailyTrafficPoint(date=date(2026, 2, 1), requests=99)]
        rows = build_weekly_breakdown(daily, date(2026, 1, 1), date(2026, 2, 1))
        assert sum(r.requests for r in rows) == 0


class TestMonthLabel:
    def test_utc(self):
        assert format_month_label("2026-01", "UTC") == "January 2026"

    def test_western_timezone_keeps_month(self):
        assert format_month_label("2026-01", "America/Chicago") == "January 2026"

    def test_unknown_timezone_falls_back(self):
        assert format_month_label("2025-12", "Not/AZone") == "December 2025"
