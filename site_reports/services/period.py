"""
Period calculator — calendar month windows and weekly buckets.

Pure and deterministic: the same (reference instant, override) always
yields the same MonthPeriod, which is what makes a re-run of a month
land on the same snapshot identity and artifact keys.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from site_reports.errors import ValidationError
from site_reports.schemas.report import DailyTrafficPoint, MonthPeriod, WeeklyTrafficRow

logger = logging.getLogger(__name__)

MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")
WEEK_DAYS = 7


# ─────────────────────────────────────────────────────────────────────
# helpers
# ─────────────────────────────────────────────────────────────────────

def _shift_month(first_of_month: date, offset: int) -> date:
    """First day of the month ``offset`` months away."""
    index = first_of_month.year * 12 + (first_of_month.month - 1) + offset
    return date(index // 12, index % 12 + 1, 1)


def _month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def _utc_midnight(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


def parse_month_key(month_key: str) -> date:
    """``"YYYY-MM"`` → first day of that month. Raises ValidationError."""
    match = MONTH_KEY_RE.match(month_key or "")
    if not match:
        raise ValidationError("month must use YYYY-MM format")
    year, month = int(match.group(1)), int(match.group(2))
    if month < 1 or month > 12:
        raise ValidationError("month must be between 01 and 12")
    try:
        return date(year, month, 1)
    except ValueError as e:
        raise ValidationError(f"month {month_key} is out of range") from e


# ─────────────────────────────────────────────────────────────────────
# month period
# ─────────────────────────────────────────────────────────────────────

def build_month_period(now: datetime, month_override: str | None = None) -> MonthPeriod:
    """
    Resolve the report month.

    With ``month_override`` the given month is used; otherwise the calendar
    month before ``now``'s UTC month (a report covers a completed month).
    """
    if month_override is not None:
        target = parse_month_key(month_override)
    else:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        utc_now = now.astimezone(timezone.utc)
        target = _shift_month(date(utc_now.year, utc_now.month, 1), -1)

    try:
        target_end = _shift_month(target, 1)
        prev_start = _shift_month(target, -1)
    except ValueError as e:
        raise ValidationError(f"month {_month_key(target)} is out of range") from e

    return MonthPeriod(
        month_key=_month_key(target),
        start_date=target,
        end_date_exclusive=target_end,
        prev_month_key=_month_key(prev_start),
        prev_start_date=prev_start,
        prev_end_date_exclusive=target,
        start_datetime=_utc_midnight(target),
        end_datetime_exclusive=_utc_midnight(target_end),
        prev_start_datetime=_utc_midnight(prev_start),
        prev_end_datetime_exclusive=_utc_midnight(target),
    )


def format_month_label(month_key: str, tz_name: str = "UTC") -> str:
    """Human label such as ``"January 2026"``, month start taken as local midnight."""
    first = parse_month_key(month_key)
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r — labelling month in UTC", tz_name)
        tz = timezone.utc
    return datetime.combine(first, time.min, tzinfo=tz).strftime("%B %Y")


# ─────────────────────────────────────────────────────────────────────
# weekly buckets
# ─────────────────────────────────────────────────────────────────────

def week_windows(start_date: date, end_date_exclusive: date) -> list[tuple[date, date]]:
    """Consecutive 7-day ``[start, end)`` windows; the last one stops at the month end."""
    windows: list[tuple[date, date]] = []
    cursor = start_date
    while cursor < end_date_exclusive:
        window_end = min(cursor + timedelta(days=WEEK_DAYS), end_date_exclusive)
        windows.append((cursor, window_end))
        cursor = window_end
    return windows


def _fmt_day(d: date) -> str:
    return f"{d.strftime('%b')} {d.day}"


def build_weekly_breakdown(
    daily: Iterable[DailyTrafficPoint],
    start_date: date,
    end_date_exclusive: date,
) -> list[WeeklyTrafficRow]:
    """Sum daily points into week rows. Missing days count as zero."""
    by_date = {point.date: point for point in daily}

    rows: list[WeeklyTrafficRow] = []
    for index, (week_start, week_end) in enumerate(week_windows(start_date, end_date_exclusive), 1):
        requests = uniques = total_bytes = 0
        day = week_start
        while day < week_end:
            point = by_date.get(day)
            if point:
                requests += point.requests
                uniques += point.uniques
                total_bytes += point.bytes
            day += timedelta(days=1)

        last_day = week_end - timedelta(days=1)
        rows.append(WeeklyTrafficRow(
            label=f"Week {index} ({_fmt_day(week_start)} - {_fmt_day(last_day)})",
            requests=requests,
            uniques=uniques,
            bytes=total_bytes,
        ))
    return rows
