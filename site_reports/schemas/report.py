"""
Report data model — period, traffic, security, performance and the
immutable ReportSnapshot aggregate.
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# ── Period ──────────────────────────────────────────────

class MonthPeriod(_Frozen):
    """Target calendar month plus the month before it (UTC)."""

    month_key: str
    start_date: date
    end_date_exclusive: date
    prev_month_key: str
    prev_start_date: date
    prev_end_date_exclusive: date
    start_datetime: datetime
    end_datetime_exclusive: datetime
    prev_start_datetime: datetime
    prev_end_datetime_exclusive: datetime


# ── Traffic ─────────────────────────────────────────────

class DailyTrafficPoint(_Frozen):
    date: date
    requests: int = 0
    uniques: int = 0
    bytes: int = 0


class TopPath(_Frozen):
    path: str
    requests: int = 0


class MetricWithDelta(_Frozen):
    current: int
    previous: int
    delta_percent: float | None = None


class WeeklyTrafficRow(_Frozen):
    label: str
    requests: int = 0
    uniques: int = 0
    bytes: int = 0


class TrafficSnapshot(_Frozen):
    requests: MetricWithDelta
    unique_visitors: MetricWithDelta
    bandwidth: MetricWithDelta
    weekly_breakdown: list[WeeklyTrafficRow] = []
    top_paths: list[TopPath] = []


# ── Security ────────────────────────────────────────────

class SecurityEventGroup(_Frozen):
    source: str = "unknown"
    action: str = "unknown"
    count: int = 0


class SecurityCategoryRow(_Frozen):
    label: str  # "source/action"
    count: int


class SecuritySnapshot(_Frozen):
    total_firewall_actions: int = 0
    bot_rate_limit_actions: int = 0
    top_categories: list[SecurityCategoryRow] = []


# ── Performance ─────────────────────────────────────────

class LighthouseScores(_Frozen):
    """Category scores 0–100, None when the probe had no value."""

    performance: int | None = None
    accessibility: int | None = None
    best_practices: int | None = None
    seo: int | None = None


class CoreWebVital(_Frozen):
    id: str
    title: str
    display_value: str
    numeric_value: float | None = None


class Opportunity(_Frozen):
    title: str
    savings_ms: int


class ProbeResult(_Frozen):
    """One PageSpeed run for one device."""

    scores: LighthouseScores = LighthouseScores()
    vitals: list[CoreWebVital] = []
    opportunities: list[Opportunity] = []


class PageSpeedResult(_Frozen):
    url: str
    mobile: LighthouseScores
    desktop: LighthouseScores
    vitals: list[CoreWebVital] = []
    opportunities: list[Opportunity] = []


# ── Aggregate ───────────────────────────────────────────

class AggregationResult(_Frozen):
    traffic: TrafficSnapshot
    security: SecuritySnapshot
    performance: list[PageSpeedResult] = []
    warnings: list[str] = []


class ReportSnapshot(_Frozen):
    """Full payload for one generated report, identity (client_id, month_key)."""

    client_id: str
    zone_id: str
    domain: str
    month_key: str
    month_label: str
    timezone: str
    generated_at: datetime
    traffic: TrafficSnapshot
    security: SecuritySnapshot
    performance: list[PageSpeedResult] = []
    warnings: list[str] = []

    def to_document(self) -> dict:
        """JSON-safe dict stored alongside the row for audit/replay."""
        return self.model_dump(mode="json")


class GeneratedReport(_Frozen):
    month_key: str
    run_id: str
    html_key: str
    pdf_key: str
    snapshot: ReportSnapshot
