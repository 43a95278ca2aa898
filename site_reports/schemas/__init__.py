"""
Site Reports — Pydantic request/response schemas.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from site_reports.schemas.report import (  # noqa: F401
    AggregationResult,
    CoreWebVital,
    DailyTrafficPoint,
    GeneratedReport,
    LighthouseScores,
    MetricWithDelta,
    MonthPeriod,
    Opportunity,
    PageSpeedResult,
    ProbeResult,
    ReportSnapshot,
    SecurityCategoryRow,
    SecurityEventGroup,
    SecuritySnapshot,
    TopPath,
    TrafficSnapshot,
    WeeklyTrafficRow,
)


class TriggerType(str, Enum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"


class RunStatus(str, Enum):
    STARTED = "started"
    SUCCESS = "success"
    FAILED = "failed"


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = "site-reports"
    version: str = "1.0.0"
    timestamp: str | None = None


class RunReportResponse(BaseModel):
    ok: bool = True
    month: str
    run_id: str
    html_key: str
    pdf_key: str
    warnings: list[str] = []


class ReportSummary(BaseModel):
    client_id: str
    report_month: str
    domain: str
    timezone: str
    generated_at: datetime | str | None = None
    html_key: str
    pdf_key: str

    model_config = {"from_attributes": True}


class ReportListResponse(BaseModel):
    reports: list[ReportSummary]
    total: int


class RunRecord(BaseModel):
    run_id: str
    client_id: str
    report_month: str
    trigger_type: TriggerType
    status: RunStatus
    started_at: datetime | None = None
    finished_at: datetime | None = None
    html_key: str | None = None
    pdf_key: str | None = None
    warning_count: int = 0
    error_message: str | None = None
    duration_secs: float | None = None

    model_config = {"from_attributes": True}


class RunListResponse(BaseModel):
    runs: list[RunRecord]
    total: int
