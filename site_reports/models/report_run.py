"""
Site Reports — report generation run log.

A row is inserted when an attempt starts and finalized exactly once when
it ends (``success`` or ``failed``). Rows are never re-opened.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from site_reports.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReportRun(Base):
    __tablename__ = "report_runs"

    run_id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    client_id: Mapped[str] = mapped_column(String(100), nullable=False)
    report_month: Mapped[str] = mapped_column(String(7), nullable=False)
    trigger_type: Mapped[str] = mapped_column(String(20), nullable=False)  # "manual" | "scheduled"
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="started")

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    html_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    pdf_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    warning_count: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_report_runs_client_month", "client_id", "report_month"),
    )

    @property
    def duration_secs(self) -> float | None:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def __repr__(self):
        return f"<ReportRun {self.run_id} {self.client_id}/{self.report_month} {self.status}>"
