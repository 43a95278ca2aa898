"""
Site Reports — persisted monthly report snapshot.

One row per (client_id, report_month). Re-generating a month replaces the
row; ``snapshot_json`` carries the full snapshot document so a report can
be audited or re-rendered without depending on the row's columns.
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from site_reports.database import Base


class MonthlyReport(Base):
    __tablename__ = "monthly_reports"

    client_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    report_month: Mapped[str] = mapped_column(String(7), primary_key=True)  # "YYYY-MM"

    zone_id: Mapped[str] = mapped_column(String(64), nullable=False)
    domain: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    html_key: Mapped[str] = mapped_column(String(512), nullable=False)
    pdf_key: Mapped[str] = mapped_column(String(512), nullable=False)

    snapshot_json: Mapped[dict] = mapped_column(JSON, nullable=False)

    def __repr__(self):
        return f"<MonthlyReport {self.client_id}/{self.report_month}>"
