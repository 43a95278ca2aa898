"""
Persistence gateway — the only writer of durable report state.

Artifacts go to the blob store under deterministic keys
(``reports/{client_id}/{month}.html|.pdf``) and the snapshot row is
upserted on (client_id, report_month). Both overwrite on re-generation.
"""

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from site_reports.models.monthly_report import MonthlyReport
from site_reports.schemas.report import ReportSnapshot
from site_reports.services.storage import BlobStore

logger = logging.getLogger("reports.persistence")

HTML_CONTENT_TYPE = "text/html; charset=utf-8"
PDF_CONTENT_TYPE = "application/pdf"


def artifact_keys(client_id: str, month_key: str) -> tuple[str, str]:
    prefix = f"reports/{client_id}/{month_key}"
    return f"{prefix}.html", f"{prefix}.pdf"


class PersistenceGateway:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], blob_store: BlobStore):
        self._session_factory = session_factory
        self.blob_store = blob_store

    async def write_artifacts(self, snapshot: ReportSnapshot, html: str, pdf: bytes) -> tuple[str, str]:
        html_key, pdf_key = artifact_keys(snapshot.client_id, snapshot.month_key)
        await asyncio.gather(
            self.blob_store.put(html_key, html.encode("utf-8"), HTML_CONTENT_TYPE),
            self.blob_store.put(pdf_key, pdf, PDF_CONTENT_TYPE),
        )
        logger.info("💾 Stored artifacts %s, %s", html_key, pdf_key)
        return html_key, pdf_key

    async def upsert_snapshot(self, snapshot: ReportSnapshot, html_key: str, pdf_key: str) -> None:
        """Insert or replace the (client_id, report_month) row. Last write wins."""
        row = MonthlyReport(
            client_id=snapshot.client_id,
            report_month=snapshot.month_key,
            zone_id=snapshot.zone_id,
            domain=snapshot.domain,
            timezone=snapshot.timezone,
            generated_at=snapshot.generated_at,
            html_key=html_key,
            pdf_key=pdf_key,
            snapshot_json=snapshot.to_document(),
        )
        async with self._session_factory() as session:
            await session.merge(row)
            await session.commit()
        logger.info("💾 Upserted snapshot %s/%s", snapshot.client_id, snapshot.month_key)

    async def save(self, snapshot: ReportSnapshot, html: str, pdf: bytes) -> tuple[str, str]:
        """Artifacts first, then the row. A crash in between leaves a retryable month."""
        html_key, pdf_key = await self.write_artifacts(snapshot, html, pdf)
        await self.upsert_snapshot(snapshot, html_key, pdf_key)
        return html_key, pdf_key

    async def has_report(self, client_id: str, month_key: str) -> bool:
        async with self._session_factory() as session:
            found = (
                await session.execute(
                    select(MonthlyReport.report_month).where(
                        MonthlyReport.client_id == client_id,
                        MonthlyReport.report_month == month_key,
                    )
                )
            ).scalar_one_or_none()
        return found is not None
