"""
Site Reports — report trigger and read-back routes.
"""

import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from site_reports.config import SiteConfig, settings, site_from_settings
from site_reports.database import async_session, get_db
from site_reports.errors import AuthError, ConversionError, UpstreamError, ValidationError
from site_reports.models.monthly_report import MonthlyReport
from site_reports.models.report_run import ReportRun
from site_reports.pipeline.orchestrator import ReportPipeline
from site_reports.schemas import (
    ReportListResponse,
    ReportSummary,
    RunListResponse,
    RunRecord,
    RunReportResponse,
    TriggerType,
)
from site_reports.services.period import parse_month_key

logger = logging.getLogger(__name__)

reports_router = APIRouter(tags=["reports"])


@lru_cache(maxsize=1)
def get_pipeline() -> ReportPipeline:
    """FastAPI dependency — the process-wide pipeline built from settings."""
    return ReportPipeline.from_settings(settings, async_session)


def get_site() -> SiteConfig:
    """FastAPI dependency — the deployment's default site."""
    return site_from_settings(settings)


# ── Trigger ─────────────────────────────────────────────

@reports_router.api_route("/reports/run", methods=["GET", "POST"], response_model=RunReportResponse)
async def run_report(
    month: str | None = Query(None, description="Report month as YYYY-MM (defaults to last month)"),
    pipeline: ReportPipeline = Depends(get_pipeline),
    site: SiteConfig = Depends(get_site),
):
    try:
        result = await pipeline.run(site, TriggerType.MANUAL, month_override=month)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AuthError as e:
        raise HTTPException(status_code=502, detail=f"Upstream credentials rejected: {e}")
    except (UpstreamError, ConversionError) as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.error("Manual report run failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

    return RunReportResponse(
        month=result.month_key,
        run_id=result.run_id,
        html_key=result.html_key,
        pdf_key=result.pdf_key,
        warnings=result.snapshot.warnings,
    )


# ── Read back ───────────────────────────────────────────

@reports_router.get("/reports", response_model=ReportListResponse)
async def list_reports(
    site: SiteConfig = Depends(get_site),
    session: AsyncSession = Depends(get_db),
):
    rows = (
        await session.execute(
            select(MonthlyReport)
            .where(MonthlyReport.client_id == site.client_id)
            .order_by(MonthlyReport.report_month.desc())
        )
    ).scalars().all()
    return ReportListResponse(
        reports=[ReportSummary.model_validate(r) for r in rows],
        total=len(rows),
    )


@reports_router.get("/reports/{month}")
async def get_report(
    month: str,
    site: SiteConfig = Depends(get_site),
    session: AsyncSession = Depends(get_db),
):
    try:
        parse_month_key(month)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    row = await session.get(MonthlyReport, (site.client_id, month))
    if not row:
        raise HTTPException(status_code=404, detail=f"No report for {month}")
    return {
        "client_id": row.client_id,
        "report_month": row.report_month,
        "html_key": row.html_key,
        "pdf_key": row.pdf_key,
        "snapshot": row.snapshot_json,
    }


@reports_router.get("/runs", response_model=RunListResponse)
async def list_runs(
    limit: int = Query(20, ge=1, le=200),
    site: SiteConfig = Depends(get_site),
    session: AsyncSession = Depends(get_db),
):
    total = (
        await session.execute(
            select(func.count()).select_from(ReportRun).where(ReportRun.client_id == site.client_id)
        )
    ).scalar_one()
    rows = (
        await session.execute(
            select(ReportRun)
            .where(ReportRun.client_id == site.client_id)
            .order_by(ReportRun.started_at.desc())
            .limit(limit)
        )
    ).scalars().all()
    return RunListResponse(runs=[RunRecord.model_validate(r) for r in rows], total=total)
