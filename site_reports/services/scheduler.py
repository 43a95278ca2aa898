"""
Scheduled trigger — monthly cron job plus a startup catch-up.

The cron job fires on ``schedule_day`` at ``schedule_hour`` UTC and
generates last month's report with no override. On startup, if last
month has no persisted snapshot yet, the catch-up runs it immediately so
a missed cron window doesn't lose a month. Scheduled failures are logged
and never raised into the scheduler.
"""

import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from site_reports.config import Settings, SiteConfig
from site_reports.pipeline.orchestrator import ReportPipeline
from site_reports.schemas import TriggerType
from site_reports.schemas.report import GeneratedReport
from site_reports.services.period import build_month_period

logger = logging.getLogger("reports.scheduler")

JOB_ID = "monthly-report"


async def run_scheduled_report(
    pipeline: ReportPipeline,
    site: SiteConfig,
    now: datetime | None = None,
) -> GeneratedReport | None:
    try:
        return await pipeline.run(site, TriggerType.SCHEDULED, now=now)
    except Exception as e:
        logger.error("❌ Scheduled report for %s failed: %s", site.client_id, e)
        return None


async def catch_up_if_needed(
    pipeline: ReportPipeline,
    site: SiteConfig,
    now: datetime | None = None,
) -> GeneratedReport | None:
    """Run last month's report if it hasn't been generated yet."""
    now = now or datetime.now(timezone.utc)
    month_key = build_month_period(now).month_key
    try:
        if await pipeline.gateway.has_report(site.client_id, month_key):
            logger.info("✅ Report for %s/%s already present — no catch-up needed", site.client_id, month_key)
            return None
    except Exception as e:
        logger.error("Catch-up check failed: %s", e)
        return None

    logger.info("⚠️  No report for %s/%s — running catch-up now", site.client_id, month_key)
    return await run_scheduled_report(pipeline, site, now)


def build_scheduler(pipeline: ReportPipeline, site: SiteConfig, settings: Settings) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_scheduled_report,
        CronTrigger(day=settings.schedule_day, hour=settings.schedule_hour, minute=0, timezone="UTC"),
        args=[pipeline, site],
        id=JOB_ID,
        replace_existing=True,
        coalesce=True,
        max_instances=1,
        misfire_grace_time=3600,
    )
    return scheduler
