"""
Report Orchestrator — one monthly report run, end to end.

period → aggregate (sources) → snapshot → render → PDF → persist,
bracketed by the run tracker. Nothing is persisted until the snapshot is
built and both artifacts are rendered.
"""

import functools
import logging
import traceback
from datetime import datetime, timezone
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from site_reports.config import Settings, SiteConfig
from site_reports.pipeline.aggregator import Aggregator
from site_reports.pipeline.persistence import PersistenceGateway
from site_reports.pipeline.run_tracker import RunTracker
from site_reports.pipeline.snapshot import build_snapshot
from site_reports.schemas import RunStatus, TriggerType
from site_reports.schemas.report import GeneratedReport
from site_reports.services import renderer
from site_reports.services.cloudflare import CloudflareClient, SecuritySource, TrafficSource
from site_reports.services.pagespeed import PageSpeedSource
from site_reports.services.pdf import html_to_pdf
from site_reports.services.period import build_month_period
from site_reports.services.storage import LocalBlobStore

logger = logging.getLogger("reports.pipeline")

RenderFn = Callable[..., str]
PdfFn = Callable[[str], Awaitable[bytes]]


class ReportPipeline:
    """Holds the collaborators for report runs; ``run`` executes one attempt."""

    def __init__(
        self,
        aggregator: Aggregator,
        gateway: PersistenceGateway,
        session_factory: async_sessionmaker[AsyncSession],
        render: RenderFn = renderer.render,
        to_pdf: PdfFn | None = None,
    ):
        self.aggregator = aggregator
        self.gateway = gateway
        self.session_factory = session_factory
        self.render = render
        self.to_pdf = to_pdf

    @classmethod
    def from_settings(cls, settings: Settings, session_factory: async_sessionmaker[AsyncSession]) -> "ReportPipeline":
        client = CloudflareClient(settings.cf_api_token, timeout_secs=settings.http_timeout_secs)
        aggregator = Aggregator(
            traffic=TrafficSource(client),
            security=SecuritySource(client),
            performance=PageSpeedSource(
                settings.psi_api_key,
                timeout_secs=max(settings.http_timeout_secs, 60),
                extended=settings.pagespeed_extended,
            ),
        )
        gateway = PersistenceGateway(session_factory, LocalBlobStore(settings.reports_dir))
        to_pdf = functools.partial(
            html_to_pdf,
            account_id=settings.cf_account_id,
            api_token=settings.cf_api_token,
            timeout_secs=settings.pdf_timeout_secs,
        )
        return cls(aggregator, gateway, session_factory, to_pdf=to_pdf)

    async def run(
        self,
        site: SiteConfig,
        trigger: TriggerType,
        month_override: str | None = None,
        now: datetime | None = None,
    ) -> GeneratedReport:
        """Generate, render and persist the report for one month.

        Raises ValidationError for a bad ``month_override`` (before any run
        is recorded); every other failure is recorded on the run and
        re-raised.
        """
        period = build_month_period(now or datetime.now(timezone.utc), month_override)

        tracker = RunTracker(self.session_factory, site.client_id, period.month_key, trigger)
        await tracker.start()
        logger.info("🚀 Generating %s report for %s (%s)", period.month_key, site.client_id, tracker.trigger.value)

        status, error = RunStatus.FAILED, None
        html_key = pdf_key = None
        warning_count = 0
        try:
            aggregation = await self.aggregator.aggregate(site, period)
            warning_count = len(aggregation.warnings)
            snapshot = build_snapshot(site, period, aggregation)

            html = self.render(snapshot)
            if self.to_pdf is None:
                raise RuntimeError("No PDF converter configured")
            pdf = await self.to_pdf(html)

            html_key, pdf_key = await self.gateway.save(snapshot, html, pdf)
            status = RunStatus.SUCCESS
        except BaseException as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.error("💥 Report %s/%s failed:\n%s", site.client_id, period.month_key, traceback.format_exc())
            raise
        finally:
            await tracker.finish(
                status,
                html_key=html_key,
                pdf_key=pdf_key,
                warning_count=warning_count,
                error=error,
            )

        logger.info("🎉 Report %s ready — %s, %s", period.month_key, html_key, pdf_key)
        return GeneratedReport(
            month_key=period.month_key,
            run_id=tracker.run_id,
            html_key=html_key,
            pdf_key=pdf_key,
            snapshot=snapshot,
        )
