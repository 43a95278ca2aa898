"""
FastAPI Application — entry point.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from site_reports import __version__
from site_reports.config import settings, site_from_settings
from site_reports.database import close_db, init_db
from site_reports.routes import router
from site_reports.routes.reports import get_pipeline
from site_reports.services.scheduler import build_scheduler, catch_up_if_needed

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown hook."""
    logger.info("🚀 Starting Site Reports API v%s", __version__)
    await init_db()
    logger.info("✅ Database ready")

    scheduler = None
    catch_up_task = None
    if settings.schedule_enabled:
        pipeline = get_pipeline()
        site = site_from_settings(settings)
        scheduler = build_scheduler(pipeline, site, settings)
        scheduler.start()
        logger.info(
            "⏰ Monthly report scheduled (day %d, %02d:00 UTC) for %s",
            settings.schedule_day, settings.schedule_hour, site.client_id,
        )
        catch_up_task = asyncio.create_task(catch_up_if_needed(pipeline, site))
    else:
        logger.info("ℹ️ Scheduled reports disabled")

    yield

    # Shutdown
    if catch_up_task:
        catch_up_task.cancel()
        try:
            await catch_up_task
        except asyncio.CancelledError:
            pass
    if scheduler:
        scheduler.shutdown(wait=False)
    await close_db()
    logger.info("👋 Shutdown complete")


app = FastAPI(
    title="Site Reports API",
    description="Monthly traffic, security and performance reports per site.",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "Site Reports API",
        "version": __version__,
        "docs": "/docs",
        "routes": ["/api/v1/health", "/api/v1/reports/run?month=YYYY-MM", "/api/v1/reports", "/api/v1/runs"],
    }


def main():
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
