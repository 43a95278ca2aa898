"""
API Routes — health + report routes.
"""

from datetime import datetime, timezone

from fastapi import APIRouter

from site_reports import __version__
from site_reports.routes.reports import reports_router
from site_reports.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health():
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
    )


router.include_router(reports_router)
