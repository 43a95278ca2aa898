"""
Shared test fixtures — async DB, fake sources, pipeline, FastAPI test client.
"""

from datetime import date, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from site_reports.config import SiteConfig
from site_reports.database import Base, get_db
from site_reports.errors import UpstreamError
from site_reports.main import app
from site_reports.pipeline.aggregator import Aggregator
from site_reports.pipeline.orchestrator import ReportPipeline
from site_reports.pipeline.persistence import PersistenceGateway
from site_reports.routes.reports import get_pipeline, get_site
from site_reports.schemas.report import (
    DailyTrafficPoint,
    LighthouseScores,
    PageSpeedResult,
    SecurityEventGroup,
    TopPath,
)
from site_reports.services.storage import LocalBlobStore

import site_reports.models  # noqa: F401  (register tables)


# ── Test Database (SQLite in-memory) ────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture()
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ── Sample data ─────────────────────────────────────────

DEMO_SITE = SiteConfig(
    client_id="demo-client",
    zone_id="zone-123",
    domain="example.ie",
    pagespeed_urls=["https://example.ie/", "https://example.ie/"],
    timezone="Europe/Dublin",
)


def daily_points(month_start: date, days: int, total_requests: int) -> list[DailyTrafficPoint]:
    """``days`` consecutive points whose requests sum to ``total_requests``."""
    base, remainder = divmod(total_requests, days)
    points = []
    for i in range(days):
        requests = base + (remainder if i == 0 else 0)
        points.append(DailyTrafficPoint(
            date=month_start + timedelta(days=i),
            requests=requests,
            uniques=requests // 10,
            bytes=requests * 1024,
        ))
    return points


SAMPLE_SECURITY = [
    SecurityEventGroup(source="firewallManaged", action="block", count=40),
    SecurityEventGroup(source="botFight", action="managed_challenge", count=25),
    SecurityEventGroup(source="rateLimit", action="Block", count=25),
    SecurityEventGroup(source="firewallCustom", action="log", count=5),
]

SAMPLE_SCORES = LighthouseScores(performance=91, accessibility=88, best_practices=100, seo=95)


# ── Fake sources ────────────────────────────────────────

class FakeTrafficSource:
    """Serves daily points keyed by the requested range start."""

    def __init__(self, by_start: dict[date, list[DailyTrafficPoint]], top_paths=None, fail: Exception | None = None,
                 top_paths_error: Exception | None = None):
        self.by_start = by_start
        self.top_paths = top_paths if top_paths is not None else [TopPath(path="/", requests=500)]
        self.fail = fail
        self.top_paths_error = top_paths_error
        self.calls: list[tuple[date, date]] = []

    async def fetch(self, zone_id, start_date, end_date_exclusive):
        self.calls.append((start_date, end_date_exclusive))
        if self.fail:
            raise self.fail
        return list(self.by_start.get(start_date, []))

    async def fetch_top_paths(self, zone_id, period, limit=5):
        if self.top_paths_error:
            raise self.top_paths_error
        return list(self.top_paths)


class FakeSecuritySource:
    def __init__(self, groups=None, fail: Exception | None = None):
        self.groups = groups if groups is not None else list(SAMPLE_SECURITY)
        self.fail = fail

    async def fetch(self, zone_id, period):
        if self.fail:
            raise self.fail
        return list(self.groups)


class FakePageSpeedSource:
    def __init__(self, warnings=None, fail: Exception | None = None):
        self.warnings = warnings or []
        self.fail = fail
        self.requested: list[list[str]] = []

    async def fetch(self, urls):
        self.requested.append(list(urls))
        if self.fail:
            raise self.fail
        unique = list(dict.fromkeys(urls))
        results = [PageSpeedResult(url=u, mobile=SAMPLE_SCORES, desktop=SAMPLE_SCORES) for u in unique]
        return results, list(self.warnings)


def january_traffic() -> FakeTrafficSource:
    """2026-01: 10,000 requests over 31 days vs 8,000 in 2025-12."""
    return FakeTrafficSource({
        date(2026, 1, 1): daily_points(date(2026, 1, 1), 31, 10_000),
        date(2025, 12, 1): daily_points(date(2025, 12, 1), 31, 8_000),
    })


@pytest.fixture
def traffic_source():
    return january_traffic()


@pytest.fixture
def security_source():
    return FakeSecuritySource()


@pytest.fixture
def pagespeed_source():
    return FakePageSpeedSource()


@pytest.fixture
def aggregator(traffic_source, security_source, pagespeed_source):
    return Aggregator(traffic_source, security_source, pagespeed_source)


# ── Pipeline ────────────────────────────────────────────

@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(tmp_path / "blobs")


async def fake_pdf(html: str) -> bytes:
    return b"%PDF-1.7\n" + str(len(html)).encode() + b"\n%%EOF"


@pytest_asyncio.fixture()
async def pipeline(aggregator, session_factory, blob_store):
    gateway = PersistenceGateway(session_factory, blob_store)
    return ReportPipeline(aggregator, gateway, session_factory, to_pdf=fake_pdf)


# ── FastAPI client ──────────────────────────────────────

@pytest_asyncio.fixture()
async def client(session_factory, pipeline):
    """FastAPI test client with test DB and pipeline injected."""

    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_site] = lambda: DEMO_SITE

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def upstream_down():
    return UpstreamError("Cloudflare GraphQL request failed (503): upstream unavailable")
