"""
Site Reports — Async SQLAlchemy engine, sessions and table setup.

SQLite (default, tests) and PostgreSQL (asyncpg) are both supported; only
the pool options differ.
"""

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from site_reports.config import settings


def _engine_options(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {}
    return {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }


engine = create_async_engine(settings.database_url, echo=False, **_engine_options(settings.database_url))

# shared by request handlers, the pipeline and the run tracker
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency — one session per request."""
    async with async_session() as session:
        yield session


async def init_db() -> None:
    """Create monthly_reports / report_runs if missing."""
    from site_reports import models  # noqa: F401  (register tables)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
