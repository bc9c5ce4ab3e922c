"""Async database access backing the SQL collection store."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from medtrack.config import settings
from medtrack.models import Base

logger = logging.getLogger("medtrack.database")

MAX_RETRY_DELAY_SECONDS = 10.0


def build_engine(url: Optional[str] = None, **overrides: Any) -> AsyncEngine:
    """Create an async engine with the configured pool options.

    ``overrides`` win over settings, e.g. a smaller pool for tests.
    """
    options: dict[str, Any] = {
        "echo": settings.database_echo,
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_timeout": 30,
        "pool_recycle": settings.database_pool_recycle,
        "pool_pre_ping": settings.database_pool_pre_ping,
    }
    options.update(overrides)
    return create_async_engine(url or settings.database_url, **options)


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine()
async_session_maker = build_session_maker(engine)


def _retry_delay(attempt: int) -> float:
    return min(settings.database_init_retry_delay_seconds * attempt, MAX_RETRY_DELAY_SECONDS)


async def init_db() -> None:
    """Wait for the database and create ``patient_records`` in debug mode.

    Connection failures are retried ``database_init_retries`` times with a
    linearly growing delay so the API can start next to its database
    container. The last failure is re-raised.
    """
    attempts = settings.database_init_retries + 1
    for attempt in range(1, attempts + 1):
        try:
            async with engine.begin() as conn:
                if settings.debug:
                    await conn.run_sync(Base.metadata.create_all)
            break
        except Exception as exc:
            if attempt == attempts:
                logger.exception("Database unavailable after %d attempts", attempt)
                raise
            delay = _retry_delay(attempt)
            logger.warning(
                "Database not ready (attempt %d/%d, %s); retrying in %.1fs",
                attempt,
                attempts,
                type(exc).__name__,
                delay,
            )
            await asyncio.sleep(delay)

    if attempt > 1:
        logger.info("Database reachable after %d attempts", attempt)
    if not settings.debug:
        logger.info("Skipping create_all outside debug; patient_records must already exist")


async def close_db() -> None:
    await engine.dispose()


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """One unit of work: commit on success, roll back on error."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
