"""Async engine and per-request sessions for the account database."""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

logger = logging.getLogger(__name__)


def build_engine(url: str) -> AsyncEngine:
    """Engine with the pool settings from config.

    Connections are pinged on checkout and recycled periodically so a
    database restart does not surface as errors on the next requests.
    """
    return create_async_engine(
        url,
        echo=settings.database_echo,
        pool_pre_ping=True,
        pool_size=settings.database_pool_size,
        pool_recycle=settings.database_pool_recycle_seconds,
    )


engine = build_engine(settings.database_url)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session; roll back whatever is uncommitted if the request fails."""
    async with async_session() as session:
        try:
            yield session
        except Exception:
            logger.warning("Rolling back session after request error")
            await session.rollback()
            raise


async def dispose_engine() -> None:
    await engine.dispose()
    logger.info("Database connections closed")
