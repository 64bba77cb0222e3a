"""
Async SQLAlchemy engine and session factory.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncGenerator, Dict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from auth.store import StoreError
from config.settings import config
from database.models import Base

logger = logging.getLogger(__name__)


def build_engine(url: str) -> AsyncEngine:
    kwargs: Dict[str, Any] = {"echo": False}
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=config.db_pool_size,
            max_overflow=config.db_max_overflow,
            pool_recycle=3600,
            pool_pre_ping=True,
        )
    return create_async_engine(url, **kwargs)


engine = build_engine(config.database_url)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_models(bind: AsyncEngine = engine) -> None:
    """Create the ``users`` / ``auth_sessions`` tables if they are missing."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency function — use in FastAPI `Depends(get_db_session)`."""
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        try:
            await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Commit failed: %s", exc)
            await session.rollback()
            raise StoreError(str(exc)) from exc
