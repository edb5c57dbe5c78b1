"""Engine and session factory shared by the session and quota stores.

PostgreSQL (asyncpg) in deployments, SQLite (aiosqlite) for local runs and tests.
Stores receive the session factory; nothing here is request-scoped.
"""

import logging
from datetime import datetime, UTC

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from callplane.config.settings import settings
from callplane.config.constants import DB_POOL_SIZE, DB_POOL_MAX_OVERFLOW, SQLITE_BUSY_TIMEOUT_SEC

logger = logging.getLogger(__name__)

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp; all DateTime columns store naive UTC."""
    return datetime.now(UTC).replace(tzinfo=None)


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Async engine for `url`. SQLite gets a busy timeout instead of a pool."""
    if url.startswith("sqlite"):
        return create_async_engine(
            url, echo=echo, future=True, connect_args={"timeout": SQLITE_BUSY_TIMEOUT_SEC}
        )
    return create_async_engine(
        url,
        echo=echo,
        future=True,
        pool_pre_ping=True,
        pool_size=DB_POOL_SIZE,
        max_overflow=DB_POOL_MAX_OVERFLOW,
    )


def build_session_factory(bind: AsyncEngine) -> sessionmaker:
    # Rows are read after commit by the stores' callers
    return sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url, echo=settings.DEBUG)
AsyncSessionLocal = build_session_factory(engine)


async def init_db(bind: AsyncEngine = engine):
    """Create missing call tables. Alembic owns schema changes after that."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("✅ [DB] Call tables ready")


async def close_db(bind: AsyncEngine = engine):
    await bind.dispose()
    logger.info("[DB] Connection pool closed")
