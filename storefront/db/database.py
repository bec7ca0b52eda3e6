"""Async engine and session factory for the client store."""
import logging
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from storefront.core.config import settings
from storefront.db.models import Base

logger = logging.getLogger(__name__)


def async_database_url(url: str) -> str:
    """Pick the async driver for plain postgres and sqlite URLs."""
    for sync_prefix, async_prefix in (
        ("postgresql://", "postgresql+asyncpg://"),
        ("sqlite://", "sqlite+aiosqlite://"),
    ):
        if url.startswith(sync_prefix):
            return url.replace(sync_prefix, async_prefix, 1)
    return url


engine = create_async_engine(async_database_url(settings.database_url), echo=False)

# One short-lived session per store operation
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def init_db() -> None:
    """Create the client store table if it does not exist."""
    logger.info("[DB] Ensuring client_store table exists")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
