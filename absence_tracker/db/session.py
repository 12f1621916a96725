from typing import Any, AsyncIterator, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from absence_tracker.core.config import settings


def engine_options(database_url: str) -> Dict[str, Any]:
    # No pool tuning for SQLite (local runs and tests)
    if make_url(database_url).get_backend_name() == "sqlite":
        return {"echo": False}
    return {"echo": False, "pool_pre_ping": True, "pool_recycle": 300}


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

# expire_on_commit=False: services return ORM rows after committing.
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session


async def create_tables() -> None:
    """Create missing tables. Used when AUTO_CREATE_TABLES is set; deployed databases are migrated separately."""
    from absence_tracker.core import models  # noqa: F401  registers mappers on Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
