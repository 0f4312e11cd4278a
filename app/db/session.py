from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.settings import settings
from app.db.url import normalize_database_url

engine = create_async_engine(normalize_database_url(settings.database_url), future=True, echo=False)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


async def commit_or_rollback(db: AsyncSession) -> None:
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise


async def commit_in_savepoint(db: AsyncSession, *instances: Any) -> None:
    """Flush ``instances`` inside a SAVEPOINT, then commit.

    A failed flush rolls back only the savepoint, so rows committed earlier in
    the session stay loaded and usable by the caller.
    """
    async with db.begin_nested():
        db.add_all(instances)
    await commit_or_rollback(db)
