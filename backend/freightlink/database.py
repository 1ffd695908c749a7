"""Database engine, session factory, and declarative base.

One session dependency for FastAPI:
  - get_db()  → request-scoped session, committed on success and rolled
                back on any exception

Incident notifications must not go out for writes that never commit, so
the repository queues them in ``session.info`` and ``commit()`` runs them
once the transaction is durable.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from freightlink.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    """Base class for all FreightLink tables."""
    pass


# Callbacks registered with SqlRepository.on_commit live here until commit
AFTER_COMMIT = "after_commit"


async def commit(session: AsyncSession) -> None:
    """Commit, then run the session's after-commit callbacks."""
    await session.commit()
    for callback in session.info.pop(AFTER_COMMIT, []):
        callback()


async def rollback(session: AsyncSession) -> None:
    """Roll back and drop the after-commit callbacks unrun."""
    session.info.pop(AFTER_COMMIT, None)
    await session.rollback()


async def get_db() -> AsyncSession:
    """Yield a session; commit when the request succeeds."""
    async with async_session() as session:
        try:
            yield session
            await commit(session)
        except Exception:
            await rollback(session)
            raise
