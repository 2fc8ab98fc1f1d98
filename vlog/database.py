import logging

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from vlog.cache import cache
from vlog.config import settings
from vlog.middleware import install_query_counter

logger = logging.getLogger(__name__)

# Module-level engine; tests build their own engine and override get_db.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

install_query_counter(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    # Server-side defaults (created_at) are fetched at INSERT time; async
    # sessions cannot lazy-load them afterwards.
    __mapper_args__ = {"eager_defaults": True}


async def create_tables() -> None:
    """Create any missing tables for the registered models."""
    import vlog.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured (%d tables)", len(Base.metadata.tables))


async def get_db():
    """
    Request-scoped session.

    This is the only place a transaction is committed: service functions
    flush, and any exception raised while handling the request rolls back
    every statement issued during it.  Cache invalidations queued by the
    services run only once the commit has succeeded.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            cache.discard_post_invalidation(session)
            await session.rollback()
            raise
        await cache.apply_post_invalidation(session)
