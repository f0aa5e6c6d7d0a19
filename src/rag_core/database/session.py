"""SQLAlchemy async engine and session management."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from rag_core.config import Settings, get_settings
from rag_core.database.models import Base
from rag_core.utils.errors import MetadataStoreError
from rag_core.utils.logging import get_logger

logger = get_logger("database")


def get_database_url(settings: Settings) -> str:
    """Get the database URL, converting to async format if needed."""
    db_url = settings.database.url

    # Convert postgresql:// to postgresql+asyncpg:// for async operations
    if db_url.startswith("postgresql://"):
        db_url = db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif db_url.startswith("postgresql+psycopg2://"):
        db_url = db_url.replace("postgresql+psycopg2://", "postgresql+asyncpg://", 1)
    elif db_url.startswith("sqlite://"):
        db_url = db_url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    return db_url


def create_engine_from_settings(settings: Optional[Settings] = None) -> AsyncEngine:
    """Create the SQLAlchemy async engine."""
    settings = settings or get_settings()
    db_url = get_database_url(settings)

    kwargs = {"echo": settings.database.echo}
    if db_url.startswith("postgresql"):
        kwargs["pool_pre_ping"] = True

    engine = create_async_engine(db_url, **kwargs)
    logger.info(f"Database engine created: {engine.url.drivername}")
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Unit of work: commit on success, roll back on error.

    Usage:
        async with session_scope(factory) as session:
            repo = DocumentRepository(session)
            await repo.create_document(...)
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database session error: {e}")
            raise MetadataStoreError("Metadata store transaction failed", details={"error": str(e)}) from e
        except Exception:
            await session.rollback()
            raise
