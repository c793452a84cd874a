"""
QLedger - Database Configuration

This module handles database connection setup using SQLAlchemy 2.0 async.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import MetaData
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from app.config import settings
from app.utils.error_handling import (
    AppException,
    ConflictException,
    DatabaseException,
    DataIntegrityException,
)

logger = logging.getLogger(__name__)


# Naming convention for constraints (helps with migrations)
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    metadata = MetaData(naming_convention=convention)


def _engine_options() -> dict:
    options = {"echo": settings.debug, "pool_pre_ping": True}
    if not settings.is_sqlite:
        options["pool_size"] = settings.database_pool_size
        options["max_overflow"] = settings.database_max_overflow
    return options


# Create async engine
engine = create_async_engine(settings.database_url_async, **_engine_options())

# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_async_session() -> AsyncIterator[AsyncSession]:
    """
    Dependency for getting async database session.
    Use with FastAPI's Depends().
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


# Alias for backward compatibility
get_db = get_async_session


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a block of writes as one transaction.

    Commits when the block exits cleanly and rolls back on any exception.
    Business exceptions are re-raised untouched; driver errors surface as
    DatabaseException (or ConflictException for unique violations) so callers
    never mistake an infrastructure failure for invalid input. A rollback that
    itself fails is reported as a DatabaseException chained to the original
    error.
    """
    try:
        yield session
        await session.commit()
    except Exception as exc:
        try:
            await session.rollback()
        except SQLAlchemyError as rollback_error:
            logger.critical("Rollback failed after %s: %s", type(exc).__name__, rollback_error)
            raise DatabaseException(
                message="Transaction rollback failed",
                original_error=rollback_error,
            ) from exc

        if isinstance(exc, AppException) or not isinstance(exc, SQLAlchemyError):
            raise

        if isinstance(exc, IntegrityError):
            error_str = str(exc.orig).lower() if exc.orig else ""
            if "unique" in error_str or "duplicate" in error_str:
                raise ConflictException(
                    message="A record with this value already exists",
                ) from exc
            raise DataIntegrityException(
                message="Data integrity constraint violated",
                original_error=exc,
            ) from exc

        logger.error("Database error inside unit of work: %s", exc)
        raise DatabaseException(original_error=exc) from exc


async def init_db():
    """
    Initialize database - create all tables.
    Use this for development/testing only.
    """
    import app.models  # noqa: F401  (register mappers)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connections."""
    await engine.dispose()
