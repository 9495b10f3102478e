# python
"""Database engine and session utilities.

This module builds the asynchronous database engine and session factory used by
the relational store, creates the schema, and translates SQLAlchemy failures
into application exceptions.
"""
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.exceptions.base import BaseAppException, ConflictError
from app.exceptions.storage import StorageUnavailableError
from models import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless enforcement is switched on per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine for ``database_url``."""
    database_url = (database_url or "").strip()
    if not database_url:
        raise StorageUnavailableError(
            "DATABASE_URL is not configured. Set it in the environment or .env file "
            "(e.g., DATABASE_URL=sqlite+aiosqlite:///./chats.db)."
        )

    engine = create_async_engine(database_url, echo=echo)
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False)


async def create_schema(engine: AsyncEngine) -> None:
    """Create every table that does not exist yet."""
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except SQLAlchemyError as e:
        logger.error("Failed to initialize database schema: %s", e)
        raise StorageUnavailableError(
            "Failed to initialize database schema", details={"error": str(e)}
        ) from e
    logger.debug("Database schema initialized")


@contextmanager
def translate_db_errors(
    operation: str,
    on_integrity: type[BaseAppException] = ConflictError,
    **context: Any,
) -> Iterator[None]:
    """Log database failures with context and re-raise them as app exceptions.

    Integrity violations become ``on_integrity`` (``ConflictError`` unless the
    caller knows a foreign key is the only constraint in play); everything else
    is treated as the backend being unavailable.
    """
    try:
        yield
    except IntegrityError as e:
        logger.error("%s failed with integrity error %s: %s", operation, context, e.orig)
        raise on_integrity(f"{operation} violates a database constraint", details=context) from e
    except SQLAlchemyError as e:
        logger.error("%s failed %s: %s", operation, context, e)
        raise StorageUnavailableError(f"{operation} failed", details=context) from e
