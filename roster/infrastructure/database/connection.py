# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database connection management using SQLAlchemy async.

This module owns the async engine and sessionmaker backing the document
store. PostgreSQL is reached through asyncpg; SQLite through aiosqlite for
local development and tests.

Example:
    from roster.infrastructure.database.connection import (
        init_database,
        get_sessionmaker,
    )

    # Initialize at application startup
    await init_database(settings)
    store = DocumentStore(get_sessionmaker())
"""

from typing import TYPE_CHECKING, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from roster.infrastructure.database.models.base import Base

if TYPE_CHECKING:
    from roster.core.config.settings import DocumentStoreSettings

# Execution option marking a connection that will write; SQLite takes the
# write lock when such a transaction begins.
WRITE_TRANSACTION = "roster_write_transaction"

# Module-level state for the database connection
_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None


class DatabaseError(Exception):
    """Base exception for database operations.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying SQLAlchemy or database error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        """Initialize the database error.

        Args:
            message: Human-readable error description.
            original_error: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


def build_engine(settings: "DocumentStoreSettings") -> AsyncEngine:
    """Create an async engine for the configured URL.

    Pool sizing only applies to server databases; SQLite uses the
    dialect's default pool.

    Args:
        settings: Document store settings.

    Returns:
        A new AsyncEngine.
    """
    if settings.is_sqlite:
        engine = create_async_engine(settings.url, echo=settings.echo)
        _use_immediate_transactions(engine)
        return engine

    return create_async_engine(
        settings.url,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_pre_ping=True,
        pool_recycle=1800,
        echo=settings.echo,
    )


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """Make SQLite write transactions take the write lock when they begin.

    The sqlite3 driver defers BEGIN until the first write, so a
    read-modify-write such as an Increment is not isolated by default.
    Connections carrying the WRITE_TRANSACTION option start with
    BEGIN IMMEDIATE; all others use a deferred BEGIN so reads share the
    database.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        if conn.get_execution_options().get(WRITE_TRANSACTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


async def init_database(settings: "DocumentStoreSettings") -> None:
    """Initialize the database connection pool.

    This should be called once at application startup. When
    ``settings.create_schema`` is set the documents table is created.

    Args:
        settings: Document store settings.

    Raises:
        DatabaseError: If connection pool creation fails.
    """
    global _engine, _sessionmaker

    try:
        _engine = build_engine(settings)
        _sessionmaker = async_sessionmaker(
            bind=_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        if settings.create_schema:
            await create_schema(_engine)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to initialize database connection", e) from e


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables known to the declarative base."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_database() -> None:
    """Close the database connection pool.

    This should be called at application shutdown.
    """
    global _engine, _sessionmaker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _sessionmaker = None


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get the sessionmaker.

    Raises:
        DatabaseError: If the database has not been initialized.
    """
    if _sessionmaker is None:
        raise DatabaseError("Database not initialized. Call init_database() first.")
    return _sessionmaker


async def check_database_connection() -> bool:
    """Check if the database is reachable.

    Returns:
        True if the database is reachable, False otherwise.
    """
    if _engine is None:
        return False

    try:
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False
