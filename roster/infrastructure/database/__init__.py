# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure: async engine lifecycle and ORM models."""

from roster.infrastructure.database.connection import (
    WRITE_TRANSACTION,
    DatabaseError,
    build_engine,
    check_database_connection,
    close_database,
    create_schema,
    get_sessionmaker,
    init_database,
)

__all__ = [
    "WRITE_TRANSACTION",
    "DatabaseError",
    "build_engine",
    "check_database_connection",
    "close_database",
    "create_schema",
    "get_sessionmaker",
    "init_database",
]
