# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests
- Integration tests (SQLite document store)
"""

from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from roster.core.config.settings import DocumentStoreSettings
from roster.infrastructure.database import build_engine, create_schema
from roster.infrastructure.documents import DocumentStore


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture
def test_environment(tmp_path: Path) -> dict[str, str]:
    """Provide test environment variables.

    Returns:
        Dictionary of environment variables for testing.
    """
    return {
        "ENVIRONMENT": "test",
        "DEBUG": "true",
        "LOG_LEVEL": "DEBUG",
        "ROSTER_DB_URL": f"sqlite+aiosqlite:///{tmp_path / 'roster-api.db'}",
        "ROSTER_IMPORT_LINK_STRATEGY": "by_id",
    }


# =============================================================================
# Document Store Fixtures
# =============================================================================


@pytest.fixture
def store_settings(tmp_path: Path) -> DocumentStoreSettings:
    """Document store settings pointing at a throwaway SQLite file."""
    return DocumentStoreSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'roster.db'}")


@pytest_asyncio.fixture
async def store(store_settings: DocumentStoreSettings) -> AsyncGenerator[DocumentStore, None]:
    """Create a document store over a fresh schema."""
    engine = build_engine(store_settings)
    await create_schema(engine)

    sessionmaker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    yield DocumentStore(sessionmaker)

    await engine.dispose()


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test against a SQLite document store"
    )


# =============================================================================
# Helper Fixtures
# =============================================================================


@pytest.fixture
def teacher_id() -> str:
    """Provide a sample teacher ID for testing."""
    return "teacher-550e8400"


@pytest.fixture
def other_teacher_id() -> str:
    """Provide a second teacher ID for ownership tests."""
    return "teacher-7c9e6679"


@pytest.fixture
def sample_rows() -> list[dict[str, Any]]:
    """Provide parsed spreadsheet rows for import tests."""
    return [
        {"name": "Ana", "grade": "G3", "reading_level": 2},
        {"name": "Ben", "grade": "G3", "reading_level": 3},
    ]
