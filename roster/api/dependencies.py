# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

This module provides dependency functions for FastAPI endpoints.
Dependencies are used to:
- Get the document store
- Resolve the current teacher from the request
- Get service instances

Example:
    @router.get("/students")
    async def list_students(
        teacher_id: TeacherId,
        service: StudentService = Depends(get_student_service),
    ):
        ...
"""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from roster.core.config import get_settings
from roster.domains.grade import GradeService
from roster.domains.reconciliation import ReconciliationService
from roster.domains.student import StudentService
from roster.infrastructure.database import (
    DatabaseError,
    close_database,
    get_sessionmaker,
    init_database,
)
from roster.infrastructure.documents import DocumentStore
from roster.utils.logging import bind_context

logger = logging.getLogger(__name__)


async def init_db() -> None:
    """Initialize the document database."""
    settings = get_settings()
    await init_database(settings.store)


async def close_db() -> None:
    """Close the document database."""
    await close_database()


def get_document_store() -> DocumentStore:
    """Get the document store.

    Raises:
        HTTPException: If the database has not been initialized.
    """
    try:
        return DocumentStore(get_sessionmaker())
    except DatabaseError as e:
        logger.error("Document store unavailable: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Document store not initialized",
        )


async def require_teacher(request: Request) -> str:
    """Resolve the authenticated teacher id.

    Authentication happens upstream; the gateway forwards the teacher id
    in a header.

    Args:
        request: HTTP request.

    Returns:
        The teacher id.

    Raises:
        HTTPException: If the header is missing or blank.
    """
    header = get_settings().api.teacher_header
    teacher_id = (request.headers.get(header) or "").strip()
    if not teacher_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    bind_context(teacher_id=teacher_id)
    return teacher_id


Store = Annotated[DocumentStore, Depends(get_document_store)]
TeacherId = Annotated[str, Depends(require_teacher)]


# =========================================================================
# Service Dependencies
# =========================================================================


def get_student_service(store: Store) -> StudentService:
    return StudentService(store)


def get_grade_service(store: Store) -> GradeService:
    return GradeService(store)


def get_reconciliation_service(store: Store) -> ReconciliationService:
    """Get reconciliation service configured from import settings."""
    settings = get_settings()
    return ReconciliationService(
        store,
        link_strategy=settings.imports.link_strategy,
        max_rows=settings.imports.max_rows,
    )


Students = Annotated[StudentService, Depends(get_student_service)]
Grades = Annotated[GradeService, Depends(get_grade_service)]
Reconciliation = Annotated[ReconciliationService, Depends(get_reconciliation_service)]
