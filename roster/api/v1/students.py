# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Student API endpoints.

This module provides endpoints for a teacher's students:
- GET / - List students (optional search or performance filter)
- POST / - Create student
- GET /statistics - Class statistics
- GET /{student_id} - Get student
- PATCH /{student_id} - Update student (parent link, status promotion)
- DELETE /{student_id} - Delete student and its memberships
- POST /import - Import parsed rows into a grade
- POST /import/{import_id}/resume - Finish an interrupted import
- POST /import/{import_id}/rollback - Delete the students an import created
- POST /batch-delete - Delete several students
"""

import logging

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from roster.api.dependencies import Reconciliation, Students, TeacherId
from roster.domains.errors import (
    GradeNotFoundError,
    ImportJobNotFoundError,
    StudentNotFoundError,
    UnauthorizedError,
    ValidationFailedError,
)
from roster.models.common import Performance
from roster.models.import_job import ImportRequest, ImportSummary
from roster.models.student import (
    BatchDeleteResult,
    ClassStatistics,
    Student,
    StudentCreateRequest,
    StudentUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class BatchDeleteRequest(BaseModel):
    """Request to delete several students."""

    student_ids: list[str] = Field(min_length=1)


def _forbidden(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


def _invalid_rows(e: ValidationFailedError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"message": str(e), "row_indexes": e.row_indexes},
    )


@router.get(
    "",
    response_model=list[Student],
    summary="List students",
    description="List the current teacher's students, newest first.",
)
async def list_students(
    teacher_id: TeacherId,
    service: Students,
    search: str | None = Query(None, description="Match on name or grade label"),
    performance: Performance | None = Query(None, description="Performance band"),
) -> list[Student]:
    """List students with optional search or performance filter.

    Filtered results are ordered by name.
    """
    if search:
        return await service.search(teacher_id, search)
    if performance is not None:
        return await service.list_by_performance(teacher_id, performance)
    return await service.list_by_teacher(teacher_id)


@router.post(
    "",
    response_model=Student,
    status_code=status.HTTP_201_CREATED,
    summary="Create student",
)
async def create_student(
    data: StudentCreateRequest,
    teacher_id: TeacherId,
    service: Students,
) -> Student:
    student_id = await service.create(data, teacher_id)
    return await service.get(student_id)


@router.get(
    "/statistics",
    response_model=ClassStatistics,
    summary="Class statistics",
)
async def get_statistics(teacher_id: TeacherId, service: Students) -> ClassStatistics:
    return await service.class_statistics(teacher_id)


@router.get(
    "/{student_id}",
    response_model=Student,
    summary="Get student",
)
async def get_student(student_id: str, teacher_id: TeacherId, service: Students) -> Student:
    """Get a student owned by the current teacher.

    Raises:
        HTTPException: If student not found or owned by another teacher.
    """
    try:
        return await service.get_owned(student_id, teacher_id)
    except StudentNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Student not found",
        )
    except UnauthorizedError as e:
        raise _forbidden(e)


@router.patch(
    "/{student_id}",
    response_model=Student,
    summary="Update student",
    description="Partial update. Also used to link a parent or promote a pending student.",
)
async def update_student(
    student_id: str,
    data: StudentUpdateRequest,
    teacher_id: TeacherId,
    service: Students,
) -> Student:
    try:
        return await service.update(student_id, data, teacher_id=teacher_id)
    except StudentNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Student not found",
        )
    except UnauthorizedError as e:
        raise _forbidden(e)


@router.delete(
    "/{student_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete student",
    description="Delete a student and remove it from every grade.",
)
async def delete_student(
    student_id: str,
    teacher_id: TeacherId,
    reconciliation: Reconciliation,
) -> None:
    logger.info("Deleting student %s by teacher %s", student_id, teacher_id)

    try:
        await reconciliation.delete_student(student_id, teacher_id)
    except StudentNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Student not found",
        )
    except UnauthorizedError as e:
        raise _forbidden(e)


@router.post(
    "/import",
    response_model=ImportSummary,
    status_code=status.HTTP_201_CREATED,
    summary="Import students",
    description="Create students from parsed rows and link them to a grade.",
)
async def import_students(
    data: ImportRequest,
    teacher_id: TeacherId,
    reconciliation: Reconciliation,
) -> ImportSummary:
    """Import rows into a grade.

    A partially linked import still succeeds; the summary reports the
    skipped rows.

    Raises:
        HTTPException: If rows are invalid or the grade is missing or foreign.
    """
    logger.info(
        "Importing %d rows into grade %s by teacher %s",
        len(data.rows),
        data.grade_id,
        teacher_id,
    )

    try:
        return await reconciliation.import_students(data.rows, data.grade_id, teacher_id)
    except ValidationFailedError as e:
        raise _invalid_rows(e)
    except GradeNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Grade not found",
        )
    except UnauthorizedError as e:
        raise _forbidden(e)


@router.post(
    "/import/{import_id}/resume",
    response_model=ImportSummary,
    summary="Resume import",
)
async def resume_import(
    import_id: str,
    teacher_id: TeacherId,
    reconciliation: Reconciliation,
) -> ImportSummary:
    try:
        return await reconciliation.resume_import(import_id, teacher_id)
    except ImportJobNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Import not found",
        )
    except GradeNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Grade not found",
        )
    except UnauthorizedError as e:
        raise _forbidden(e)
    except ValidationFailedError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        )


@router.post(
    "/import/{import_id}/rollback",
    response_model=BatchDeleteResult,
    summary="Roll back import",
)
async def rollback_import(
    import_id: str,
    teacher_id: TeacherId,
    reconciliation: Reconciliation,
) -> BatchDeleteResult:
    try:
        return await reconciliation.rollback_import(import_id, teacher_id)
    except ImportJobNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Import not found",
        )
    except UnauthorizedError as e:
        raise _forbidden(e)


@router.post(
    "/batch-delete",
    response_model=BatchDeleteResult,
    summary="Delete students",
    description="Best-effort delete; failures are reported per student.",
)
async def batch_delete_students(
    data: BatchDeleteRequest,
    teacher_id: TeacherId,
    reconciliation: Reconciliation,
) -> BatchDeleteResult:
    return await reconciliation.batch_delete_students(data.student_ids, teacher_id)
