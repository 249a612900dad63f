# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Grade API endpoints.

This module provides endpoints for the current teacher's grades:
- GET / - List active grades with recomputed counts
- POST / - Create grade
- POST /seed - Create the default Grade 1..6 directory
- POST /bulk-delete - Delete several grades
- GET /{grade_id} - Get grade
- PATCH /{grade_id} - Update grade
- DELETE /{grade_id} - Delete grade and its memberships
- GET /{grade_id}/students - Valid memberships of a grade
- PUT /{grade_id}/students/{student_id} - Add student to grade
- DELETE /{grade_id}/students/{student_id} - Remove student from grade
- POST /{grade_id}/recount - Recompute (and optionally sweep) the count
"""

import logging

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from roster.api.dependencies import Grades, Reconciliation, TeacherId
from roster.domains.errors import (
    GradeNameExistsError,
    GradeNotFoundError,
    StudentNotFoundError,
    UnauthorizedError,
)
from roster.models.grade import Grade, GradeCreateRequest, GradeUpdateRequest, GradeWithCount
from roster.models.membership import Membership
from roster.models.student import BatchDeleteResult

logger = logging.getLogger(__name__)

router = APIRouter()


class BulkDeleteRequest(BaseModel):
    """Request to delete several grades."""

    grade_ids: list[str] = Field(min_length=1)


class MembershipChangeResponse(BaseModel):
    """Result of adding or removing a membership."""

    grade_id: str
    student_id: str
    changed: bool


class RecountResponse(BaseModel):
    """Result of a grade recount."""

    grade_id: str
    student_count: int
    swept: int = 0


def _grade_not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Grade not found",
    )


def _forbidden(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


@router.get(
    "",
    response_model=list[GradeWithCount],
    summary="List grades",
    description="Active grades sorted by name, each with its recomputed student count.",
)
async def list_grades(teacher_id: TeacherId, reconciliation: Reconciliation) -> list[GradeWithCount]:
    return await reconciliation.list_grades_with_counts(teacher_id)


@router.post(
    "",
    response_model=Grade,
    status_code=status.HTTP_201_CREATED,
    summary="Create grade",
)
async def create_grade(
    data: GradeCreateRequest,
    teacher_id: TeacherId,
    service: Grades,
) -> Grade:
    """Create a grade.

    Raises:
        HTTPException: If the teacher already has a grade with this name.
    """
    logger.info("Creating grade %s by teacher %s", data.name, teacher_id)

    try:
        grade_id = await service.create(data, teacher_id)
    except GradeNameExistsError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        )
    return await service.get_by_id(grade_id)


@router.post(
    "/seed",
    response_model=list[Grade],
    summary="Seed default grades",
    description="Create Grade 1 to Grade 6 when the teacher has no grades yet.",
)
async def seed_grades(teacher_id: TeacherId, service: Grades) -> list[Grade]:
    await service.seed_default_grades(teacher_id)
    return await service.list_by_teacher(teacher_id)


@router.post(
    "/bulk-delete",
    response_model=BatchDeleteResult,
    summary="Delete grades",
)
async def bulk_delete_grades(
    data: BulkDeleteRequest,
    teacher_id: TeacherId,
    reconciliation: Reconciliation,
) -> BatchDeleteResult:
    return await reconciliation.bulk_delete_grades(data.grade_ids, teacher_id)


@router.get(
    "/{grade_id}",
    response_model=Grade,
    summary="Get grade",
)
async def get_grade(grade_id: str, teacher_id: TeacherId, service: Grades) -> Grade:
    try:
        return await service.get_owned(grade_id, teacher_id)
    except GradeNotFoundError:
        raise _grade_not_found()
    except UnauthorizedError as e:
        raise _forbidden(e)


@router.patch(
    "/{grade_id}",
    response_model=Grade,
    summary="Update grade",
)
async def update_grade(
    grade_id: str,
    data: GradeUpdateRequest,
    teacher_id: TeacherId,
    service: Grades,
) -> Grade:
    try:
        return await service.update(grade_id, data, teacher_id=teacher_id)
    except GradeNotFoundError:
        raise _grade_not_found()
    except UnauthorizedError as e:
        raise _forbidden(e)
    except GradeNameExistsError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        )


@router.delete(
    "/{grade_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete grade",
    description="Delete a grade together with its membership entries.",
)
async def delete_grade(
    grade_id: str,
    teacher_id: TeacherId,
    reconciliation: Reconciliation,
) -> None:
    logger.info("Deleting grade %s by teacher %s", grade_id, teacher_id)

    try:
        await reconciliation.delete_grade(grade_id, teacher_id)
    except GradeNotFoundError:
        raise _grade_not_found()
    except UnauthorizedError as e:
        raise _forbidden(e)


@router.get(
    "/{grade_id}/students",
    response_model=list[Membership],
    summary="List grade members",
    description="Memberships of the grade whose student still exists, ordered by name.",
)
async def list_grade_students(
    grade_id: str,
    teacher_id: TeacherId,
    reconciliation: Reconciliation,
) -> list[Membership]:
    try:
        return await reconciliation.grade_roster(grade_id, teacher_id)
    except GradeNotFoundError:
        raise _grade_not_found()
    except UnauthorizedError as e:
        raise _forbidden(e)


@router.put(
    "/{grade_id}/students/{student_id}",
    response_model=MembershipChangeResponse,
    summary="Add student to grade",
)
async def add_grade_student(
    grade_id: str,
    student_id: str,
    teacher_id: TeacherId,
    reconciliation: Reconciliation,
) -> MembershipChangeResponse:
    try:
        added = await reconciliation.add_membership(grade_id, student_id, teacher_id)
    except GradeNotFoundError:
        raise _grade_not_found()
    except StudentNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Student not found",
        )
    except UnauthorizedError as e:
        raise _forbidden(e)

    return MembershipChangeResponse(grade_id=grade_id, student_id=student_id, changed=added)


@router.delete(
    "/{grade_id}/students/{student_id}",
    response_model=MembershipChangeResponse,
    summary="Remove student from grade",
)
async def remove_grade_student(
    grade_id: str,
    student_id: str,
    teacher_id: TeacherId,
    reconciliation: Reconciliation,
) -> MembershipChangeResponse:
    try:
        removed = await reconciliation.remove_membership(grade_id, student_id, teacher_id)
    except GradeNotFoundError:
        raise _grade_not_found()
    except UnauthorizedError as e:
        raise _forbidden(e)

    return MembershipChangeResponse(grade_id=grade_id, student_id=student_id, changed=removed)


@router.post(
    "/{grade_id}/recount",
    response_model=RecountResponse,
    summary="Recount grade",
    description="Recompute the student count from valid memberships and store it.",
)
async def recount_grade(
    grade_id: str,
    teacher_id: TeacherId,
    reconciliation: Reconciliation,
    sweep: bool = Query(False, description="Also delete orphaned memberships"),
) -> RecountResponse:
    try:
        swept = await reconciliation.sweep_grade(grade_id, teacher_id) if sweep else 0
        count = await reconciliation.recompute_count(grade_id, teacher_id, persist=True)
    except GradeNotFoundError:
        raise _grade_not_found()
    except UnauthorizedError as e:
        raise _forbidden(e)

    return RecountResponse(grade_id=grade_id, student_count=count, swept=swept)
