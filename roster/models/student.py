# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Student request and response models.

Model fields are snake_case; the stored documents use the dashboard's
camelCase keys (``readingLevel``, ``teacherId`` ...). Conversion happens in
the student service.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from roster.models.common import Performance, StudentStatus


class Student(BaseModel):
    """A student record owned by one teacher."""

    id: str
    name: str
    grade: str
    reading_level: int = 1
    attendance: int = 0
    performance: Performance = Performance.GOOD
    last_assessment: str | None = None
    status: StudentStatus = StudentStatus.PENDING
    teacher_id: str
    parent_id: str | None = None
    parent_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class StudentCreateRequest(BaseModel):
    """Request to create a single student."""

    name: str = Field(min_length=1, max_length=200)
    grade: str = Field(min_length=1, max_length=100)
    reading_level: int = Field(default=1, ge=1)
    attendance: int = Field(default=0, ge=0, le=100)
    performance: Performance = Performance.GOOD
    last_assessment: str | None = None
    status: StudentStatus = StudentStatus.ACTIVE
    parent_id: str | None = None
    parent_name: str | None = None


class StudentUpdateRequest(BaseModel):
    """Partial student update. Only fields that are set are written."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    grade: str | None = Field(default=None, min_length=1, max_length=100)
    reading_level: int | None = Field(default=None, ge=1)
    attendance: int | None = Field(default=None, ge=0, le=100)
    performance: Performance | None = None
    last_assessment: str | None = None
    status: StudentStatus | None = None
    parent_id: str | None = None
    parent_name: str | None = None


class ImportedStudentRow(BaseModel):
    """One parsed spreadsheet row.

    Rows are validated by the import itself so that blank cells are reported
    with their row index instead of failing request parsing.
    """

    name: str = ""
    grade: str = ""
    reading_level: int = Field(default=1, ge=1)
    parent_id: str | None = None
    parent_name: str | None = None


class ClassStatistics(BaseModel):
    """Aggregate figures over a teacher's roster."""

    total_students: int = 0
    average_attendance: int = 0
    average_reading_level: float = 0.0
    excellent_performers: int = 0


class BatchDeleteResult(BaseModel):
    """Outcome of a best-effort multi-document delete."""

    deleted: list[str] = Field(default_factory=list)
    failed: list[dict[str, str]] = Field(default_factory=list)
