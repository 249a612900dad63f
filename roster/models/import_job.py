# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Roster import models."""

from datetime import datetime

from pydantic import BaseModel, Field

from roster.models.common import ImportJobStatus
from roster.models.student import ImportedStudentRow


class ImportRequest(BaseModel):
    """Request body for importing parsed rows into a grade."""

    grade_id: str
    rows: list[ImportedStudentRow] = Field(min_length=1)


class SkippedRow(BaseModel):
    """A row that was not linked to the target grade."""

    row_index: int
    reason: str


class ImportSummary(BaseModel):
    """Result of an import or a resumed import.

    A partial import is reported here rather than raised: ``is_complete`` is
    False whenever a created student could not be linked.
    """

    import_id: str
    total_rows: int
    linked: int = 0
    skipped: list[SkippedRow] = Field(default_factory=list)
    student_ids: list[str] = Field(default_factory=list)
    is_complete: bool = True


class ImportJob(BaseModel):
    """Persisted import checkpoint used to resume or roll back an import."""

    id: str
    teacher_id: str
    grade_id: str
    strategy: str
    rows: list[ImportedStudentRow]
    student_ids: list[str]
    linked_rows: list[int] = Field(default_factory=list)
    status: ImportJobStatus
    created_at: datetime | None = None
    updated_at: datetime | None = None
