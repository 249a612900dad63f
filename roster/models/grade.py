# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Grade (class cohort) request and response models."""

from datetime import datetime

from pydantic import BaseModel, Field


class Grade(BaseModel):
    """A class cohort.

    ``student_count`` is a cached, advisory value. The authoritative count
    comes from recomputing over valid memberships.
    """

    id: str
    name: str
    description: str = ""
    age_range: str = ""
    color: str = ""
    is_active: bool = True
    student_count: int = 0
    teacher_id: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class GradeCreateRequest(BaseModel):
    """Request to create a grade."""

    name: str = Field(min_length=1, max_length=100)
    description: str = ""
    age_range: str = "6-12 years"
    color: str = "blue"
    is_active: bool = True


class GradeUpdateRequest(BaseModel):
    """Partial grade update."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    age_range: str | None = None
    color: str | None = None
    is_active: bool | None = None


class GradeWithCount(Grade):
    """Grade whose student_count is the recomputed value.

    ``cached_student_count`` carries the stored counter for comparison.
    """

    cached_student_count: int = 0
