# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pydantic models for the roster API and services."""

from roster.models.common import ImportJobStatus, Performance, StudentStatus
from roster.models.grade import Grade, GradeCreateRequest, GradeUpdateRequest, GradeWithCount
from roster.models.import_job import ImportJob, ImportRequest, ImportSummary, SkippedRow
from roster.models.membership import Membership
from roster.models.student import (
    BatchDeleteResult,
    ClassStatistics,
    ImportedStudentRow,
    Student,
    StudentCreateRequest,
    StudentUpdateRequest,
)

__all__ = [
    # Common
    "ImportJobStatus",
    "Performance",
    "StudentStatus",
    # Student
    "BatchDeleteResult",
    "ClassStatistics",
    "ImportedStudentRow",
    "Student",
    "StudentCreateRequest",
    "StudentUpdateRequest",
    # Grade
    "Grade",
    "GradeCreateRequest",
    "GradeUpdateRequest",
    "GradeWithCount",
    # Membership
    "Membership",
    # Import
    "ImportJob",
    "ImportRequest",
    "ImportSummary",
    "SkippedRow",
]
