# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enums shared across roster models."""

from enum import Enum


class Performance(str, Enum):
    """Teacher-assessed performance band."""

    EXCELLENT = "Excellent"
    GOOD = "Good"
    NEEDS_IMPROVEMENT = "Needs Improvement"


class StudentStatus(str, Enum):
    """Lifecycle status of a student record.

    Imported students start as pending until a teacher confirms them.
    """

    ACTIVE = "active"
    PENDING = "pending"
    INACTIVE = "inactive"


class ImportJobStatus(str, Enum):
    """Progress of a roster import."""

    STUDENTS_CREATED = "students_created"
    COMPLETED = "completed"
    ROLLED_BACK = "rolled_back"
