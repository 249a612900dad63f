# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Collection names used in the document store."""

from roster.infrastructure.documents import sub_collection

STUDENTS = "students"
CLASS_GRADES = "classGrades"
MEMBERS = "members"
IMPORT_JOBS = "importJobs"


def members_path(grade_id: str) -> str:
    """Path of the membership sub-collection of one grade."""
    return sub_collection(CLASS_GRADES, grade_id, MEMBERS)
