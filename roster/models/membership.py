# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Grade membership models."""

from datetime import datetime

from pydantic import BaseModel


class Membership(BaseModel):
    """Edge linking one grade to one student.

    ``name`` is a display cache of the student's name at link time.
    """

    grade_id: str
    student_id: str
    name: str = ""
    added_at: datetime | None = None
