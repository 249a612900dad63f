# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

Modules:
    students: Student roster endpoints (CRUD, import, batch delete).
    grades: Grade directory and membership endpoints.
"""

from fastapi import APIRouter

from roster.api.v1 import grades, students

# Create the main v1 router
router = APIRouter(prefix="/api/v1")

# Include domain routers
router.include_router(students.router, prefix="/students", tags=["Students"])
router.include_router(grades.router, prefix="/grades", tags=["Grades"])
