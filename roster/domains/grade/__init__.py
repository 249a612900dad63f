# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Grade domain package.

This package provides the class grade directory:
- Teacher-scoped grade CRUD
- Cached student count maintenance
- Default grade seeding
"""

from roster.domains.grade.service import DEFAULT_GRADES, GradeService

__all__ = [
    "DEFAULT_GRADES",
    "GradeService",
]
