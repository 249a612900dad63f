# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Student domain package.

This package provides the canonical student store:
- Teacher-scoped listing with a full-scan fallback
- Create, update and cascading delete
- Atomic bulk import
- Search, performance filter and class statistics
"""

from roster.domains.student.service import StudentService, collect_delete_results, validate_rows

__all__ = [
    "StudentService",
    "collect_delete_results",
    "validate_rows",
]
