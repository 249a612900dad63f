# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Write coordination shared by the roster services.

- roster_locks: the process-wide keyed lock registry
- student_key / grade_key: lock keys for one student or one grade
- check_cancel: stop an operation before its next commit
"""

import asyncio

from roster.domains.errors import OperationCancelledError
from roster.infrastructure.locks import KeyedLock

# Shared by every service instance so per-request services serialize together
roster_locks = KeyedLock()


def student_key(student_id: str) -> str:
    return f"student:{student_id}"


def grade_key(grade_id: str) -> str:
    return f"grade:{grade_id}"


def check_cancel(cancel: asyncio.Event | None) -> None:
    """Raise OperationCancelledError if the cancel event is set."""
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError("Operation cancelled")
