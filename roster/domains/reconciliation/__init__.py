# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Reconciliation domain package.

This package coordinates cross-entity consistency:
- Resumable roster import with rollback
- Cascading student and grade deletes
- Authoritative member counts
"""

from roster.domains.reconciliation.service import (
    LINK_BY_ID,
    LINK_BY_NAME,
    ReconciliationService,
)

__all__ = [
    "LINK_BY_ID",
    "LINK_BY_NAME",
    "ReconciliationService",
]
