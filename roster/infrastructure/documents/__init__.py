# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Document store: collections, sub-collections, queries and write batches."""

from roster.infrastructure.documents.exceptions import (
    BatchCommittedError,
    DocumentNotFoundError,
    StoreUnavailableError,
)
from roster.infrastructure.documents.store import DocumentStore, Query, WriteBatch
from roster.infrastructure.documents.types import (
    CREATE_TIME,
    UPDATE_TIME,
    DocumentSnapshot,
    Increment,
    sub_collection,
)

__all__ = [
    # Store
    "DocumentStore",
    "Query",
    "WriteBatch",
    # Types
    "CREATE_TIME",
    "UPDATE_TIME",
    "DocumentSnapshot",
    "Increment",
    "sub_collection",
    # Exceptions
    "BatchCommittedError",
    "DocumentNotFoundError",
    "StoreUnavailableError",
]
