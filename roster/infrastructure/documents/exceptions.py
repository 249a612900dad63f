# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Exceptions raised by the document store.

- StoreUnavailableError: the underlying database call failed
- DocumentNotFoundError: an update targeted a missing document
- BatchCommittedError: a write batch was reused after commit
"""

from roster.infrastructure.database.connection import DatabaseError


class StoreUnavailableError(DatabaseError):
    """Raised when a document store read or write cannot be completed.

    Wraps network, permission and driver errors so callers only need to
    handle one type.
    """

    pass


class DocumentNotFoundError(Exception):
    """Raised when updating a document that does not exist.

    Attributes:
        path: Collection path of the missing document.
        doc_id: Id of the missing document.
    """

    def __init__(self, path: str, doc_id: str) -> None:
        super().__init__(f"Document {path}/{doc_id} not found")
        self.path = path
        self.doc_id = doc_id


class BatchCommittedError(Exception):
    """Raised when a write batch is modified or committed twice."""

    pass
