# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Document store backed by SQLAlchemy async.

This module provides the document database abstraction used by the roster
services:

- Collection and sub-collection scoped queries with equality filters,
  ordering and limits
- get/add/set/update/delete on individual documents
- Collection group queries across every sub-collection with one name
- Atomic multi-document write batches
- Server-assigned create/update timestamps
- Atomic numeric increments via the Increment transform

Example:
    store = DocumentStore(get_sessionmaker())

    student_id = await store.add("students", {"name": "Ana", "teacherId": "t1"})
    rows = await store.query("students").where("teacherId", "t1").get()

    batch = store.batch()
    batch.delete("students", student_id)
    await batch.commit()
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator
from uuid import uuid4

from sqlalchemy import ColumnElement, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from roster.infrastructure.database.connection import WRITE_TRANSACTION
from roster.infrastructure.database.models.document import DocumentRecord
from roster.infrastructure.documents.exceptions import (
    BatchCommittedError,
    DocumentNotFoundError,
    StoreUnavailableError,
)
from roster.infrastructure.documents.types import (
    CREATE_TIME,
    UPDATE_TIME,
    DocumentSnapshot,
    Increment,
)
from roster.utils.datetime import ensure_utc, utc_now

logger = logging.getLogger(__name__)


def _to_snapshot(record: DocumentRecord) -> DocumentSnapshot:
    return DocumentSnapshot(
        path=record.path,
        id=record.id,
        data=dict(record.data or {}),
        create_time=ensure_utc(record.created_at),
        update_time=ensure_utc(record.updated_at),
    )


def _resolve(data: dict[str, Any], current: dict[str, Any]) -> dict[str, Any]:
    """Apply field transforms against the currently stored values."""
    resolved = {}
    for key, value in data.items():
        if isinstance(value, Increment):
            value = value.apply(current.get(key))
        resolved[key] = value
    return resolved


def _field_expression(field: str, value: Any) -> ColumnElement[Any]:
    element = DocumentRecord.data[field]
    if isinstance(value, bool):
        return element.as_boolean()
    if isinstance(value, int):
        return element.as_integer()
    if isinstance(value, float):
        return element.as_float()
    return element.as_string()


class Query:
    """Immutable query over one collection or one collection group.

    Each builder method returns a new Query, so a base query can be
    shared and refined.
    """

    def __init__(
        self,
        store: DocumentStore,
        path: str | None = None,
        group: str | None = None,
    ) -> None:
        self._store = store
        self._path = path
        self._group = group
        self._filters: tuple[tuple[str, Any], ...] = ()
        self._order: tuple[tuple[str, bool], ...] = ()
        self._limit: int | None = None

    def _copy(self) -> Query:
        clone = Query(self._store, self._path, self._group)
        clone._filters = self._filters
        clone._order = self._order
        clone._limit = self._limit
        return clone

    @property
    def is_filtered(self) -> bool:
        return bool(self._filters)

    def where(self, field: str, value: Any) -> Query:
        """Restrict to documents whose ``field`` equals ``value``."""
        clone = self._copy()
        clone._filters = (*self._filters, (field, value))
        return clone

    def order_by(self, field: str, descending: bool = False) -> Query:
        """Order by a data field or by CREATE_TIME / UPDATE_TIME."""
        clone = self._copy()
        clone._order = (*self._order, (field, descending))
        return clone

    def limit(self, count: int) -> Query:
        clone = self._copy()
        clone._limit = count
        return clone

    def _statement(self):
        stmt = select(DocumentRecord)
        if self._group is not None:
            stmt = stmt.where(DocumentRecord.path.like(f"%/{self._group}"))
        else:
            stmt = stmt.where(DocumentRecord.path == self._path)

        for field, value in self._filters:
            stmt = stmt.where(_field_expression(field, value) == value)

        for field, descending in self._order:
            if field == CREATE_TIME:
                column = DocumentRecord.created_at
            elif field == UPDATE_TIME:
                column = DocumentRecord.updated_at
            else:
                column = DocumentRecord.data[field].as_string()
            stmt = stmt.order_by(column.desc() if descending else column.asc())

        # Deterministic tie-break for documents written in the same batch
        stmt = stmt.order_by(DocumentRecord.id)

        if self._limit is not None:
            stmt = stmt.limit(self._limit)
        return stmt

    async def get(self) -> list[DocumentSnapshot]:
        """Execute the query.

        Raises:
            StoreUnavailableError: If the database call fails.
        """
        async with self._store.read_session() as session:
            result = await session.execute(self._statement())
            return [_to_snapshot(record) for record in result.scalars().all()]


class WriteBatch:
    """Collects writes and applies them in one transaction.

    Either every write in the batch is applied or none is. A batch can
    only be committed once.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._operations: list[tuple[str, str, str, dict[str, Any] | None]] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._operations)

    def _append(self, op: str, path: str, doc_id: str, data: dict[str, Any] | None) -> WriteBatch:
        if self._committed:
            raise BatchCommittedError("Write batch already committed")
        self._operations.append((op, path, doc_id, data))
        return self

    def set(self, path: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> WriteBatch:
        """Create or overwrite a document (merge keeps unspecified fields)."""
        return self._append("merge" if merge else "set", path, doc_id, dict(data))

    def update(self, path: str, doc_id: str, data: dict[str, Any]) -> WriteBatch:
        """Merge fields into an existing document; the commit fails if it is absent."""
        return self._append("update", path, doc_id, dict(data))

    def delete(self, path: str, doc_id: str) -> WriteBatch:
        """Delete a document; deleting a missing document is not an error."""
        return self._append("delete", path, doc_id, None)

    async def commit(self) -> None:
        """Apply all writes atomically.

        Raises:
            BatchCommittedError: If the batch was already committed.
            DocumentNotFoundError: If an update targets a missing document.
            StoreUnavailableError: If the database call fails.
        """
        if self._committed:
            raise BatchCommittedError("Write batch already committed")

        async with self._store.write_session() as session:
            now = utc_now()
            for op, path, doc_id, data in self._operations:
                await self._store.apply_write(session, op, path, doc_id, data, now)

        self._committed = True
        logger.debug("Committed write batch with %d operations", len(self._operations))


class DocumentStore:
    """Document database facade over a single SQL table.

    Attributes:
        sessionmaker: Async sessionmaker bound to the document database.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self.sessionmaker = sessionmaker

    @staticmethod
    def new_id() -> str:
        """Generate a fresh document id."""
        return uuid4().hex

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def read_session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.sessionmaker() as session:
                yield session
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError("Document store read failed", e) from e

    @asynccontextmanager
    async def write_session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.sessionmaker() as session:
                async with session.begin():
                    await session.connection(execution_options={WRITE_TRANSACTION: True})
                    yield session
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError("Document store write failed", e) from e

    async def apply_write(
        self,
        session: AsyncSession,
        op: str,
        path: str,
        doc_id: str,
        data: dict[str, Any] | None,
        now: datetime,
    ) -> None:
        """Apply one write inside an open transaction.

        The target row is loaded with a row lock where the dialect supports
        it, so Increment transforms read and write under the same lock.
        """
        record = await session.get(DocumentRecord, (path, doc_id), with_for_update=True)

        if op == "delete":
            if record is not None:
                await session.delete(record)
                await session.flush()
            return

        if op == "update" and record is None:
            raise DocumentNotFoundError(path, doc_id)

        current = dict(record.data or {}) if record is not None else {}
        values = _resolve(data or {}, current)

        if record is None:
            session.add(
                DocumentRecord(
                    path=path,
                    id=doc_id,
                    data=values,
                    created_at=now,
                    updated_at=now,
                )
            )
        else:
            record.data = values if op == "set" else {**current, **values}
            record.updated_at = now
        await session.flush()

    # ------------------------------------------------------------------
    # Single document operations
    # ------------------------------------------------------------------

    async def get(self, path: str, doc_id: str) -> DocumentSnapshot | None:
        """Fetch one document, or None when it does not exist."""
        async with self.read_session() as session:
            record = await session.get(DocumentRecord, (path, doc_id))
            return _to_snapshot(record) if record is not None else None

    async def add(self, path: str, data: dict[str, Any]) -> str:
        """Insert a document under a generated id and return the id."""
        doc_id = self.new_id()
        await self.set(path, doc_id, data)
        return doc_id

    async def set(self, path: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        await self.batch().set(path, doc_id, data, merge=merge).commit()

    async def update(self, path: str, doc_id: str, data: dict[str, Any]) -> None:
        """Merge fields into an existing document.

        Raises:
            DocumentNotFoundError: If the document does not exist.
        """
        await self.batch().update(path, doc_id, data).commit()

    async def delete(self, path: str, doc_id: str) -> None:
        await self.batch().delete(path, doc_id).commit()

    # ------------------------------------------------------------------
    # Queries and batches
    # ------------------------------------------------------------------

    def query(self, path: str) -> Query:
        return Query(self, path=path)

    def collection_group(self, name: str) -> Query:
        """Query every sub-collection called ``name`` regardless of parent."""
        return Query(self, group=name)

    def batch(self) -> WriteBatch:
        return WriteBatch(self)
