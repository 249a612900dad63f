# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Student service for the canonical student store.

This module provides the StudentService class for:
- Listing, reading, creating and updating a teacher's students
- Deleting a student together with every grade membership referencing it
- Atomic bulk import of parsed spreadsheet rows
- Search, performance filtering and class statistics
"""

from __future__ import annotations

import asyncio
import logging
import math
from enum import Enum
from typing import Any, Iterable

from roster.domains.collections import MEMBERS, STUDENTS
from roster.domains.coordination import check_cancel, roster_locks, student_key
from roster.domains.errors import (
    RosterError,
    StudentNotFoundError,
    UnauthorizedError,
    ValidationFailedError,
)
from roster.domains.grade.service import GradeService
from roster.infrastructure.documents import (
    CREATE_TIME,
    DocumentSnapshot,
    DocumentStore,
    StoreUnavailableError,
    WriteBatch,
)
from roster.infrastructure.locks import KeyedLock
from roster.models.common import Performance, StudentStatus
from roster.models.student import (
    BatchDeleteResult,
    ClassStatistics,
    ImportedStudentRow,
    Student,
    StudentCreateRequest,
    StudentUpdateRequest,
)
from roster.utils.datetime import utc_today

logger = logging.getLogger(__name__)

# Model field name -> stored document key
_FIELDS = {
    "name": "name",
    "grade": "grade",
    "reading_level": "readingLevel",
    "attendance": "attendance",
    "performance": "performance",
    "last_assessment": "lastAssessment",
    "status": "status",
    "parent_id": "parentId",
    "parent_name": "parentName",
}

# Fields a partial update may clear with an explicit null
_NULLABLE = {"last_assessment", "parent_id", "parent_name"}


def _to_document(values: dict[str, Any]) -> dict[str, Any]:
    data = {}
    for field, value in values.items():
        if isinstance(value, Enum):
            value = value.value
        data[_FIELDS[field]] = value
    return data


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


class StudentService:
    """Service for the canonical student collection.

    Every student is owned by exactly one teacher. Deletes cascade to the
    membership index of every grade in the same atomic batch, under the
    student's lock.

    Attributes:
        store: Document store.
        grades: Grade service used to decrement cached counts after a delete.
        locks: Keyed lock registry.
    """

    def __init__(
        self,
        store: DocumentStore,
        grades: GradeService | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        """Initialize student service.

        Args:
            store: Document store holding the students collection.
            grades: Grade service; built from store when omitted.
            locks: Keyed lock registry; the process-wide registry when omitted.
        """
        self.store = store
        self.grades = grades or GradeService(store)
        self.locks = locks if locks is not None else roster_locks

    # =========================================================================
    # Reads
    # =========================================================================

    async def list_by_teacher(self, teacher_id: str) -> list[Student]:
        """List a teacher's students, newest first.

        If the filtered query fails, the whole collection is scanned once
        and filtered in memory.

        Args:
            teacher_id: Owning teacher.

        Returns:
            Students ordered by creation time descending.

        Raises:
            StoreUnavailableError: If both the query and the fallback scan fail.
        """
        query = (
            self.store.query(STUDENTS)
            .where("teacherId", teacher_id)
            .order_by(CREATE_TIME, descending=True)
        )
        try:
            snapshots = await query.get()
        except StoreUnavailableError as e:
            logger.warning(
                "Student query failed for teacher=%s, falling back to full scan: %s",
                teacher_id,
                e,
            )
            snapshots = await self._scan_by_teacher(teacher_id)

        return [self._to_student(snapshot) for snapshot in snapshots]

    async def _scan_by_teacher(self, teacher_id: str) -> list[DocumentSnapshot]:
        snapshots = [
            snapshot
            for snapshot in await self.store.query(STUDENTS).get()
            if snapshot.get("teacherId") == teacher_id
        ]
        snapshots.sort(key=lambda s: s.id)
        snapshots.sort(key=lambda s: s.create_time, reverse=True)
        return snapshots

    async def get(self, student_id: str) -> Student:
        """Get a student by id.

        Raises:
            StudentNotFoundError: If the student does not exist.
        """
        snapshot = await self.store.get(STUDENTS, student_id)
        if snapshot is None:
            raise StudentNotFoundError(f"Student {student_id} not found")
        return self._to_student(snapshot)

    async def get_owned(self, student_id: str, teacher_id: str) -> Student:
        """Get a student and verify the teacher owns it.

        Raises:
            StudentNotFoundError: If the student does not exist.
            UnauthorizedError: If another teacher owns the student.
        """
        student = await self.get(student_id)
        if student.teacher_id != teacher_id:
            raise UnauthorizedError(f"Unauthorized to access student {student_id}")
        return student

    async def existing_ids(self, student_ids: Iterable[str]) -> set[str]:
        """Return the subset of ids that resolve to an existing student."""
        ids = list(dict.fromkeys(student_ids))
        snapshots = await asyncio.gather(*(self.store.get(STUDENTS, sid) for sid in ids))
        return {snapshot.id for snapshot in snapshots if snapshot is not None}

    async def search(self, teacher_id: str, term: str) -> list[Student]:
        """Case-insensitive search on name or grade label, ordered by name."""
        needle = term.strip().casefold()
        students = [
            student
            for student in await self.list_by_teacher(teacher_id)
            if needle in student.name.casefold() or needle in student.grade.casefold()
        ]
        return sorted(students, key=lambda s: s.name.casefold())

    async def list_by_performance(self, teacher_id: str, performance: Performance) -> list[Student]:
        """List a teacher's students in one performance band, ordered by name."""
        snapshots = await (
            self.store.query(STUDENTS)
            .where("teacherId", teacher_id)
            .where("performance", Performance(performance).value)
            .get()
        )
        students = [self._to_student(snapshot) for snapshot in snapshots]
        return sorted(students, key=lambda s: s.name.casefold())

    async def class_statistics(self, teacher_id: str) -> ClassStatistics:
        """Aggregate attendance, reading level and performance figures."""
        students = await self.list_by_teacher(teacher_id)
        if not students:
            return ClassStatistics()

        total = len(students)
        attendance = sum(s.attendance for s in students) / total
        reading_level = sum(s.reading_level for s in students) / total

        return ClassStatistics(
            total_students=total,
            average_attendance=int(_round_half_up(attendance)),
            average_reading_level=_round_half_up(reading_level, 1),
            excellent_performers=sum(
                1 for s in students if s.performance == Performance.EXCELLENT
            ),
        )

    # =========================================================================
    # Writes
    # =========================================================================

    async def create(self, request: StudentCreateRequest, teacher_id: str) -> str:
        """Create a student owned by the teacher.

        Returns:
            The generated student id.
        """
        data = _to_document(request.model_dump())
        data["teacherId"] = teacher_id
        student_id = await self.store.add(STUDENTS, data)

        logger.info("Created student: id=%s, teacher=%s", student_id, teacher_id)
        return student_id

    async def update(
        self,
        student_id: str,
        request: StudentUpdateRequest,
        teacher_id: str | None = None,
    ) -> Student:
        """Merge the set fields of a partial update into a student.

        Used for ordinary edits, parent linking and promoting imported
        students from pending to active.

        Args:
            student_id: Student to update.
            request: Fields to change; unset fields are left alone.
            teacher_id: When given, the teacher must own the student.

        Returns:
            The updated student.

        Raises:
            StudentNotFoundError: If the student does not exist.
            UnauthorizedError: If teacher_id does not own the student.
        """
        if teacher_id is not None:
            await self.get_owned(student_id, teacher_id)
        else:
            await self.get(student_id)

        changes = _to_document(
            {
                key: value
                for key, value in request.model_dump(exclude_unset=True).items()
                if value is not None or key in _NULLABLE
            }
        )
        if changes:
            await self.store.update(STUDENTS, student_id, changes)
            logger.info("Updated student: id=%s, fields=%s", student_id, sorted(changes))

        return await self.get(student_id)

    async def delete(
        self,
        student_id: str,
        teacher_id: str,
        cancel: asyncio.Event | None = None,
    ) -> list[str]:
        """Delete a student and its membership in every grade.

        The student document and every membership row are removed in one
        atomic batch while the student's lock is held, so no membership
        can be added concurrently. Each affected grade's cached count is
        then decremented; a failed decrement is logged and left to the
        recomputed count.

        Args:
            student_id: Student to delete.
            teacher_id: Teacher that must own the student.
            cancel: Optional event; when set, nothing is committed.

        Returns:
            Ids of the grades the student was removed from.

        Raises:
            StudentNotFoundError: If the student does not exist.
            UnauthorizedError: If another teacher owns the student.
            OperationCancelledError: If cancelled before the batch commits.
        """
        async with self.locks.acquire(student_key(student_id)):
            await self.get_owned(student_id, teacher_id)

            batch = self.store.batch()
            grade_ids = await self.stage_delete(batch, student_id)
            check_cancel(cancel)
            await batch.commit()

        for grade_id in grade_ids:
            try:
                await self.grades.adjust_student_count(grade_id, -1)
            except (RosterError, StoreUnavailableError) as e:
                logger.warning("Failed to adjust student count for grade=%s: %s", grade_id, e)

        logger.info(
            "Deleted student: id=%s, teacher=%s, memberships=%d",
            student_id,
            teacher_id,
            len(grade_ids),
        )
        return grade_ids

    async def stage_delete(self, batch: WriteBatch, student_id: str) -> list[str]:
        """Add the cascade delete of one student to a batch.

        Returns:
            Ids of the grades holding a membership for the student.
        """
        memberships = await (
            self.store.collection_group(MEMBERS).where("studentId", student_id).get()
        )
        batch.delete(STUDENTS, student_id)
        for membership in memberships:
            batch.delete(membership.path, membership.id)
        return [m.parent_id for m in memberships if m.parent_id is not None]

    async def batch_delete(
        self,
        student_ids: list[str],
        teacher_id: str,
        cancel: asyncio.Event | None = None,
    ) -> BatchDeleteResult:
        """Delete several students, each with its own cascade.

        Deletes run concurrently and independently; one failure does not
        stop the others.
        """
        results = await asyncio.gather(
            *(self.delete(sid, teacher_id, cancel) for sid in student_ids),
            return_exceptions=True,
        )
        return collect_delete_results(student_ids, results)

    async def batch_import(self, rows: list[ImportedStudentRow], teacher_id: str) -> list[str]:
        """Create one student per row in a single atomic batch.

        Imported students start with attendance 0, performance Good, status
        pending and today's date as last assessment.

        Returns:
            Generated student ids in input order.

        Raises:
            ValidationFailedError: If any row has a blank name or grade.
        """
        batch = self.store.batch()
        student_ids = self.stage_import(batch, rows, teacher_id)
        await batch.commit()

        logger.info("Imported %d students for teacher=%s", len(student_ids), teacher_id)
        return student_ids

    def stage_import(
        self,
        batch: WriteBatch,
        rows: list[ImportedStudentRow],
        teacher_id: str,
    ) -> list[str]:
        """Validate rows and add their student documents to a batch."""
        validate_rows(rows)

        today = utc_today().isoformat()
        student_ids = []
        for row in rows:
            student_id = self.store.new_id()
            batch.set(
                STUDENTS,
                student_id,
                {
                    "name": row.name.strip(),
                    "grade": row.grade.strip(),
                    "readingLevel": row.reading_level,
                    "attendance": 0,
                    "performance": Performance.GOOD.value,
                    "lastAssessment": today,
                    "status": StudentStatus.PENDING.value,
                    "teacherId": teacher_id,
                    "parentId": row.parent_id,
                    "parentName": row.parent_name,
                },
            )
            student_ids.append(student_id)
        return student_ids

    @staticmethod
    def _to_student(snapshot: DocumentSnapshot) -> Student:
        """Convert a stored document to a Student model."""
        return Student(
            id=snapshot.id,
            name=snapshot.get("name", ""),
            grade=snapshot.get("grade", ""),
            reading_level=snapshot.get("readingLevel") or 1,
            attendance=snapshot.get("attendance") or 0,
            performance=snapshot.get("performance") or Performance.GOOD,
            last_assessment=snapshot.get("lastAssessment"),
            status=snapshot.get("status") or StudentStatus.PENDING,
            teacher_id=snapshot.get("teacherId", ""),
            parent_id=snapshot.get("parentId"),
            parent_name=snapshot.get("parentName"),
            created_at=snapshot.create_time,
            updated_at=snapshot.update_time,
        )


def validate_rows(rows: list[ImportedStudentRow]) -> None:
    """Reject rows with a blank name or grade label.

    Raises:
        ValidationFailedError: Naming every offending row index.
    """
    invalid = [
        index
        for index, row in enumerate(rows)
        if not row.name.strip() or not row.grade.strip()
    ]
    if invalid:
        raise ValidationFailedError(
            f"Rows missing name or grade: {invalid}",
            row_indexes=invalid,
        )


def collect_delete_results(ids: list[str], results: list[Any]) -> BatchDeleteResult:
    """Split gathered delete outcomes into deleted and failed ids."""
    outcome = BatchDeleteResult()
    for doc_id, result in zip(ids, results):
        if isinstance(result, Exception):
            logger.warning("Failed to delete %s: %s", doc_id, result)
            outcome.failed.append({"id": doc_id, "reason": str(result)})
        elif isinstance(result, BaseException):
            raise result
        else:
            outcome.deleted.append(doc_id)
    return outcome
