# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Reconciliation service keeping students, grades and memberships consistent.

This module provides the ReconciliationService class for:
- Importing parsed rows into a grade as a resumable saga
- Rolling back an import with compensating deletes
- Cascading student deletes with count maintenance
- Ownership-checked membership changes
- Authoritative member counts and reconciliation-aware grade listing
- Grade deletes that sweep the membership sub-collection atomically

The service owns no storage. Writes touching the same student or grade are
serialized through a keyed lock shared by every service instance.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from roster.domains.collections import CLASS_GRADES, IMPORT_JOBS, STUDENTS
from roster.domains.coordination import check_cancel, grade_key, roster_locks, student_key
from roster.domains.errors import (
    ImportJobNotFoundError,
    StudentNotFoundError,
    UnauthorizedError,
    ValidationFailedError,
)
from roster.domains.grade.service import GradeService
from roster.domains.membership.service import MembershipService
from roster.domains.student.service import StudentService, collect_delete_results, validate_rows
from roster.infrastructure.documents import DocumentSnapshot, DocumentStore
from roster.infrastructure.locks import KeyedLock
from roster.models.common import ImportJobStatus
from roster.models.grade import GradeWithCount
from roster.models.import_job import ImportJob, ImportSummary, SkippedRow
from roster.models.membership import Membership
from roster.models.student import BatchDeleteResult, ImportedStudentRow

logger = logging.getLogger(__name__)

LINK_BY_ID = "by_id"
LINK_BY_NAME = "by_name"


class ReconciliationService:
    """Coordinates composite roster operations.

    Attributes:
        store: Document store.
        students: Student service.
        grades: Grade service.
        memberships: Membership service.
        link_strategy: How imported rows are matched to created students.
        max_rows: Maximum rows accepted by one import.
    """

    def __init__(
        self,
        store: DocumentStore,
        students: StudentService | None = None,
        grades: GradeService | None = None,
        memberships: MembershipService | None = None,
        locks: KeyedLock | None = None,
        link_strategy: str = LINK_BY_ID,
        max_rows: int = 500,
    ) -> None:
        """Initialize reconciliation service.

        Args:
            store: Document store shared by all services.
            students: Student service; built from store when omitted. An
                injected service should share the same lock registry.
            grades: Grade service; built from store when omitted.
            memberships: Membership service; built from store when omitted.
            locks: Keyed lock registry; the process-wide registry when omitted.
            link_strategy: ``by_id`` or ``by_name``.
            max_rows: Maximum rows accepted by one import.
        """
        if link_strategy not in (LINK_BY_ID, LINK_BY_NAME):
            raise ValueError(f"Unknown link strategy: {link_strategy}")

        self.store = store
        self.locks = locks if locks is not None else roster_locks
        self.grades = grades or GradeService(store)
        self.students = students or StudentService(store, self.grades, self.locks)
        self.memberships = memberships or MembershipService(store, self.grades)
        self.link_strategy = link_strategy
        self.max_rows = max_rows

    # =========================================================================
    # Import
    # =========================================================================

    async def import_students(
        self,
        rows: list[ImportedStudentRow],
        grade_id: str,
        teacher_id: str,
        cancel: asyncio.Event | None = None,
    ) -> ImportSummary:
        """Import parsed rows as students and link them to a grade.

        Students and the import checkpoint are written in one atomic batch;
        linking then proceeds row by row, recording progress on the job so
        that resume_import() can finish a crashed import.

        Args:
            rows: Parsed spreadsheet rows.
            grade_id: Grade to link the new students to.
            teacher_id: Importing teacher.
            cancel: Optional event; when set, the import stops before its
                next write.

        Returns:
            Summary of linked and skipped rows.

        Raises:
            ValidationFailedError: If rows are blank or exceed the row limit.
            GradeNotFoundError: If the grade does not exist.
            UnauthorizedError: If the teacher does not own the grade.
            OperationCancelledError: If cancelled.
        """
        if len(rows) > self.max_rows:
            raise ValidationFailedError(
                f"Import exceeds {self.max_rows} rows",
                row_indexes=list(range(self.max_rows, len(rows))),
            )
        validate_rows(rows)
        await self.grades.get_owned(grade_id, teacher_id)
        check_cancel(cancel)

        batch = self.store.batch()
        student_ids = self.students.stage_import(batch, rows, teacher_id)
        import_id = self.store.new_id()
        batch.set(
            IMPORT_JOBS,
            import_id,
            {
                "teacherId": teacher_id,
                "gradeId": grade_id,
                "strategy": self.link_strategy,
                "rows": [row.model_dump() for row in rows],
                "studentIds": student_ids,
                "linkedRows": [],
                "status": ImportJobStatus.STUDENTS_CREATED.value,
            },
        )
        await batch.commit()

        logger.info(
            "Import %s created %d students for grade=%s, teacher=%s",
            import_id,
            len(student_ids),
            grade_id,
            teacher_id,
        )

        job = await self.get_import_job(import_id, teacher_id)
        return await self._link(job, cancel)

    async def resume_import(
        self,
        import_id: str,
        teacher_id: str,
        cancel: asyncio.Event | None = None,
    ) -> ImportSummary:
        """Finish linking an interrupted import.

        Students are never re-created; rows already linked are left alone.

        Raises:
            ImportJobNotFoundError: If the job does not exist.
            UnauthorizedError: If another teacher owns the job.
            ValidationFailedError: If the import was rolled back.
        """
        job = await self.get_import_job(import_id, teacher_id)
        if job.status == ImportJobStatus.ROLLED_BACK:
            raise ValidationFailedError(f"Import {import_id} was rolled back")

        await self.grades.get_owned(job.grade_id, teacher_id)
        logger.info(
            "Resuming import %s (%d/%d linked)",
            import_id,
            len(job.linked_rows),
            len(job.rows),
        )
        return await self._link(job, cancel)

    async def rollback_import(self, import_id: str, teacher_id: str) -> BatchDeleteResult:
        """Delete every student an import created.

        Each student is removed with its memberships; students already gone
        are counted as deleted. The job is marked rolled back only when no
        delete failed; otherwise it keeps its status.

        Raises:
            ImportJobNotFoundError: If the job does not exist.
            UnauthorizedError: If another teacher owns the job.
        """
        job = await self.get_import_job(import_id, teacher_id)

        results = await asyncio.gather(
            *(self._delete_if_present(sid, teacher_id) for sid in job.student_ids),
            return_exceptions=True,
        )
        outcome = collect_delete_results(job.student_ids, results)

        if outcome.failed:
            logger.warning(
                "Rollback of import %s incomplete: %d students not deleted",
                import_id,
                len(outcome.failed),
            )
            return outcome

        await self.store.update(
            IMPORT_JOBS, import_id, {"status": ImportJobStatus.ROLLED_BACK.value}
        )
        logger.info(
            "Rolled back import %s: deleted=%d, failed=%d",
            import_id,
            len(outcome.deleted),
            len(outcome.failed),
        )
        return outcome

    async def get_import_job(self, import_id: str, teacher_id: str) -> ImportJob:
        """Load an import checkpoint owned by the teacher.

        Raises:
            ImportJobNotFoundError: If the job does not exist.
            UnauthorizedError: If another teacher owns the job.
        """
        snapshot = await self.store.get(IMPORT_JOBS, import_id)
        if snapshot is None:
            raise ImportJobNotFoundError(f"Import {import_id} not found")
        job = self._to_import_job(snapshot)
        if job.teacher_id != teacher_id:
            raise UnauthorizedError(f"Unauthorized to access import {import_id}")
        return job

    async def _link(self, job: ImportJob, cancel: asyncio.Event | None) -> ImportSummary:
        targets, skipped = await self._resolve_targets(job)
        linked_rows = list(job.linked_rows)

        for index, student_id in targets.items():
            if index in linked_rows:
                continue
            check_cancel(cancel)

            async with self.locks.hold(grade_key(job.grade_id), student_key(student_id)):
                if await self.store.get(STUDENTS, student_id) is None:
                    skipped.append(SkippedRow(row_index=index, reason="Student no longer exists"))
                    continue
                await self.memberships.add(job.grade_id, student_id, job.rows[index].name.strip())

            linked_rows.append(index)
            await self.store.update(IMPORT_JOBS, job.id, {"linkedRows": sorted(linked_rows)})

        await self.store.update(IMPORT_JOBS, job.id, {"status": ImportJobStatus.COMPLETED.value})

        skipped.sort(key=lambda s: s.row_index)
        summary = ImportSummary(
            import_id=job.id,
            total_rows=len(job.rows),
            linked=len(linked_rows),
            skipped=skipped,
            student_ids=job.student_ids,
            is_complete=len(linked_rows) == len(job.rows),
        )

        if summary.is_complete:
            logger.info("Import %s linked %d rows", job.id, summary.linked)
        else:
            logger.warning(
                "Import %s partially linked: %d of %d rows, skipped=%s",
                job.id,
                summary.linked,
                summary.total_rows,
                [s.row_index for s in skipped],
            )
        return summary

    async def _resolve_targets(self, job: ImportJob) -> tuple[dict[int, str], list[SkippedRow]]:
        """Map row indexes to the student each row should be linked to."""
        if job.strategy == LINK_BY_ID:
            return dict(enumerate(job.student_ids)), []

        # Legacy matching: first student in the teacher's roster with the
        # same (name, grade) wins; a row whose first match is already taken
        # by an earlier row is skipped.
        roster = await self.students.list_by_teacher(job.teacher_id)
        targets: dict[int, str] = {}
        skipped: list[SkippedRow] = []
        claimed: set[str] = set()

        for index, row in enumerate(job.rows):
            key = (row.name.strip(), row.grade.strip())
            match = next((s for s in roster if (s.name, s.grade) == key), None)
            if match is None:
                skipped.append(SkippedRow(row_index=index, reason="No matching student"))
            elif match.id in claimed:
                skipped.append(
                    SkippedRow(row_index=index, reason=f"Ambiguous match on name '{key[0]}'")
                )
            else:
                claimed.add(match.id)
                targets[index] = match.id
        return targets, skipped

    # =========================================================================
    # Students
    # =========================================================================

    async def delete_student(
        self,
        student_id: str,
        teacher_id: str,
        cancel: asyncio.Event | None = None,
    ) -> list[str]:
        """Delete a student and its memberships in every grade.

        The cascade runs in the student store under the student lock, so it
        excludes a concurrent add_membership() for the same student.

        Returns:
            Ids of the grades the student was removed from.

        Raises:
            StudentNotFoundError: If the student does not exist.
            UnauthorizedError: If another teacher owns the student.
            OperationCancelledError: If cancelled before the batch commits.
        """
        return await self.students.delete(student_id, teacher_id, cancel=cancel)

    async def batch_delete_students(
        self,
        student_ids: list[str],
        teacher_id: str,
        cancel: asyncio.Event | None = None,
    ) -> BatchDeleteResult:
        """Delete several students concurrently, each with its own cascade."""
        results = await asyncio.gather(
            *(self.delete_student(sid, teacher_id, cancel) for sid in student_ids),
            return_exceptions=True,
        )
        return collect_delete_results(student_ids, results)

    async def _delete_if_present(self, student_id: str, teacher_id: str) -> None:
        try:
            await self.delete_student(student_id, teacher_id)
        except StudentNotFoundError:
            logger.debug("Student %s already deleted", student_id)

    # =========================================================================
    # Memberships
    # =========================================================================

    async def add_membership(self, grade_id: str, student_id: str, teacher_id: str) -> bool:
        """Add a student to a grade the same teacher owns.

        Returns:
            True if a membership was created, False if it already existed.

        Raises:
            GradeNotFoundError: If the grade does not exist.
            StudentNotFoundError: If the student does not exist.
            UnauthorizedError: If the teacher does not own both records.
        """
        async with self.locks.hold(grade_key(grade_id), student_key(student_id)):
            await self.grades.get_owned(grade_id, teacher_id)
            student = await self.students.get_owned(student_id, teacher_id)
            return await self.memberships.add(grade_id, student_id, student.name)

    async def remove_membership(self, grade_id: str, student_id: str, teacher_id: str) -> bool:
        """Remove a student from a grade the teacher owns.

        Returns:
            True if a membership was deleted.

        Raises:
            GradeNotFoundError: If the grade does not exist.
            UnauthorizedError: If the teacher does not own the grade.
        """
        async with self.locks.hold(grade_key(grade_id), student_key(student_id)):
            await self.grades.get_owned(grade_id, teacher_id)
            return await self.memberships.remove(grade_id, student_id)

    async def grade_roster(self, grade_id: str, teacher_id: str) -> list[Membership]:
        """List a grade's memberships, excluding deleted students."""
        await self.grades.get_owned(grade_id, teacher_id)
        return await self._valid_memberships(grade_id)

    # =========================================================================
    # Counts
    # =========================================================================

    async def recompute_count(
        self,
        grade_id: str,
        teacher_id: str | None = None,
        persist: bool = False,
    ) -> int:
        """Count the memberships of a grade whose student still exists.

        Args:
            grade_id: Grade to count.
            teacher_id: When given, the teacher must own the grade.
            persist: Write the result back to the cached counter.

        Returns:
            The authoritative member count.
        """
        if teacher_id is not None:
            await self.grades.get_owned(grade_id, teacher_id)

        count = len(await self._valid_memberships(grade_id))
        if persist:
            await self.grades.set_student_count(grade_id, count)
            logger.info("Persisted recomputed count for grade=%s: %d", grade_id, count)
        return count

    async def sweep_grade(self, grade_id: str, teacher_id: str) -> int:
        """Delete orphaned memberships of a grade and reset its counter.

        Returns:
            Number of memberships removed.
        """
        async with self.locks.acquire(grade_key(grade_id)):
            await self.grades.get_owned(grade_id, teacher_id)
            memberships = await self.memberships.list(grade_id)
            live = await self.students.existing_ids(m.student_id for m in memberships)
            return await self.memberships.sweep_stale(grade_id, live)

    async def list_grades_with_counts(self, teacher_id: str) -> list[GradeWithCount]:
        """List a teacher's active grades with recomputed member counts."""
        grades = await self.grades.list_by_teacher(teacher_id)
        counts = await asyncio.gather(*(self.recompute_count(g.id) for g in grades))
        return [
            GradeWithCount(
                **grade.model_dump(exclude={"student_count"}),
                student_count=count,
                cached_student_count=grade.student_count,
            )
            for grade, count in zip(grades, counts)
        ]

    # =========================================================================
    # Grades
    # =========================================================================

    async def delete_grade(
        self,
        grade_id: str,
        teacher_id: str,
        cancel: asyncio.Event | None = None,
    ) -> int:
        """Delete a grade and its whole membership sub-collection atomically.

        Returns:
            Number of memberships removed with the grade.

        Raises:
            GradeNotFoundError: If the grade does not exist.
            UnauthorizedError: If another teacher owns the grade.
            OperationCancelledError: If cancelled before the batch commits.
        """
        async with self.locks.acquire(grade_key(grade_id)):
            await self.grades.get_owned(grade_id, teacher_id)

            batch = self.store.batch()
            batch.delete(CLASS_GRADES, grade_id)
            removed = await self.memberships.stage_clear(batch, grade_id)
            check_cancel(cancel)
            await batch.commit()

        logger.info("Deleted grade %s with %d memberships", grade_id, removed)
        return removed

    async def bulk_delete_grades(
        self,
        grade_ids: list[str],
        teacher_id: str,
        cancel: asyncio.Event | None = None,
    ) -> BatchDeleteResult:
        """Delete several grades, each with its own membership sweep."""
        results = await asyncio.gather(
            *(self.delete_grade(gid, teacher_id, cancel) for gid in grade_ids),
            return_exceptions=True,
        )
        return collect_delete_results(grade_ids, results)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _valid_memberships(self, grade_id: str) -> list[Membership]:
        memberships = await self.memberships.list(grade_id)
        live = await self.students.existing_ids(m.student_id for m in memberships)
        return await self.memberships.list_valid(grade_id, live)

    @staticmethod
    def _to_import_job(snapshot: DocumentSnapshot) -> ImportJob:
        data: dict[str, Any] = snapshot.data
        return ImportJob(
            id=snapshot.id,
            teacher_id=data.get("teacherId", ""),
            grade_id=data.get("gradeId", ""),
            strategy=data.get("strategy", LINK_BY_ID),
            rows=[ImportedStudentRow(**row) for row in data.get("rows", [])],
            student_ids=list(data.get("studentIds", [])),
            linked_rows=list(data.get("linkedRows", [])),
            status=data.get("status", ImportJobStatus.STUDENTS_CREATED.value),
            created_at=snapshot.create_time,
            updated_at=snapshot.update_time,
        )
