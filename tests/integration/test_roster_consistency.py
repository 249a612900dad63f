# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for roster consistency across students, grades and memberships.

These tests run the real services against a SQLite document store.
"""

import asyncio

import pytest

from roster.domains.collections import CLASS_GRADES, IMPORT_JOBS, MEMBERS, STUDENTS
from roster.domains.errors import (
    GradeNameExistsError,
    GradeNotFoundError,
    StudentNotFoundError,
    UnauthorizedError,
    ValidationFailedError,
)
from roster.domains.grade import DEFAULT_GRADES, GradeService
from roster.domains.membership import MembershipService
from roster.domains.reconciliation import LINK_BY_NAME, ReconciliationService
from roster.domains.student import StudentService
from roster.infrastructure.locks import KeyedLock
from roster.models.common import ImportJobStatus, Performance, StudentStatus
from roster.models.grade import GradeCreateRequest, GradeUpdateRequest
from roster.models.student import ImportedStudentRow, StudentCreateRequest, StudentUpdateRequest

pytestmark = pytest.mark.integration


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def locks():
    """Lock registry private to the test, shared by every service."""
    return KeyedLock()


@pytest.fixture
def grades(store):
    return GradeService(store)


@pytest.fixture
def students(store, grades, locks):
    return StudentService(store, grades, locks)


@pytest.fixture
def memberships(store, grades):
    return MembershipService(store, grades)


@pytest.fixture
def reconciliation(store, students, grades, memberships, locks):
    return ReconciliationService(
        store=store,
        students=students,
        grades=grades,
        memberships=memberships,
        locks=locks,
    )


@pytest.fixture
def rows(sample_rows):
    return [ImportedStudentRow(**row) for row in sample_rows]


async def _create_grade(grades, teacher_id, name="G3"):
    return await grades.create(GradeCreateRequest(name=name), teacher_id)


async def _create_student(students, teacher_id, name="Ana", grade="G3"):
    return await students.create(StudentCreateRequest(name=name, grade=grade), teacher_id)


# =============================================================================
# Membership properties
# =============================================================================


class TestMembershipConsistency:
    """Tests for idempotent membership and count maintenance."""

    @pytest.mark.asyncio
    async def test_add_twice_creates_one_membership(
        self, reconciliation, grades, students, teacher_id
    ):
        """Test that a duplicate add is a no-op."""
        grade_id = await _create_grade(grades, teacher_id)
        student_id = await _create_student(students, teacher_id)

        first = await reconciliation.add_membership(grade_id, student_id, teacher_id)
        second = await reconciliation.add_membership(grade_id, student_id, teacher_id)

        assert first is True
        assert second is False
        assert await reconciliation.recompute_count(grade_id) == 1
        assert (await grades.get_by_id(grade_id)).student_count == 1

    @pytest.mark.asyncio
    async def test_remove_absent_never_goes_below_zero(
        self, reconciliation, memberships, grades, students, teacher_id
    ):
        """Test the count floor on repeated removes."""
        grade_id = await _create_grade(grades, teacher_id)
        student_id = await _create_student(students, teacher_id)
        await reconciliation.add_membership(grade_id, student_id, teacher_id)

        assert await reconciliation.remove_membership(grade_id, student_id, teacher_id) is True
        for _ in range(3):
            assert await reconciliation.remove_membership(grade_id, student_id, teacher_id) is False

        assert (await grades.get_by_id(grade_id)).student_count == 0
        assert await memberships.list(grade_id) == []

    @pytest.mark.asyncio
    async def test_floored_decrement_on_zero_count(self, grades, teacher_id):
        """Test that a stray decrement leaves the counter at zero."""
        grade_id = await _create_grade(grades, teacher_id)

        await grades.adjust_student_count(grade_id, -1)

        assert (await grades.get_by_id(grade_id)).student_count == 0

    @pytest.mark.asyncio
    async def test_cross_teacher_membership_rejected(
        self, reconciliation, grades, students, memberships, teacher_id, other_teacher_id
    ):
        """Test that a student can only join a grade of the same teacher."""
        grade_id = await _create_grade(grades, teacher_id)
        foreign_student = await _create_student(students, other_teacher_id)

        with pytest.raises(UnauthorizedError):
            await reconciliation.add_membership(grade_id, foreign_student, teacher_id)
        with pytest.raises(UnauthorizedError):
            await reconciliation.add_membership(grade_id, foreign_student, other_teacher_id)

        assert await memberships.list(grade_id) == []

    @pytest.mark.asyncio
    async def test_add_unknown_student(self, reconciliation, grades, teacher_id):
        """Test linking a student that does not exist."""
        grade_id = await _create_grade(grades, teacher_id)

        with pytest.raises(StudentNotFoundError):
            await reconciliation.add_membership(grade_id, "missing", teacher_id)


# =============================================================================
# Cascade delete
# =============================================================================


class TestCascadeDelete:
    """Tests for student deletes reaching every grade."""

    @pytest.mark.asyncio
    async def test_delete_removes_membership_from_every_grade(
        self, store, reconciliation, grades, students, memberships, teacher_id
    ):
        """Test cascade completeness across two grades."""
        g1 = await _create_grade(grades, teacher_id, "G1")
        g2 = await _create_grade(grades, teacher_id, "G2")
        student_id = await _create_student(students, teacher_id)
        await reconciliation.add_membership(g1, student_id, teacher_id)
        await reconciliation.add_membership(g2, student_id, teacher_id)

        affected = await reconciliation.delete_student(student_id, teacher_id)

        assert sorted(affected) == sorted([g1, g2])
        assert await reconciliation.grade_roster(g1, teacher_id) == []
        assert await reconciliation.grade_roster(g2, teacher_id) == []
        assert await store.collection_group(MEMBERS).where("studentId", student_id).get() == []
        assert (await grades.get_by_id(g1)).student_count == 0
        assert (await grades.get_by_id(g2)).student_count == 0

    @pytest.mark.asyncio
    async def test_delete_foreign_student_rejected(
        self, reconciliation, students, teacher_id, other_teacher_id
    ):
        """Test that only the owner can delete a student."""
        student_id = await _create_student(students, teacher_id)

        with pytest.raises(UnauthorizedError):
            await reconciliation.delete_student(student_id, other_teacher_id)

        assert (await students.get(student_id)).id == student_id

    @pytest.mark.asyncio
    async def test_batch_delete_reports_failures(self, reconciliation, students, teacher_id):
        """Test best-effort batch delete."""
        s1 = await _create_student(students, teacher_id, "Ana")
        s2 = await _create_student(students, teacher_id, "Ben")

        result = await reconciliation.batch_delete_students([s1, "missing", s2], teacher_id)

        assert result.deleted == [s1, s2]
        assert [f["id"] for f in result.failed] == ["missing"]
        assert await students.existing_ids([s1, s2]) == set()


# =============================================================================
# Counts
# =============================================================================


class TestAuthoritativeCount:
    """Tests for recomputed counts over valid memberships."""

    @pytest.mark.asyncio
    async def test_listing_ignores_corrupted_counter(
        self, store, reconciliation, grades, rows, teacher_id
    ):
        """Test that the listing reports the recomputed count."""
        grade_id = await _create_grade(grades, teacher_id)
        await reconciliation.import_students(rows, grade_id, teacher_id)
        await store.update(CLASS_GRADES, grade_id, {"studentCount": 99})

        listed = await reconciliation.list_grades_with_counts(teacher_id)

        assert len(listed) == 1
        assert listed[0].student_count == 2
        assert listed[0].cached_student_count == 99

    @pytest.mark.asyncio
    async def test_stale_membership_excluded_until_swept(
        self, store, reconciliation, grades, students, memberships, teacher_id
    ):
        """Test a membership left behind by a raw student delete."""
        grade_id = await _create_grade(grades, teacher_id)
        keep = await _create_student(students, teacher_id, "Ana")
        gone = await _create_student(students, teacher_id, "Ben")
        await reconciliation.add_membership(grade_id, keep, teacher_id)
        await reconciliation.add_membership(grade_id, gone, teacher_id)
        await store.delete("students", gone)

        assert len(await memberships.list(grade_id)) == 2
        assert await reconciliation.recompute_count(grade_id, teacher_id) == 1
        assert [m.student_id for m in await reconciliation.grade_roster(grade_id, teacher_id)] == [keep]

        swept = await reconciliation.sweep_grade(grade_id, teacher_id)

        assert swept == 1
        assert [m.student_id for m in await memberships.list(grade_id)] == [keep]
        assert (await grades.get_by_id(grade_id)).student_count == 1

    @pytest.mark.asyncio
    async def test_recompute_can_persist(self, store, reconciliation, grades, teacher_id):
        """Test writing the recomputed count back to the grade."""
        grade_id = await _create_grade(grades, teacher_id)
        await store.update(CLASS_GRADES, grade_id, {"studentCount": 7})

        count = await reconciliation.recompute_count(grade_id, teacher_id, persist=True)

        assert count == 0
        assert (await grades.get_by_id(grade_id)).student_count == 0

    @pytest.mark.asyncio
    async def test_listing_is_scoped_to_teacher(
        self, reconciliation, grades, teacher_id, other_teacher_id
    ):
        """Test that another teacher's grades are not listed."""
        await _create_grade(grades, teacher_id, "Mine")
        await _create_grade(grades, other_teacher_id, "Theirs")

        listed = await reconciliation.list_grades_with_counts(teacher_id)

        assert [g.name for g in listed] == ["Mine"]


# =============================================================================
# Import
# =============================================================================


class TestImport:
    """Tests for the import saga."""

    @pytest.mark.asyncio
    async def test_import_links_every_row(
        self, reconciliation, grades, students, memberships, rows, teacher_id
    ):
        """Test that two rows become two linked students."""
        grade_id = await _create_grade(grades, teacher_id)

        summary = await reconciliation.import_students(rows, grade_id, teacher_id)

        assert summary.total_rows == 2
        assert summary.linked == 2
        assert summary.is_complete is True
        assert summary.skipped == []
        assert len(summary.student_ids) == 2

        created = await students.list_by_teacher(teacher_id)
        assert sorted(s.name for s in created) == ["Ana", "Ben"]
        assert all(s.status == StudentStatus.PENDING for s in created)
        assert all(s.performance == Performance.GOOD for s in created)

        linked = await memberships.list(grade_id)
        assert sorted(m.student_id for m in linked) == sorted(summary.student_ids)
        assert await reconciliation.recompute_count(grade_id) == 2

        job = await reconciliation.get_import_job(summary.import_id, teacher_id)
        assert job.status == ImportJobStatus.COMPLETED
        assert job.linked_rows == [0, 1]

    @pytest.mark.asyncio
    async def test_duplicate_names_link_by_id(self, reconciliation, grades, teacher_id):
        """Test that identical rows each link their own student."""
        grade_id = await _create_grade(grades, teacher_id)
        rows = [ImportedStudentRow(name="Cara", grade="G3")] * 2

        summary = await reconciliation.import_students(rows, grade_id, teacher_id)

        assert summary.linked == 2
        assert summary.is_complete is True
        assert await reconciliation.recompute_count(grade_id) == 2

    @pytest.mark.asyncio
    async def test_duplicate_names_by_name_is_partial(
        self, store, students, grades, memberships, teacher_id
    ):
        """Test that legacy name matching reports the ambiguous row."""
        service = ReconciliationService(
            store=store,
            students=students,
            grades=grades,
            memberships=memberships,
            locks=KeyedLock(),
            link_strategy=LINK_BY_NAME,
        )
        grade_id = await _create_grade(grades, teacher_id)
        rows = [ImportedStudentRow(name="Cara", grade="G3")] * 2

        summary = await service.import_students(rows, grade_id, teacher_id)

        assert summary.total_rows == 2
        assert summary.linked == 1
        assert summary.is_complete is False
        assert [s.row_index for s in summary.skipped] == [1]
        assert "Ambiguous" in summary.skipped[0].reason
        assert len(await students.list_by_teacher(teacher_id)) == 2
        assert await service.recompute_count(grade_id) == 1

    @pytest.mark.asyncio
    async def test_invalid_rows_create_nothing(self, reconciliation, grades, students, teacher_id):
        """Test that blank rows abort the import before any write."""
        grade_id = await _create_grade(grades, teacher_id)
        rows = [ImportedStudentRow(name="Ana", grade="G3"), ImportedStudentRow(name=" ", grade="G3")]

        with pytest.raises(ValidationFailedError) as exc_info:
            await reconciliation.import_students(rows, grade_id, teacher_id)

        assert exc_info.value.row_indexes == [1]
        assert await students.list_by_teacher(teacher_id) == []

    @pytest.mark.asyncio
    async def test_import_into_foreign_grade(
        self, reconciliation, grades, students, rows, teacher_id, other_teacher_id
    ):
        """Test that importing into another teacher's grade creates nothing."""
        grade_id = await _create_grade(grades, other_teacher_id)

        with pytest.raises(UnauthorizedError):
            await reconciliation.import_students(rows, grade_id, teacher_id)

        assert await students.list_by_teacher(teacher_id) == []

    @pytest.mark.asyncio
    async def test_import_into_missing_grade(self, reconciliation, rows, teacher_id):
        """Test importing into an unknown grade."""
        with pytest.raises(GradeNotFoundError):
            await reconciliation.import_students(rows, "missing", teacher_id)

    @pytest.mark.asyncio
    async def test_resume_finishes_interrupted_import(
        self, store, reconciliation, students, grades, memberships, rows, teacher_id
    ):
        """Test resuming a job whose second row was never linked."""
        grade_id = await _create_grade(grades, teacher_id)

        batch = store.batch()
        student_ids = students.stage_import(batch, rows, teacher_id)
        batch.set(
            IMPORT_JOBS,
            "job-1",
            {
                "teacherId": teacher_id,
                "gradeId": grade_id,
                "strategy": "by_id",
                "rows": [row.model_dump() for row in rows],
                "studentIds": student_ids,
                "linkedRows": [0],
                "status": ImportJobStatus.STUDENTS_CREATED.value,
            },
        )
        await batch.commit()
        await memberships.add(grade_id, student_ids[0], "Ana")

        summary = await reconciliation.resume_import("job-1", teacher_id)
        again = await reconciliation.resume_import("job-1", teacher_id)

        assert summary.linked == 2
        assert summary.is_complete is True
        assert again.linked == 2
        assert len(await students.list_by_teacher(teacher_id)) == 2
        assert sorted(m.student_id for m in await memberships.list(grade_id)) == sorted(student_ids)
        assert (await grades.get_by_id(grade_id)).student_count == 2

    @pytest.mark.asyncio
    async def test_resume_foreign_job_rejected(
        self, reconciliation, grades, rows, teacher_id, other_teacher_id
    ):
        """Test that import jobs are scoped to their teacher."""
        grade_id = await _create_grade(grades, teacher_id)
        summary = await reconciliation.import_students(rows, grade_id, teacher_id)

        with pytest.raises(UnauthorizedError):
            await reconciliation.resume_import(summary.import_id, other_teacher_id)

    @pytest.mark.asyncio
    async def test_rollback_removes_created_students(
        self, reconciliation, grades, students, memberships, rows, teacher_id
    ):
        """Test compensating deletes for an import."""
        grade_id = await _create_grade(grades, teacher_id)
        summary = await reconciliation.import_students(rows, grade_id, teacher_id)

        result = await reconciliation.rollback_import(summary.import_id, teacher_id)

        assert sorted(result.deleted) == sorted(summary.student_ids)
        assert result.failed == []
        assert await students.list_by_teacher(teacher_id) == []
        assert await memberships.list(grade_id) == []
        assert (await grades.get_by_id(grade_id)).student_count == 0

        job = await reconciliation.get_import_job(summary.import_id, teacher_id)
        assert job.status == ImportJobStatus.ROLLED_BACK
        with pytest.raises(ValidationFailedError):
            await reconciliation.resume_import(summary.import_id, teacher_id)

    @pytest.mark.asyncio
    async def test_rollback_tolerates_already_deleted_students(
        self, reconciliation, grades, rows, teacher_id
    ):
        """Test that students deleted earlier count as rolled back."""
        grade_id = await _create_grade(grades, teacher_id)
        summary = await reconciliation.import_students(rows, grade_id, teacher_id)
        await reconciliation.delete_student(summary.student_ids[0], teacher_id)

        result = await reconciliation.rollback_import(summary.import_id, teacher_id)

        assert sorted(result.deleted) == sorted(summary.student_ids)
        assert result.failed == []

    @pytest.mark.asyncio
    async def test_partial_rollback_can_be_retried(
        self, store, reconciliation, grades, rows, teacher_id, other_teacher_id
    ):
        """Test that a rollback with failures leaves the job open for another try."""
        grade_id = await _create_grade(grades, teacher_id)
        summary = await reconciliation.import_students(rows, grade_id, teacher_id)
        blocked = summary.student_ids[1]
        await store.update(STUDENTS, blocked, {"teacherId": other_teacher_id})

        first = await reconciliation.rollback_import(summary.import_id, teacher_id)

        assert first.deleted == [summary.student_ids[0]]
        assert [f["id"] for f in first.failed] == [blocked]
        job = await reconciliation.get_import_job(summary.import_id, teacher_id)
        assert job.status != ImportJobStatus.ROLLED_BACK

        await store.update(STUDENTS, blocked, {"teacherId": teacher_id})
        second = await reconciliation.rollback_import(summary.import_id, teacher_id)

        assert sorted(second.deleted) == sorted(summary.student_ids)
        assert second.failed == []
        job = await reconciliation.get_import_job(summary.import_id, teacher_id)
        assert job.status == ImportJobStatus.ROLLED_BACK
        assert (await grades.get_by_id(grade_id)).student_count == 0


# =============================================================================
# Grades
# =============================================================================


class TestGradeDirectory:
    """Tests for grade lifecycle."""

    @pytest.mark.asyncio
    async def test_delete_grade_sweeps_memberships(
        self, store, reconciliation, grades, students, rows, teacher_id
    ):
        """Test that a grade delete leaves no memberships behind."""
        grade_id = await _create_grade(grades, teacher_id)
        summary = await reconciliation.import_students(rows, grade_id, teacher_id)

        removed = await reconciliation.delete_grade(grade_id, teacher_id)

        assert removed == 2
        assert await store.get(CLASS_GRADES, grade_id) is None
        assert await store.collection_group(MEMBERS).get() == []
        assert await students.existing_ids(summary.student_ids) == set(summary.student_ids)

    @pytest.mark.asyncio
    async def test_bulk_delete_grades(self, reconciliation, grades, teacher_id, other_teacher_id):
        """Test that foreign grades fail individually."""
        mine = await _create_grade(grades, teacher_id, "Mine")
        theirs = await _create_grade(grades, other_teacher_id, "Theirs")

        result = await reconciliation.bulk_delete_grades([mine, theirs], teacher_id)

        assert result.deleted == [mine]
        assert [f["id"] for f in result.failed] == [theirs]

    @pytest.mark.asyncio
    async def test_duplicate_grade_name_rejected(self, grades, teacher_id, other_teacher_id):
        """Test per-teacher grade name uniqueness."""
        await _create_grade(grades, teacher_id, "Grade 1")

        with pytest.raises(GradeNameExistsError):
            await _create_grade(grades, teacher_id, "Grade 1")
        assert await _create_grade(grades, other_teacher_id, "Grade 1")

    @pytest.mark.asyncio
    async def test_seed_default_grades_once(self, grades, teacher_id):
        """Test seeding Grade 1 to Grade 6."""
        created = await grades.seed_default_grades(teacher_id)
        again = await grades.seed_default_grades(teacher_id)

        listed = await grades.list_by_teacher(teacher_id)
        assert len(created) == len(DEFAULT_GRADES)
        assert again == []
        assert [g.name for g in listed] == [name for name, *_ in DEFAULT_GRADES]
        assert all(g.student_count == 0 for g in listed)

    @pytest.mark.asyncio
    async def test_inactive_grades_not_listed(self, grades, teacher_id):
        """Test that deactivated grades drop out of the active listing."""
        grade_id = await _create_grade(grades, teacher_id)
        await grades.update(grade_id, GradeUpdateRequest(is_active=False), teacher_id=teacher_id)

        assert await grades.list_by_teacher(teacher_id) == []
        assert len(await grades.list_all(teacher_id)) == 1


# =============================================================================
# Students
# =============================================================================


class TestStudentQueries:
    """Tests for student search and statistics."""

    @pytest.mark.asyncio
    async def test_search_matches_name_or_grade(self, students, teacher_id):
        """Test case-insensitive search."""
        await _create_student(students, teacher_id, "Ana", "Grade 3")
        await _create_student(students, teacher_id, "Ben", "Grade 4")

        by_name = await students.search(teacher_id, "an")
        by_grade = await students.search(teacher_id, "grade 4")

        assert [s.name for s in by_name] == ["Ana"]
        assert [s.name for s in by_grade] == ["Ben"]

    @pytest.mark.asyncio
    async def test_update_promotes_pending_student(
        self, reconciliation, grades, students, rows, teacher_id
    ):
        """Test linking a parent and activating an imported student."""
        grade_id = await _create_grade(grades, teacher_id)
        summary = await reconciliation.import_students(rows, grade_id, teacher_id)
        student_id = summary.student_ids[0]

        updated = await students.update(
            student_id,
            StudentUpdateRequest(status=StudentStatus.ACTIVE, parent_id="p1", parent_name="Pat"),
            teacher_id=teacher_id,
        )

        assert updated.status == StudentStatus.ACTIVE
        assert updated.parent_id == "p1"
        assert updated.name == "Ana"

    @pytest.mark.asyncio
    async def test_null_name_keeps_student_readable(self, students, teacher_id):
        """Test that a null name in a partial update leaves the stored name."""
        student_id = await _create_student(students, teacher_id)

        updated = await students.update(
            student_id, StudentUpdateRequest(name=None, grade=None), teacher_id=teacher_id
        )

        assert updated.name == "Ana"
        assert (await students.get(student_id)).grade == "G3"
        assert [s.name for s in await students.list_by_teacher(teacher_id)] == ["Ana"]

    @pytest.mark.asyncio
    async def test_class_statistics(self, students, teacher_id):
        """Test aggregate figures."""
        await students.create(
            StudentCreateRequest(
                name="Ana",
                grade="G3",
                attendance=90,
                reading_level=2,
                performance=Performance.EXCELLENT,
            ),
            teacher_id,
        )
        await students.create(
            StudentCreateRequest(name="Ben", grade="G3", attendance=85, reading_level=3),
            teacher_id,
        )

        stats = await students.class_statistics(teacher_id)

        assert stats.total_students == 2
        assert stats.average_attendance == 88
        assert stats.average_reading_level == 2.5
        assert stats.excellent_performers == 1


# =============================================================================
# Concurrent writes
# =============================================================================


class TestConcurrentWrites:
    """Tests for interleaved writes on the same student or grade."""

    @pytest.mark.asyncio
    async def test_delete_racing_add_leaves_no_membership(
        self, store, reconciliation, grades, teacher_id
    ):
        """Test that a cascade delete and a membership add never strand a row."""
        g1 = await _create_grade(grades, teacher_id, "G1")
        g2 = await _create_grade(grades, teacher_id, "G2")
        for name in ("Ana", "Ben", "Cara"):
            student_id = await reconciliation.students.create(
                StudentCreateRequest(name=name, grade="G1"), teacher_id
            )
            await reconciliation.add_membership(g1, student_id, teacher_id)

            results = await asyncio.gather(
                reconciliation.delete_student(student_id, teacher_id),
                reconciliation.add_membership(g2, student_id, teacher_id),
                return_exceptions=True,
            )

            assert sorted(results[0]) in ([g1], sorted([g1, g2]))
            assert results[1] is True or isinstance(results[1], StudentNotFoundError)
            assert await store.collection_group(MEMBERS).where("studentId", student_id).get() == []

        for grade_id in (g1, g2):
            assert await reconciliation.recompute_count(grade_id) == 0
            assert (await grades.get_by_id(grade_id)).student_count == 0

    @pytest.mark.asyncio
    async def test_concurrent_adds_keep_count(
        self, reconciliation, grades, memberships, teacher_id
    ):
        """Test the cached count under concurrent and repeated adds."""
        grade_id = await _create_grade(grades, teacher_id)
        student_ids = [
            await _create_student(reconciliation.students, teacher_id, f"S{i:02d}")
            for i in range(10)
        ]

        first = await asyncio.gather(
            *(reconciliation.add_membership(grade_id, sid, teacher_id) for sid in student_ids)
        )
        repeated = await asyncio.gather(
            *(reconciliation.add_membership(grade_id, sid, teacher_id) for sid in student_ids)
        )

        assert all(first)
        assert not any(repeated)
        assert len(await memberships.list(grade_id)) == 10
        assert (await grades.get_by_id(grade_id)).student_count == 10
        assert await reconciliation.recompute_count(grade_id) == 10

    @pytest.mark.asyncio
    async def test_concurrent_removes_keep_count(
        self, reconciliation, grades, memberships, teacher_id
    ):
        """Test that overlapping removes decrement once per membership."""
        grade_id = await _create_grade(grades, teacher_id)
        student_ids = [
            await _create_student(reconciliation.students, teacher_id, f"S{i:02d}")
            for i in range(5)
        ]
        for sid in student_ids:
            await reconciliation.add_membership(grade_id, sid, teacher_id)

        removed = await asyncio.gather(
            *(
                reconciliation.remove_membership(grade_id, sid, teacher_id)
                for sid in student_ids * 2
            )
        )

        assert sum(removed) == 5
        assert await memberships.list(grade_id) == []
        assert (await grades.get_by_id(grade_id)).student_count == 0
        assert await reconciliation.recompute_count(grade_id) == 0


# =============================================================================
# End to end
# =============================================================================


class TestRosterLifecycle:
    """Grade creation, import and delete from start to finish."""

    @pytest.mark.asyncio
    async def test_import_then_delete(
        self, reconciliation, grades, students, memberships, teacher_id
    ):
        """Test the full lifecycle of one imported student."""
        grade_id = await _create_grade(grades, teacher_id, "Grade 1 - A")
        assert (await grades.get_by_id(grade_id)).student_count == 0

        summary = await reconciliation.import_students(
            [ImportedStudentRow(name="Dan", grade="Grade 1 - A", reading_level=2)],
            grade_id,
            teacher_id,
        )

        created = await students.list_by_teacher(teacher_id)
        assert len(created) == 1
        dan = created[0]
        assert dan.name == "Dan"
        assert dan.grade == "Grade 1 - A"
        assert dan.reading_level == 2
        assert summary.student_ids == [dan.id]
        assert await memberships.exists(grade_id, dan.id)
        assert await reconciliation.recompute_count(grade_id) == 1

        await reconciliation.delete_student(dan.id, teacher_id)

        assert await reconciliation.grade_roster(grade_id, teacher_id) == []
        assert await memberships.list(grade_id) == []
        assert await reconciliation.recompute_count(grade_id) == 0
        assert (await grades.get_by_id(grade_id)).student_count == 0


class TestStudentStoreWrites:
    """Tests for the student store used without the reconciliation layer."""

    @pytest.mark.asyncio
    async def test_batch_import_returns_ids_in_row_order(self, students, rows, teacher_id):
        """Test atomic bulk import."""
        student_ids = await students.batch_import(rows, teacher_id)

        created = [await students.get(sid) for sid in student_ids]
        assert [s.name for s in created] == ["Ana", "Ben"]
        assert all(s.status == StudentStatus.PENDING for s in created)
        assert all(s.attendance == 0 for s in created)

    @pytest.mark.asyncio
    async def test_delete_cascades_memberships(
        self, students, grades, memberships, teacher_id
    ):
        """Test that the store-level delete removes every membership."""
        g1 = await _create_grade(grades, teacher_id, "G1")
        g2 = await _create_grade(grades, teacher_id, "G2")
        student_id = await _create_student(students, teacher_id)
        await memberships.add(g1, student_id, "Ana")
        await memberships.add(g2, student_id, "Ana")
        assert len(await memberships.find_by_student(student_id)) == 2

        affected = await students.delete(student_id, teacher_id)

        assert sorted(affected) == sorted([g1, g2])
        assert await memberships.find_by_student(student_id) == []
        assert (await grades.get_by_id(g1)).student_count == 0
        assert (await grades.get_by_id(g2)).student_count == 0
        with pytest.raises(StudentNotFoundError):
            await students.get(student_id)

    @pytest.mark.asyncio
    async def test_batch_delete(self, students, teacher_id, other_teacher_id):
        """Test best-effort batch delete at the store level."""
        mine = await _create_student(students, teacher_id, "Ana")
        theirs = await _create_student(students, other_teacher_id, "Ben")

        result = await students.batch_delete([mine, theirs], teacher_id)

        assert result.deleted == [mine]
        assert [f["id"] for f in result.failed] == [theirs]

    @pytest.mark.asyncio
    async def test_list_by_performance(self, students, teacher_id):
        """Test filtering by performance band."""
        await students.create(
            StudentCreateRequest(name="Cara", grade="G3", performance=Performance.EXCELLENT),
            teacher_id,
        )
        await students.create(
            StudentCreateRequest(name="Abe", grade="G3", performance=Performance.EXCELLENT),
            teacher_id,
        )
        await _create_student(students, teacher_id, "Ben")

        excellent = await students.list_by_performance(teacher_id, Performance.EXCELLENT)

        assert [s.name for s in excellent] == ["Abe", "Cara"]
