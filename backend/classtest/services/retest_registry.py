"""
ClassTest - Retest Assignment Registry
Creating retest assignments and the teacher/student read views over them
"""
import logging
from collections import defaultdict
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from classtest.core.security import normalize_class
from classtest.core.timeutils import ensure_utc, utcnow
from classtest.models.result import TestResult
from classtest.models.retest import RetestAssignment, RetestTarget, TargetStatus
from classtest.models.test import Test, TestType
from classtest.schemas.retest import RetestAssignmentCreate
from classtest.services.attempt_store import AttemptStore
from classtest.services.errors import NotFoundError, StoreError, ValidationError

logger = logging.getLogger(__name__)

MIN_GRADE = 1
MAX_GRADE = 12
OPEN_STATUSES = (
    TargetStatus.PENDING.value,
    TargetStatus.IN_PROGRESS.value,
    TargetStatus.FAILED.value,
)
FINAL_STATUSES = (TargetStatus.PASSED.value, TargetStatus.EXPIRED.value)


class RetestAssignmentRegistry:
    """Service for retest assignment operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = AttemptStore(db)

    @staticmethod
    def resolve_teacher_id(
        acting_teacher_id: str | None,
        is_admin: bool,
        requested_teacher_id: str | None = None,
    ) -> str:
        """Admins may act for any teacher; teachers always act as themselves."""
        teacher_id = (requested_teacher_id or acting_teacher_id) if is_admin else acting_teacher_id
        if not teacher_id:
            raise ValidationError("teacher_id is required")
        return teacher_id

    async def _get_test(self, test_id: int) -> Test:
        test = await self.db.get(Test, test_id)
        if test is None:
            raise NotFoundError(f"Test {test_id} not found")
        return test

    async def _get_owned_assignment(
        self,
        assignment_id: int,
        teacher_id: str,
        is_admin: bool,
    ) -> RetestAssignment:
        assignment = await self.db.get(RetestAssignment, assignment_id)
        if assignment is None:
            raise NotFoundError(f"Retest {assignment_id} not found")
        if not is_admin and assignment.teacher_id != teacher_id:
            raise ValidationError("Retest does not belong to this teacher")
        return assignment

    def _validate_create(self, data: RetestAssignmentCreate) -> tuple[int, list[str]]:
        if data.test_type not in {t.value for t in TestType}:
            raise ValidationError(f"Unknown test_type '{data.test_type}'")
        if not MIN_GRADE <= data.grade <= MAX_GRADE:
            raise ValidationError(f"grade must be between {MIN_GRADE} and {MAX_GRADE}")

        class_number = normalize_class(data.class_)
        if class_number is None or class_number < 1:
            raise ValidationError("class must be a positive class number")

        if not 0 <= data.passing_threshold <= 100:
            raise ValidationError("passing_threshold must be between 0 and 100")
        if data.max_attempts < 1:
            raise ValidationError("max_attempts must be at least 1")
        if ensure_utc(data.window_start) >= ensure_utc(data.window_end):
            raise ValidationError("window_start must be before window_end")

        # Keep first-seen order, drop blanks and duplicates
        student_ids = list(dict.fromkeys(s.strip() for s in data.student_ids if s and s.strip()))
        if not student_ids:
            raise ValidationError("student_ids must not be empty")

        return class_number, student_ids

    async def create_assignment(
        self,
        data: RetestAssignmentCreate,
        acting_teacher_id: str | None,
        is_admin: bool = False,
    ) -> tuple[int, int]:
        """
        Create a retest assignment and one target per student.

        Returns:
            (assignment id, number of targets newly created)

        Raises:
            ValidationError: Bad ranges, empty student list, or no teacher ownership
            NotFoundError: Unknown original test
        """
        teacher_id = self.resolve_teacher_id(acting_teacher_id, is_admin, data.teacher_id)
        class_number, student_ids = self._validate_create(data)

        test = await self._get_test(data.test_id)
        if test.test_type != data.test_type:
            raise ValidationError(
                f"Test {test.id} is a {test.test_type} test, not {data.test_type}"
            )
        if not is_admin and test.teacher_id != teacher_id:
            raise ValidationError("Test does not belong to this teacher")

        try:
            async with self.store.transaction():
                assignment = RetestAssignment(
                    test_type=data.test_type,
                    test_id=test.id,
                    teacher_id=teacher_id,
                    subject_id=data.subject_id,
                    grade=data.grade,
                    class_=class_number,
                    passing_threshold=data.passing_threshold,
                    scoring_policy=data.scoring_policy.value,
                    max_attempts=data.max_attempts,
                    window_start=ensure_utc(data.window_start),
                    window_end=ensure_utc(data.window_end),
                )
                self.db.add(assignment)
                await self.db.flush()

                created = 0
                for student_id in student_ids:
                    if await self.store.upsert_target(assignment.id, student_id):
                        created += 1

                await self.mark_retest_offered(student_ids, test.id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create retest for test {test.id}: {e}")
            raise StoreError("Failed to create retest assignment") from e

        logger.info(
            f"Retest {assignment.id} created by teacher={teacher_id} for test {test.id} "
            f"({created} targets, max_attempts={assignment.max_attempts})"
        )
        return assignment.id, created

    async def mark_retest_offered(self, student_ids: list[str], test_id: int) -> None:
        """Flag the students' original result rows so reporting and UI show the retest."""
        await self.db.execute(
            update(TestResult)
            .where(
                TestResult.test_id == test_id,
                TestResult.student_id.in_(student_ids),
            )
            .values(retest_offered=True)
            .execution_options(synchronize_session="fetch")
        )

    async def expire_overdue(self, now: datetime | None = None) -> int:
        """Mark every unfinished target whose window has closed as EXPIRED."""
        now = now or utcnow()
        closed = select(RetestAssignment.id).where(RetestAssignment.window_end < now)
        result = await self.db.execute(
            select(RetestTarget.id).where(
                RetestTarget.retest_assignment_id.in_(closed),
                RetestTarget.status.not_in(FINAL_STATUSES),
            )
        )
        target_ids = list(result.scalars().all())
        if not target_ids:
            return 0

        await self.db.execute(
            update(RetestTarget)
            .where(RetestTarget.id.in_(target_ids))
            .values(status=TargetStatus.EXPIRED.value)
            .execution_options(synchronize_session="fetch")
        )
        logger.info(f"Expired {len(target_ids)} retest targets")
        return len(target_ids)

    async def list_assignments(self, teacher_id: str, now: datetime | None = None) -> list[dict]:
        """Assignments for a teacher, newest first, with per-status target counts."""
        await self.expire_overdue(now)

        result = await self.db.execute(
            select(RetestAssignment)
            .where(RetestAssignment.teacher_id == teacher_id)
            .order_by(RetestAssignment.created_at.desc(), RetestAssignment.id.desc())
        )
        assignments = result.scalars().all()
        if not assignments:
            return []

        counts_result = await self.db.execute(
            select(
                RetestTarget.retest_assignment_id,
                RetestTarget.status,
                func.count(RetestTarget.id),
            )
            .where(RetestTarget.retest_assignment_id.in_([a.id for a in assignments]))
            .group_by(RetestTarget.retest_assignment_id, RetestTarget.status)
        )
        counts: dict[int, dict[str, int]] = defaultdict(dict)
        for assignment_id, status, count in counts_result.all():
            counts[assignment_id][status] = count

        rows = []
        for assignment in assignments:
            per_status = counts[assignment.id]
            rows.append({
                "id": assignment.id,
                "test_type": assignment.test_type,
                "test_id": assignment.test_id,
                "teacher_id": assignment.teacher_id,
                "subject_id": assignment.subject_id,
                "grade": assignment.grade,
                "class_": assignment.class_,
                "passing_threshold": assignment.passing_threshold,
                "scoring_policy": assignment.scoring_policy,
                "max_attempts": assignment.max_attempts,
                "window_start": assignment.window_start,
                "window_end": assignment.window_end,
                "created_at": assignment.created_at,
                "pending_count": per_status.get(TargetStatus.PENDING.value, 0),
                "in_progress_count": per_status.get(TargetStatus.IN_PROGRESS.value, 0),
                "passed_count": per_status.get(TargetStatus.PASSED.value, 0),
                "failed_count": per_status.get(TargetStatus.FAILED.value, 0),
                "expired_count": per_status.get(TargetStatus.EXPIRED.value, 0),
            })
        return rows

    async def list_eligible_students(
        self,
        test_type: str,
        original_test_id: int,
        threshold: float,
    ) -> list[dict]:
        """
        Candidate pool for a new retest.

        Students whose best original percentage is below the threshold,
        worst first.
        """
        if not 0 <= threshold <= 100:
            raise ValidationError("threshold must be between 0 and 100")
        test = await self._get_test(original_test_id)
        if test.test_type != test_type:
            raise ValidationError(f"Test {test.id} is not a {test_type} test")

        best = func.max(TestResult.percentage)
        result = await self.db.execute(
            select(
                TestResult.student_id,
                func.max(TestResult.name),
                func.max(TestResult.surname),
                func.max(TestResult.nickname),
                best,
            )
            .where(
                TestResult.test_id == original_test_id,
                TestResult.percentage.is_not(None),
            )
            .group_by(TestResult.student_id)
            .having(best < threshold)
            .order_by(best.asc(), TestResult.student_id.asc())
        )

        return [
            {
                "student_id": student_id,
                "name": name,
                "surname": surname,
                "nickname": nickname,
                "best_percentage": best_percentage,
            }
            for student_id, name, surname, nickname, best_percentage in result.all()
        ]

    async def list_targets(
        self,
        assignment_id: int,
        acting_teacher_id: str | None,
        is_admin: bool = False,
    ) -> list[dict]:
        """Targets of one assignment ordered by surname, then name."""
        teacher_id = acting_teacher_id if is_admin else self.resolve_teacher_id(acting_teacher_id, False)
        assignment = await self._get_owned_assignment(assignment_id, teacher_id, is_admin)

        result = await self.db.execute(
            select(RetestTarget).where(RetestTarget.retest_assignment_id == assignment.id)
        )
        targets = result.scalars().all()

        names = await self._student_names(assignment.test_id, [t.student_id for t in targets])

        rows = []
        for target in targets:
            name, surname, nickname = names.get(target.student_id, (None, None, None))
            rows.append({
                "id": target.id,
                "retest_assignment_id": target.retest_assignment_id,
                "student_id": target.student_id,
                "attempt_count": target.attempt_count,
                "status": target.status,
                "last_attempt_at": target.last_attempt_at,
                "name": name,
                "surname": surname,
                "nickname": nickname,
            })
        rows.sort(key=lambda r: (r["surname"] or "", r["name"] or "", r["student_id"]))
        return rows

    async def _student_names(
        self,
        test_id: int,
        student_ids: list[str],
    ) -> dict[str, tuple[str | None, str | None, str | None]]:
        """Names as denormalized on the students' most recent original results."""
        if not student_ids:
            return {}
        result = await self.db.execute(
            select(TestResult)
            .where(
                TestResult.test_id == test_id,
                TestResult.student_id.in_(student_ids),
            )
            .order_by(TestResult.created_at.asc(), TestResult.id.asc())
        )
        names = {}
        for row in result.scalars().all():
            names[row.student_id] = (row.name, row.surname, row.nickname)
        return names

    async def list_available(self, student_id: str, now: datetime | None = None) -> list[dict]:
        """Open retests for a student: window active, unfinished, attempts left."""
        now = now or utcnow()
        result = await self.db.execute(
            select(RetestTarget, RetestAssignment, Test.test_name)
            .join(RetestAssignment, RetestAssignment.id == RetestTarget.retest_assignment_id)
            .join(Test, Test.id == RetestAssignment.test_id)
            .where(
                RetestTarget.student_id == student_id,
                RetestAssignment.window_start <= now,
                RetestAssignment.window_end >= now,
                RetestTarget.status.in_(OPEN_STATUSES),
                RetestTarget.attempt_count < RetestAssignment.max_attempts,
            )
            .order_by(RetestAssignment.window_end.asc(), RetestAssignment.id.asc())
        )

        return [
            {
                "retest_assignment_id": assignment.id,
                "test_type": assignment.test_type,
                "test_id": assignment.test_id,
                "test_name": test_name,
                "status": target.status,
                "attempt_count": target.attempt_count,
                "max_attempts": assignment.max_attempts,
                "retest_attempts_left": max(0, assignment.max_attempts - target.attempt_count),
                "window_start": assignment.window_start,
                "window_end": assignment.window_end,
            }
            for target, assignment, test_name in result.all()
        ]
