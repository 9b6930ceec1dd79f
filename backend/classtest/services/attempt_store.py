"""
ClassTest - Attempt Store
Persistence for retest targets and the attempt ledger
"""
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from classtest.models.attempt import TestAttempt
from classtest.models.retest import RetestAssignment, RetestTarget


# Columns a resubmission of the same attempt slot may overwrite
MUTABLE_ATTEMPT_FIELDS = (
    "score",
    "max_score",
    "percentage",
    "answers",
    "time_taken",
    "started_at",
    "submitted_at",
    "is_completed",
    "caught_cheating",
    "visibility_change_times",
    "retest_assignment_id",
)


class DuplicateAttempt(Exception):
    """Another writer already holds this (student, test, attempt_number) slot."""
    pass


class AttemptStore:
    """
    Thin repository over retest_targets and test_attempts.

    Every reconciliation runs inside `transaction()`, so the target
    update and the attempt write commit or roll back together.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Open a transaction, or a savepoint if the session is already in one."""
        if self.db.in_transaction():
            async with self.db.begin_nested():
                yield self.db
        else:
            async with self.db.begin():
                yield self.db

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    async def get_target(
        self,
        assignment_id: int,
        student_id: str,
        lock: bool = False,
    ) -> tuple[RetestTarget, RetestAssignment] | None:
        """
        Load a target with its assignment.

        With lock=True the target row is held FOR UPDATE until the
        transaction ends (a no-op on SQLite, which locks the whole file).
        """
        query = select(RetestTarget).where(
            RetestTarget.retest_assignment_id == assignment_id,
            RetestTarget.student_id == student_id,
        )
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)

        result = await self.db.execute(query)
        target = result.scalar_one_or_none()
        if target is None:
            return None

        assignment = await self.db.get(RetestAssignment, assignment_id)
        return target, assignment

    async def upsert_target(self, assignment_id: int, student_id: str) -> bool:
        """Create a PENDING target unless one exists. Returns True if created."""
        existing = await self.db.execute(
            select(RetestTarget.id).where(
                RetestTarget.retest_assignment_id == assignment_id,
                RetestTarget.student_id == student_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            return False

        try:
            async with self.db.begin_nested():
                self.db.add(RetestTarget(
                    retest_assignment_id=assignment_id,
                    student_id=student_id,
                    attempt_count=0,
                ))
                await self.db.flush()
        except IntegrityError:
            # Created concurrently; the unique constraint makes this a skip
            return False
        return True

    async def update_target(self, target: RetestTarget, **fields: Any) -> RetestTarget:
        for key, value in fields.items():
            setattr(target, key, value)
        await self.db.flush()
        return target

    # ------------------------------------------------------------------
    # Attempt ledger
    # ------------------------------------------------------------------

    async def max_attempt_number(self, student_id: str, test_id: int) -> int:
        """Highest attempt number on record for this student and original test, or 0."""
        result = await self.db.execute(
            select(func.coalesce(func.max(TestAttempt.attempt_number), 0)).where(
                TestAttempt.student_id == student_id,
                TestAttempt.test_id == test_id,
            )
        )
        return int(result.scalar_one() or 0)

    async def find_attempt(
        self,
        student_id: str,
        test_id: int,
        attempt_number: int,
    ) -> TestAttempt | None:
        result = await self.db.execute(
            select(TestAttempt).where(
                TestAttempt.student_id == student_id,
                TestAttempt.test_id == test_id,
                TestAttempt.attempt_number == attempt_number,
            )
        )
        return result.scalar_one_or_none()

    async def insert_attempt(self, **fields: Any) -> TestAttempt:
        """
        Insert a ledger row inside a savepoint.

        Raises:
            DuplicateAttempt: If the unique (student, test, attempt_number)
                slot is already taken.
        """
        attempt = TestAttempt(**fields)
        try:
            async with self.db.begin_nested():
                self.db.add(attempt)
                await self.db.flush()
        except IntegrityError as e:
            raise DuplicateAttempt(
                f"Attempt {fields.get('attempt_number')} already exists"
            ) from e
        return attempt

    async def update_attempt(self, attempt: TestAttempt, fields: dict[str, Any]) -> TestAttempt:
        """Overwrite the mutable columns of an existing attempt in place."""
        for key in MUTABLE_ATTEMPT_FIELDS:
            if key in fields:
                setattr(attempt, key, fields[key])
        await self.db.flush()
        return attempt

    async def list_attempts(self, student_id: str, test_id: int) -> list[TestAttempt]:
        result = await self.db.execute(
            select(TestAttempt)
            .where(
                TestAttempt.student_id == student_id,
                TestAttempt.test_id == test_id,
            )
            .order_by(TestAttempt.attempt_number)
        )
        return list(result.scalars().all())
