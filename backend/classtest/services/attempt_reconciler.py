"""
ClassTest - Attempt Reconciler
Decides how a scored retest submission is written and what it does to
the student's retest target.

Every submission adapter funnels retests through `AttemptReconciler.reconcile`:

1. Eligibility: the target must exist, now must be inside the window,
   and attempt_count must be below max_attempts.
2. Percentage: score / max_score * 100, rounded half-up to 2 decimals.
3. Attempt number: a pass jumps to the final slot (max_attempts);
   otherwise max(ledger max + 1, attempt_count + 1).
4. Write: overwrite the row at that slot if it exists, else insert.
5. Target: a pass sets attempt_count = max_attempts and PASSED,
   a fail advances attempt_count and sets FAILED.
6. Best-value projection is refreshed after every write.

Steps 1-6 share one transaction and hold the target row lock.
"""
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from classtest.core.config import settings
from classtest.core.timeutils import ensure_utc, utcnow
from classtest.models.retest import RetestAssignment, RetestTarget, TargetStatus
from classtest.services.attempt_store import AttemptStore, DuplicateAttempt
from classtest.services.best_value import BestValueProjector
from classtest.services.errors import (
    AttemptsExhausted,
    NotAssigned,
    RetestError,
    StoreError,
    ValidationError,
    WindowClosed,
)

logger = logging.getLogger(__name__)

_FROM_SETTINGS = object()

STARTABLE_STATUSES = {TargetStatus.PENDING.value, TargetStatus.FAILED.value}


def compute_percentage(score: float, max_score: float) -> float:
    """score / max_score * 100, rounded half-up to two decimals."""
    ratio = Decimal(str(score)) / Decimal(str(max_score)) * 100
    return float(ratio.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


@dataclass
class SubmissionContext:
    """Identity and context copied onto the attempt row at write time."""
    test_name: str | None = None
    teacher_id: str | None = None
    subject_id: int | None = None
    grade: int | None = None
    class_: int | None = None
    number: int | None = None
    name: str | None = None
    surname: str | None = None
    nickname: str | None = None
    academic_period_id: int | None = None


@dataclass
class ReconcileRequest:
    """A scored retest submission, already reduced to a number by its adapter."""
    student_id: str
    test_id: int
    retest_assignment_id: int
    score: float
    max_score: float
    answers: Any = None
    time_taken: int | None = None
    started_at: datetime | None = None
    submitted_at: datetime | None = None
    caught_cheating: bool = False
    visibility_change_times: int = 0
    is_completed: bool = True
    context: SubmissionContext = field(default_factory=SubmissionContext)


@dataclass
class ReconcileResult:
    """Outcome of a successful reconciliation; failures raise RetestError."""
    success: bool
    attempt_id: int | None = None
    attempt_number: int | None = None
    percentage: float | None = None
    passed: bool | None = None
    status: str | None = None
    attempt_count: int | None = None


class AttemptReconciler:
    """The retest state machine shared by every test type."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Callable[[], datetime] = utcnow,
        fixed_pass_threshold: float | None | object = _FROM_SETTINGS,
    ):
        self.db = db
        self.store = AttemptStore(db)
        self.projector = BestValueProjector(db)
        self.clock = clock
        if fixed_pass_threshold is _FROM_SETTINGS:
            fixed_pass_threshold = settings.RETEST_FIXED_PASS_THRESHOLD
        self.fixed_pass_threshold = fixed_pass_threshold

    def pass_threshold(self, assignment: RetestAssignment) -> float:
        """
        The single threshold used for the early-pass lock.

        A configured fixed value (50 by default) wins over the
        assignment's own passing_threshold.
        """
        if self.fixed_pass_threshold is not None:
            return float(self.fixed_pass_threshold)
        return float(assignment.passing_threshold)

    def _check_eligibility(
        self,
        target: RetestTarget,
        assignment: RetestAssignment,
        now: datetime,
        submitted_at: datetime | None = None,
    ) -> None:
        window_start = ensure_utc(assignment.window_start)
        window_end = ensure_utc(assignment.window_end)

        if not (window_start <= now <= window_end):
            raise WindowClosed("Retest window is not active")
        submitted_at = ensure_utc(submitted_at)
        if submitted_at is not None and not (window_start <= submitted_at <= window_end):
            raise WindowClosed("Submission time is outside the retest window")

        if target.attempt_count >= assignment.max_attempts:
            raise AttemptsExhausted("Maximum retest attempts reached")

    async def _load_target(
        self,
        assignment_id: int,
        student_id: str,
    ) -> tuple[RetestTarget, RetestAssignment]:
        loaded = await self.store.get_target(assignment_id, student_id, lock=True)
        if loaded is None:
            raise NotAssigned("Retest not found or not assigned to this student")
        return loaded

    @staticmethod
    def _validate(request: ReconcileRequest) -> None:
        if request.score is None or request.max_score is None:
            raise ValidationError("Retest submissions require score and max_score")
        if request.max_score <= 0:
            raise ValidationError("max_score must be greater than zero")
        if request.score < 0 or request.score > request.max_score:
            raise ValidationError("score must be between 0 and max_score")

    async def reconcile(self, request: ReconcileRequest) -> ReconcileResult:
        """
        Record one retest submission.

        Raises:
            ValidationError: Malformed score or a test id that does not
                match the assignment
            NotAssigned: No target for this student
            WindowClosed: Outside [window_start, window_end]
            AttemptsExhausted: attempt_count already at max_attempts
            StoreError: The transaction failed and was rolled back
        """
        self._validate(request)

        try:
            async with self.store.transaction():
                return await self._reconcile_locked(request)
        except RetestError as e:
            logger.info(
                f"Retest rejected ({e.error_kind}) for student={request.student_id} "
                f"assignment={request.retest_assignment_id}: {e}"
            )
            raise
        except SQLAlchemyError as e:
            logger.error(
                f"Retest write failed for student={request.student_id} "
                f"assignment={request.retest_assignment_id}: {e}"
            )
            raise StoreError("Failed to record retest attempt") from e

    async def _reconcile_locked(self, request: ReconcileRequest) -> ReconcileResult:
        now = self.clock()
        target, assignment = await self._load_target(
            request.retest_assignment_id, request.student_id
        )
        if request.test_id != assignment.test_id:
            raise ValidationError("test_id does not match the retest's original test")
        self._check_eligibility(target, assignment, now, request.submitted_at)

        percentage = compute_percentage(request.score, request.max_score)
        passed = percentage >= self.pass_threshold(assignment)

        db_next = await self.store.max_attempt_number(request.student_id, request.test_id) + 1
        target_next = target.attempt_count + 1
        if passed:
            attempt_number = assignment.max_attempts
        else:
            attempt_number = max(db_next, target_next)

        attempt = await self._write_attempt(request, attempt_number, percentage)

        if passed:
            await self.store.update_target(
                target,
                attempt_count=assignment.max_attempts,
                status=TargetStatus.PASSED.value,
                last_attempt_at=now,
            )
        else:
            await self.store.update_target(
                target,
                attempt_count=max(target.attempt_count + 1, attempt_number),
                status=TargetStatus.FAILED.value,
                last_attempt_at=now,
            )

        await self.projector.refresh(request.student_id, request.test_id)

        logger.info(
            f"Retest attempt #{attempt_number} for student={request.student_id} "
            f"test={request.test_id}: {percentage}% "
            f"({'passed, locked' if passed else 'failed'}; "
            f"db_next={db_next} target_next={target_next})"
        )

        return ReconcileResult(
            success=True,
            attempt_id=attempt.id,
            attempt_number=attempt_number,
            percentage=percentage,
            passed=passed,
            status=target.status,
            attempt_count=target.attempt_count,
        )

    async def _write_attempt(
        self,
        request: ReconcileRequest,
        attempt_number: int,
        percentage: float,
    ):
        fields = {
            "score": request.score,
            "max_score": request.max_score,
            "percentage": percentage,
            "answers": request.answers,
            "time_taken": request.time_taken,
            "started_at": request.started_at,
            "submitted_at": request.submitted_at,
            "is_completed": request.is_completed,
            "caught_cheating": request.caught_cheating,
            "visibility_change_times": request.visibility_change_times,
            "retest_assignment_id": request.retest_assignment_id,
        }

        existing = await self.store.find_attempt(
            request.student_id, request.test_id, attempt_number
        )
        if existing is not None:
            logger.info(f"Overwriting attempt #{attempt_number} for student={request.student_id}")
            return await self.store.update_attempt(existing, fields)

        try:
            return await self.store.insert_attempt(
                student_id=request.student_id,
                test_id=request.test_id,
                attempt_number=attempt_number,
                **fields,
                **asdict(request.context),
            )
        except DuplicateAttempt:
            # Lost an insert race on the same slot: fall back to overwrite
            existing = await self.store.find_attempt(
                request.student_id, request.test_id, attempt_number
            )
            if existing is None:
                raise StoreError(f"Attempt slot {attempt_number} is contended")
            return await self.store.update_attempt(existing, fields)

    async def start(
        self,
        assignment_id: int,
        student_id: str,
    ) -> tuple[RetestTarget, RetestAssignment]:
        """
        Mark a retest as opened by the student.

        Runs the same eligibility checks as a submission but consumes no
        attempt. PENDING and FAILED targets move to IN_PROGRESS.
        """
        try:
            async with self.store.transaction():
                target, assignment = await self._load_target(assignment_id, student_id)
                self._check_eligibility(target, assignment, self.clock())
                if target.status in STARTABLE_STATUSES:
                    await self.store.update_target(target, status=TargetStatus.IN_PROGRESS.value)
                return target, assignment
        except SQLAlchemyError as e:
            logger.error(f"Failed to start retest {assignment_id} for student={student_id}: {e}")
            raise StoreError("Failed to start retest") from e
