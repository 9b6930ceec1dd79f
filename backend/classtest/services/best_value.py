"""
ClassTest - Best Value Projector
Copies the policy-selected retest outcome onto the original result rows
"""
import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from classtest.models.attempt import TestAttempt
from classtest.models.result import TestResult
from classtest.models.retest import RetestAssignment, RetestTarget, ScoringPolicy

logger = logging.getLogger(__name__)


@dataclass
class BestRetestValue:
    """The retest attempt that reporting should show for a student/test pair."""
    attempt_id: int
    attempt_number: int
    score: float
    max_score: float
    percentage: float


class BestValueProjector:
    """
    Recomputes `best_retest_*` on test_results from the attempt ledger.

    The projection is a pure function of the ledger, so calling refresh
    twice with no new attempts writes the same values twice.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve_policy(self, student_id: str, test_id: int) -> ScoringPolicy:
        """Scoring policy of the newest retest assignment targeting this student on this test."""
        result = await self.db.execute(
            select(RetestAssignment.scoring_policy)
            .join(RetestTarget, RetestTarget.retest_assignment_id == RetestAssignment.id)
            .where(
                RetestAssignment.test_id == test_id,
                RetestTarget.student_id == student_id,
            )
            .order_by(RetestAssignment.created_at.desc(), RetestAssignment.id.desc())
            .limit(1)
        )
        value = result.scalar_one_or_none()
        try:
            return ScoringPolicy(value) if value else ScoringPolicy.BEST
        except ValueError:
            return ScoringPolicy.BEST

    async def select_best(
        self,
        student_id: str,
        test_id: int,
        policy: ScoringPolicy | None = None,
    ) -> BestRetestValue | None:
        """
        Pick the reported attempt.

        BEST and EARLY_PASS_LOCK take the highest percentage (ties go to
        the later attempt); LAST takes the highest attempt number.
        """
        if policy is None:
            policy = await self.resolve_policy(student_id, test_id)

        query = select(TestAttempt).where(
            TestAttempt.student_id == student_id,
            TestAttempt.test_id == test_id,
            TestAttempt.retest_assignment_id.is_not(None),
        )
        if policy == ScoringPolicy.LAST:
            query = query.order_by(TestAttempt.attempt_number.desc())
        else:
            query = query.order_by(
                TestAttempt.percentage.desc(),
                TestAttempt.attempt_number.desc(),
            )

        result = await self.db.execute(query.limit(1))
        attempt = result.scalar_one_or_none()
        if attempt is None:
            return None

        return BestRetestValue(
            attempt_id=attempt.id,
            attempt_number=attempt.attempt_number,
            score=attempt.score,
            max_score=attempt.max_score,
            percentage=attempt.percentage,
        )

    async def refresh(self, student_id: str, test_id: int) -> BestRetestValue | None:
        """Write the selected retest values into every original result row for the pair."""
        best = await self.select_best(student_id, test_id)

        values = {
            "best_retest_attempt_id": best.attempt_id if best else None,
            "best_retest_attempt_number": best.attempt_number if best else None,
            "best_retest_score": best.score if best else None,
            "best_retest_max_score": best.max_score if best else None,
            "best_retest_percentage": best.percentage if best else None,
        }

        await self.db.execute(
            update(TestResult)
            .where(
                TestResult.student_id == student_id,
                TestResult.test_id == test_id,
            )
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )

        logger.debug(f"Projected best retest for student={student_id} test={test_id}: {best}")
        return best
