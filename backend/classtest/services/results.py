"""
ClassTest - Results View Service
Original results with the best retest outcome folded in, keyset paginated
"""
from datetime import datetime

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from classtest.core.timeutils import ensure_utc
from classtest.models.result import TestResult
from classtest.services.errors import ValidationError


def encode_cursor(created_at: datetime, result_id: int) -> str:
    return f"{ensure_utc(created_at).isoformat()},{result_id}"


def decode_cursor(cursor: str) -> tuple[datetime, int]:
    """Parse a "<created_at ISO>,<id>" cursor."""
    created_part, sep, id_part = cursor.rpartition(",")
    if not sep:
        raise ValidationError("Invalid cursor")
    try:
        return ensure_utc(datetime.fromisoformat(created_part)), int(id_part)
    except ValueError:
        raise ValidationError("Invalid cursor")


def to_view(result: TestResult) -> dict:
    """Report a result with score/max_score replaced by the best retest when one exists."""
    has_retest = result.best_retest_score is not None
    return {
        "id": result.id,
        "test_id": result.test_id,
        "test_type": result.test_type,
        "test_name": result.test_name,
        "teacher_id": result.teacher_id,
        "subject_id": result.subject_id,
        "student_id": result.student_id,
        "grade": result.grade,
        "class_": result.class_,
        "score": result.best_retest_score if has_retest else result.score,
        "max_score": result.best_retest_max_score if has_retest else result.max_score,
        "percentage": result.best_retest_percentage if has_retest else result.percentage,
        "original_score": result.score,
        "original_max_score": result.max_score,
        "best_retest_attempt_number": result.best_retest_attempt_number,
        "best_retest_percentage": result.best_retest_percentage,
        "retest_offered": result.retest_offered,
        "is_completed": result.is_completed,
        "caught_cheating": result.caught_cheating,
        "visibility_change_times": result.visibility_change_times,
        "answers": result.answers,
        "academic_period_id": result.academic_period_id,
        "created_at": ensure_utc(result.created_at),
    }


class ResultsViewService:
    """Read side for a student's original results."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def student_results(
        self,
        student_id: str,
        limit: int,
        cursor: str | None = None,
        academic_period_id: int | None = None,
    ) -> tuple[list[dict], str | None]:
        """
        One page of results, newest first.

        Returns:
            (rows, next_cursor) where next_cursor is None on the last page
        """
        query = select(TestResult).where(TestResult.student_id == student_id)
        if academic_period_id is not None:
            query = query.where(TestResult.academic_period_id == academic_period_id)
        if cursor:
            created_at, result_id = decode_cursor(cursor)
            query = query.where(
                or_(
                    TestResult.created_at < created_at,
                    and_(TestResult.created_at == created_at, TestResult.id < result_id),
                )
            )

        # Fetch one extra row to know whether another page exists
        result = await self.db.execute(
            query.order_by(TestResult.created_at.desc(), TestResult.id.desc()).limit(limit + 1)
        )
        rows = list(result.scalars().all())
        has_more = len(rows) > limit
        rows = rows[:limit]

        next_cursor = None
        if has_more and rows:
            next_cursor = encode_cursor(rows[-1].created_at, rows[-1].id)
        return [to_view(r) for r in rows], next_cursor
