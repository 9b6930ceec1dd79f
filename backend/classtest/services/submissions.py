"""
ClassTest - Test Submission Service
Per-test-type adapters that turn a submission payload into a score, and
the shared write path for original results and retests.
"""
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from classtest.core.timeutils import utcnow
from classtest.models.academic import current_period_id
from classtest.models.result import TestResult
from classtest.models.test import Test, TestType
from classtest.schemas.submission import SubmissionRequest
from classtest.services.attempt_reconciler import (
    AttemptReconciler,
    ReconcileRequest,
    SubmissionContext,
    compute_percentage,
)
from classtest.services.errors import NotFoundError, StoreError, ValidationError

logger = logging.getLogger(__name__)

# Speaking tests are scored by the AI grader on 0-100 and stored out of 10
SPEAKING_MAX_SCORE = 10


@dataclass
class ScoredSubmission:
    """What an adapter extracts from a type-specific payload."""
    score: float | None
    max_score: float | None
    answers: Any


# ============================================================================
# Adapters
# ============================================================================

def _require_score(request: SubmissionRequest) -> tuple[float, float]:
    if request.score is None or request.max_score is None:
        raise ValidationError("Missing required fields: score, maxScore")
    return request.score, request.max_score


def score_choice_test(request: SubmissionRequest) -> ScoredSubmission:
    """Multiple choice, true/false and input tests: client-scored, order-agnostic answers."""
    if request.answers is None and request.answers_by_id is None:
        raise ValidationError("Missing required field: answers")
    score, max_score = _require_score(request)
    if request.answers_by_id is not None:
        answers = {
            "answers_by_id": request.answers_by_id,
            "question_order": request.question_order or [],
        }
    else:
        answers = request.answers
    return ScoredSubmission(score, max_score, answers)


def score_matching_test(request: SubmissionRequest) -> ScoredSubmission:
    """Matching type: answers map each prompt to the chosen match."""
    if not isinstance(request.answers, dict) or not request.answers:
        raise ValidationError("Matching answers must be a non-empty object")
    score, max_score = _require_score(request)
    return ScoredSubmission(score, max_score, request.answers)


def score_word_matching_test(request: SubmissionRequest) -> ScoredSubmission:
    if not isinstance(request.answers, dict) or not request.answers:
        raise ValidationError("Word matching answers must be a non-empty object")
    score, max_score = _require_score(request)
    answers = {
        "pairs": request.answers,
        "interaction_type": request.interaction_type or "drag",
    }
    return ScoredSubmission(score, max_score, answers)


def score_fill_blanks_test(request: SubmissionRequest) -> ScoredSubmission:
    if not isinstance(request.answers, (dict, list)) or not request.answers:
        raise ValidationError("Fill-in-the-blank answers must not be empty")
    score, max_score = _require_score(request)
    return ScoredSubmission(score, max_score, request.answers)


def score_drawing_test(request: SubmissionRequest) -> ScoredSubmission:
    """Drawings are graded later by the teacher, so score may be NULL on first submit."""
    if not isinstance(request.answers, list) or not request.answers:
        raise ValidationError("Drawing answers must be a non-empty list")
    if (request.score is None) != (request.max_score is None):
        raise ValidationError("score and maxScore must be given together")
    return ScoredSubmission(request.score, request.max_score, request.answers)


def score_speaking_test(request: SubmissionRequest) -> ScoredSubmission:
    """Speaking tests carry AI grader output in `scores`; overall_score is 0-100."""
    scores = request.scores or {}
    overall = scores.get("overall_score")
    if overall is None:
        if request.score is None:
            raise ValidationError("Missing speaking scores.overall_score")
        score, max_score = _require_score(request)
    else:
        try:
            overall = float(overall)
        except (TypeError, ValueError):
            raise ValidationError("scores.overall_score must be a number")
        # Half-up to whole points, matching the grader's stored scale
        score = float(int(overall / 10 + 0.5))
        max_score = float(SPEAKING_MAX_SCORE)

    answers = {
        "question_id": request.question_id,
        "audio_url": request.audio_url,
        "transcript": request.transcript,
        "audio_duration": request.audio_duration,
        "word_count": scores.get("word_count"),
        "grammar_mistakes": scores.get("grammar_mistakes", 0),
        "vocabulary_mistakes": scores.get("vocab_mistakes", 0),
        "overall_score": overall,
        "ai_feedback": scores.get("ai_feedback"),
    }
    return ScoredSubmission(score, max_score, answers)


ADAPTERS: dict[str, Callable[[SubmissionRequest], ScoredSubmission]] = {
    TestType.MULTIPLE_CHOICE.value: score_choice_test,
    TestType.TRUE_FALSE.value: score_choice_test,
    TestType.INPUT.value: score_choice_test,
    TestType.MATCHING_TYPE.value: score_matching_test,
    TestType.WORD_MATCHING.value: score_word_matching_test,
    TestType.FILL_BLANKS.value: score_fill_blanks_test,
    TestType.DRAWING.value: score_drawing_test,
    TestType.SPEAKING.value: score_speaking_test,
}


# ============================================================================
# Service
# ============================================================================

@dataclass
class Submitter:
    """Student identity taken from the validated token."""
    student_id: str
    grade: int | None = None
    class_: int | None = None
    number: int | None = None
    name: str | None = None
    surname: str | None = None
    nickname: str | None = None


class SubmissionService:
    """Writes original results, or hands retests to the reconciler."""

    def __init__(self, db: AsyncSession, reconciler: AttemptReconciler | None = None):
        self.db = db
        self.reconciler = reconciler or AttemptReconciler(db)

    async def submit(
        self,
        test_type: str,
        submitter: Submitter,
        request: SubmissionRequest,
    ) -> dict:
        adapter = ADAPTERS.get(test_type)
        if adapter is None:
            raise ValidationError(f"Unknown test type '{test_type}'")

        scored = adapter(request)

        # Retests always write against the original test
        test_id = request.parent_test_id or request.test_id
        test = await self.db.get(Test, test_id)
        if test is None:
            raise NotFoundError(f"Test {test_id} not found")
        if test.test_type != test_type:
            raise ValidationError(f"Test {test_id} is not a {test_type} test")

        period_id = await current_period_id(self.db, utcnow().date())
        completed = bool(request.submitted_at) or request.is_completed is True

        if request.retest_assignment_id:
            return await self._submit_retest(test, submitter, request, scored, period_id, completed)
        return await self._submit_original(test, submitter, request, scored, period_id, completed)

    async def _submit_original(
        self,
        test: Test,
        submitter: Submitter,
        request: SubmissionRequest,
        scored: ScoredSubmission,
        period_id: int | None,
        completed: bool,
    ) -> dict:
        percentage = None
        if scored.score is not None and scored.max_score:
            percentage = compute_percentage(scored.score, scored.max_score)

        result = TestResult(
            test_id=test.id,
            test_type=test.test_type,
            test_name=request.test_name,
            student_id=submitter.student_id,
            teacher_id=request.teacher_id or test.teacher_id,
            subject_id=request.subject_id or test.subject_id,
            grade=submitter.grade,
            class_=submitter.class_,
            number=submitter.number,
            name=submitter.name,
            surname=submitter.surname,
            nickname=submitter.nickname,
            score=scored.score,
            max_score=scored.max_score,
            percentage=percentage,
            answers=scored.answers,
            time_taken=request.time_taken,
            started_at=request.started_at,
            submitted_at=request.submitted_at or utcnow(),
            is_completed=completed,
            caught_cheating=request.caught_cheating,
            visibility_change_times=request.visibility_change_times,
            academic_period_id=period_id,
        )
        try:
            self.db.add(result)
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to save {test.test_type} result for student={submitter.student_id}: {e}")
            raise StoreError("Failed to save test result") from e

        logger.info(
            f"Saved {test.test_type} result {result.id} for student={submitter.student_id} "
            f"(cheating={request.caught_cheating}, visibility_changes={request.visibility_change_times})"
        )
        return {
            "success": True,
            "is_retest": False,
            "result_id": result.id,
            "score": scored.score,
            "max_score": scored.max_score,
            "percentage": percentage,
            "message": f"{test.test_type.replace('_', ' ').capitalize()} test submitted successfully",
        }

    async def _submit_retest(
        self,
        test: Test,
        submitter: Submitter,
        request: SubmissionRequest,
        scored: ScoredSubmission,
        period_id: int | None,
        completed: bool,
    ) -> dict:
        outcome = await self.reconciler.reconcile(ReconcileRequest(
            student_id=submitter.student_id,
            test_id=test.id,
            retest_assignment_id=request.retest_assignment_id,
            score=scored.score,
            max_score=scored.max_score,
            answers=scored.answers,
            time_taken=request.time_taken,
            started_at=request.started_at,
            submitted_at=request.submitted_at,
            caught_cheating=request.caught_cheating,
            visibility_change_times=request.visibility_change_times,
            is_completed=completed,
            context=SubmissionContext(
                test_name=request.test_name,
                teacher_id=request.teacher_id or test.teacher_id,
                subject_id=request.subject_id or test.subject_id,
                grade=submitter.grade,
                class_=submitter.class_,
                number=submitter.number,
                name=submitter.name,
                surname=submitter.surname,
                nickname=submitter.nickname,
                academic_period_id=period_id,
            ),
        ))
        return {
            "success": True,
            "is_retest": True,
            "attempt_id": outcome.attempt_id,
            "attempt_number": outcome.attempt_number,
            "score": scored.score,
            "max_score": scored.max_score,
            "percentage": outcome.percentage,
            "status": outcome.status,
            "attempt_count": outcome.attempt_count,
            "message": "Retest submitted successfully",
        }
