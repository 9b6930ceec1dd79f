"""
ClassTest - Submission API
One submit endpoint per test type; retests are routed by retest_assignment_id
"""
from fastapi import APIRouter

from classtest.api.deps import CurrentStudent, DbSession
from classtest.models.test import TestType
from classtest.schemas.submission import (
    AttemptHistoryResponse,
    AttemptResponse,
    SubmissionRequest,
    SubmissionResponse,
)
from classtest.services.attempt_store import AttemptStore
from classtest.services.submissions import SubmissionService, Submitter

router = APIRouter(prefix="/submissions", tags=["Submissions"])


@router.post(
    "/{test_type}",
    response_model=SubmissionResponse,
    summary="Submit a test or retest",
)
async def submit_test(
    test_type: TestType,
    data: SubmissionRequest,
    current_user: CurrentStudent,
    db: DbSession,
) -> SubmissionResponse:
    """
    Submit answers for any test type.

    Without retest_assignment_id the submission is stored as an original
    result. With it, the submission becomes a retest attempt and goes
    through eligibility checks and attempt numbering.
    """
    submitter = Submitter(
        student_id=current_user.student_id,
        grade=current_user.grade,
        class_=current_user.class_,
        number=current_user.number,
        name=current_user.name,
        surname=current_user.surname,
        nickname=current_user.nickname,
    )
    service = SubmissionService(db)
    outcome = await service.submit(test_type.value, submitter, data)
    return SubmissionResponse(**outcome)


@router.get(
    "/attempts/{test_id}",
    response_model=AttemptHistoryResponse,
    summary="My retest attempts for a test",
)
async def list_my_attempts(
    test_id: int,
    current_user: CurrentStudent,
    db: DbSession,
) -> AttemptHistoryResponse:
    store = AttemptStore(db)
    attempts = await store.list_attempts(current_user.student_id, test_id)
    return AttemptHistoryResponse(
        attempts=[AttemptResponse.model_validate(a) for a in attempts]
    )
