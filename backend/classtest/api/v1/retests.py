"""
ClassTest - Retest API
Teacher endpoints for assigning retests, student endpoints for taking them
"""
from fastapi import APIRouter, Query, status

from classtest.api.deps import CurrentStaff, CurrentStudent, DbSession
from classtest.core.config import settings
from classtest.schemas.retest import (
    AvailableRetestsResponse,
    EligibleStudentsResponse,
    RetestAssignmentCreate,
    RetestCreatedResponse,
    RetestListResponse,
    RetestTargetsResponse,
    StartRetestResponse,
)
from classtest.services.attempt_reconciler import AttemptReconciler
from classtest.services.retest_registry import RetestAssignmentRegistry

router = APIRouter(prefix="/retests", tags=["Retests"])


@router.post(
    "",
    response_model=RetestCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Assign a retest",
)
async def create_retest(
    data: RetestAssignmentCreate,
    current_user: CurrentStaff,
    db: DbSession,
) -> RetestCreatedResponse:
    """Create a retest for the listed students and flag their original results."""
    registry = RetestAssignmentRegistry(db)
    retest_id, created = await registry.create_assignment(
        data,
        acting_teacher_id=current_user.teacher_id,
        is_admin=current_user.is_admin,
    )
    return RetestCreatedResponse(retest_id=retest_id, targets_created=created)


@router.get("", response_model=RetestListResponse, summary="List retests")
async def list_retests(
    current_user: CurrentStaff,
    db: DbSession,
    teacher_id: str | None = None,
) -> RetestListResponse:
    """List a teacher's retests with target counts per status."""
    registry = RetestAssignmentRegistry(db)
    effective_teacher_id = registry.resolve_teacher_id(
        current_user.teacher_id, current_user.is_admin, teacher_id
    )
    rows = await registry.list_assignments(effective_teacher_id)
    return RetestListResponse(retests=rows)


@router.get(
    "/eligible",
    response_model=EligibleStudentsResponse,
    summary="Students eligible for a retest",
)
async def list_eligible_students(
    current_user: CurrentStaff,
    db: DbSession,
    test_type: str,
    original_test_id: int,
    threshold: float = Query(default=settings.RETEST_DEFAULT_PASSING_THRESHOLD),
) -> EligibleStudentsResponse:
    """Students whose best original score is below the threshold, worst first."""
    registry = RetestAssignmentRegistry(db)
    rows = await registry.list_eligible_students(test_type, original_test_id, threshold)
    return EligibleStudentsResponse(students=rows)


@router.get(
    "/available",
    response_model=AvailableRetestsResponse,
    summary="Open retests for the current student",
)
async def list_available_retests(
    current_user: CurrentStudent,
    db: DbSession,
) -> AvailableRetestsResponse:
    registry = RetestAssignmentRegistry(db)
    rows = await registry.list_available(current_user.student_id)
    return AvailableRetestsResponse(retests=rows)


@router.get(
    "/{retest_id}/targets",
    response_model=RetestTargetsResponse,
    summary="Students targeted by a retest",
)
async def list_retest_targets(
    retest_id: int,
    current_user: CurrentStaff,
    db: DbSession,
) -> RetestTargetsResponse:
    registry = RetestAssignmentRegistry(db)
    rows = await registry.list_targets(
        retest_id,
        acting_teacher_id=current_user.teacher_id,
        is_admin=current_user.is_admin,
    )
    return RetestTargetsResponse(targets=rows)


@router.post(
    "/{retest_id}/start",
    response_model=StartRetestResponse,
    summary="Open a retest",
)
async def start_retest(
    retest_id: int,
    current_user: CurrentStudent,
    db: DbSession,
) -> StartRetestResponse:
    """Mark the retest as in progress without consuming an attempt."""
    reconciler = AttemptReconciler(db)
    target, assignment = await reconciler.start(retest_id, current_user.student_id)
    return StartRetestResponse(
        retest_assignment_id=retest_id,
        status=target.status,
        attempt_count=target.attempt_count,
        retest_attempts_left=max(0, assignment.max_attempts - target.attempt_count),
    )
