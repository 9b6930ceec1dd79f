"""
ClassTest - Results API
"""
from fastapi import APIRouter, HTTPException, Query, status

from classtest.api.deps import ROLE_STUDENT, CurrentUser, DbSession
from classtest.core.config import settings
from classtest.schemas.result import Pagination, StudentResultsPage
from classtest.services.results import ResultsViewService

router = APIRouter(prefix="/results", tags=["Results"])


@router.get(
    "/students/{student_id}",
    response_model=StudentResultsPage,
    response_model_by_alias=True,
    summary="A student's results",
)
async def get_student_results(
    student_id: str,
    current_user: CurrentUser,
    db: DbSession,
    academic_period_id: int | None = None,
    cursor: str | None = None,
    limit: int = Query(
        default=settings.RESULTS_PAGE_LIMIT_DEFAULT,
        ge=1,
    ),
) -> StudentResultsPage:
    """
    Original results for a student, newest first.

    Where a retest exists, score and max_score show the best retest
    outcome and the original values move to original_score/original_max_score.
    Students may only read their own results.
    """
    if current_user.role == ROLE_STUDENT and current_user.student_id != student_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Students can only view their own results",
        )

    limit = min(limit, settings.RESULTS_PAGE_LIMIT_MAX)
    service = ResultsViewService(db)
    rows, next_cursor = await service.student_results(
        student_id,
        limit=limit,
        cursor=cursor,
        academic_period_id=academic_period_id,
    )
    return StudentResultsPage(
        results=rows,
        pagination=Pagination(limit=limit, has_more=next_cursor is not None, next_cursor=next_cursor),
    )
