"""
ClassTest - Retest Schemas
Pydantic schemas for retest assignment administration and student retest views
"""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from classtest.core.config import settings
from classtest.models.retest import ScoringPolicy


class RetestAssignmentCreate(BaseModel):
    """
    Teacher request to offer a retest.
    
    Range checks (grade, class, threshold, window order) happen in the
    registry so they surface as 400 validation errors.
    """
    model_config = ConfigDict(populate_by_name=True)
    
    test_type: str
    test_id: int = Field(alias="original_test_id")
    teacher_id: str | None = None  # admins only
    subject_id: int
    grade: int
    class_: int | str = Field(alias="class")
    student_ids: list[str]
    passing_threshold: float = Field(
        default_factory=lambda: settings.RETEST_DEFAULT_PASSING_THRESHOLD
    )
    scoring_policy: ScoringPolicy = ScoringPolicy.BEST
    max_attempts: int = Field(
        default_factory=lambda: settings.RETEST_DEFAULT_MAX_ATTEMPTS
    )
    window_start: datetime
    window_end: datetime


class RetestCreatedResponse(BaseModel):
    success: bool = True
    retest_id: int
    targets_created: int


class RetestAssignmentSummary(BaseModel):
    """Assignment with per-status target counts."""
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)
    
    id: int
    test_type: str
    test_id: int
    teacher_id: str
    subject_id: int
    grade: int
    class_: int = Field(serialization_alias="class")
    passing_threshold: float
    scoring_policy: str
    max_attempts: int
    window_start: datetime
    window_end: datetime
    created_at: datetime
    pending_count: int = 0
    in_progress_count: int = 0
    passed_count: int = 0
    failed_count: int = 0
    expired_count: int = 0


class RetestListResponse(BaseModel):
    success: bool = True
    retests: list[RetestAssignmentSummary]


class EligibleStudent(BaseModel):
    """A student whose best original score is below the threshold."""
    student_id: str
    name: str | None = None
    surname: str | None = None
    nickname: str | None = None
    best_percentage: float


class EligibleStudentsResponse(BaseModel):
    success: bool = True
    students: list[EligibleStudent]


class RetestTargetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    
    id: int
    retest_assignment_id: int
    student_id: str
    attempt_count: int
    status: str
    last_attempt_at: datetime | None = None
    name: str | None = None
    surname: str | None = None
    nickname: str | None = None


class RetestTargetsResponse(BaseModel):
    success: bool = True
    targets: list[RetestTargetResponse]


class AvailableRetest(BaseModel):
    """An open retest from the student's point of view."""
    retest_assignment_id: int
    test_type: str
    test_id: int
    test_name: str | None = None
    status: str
    attempt_count: int
    max_attempts: int
    retest_attempts_left: int
    window_start: datetime
    window_end: datetime


class AvailableRetestsResponse(BaseModel):
    success: bool = True
    retests: list[AvailableRetest]


class StartRetestResponse(BaseModel):
    success: bool = True
    retest_assignment_id: int
    status: str
    attempt_count: int
    retest_attempts_left: int
