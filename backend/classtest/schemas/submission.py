"""
ClassTest - Submission Schemas
Request/response bodies shared by every test-type submission endpoint
"""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SubmissionRequest(BaseModel):
    """
    A test submission as sent by the student client.
    
    Most fields are common; the trailing groups are only read by the
    adapter for the matching test type.
    """
    model_config = ConfigDict(populate_by_name=True)
    
    test_id: int
    test_name: str
    teacher_id: str | None = None
    subject_id: int | None = None
    score: float | None = None
    max_score: float | None = Field(default=None, alias="maxScore")
    answers: Any = None
    time_taken: int | None = None
    started_at: datetime | None = None
    submitted_at: datetime | None = None
    caught_cheating: bool = False
    visibility_change_times: int = 0
    is_completed: bool | None = None
    
    # Retest routing
    retest_assignment_id: int | None = None
    parent_test_id: int | None = None
    
    # Choice tests: order-agnostic answers
    answers_by_id: dict[str, Any] | None = None
    question_order: list[Any] | None = None
    
    # Word matching
    interaction_type: str | None = None
    
    # Speaking
    question_id: int | None = None
    audio_url: str | None = None
    transcript: str | None = None
    audio_duration: float | None = None
    scores: dict[str, Any] | None = None


class SubmissionResponse(BaseModel):
    success: bool = True
    is_retest: bool = False
    result_id: int | None = None
    attempt_id: int | None = None
    attempt_number: int | None = None
    score: float | None = None
    max_score: float | None = None
    percentage: float | None = None
    status: str | None = None
    attempt_count: int | None = None
    message: str


class AttemptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    
    id: int
    test_id: int
    attempt_number: int
    retest_assignment_id: int | None = None
    score: float
    max_score: float
    percentage: float
    time_taken: int | None = None
    submitted_at: datetime | None = None
    caught_cheating: bool
    visibility_change_times: int


class AttemptHistoryResponse(BaseModel):
    success: bool = True
    attempts: list[AttemptResponse]
