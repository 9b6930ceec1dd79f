"""
ClassTest - Results View Schemas
"""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StudentResultView(BaseModel):
    """An original result with the best retest outcome folded into score/max_score."""
    model_config = ConfigDict(populate_by_name=True)
    
    id: int
    test_id: int
    test_type: str
    test_name: str
    teacher_id: str
    subject_id: int
    student_id: str
    grade: int | None = None
    class_: int | None = Field(default=None, serialization_alias="class")
    score: float | None = None
    max_score: float | None = None
    percentage: float | None = None
    original_score: float | None = None
    original_max_score: float | None = None
    best_retest_attempt_number: int | None = None
    best_retest_percentage: float | None = None
    retest_offered: bool
    is_completed: bool
    caught_cheating: bool
    visibility_change_times: int
    answers: Any = None
    academic_period_id: int | None = None
    created_at: datetime


class Pagination(BaseModel):
    limit: int
    has_more: bool
    next_cursor: str | None = None


class StudentResultsPage(BaseModel):
    success: bool = True
    results: list[StudentResultView]
    pagination: Pagination
