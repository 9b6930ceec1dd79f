"""
ClassTest - Original Test Result Model
Stores first-time submissions for every test type, plus the projected
best retest outcome so reporting never has to join the attempt ledger.
"""
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from classtest.core.database import Base
from classtest.core.timeutils import utcnow


class TestResult(Base):
    """Original (non-retest) submission of a test."""
    
    __tablename__ = "test_results"
    __test__ = False
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_id: Mapped[int] = mapped_column(ForeignKey("tests.id", ondelete="CASCADE"), index=True)
    test_type: Mapped[str] = mapped_column(String(30))
    test_name: Mapped[str] = mapped_column(String(255))
    
    # Identity and context copied from the token at submission time
    student_id: Mapped[str] = mapped_column(String(64), index=True)
    teacher_id: Mapped[str] = mapped_column(String(64), index=True)
    subject_id: Mapped[int] = mapped_column(Integer)
    grade: Mapped[int | None] = mapped_column(Integer, nullable=True)
    class_: Mapped[int | None] = mapped_column("class", Integer, nullable=True)
    number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    surname: Mapped[str | None] = mapped_column(String(100), nullable=True)
    nickname: Mapped[str | None] = mapped_column(String(100), nullable=True)
    
    # Score (NULL for ungraded drawing/speaking submissions)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    
    answers: Mapped[dict | list | None] = mapped_column(JSON, nullable=True)
    time_taken: Mapped[int | None] = mapped_column(Integer, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    caught_cheating: Mapped[bool] = mapped_column(Boolean, default=False)
    visibility_change_times: Mapped[int] = mapped_column(Integer, default=0)
    academic_period_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    
    # Retest side channel
    retest_offered: Mapped[bool] = mapped_column(Boolean, default=False)
    best_retest_attempt_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    best_retest_attempt_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    best_retest_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    best_retest_max_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    best_retest_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now()
    )
    
    def __repr__(self):
        return f"<TestResult test={self.test_id} student={self.student_id} score={self.score}>"
