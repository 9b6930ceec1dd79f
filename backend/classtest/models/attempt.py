"""
ClassTest - Attempt Ledger Model
One row per student x original test x attempt number, written by retests
"""
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from classtest.core.database import Base
from classtest.core.timeutils import utcnow


class TestAttempt(Base):
    """
    A scored retest submission.
    
    test_id always points at the original test, never at the retest
    assignment. Identity and context columns are copied at write time so
    reports survive later profile changes.
    """
    
    __tablename__ = "test_attempts"
    __test__ = False
    __table_args__ = (
        UniqueConstraint("student_id", "test_id", "attempt_number", name="uq_attempt_student_test_number"),
    )
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(String(64), index=True)
    test_id: Mapped[int] = mapped_column(ForeignKey("tests.id", ondelete="CASCADE"), index=True)
    attempt_number: Mapped[int] = mapped_column(Integer)
    retest_assignment_id: Mapped[int | None] = mapped_column(
        ForeignKey("retest_assignments.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    
    # Score
    score: Mapped[float] = mapped_column(Float)
    max_score: Mapped[float] = mapped_column(Float)
    percentage: Mapped[float] = mapped_column(Float)
    
    # Submission payload
    answers: Mapped[dict | list | None] = mapped_column(JSON, nullable=True)
    time_taken: Mapped[int | None] = mapped_column(Integer, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=True)
    caught_cheating: Mapped[bool] = mapped_column(Boolean, default=False)
    visibility_change_times: Mapped[int] = mapped_column(Integer, default=0)
    academic_period_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    
    # Denormalized context
    test_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    teacher_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    subject_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    grade: Mapped[int | None] = mapped_column(Integer, nullable=True)
    class_: Mapped[int | None] = mapped_column("class", Integer, nullable=True)
    number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    surname: Mapped[str | None] = mapped_column(String(100), nullable=True)
    nickname: Mapped[str | None] = mapped_column(String(100), nullable=True)
    
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow
    )
    
    def __repr__(self):
        return f"<TestAttempt student={self.student_id} test={self.test_id} #{self.attempt_number} {self.percentage}%>"
