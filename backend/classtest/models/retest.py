"""
ClassTest - Retest Models
Teacher-created retest assignments and the per-student targets they create
"""
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from classtest.core.database import Base
from classtest.core.timeutils import utcnow

if TYPE_CHECKING:
    from classtest.models.test import Test


class ScoringPolicy(str, Enum):
    """How the reported retest result is chosen across attempts."""
    BEST = "BEST"
    LAST = "LAST"
    EARLY_PASS_LOCK = "EARLY_PASS_LOCK"


class TargetStatus(str, Enum):
    """Lifecycle of a student's retest target."""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    PASSED = "PASSED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"


class RetestAssignment(Base):
    """
    A retest policy for one original test.
    
    Immutable once created; targets carry all per-student state.
    """
    
    __tablename__ = "retest_assignments"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_type: Mapped[str] = mapped_column(String(30))
    test_id: Mapped[int] = mapped_column(ForeignKey("tests.id", ondelete="CASCADE"), index=True)
    teacher_id: Mapped[str] = mapped_column(String(64), index=True)
    subject_id: Mapped[int] = mapped_column(Integer)
    grade: Mapped[int] = mapped_column(Integer)
    class_: Mapped[int] = mapped_column("class", Integer)
    
    passing_threshold: Mapped[float] = mapped_column(Float, default=50.0)
    scoring_policy: Mapped[str] = mapped_column(String(20), default=ScoringPolicy.BEST.value)
    max_attempts: Mapped[int] = mapped_column(Integer, default=1)
    window_start: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    window_end: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now()
    )
    
    # Relationships
    test: Mapped["Test"] = relationship("Test")
    targets: Mapped[list["RetestTarget"]] = relationship(
        "RetestTarget",
        back_populates="assignment",
        cascade="all, delete-orphan"
    )


class RetestTarget(Base):
    """One student's standing within a retest assignment."""
    
    __tablename__ = "retest_targets"
    __table_args__ = (
        UniqueConstraint("retest_assignment_id", "student_id", name="uq_retest_target_student"),
    )
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    retest_assignment_id: Mapped[int] = mapped_column(
        ForeignKey("retest_assignments.id", ondelete="CASCADE"),
        index=True
    )
    student_id: Mapped[str] = mapped_column(String(64), index=True)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default=TargetStatus.PENDING.value)
    last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    
    assignment: Mapped["RetestAssignment"] = relationship(
        "RetestAssignment",
        back_populates="targets"
    )
    
    def __repr__(self):
        return (
            f"<RetestTarget assignment={self.retest_assignment_id} "
            f"student={self.student_id} {self.status} {self.attempt_count}>"
        )
