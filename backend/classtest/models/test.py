"""
ClassTest - Test Catalog Model
One row per test a teacher has created, regardless of its question format
"""
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from classtest.core.database import Base
from classtest.core.timeutils import utcnow


class TestType(str, Enum):
    """Question formats supported by the platform."""
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    INPUT = "input"
    MATCHING_TYPE = "matching_type"
    WORD_MATCHING = "word_matching"
    DRAWING = "drawing"
    FILL_BLANKS = "fill_blanks"
    SPEAKING = "speaking"


class Test(Base):
    """A test definition. Questions live with the authoring tools."""
    
    __tablename__ = "tests"
    __test__ = False  # not a pytest class
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_type: Mapped[str] = mapped_column(String(30), index=True)
    test_name: Mapped[str] = mapped_column(String(255))
    teacher_id: Mapped[str] = mapped_column(String(64), index=True)
    subject_id: Mapped[int] = mapped_column(Integer)
    num_questions: Mapped[int] = mapped_column(Integer, default=0)
    
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now()
    )
    
    def __repr__(self):
        return f"<Test {self.test_type}:{self.id} {self.test_name!r}>"
