"""
ClassTest - Academic Calendar Model
"""
from datetime import date

from sqlalchemy import Date, Integer, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from classtest.core.database import Base


class AcademicPeriod(Base):
    """A school term. Results are tagged with the period they were written in."""
    
    __tablename__ = "academic_periods"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    academic_year: Mapped[int] = mapped_column(Integer)
    semester: Mapped[int] = mapped_column(Integer)
    term: Mapped[int] = mapped_column(Integer)
    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[date] = mapped_column(Date)


async def current_period_id(db: AsyncSession, today: date) -> int | None:
    """Return the id of the period containing `today`, latest start first."""
    result = await db.execute(
        select(AcademicPeriod.id)
        .where(AcademicPeriod.start_date <= today, AcademicPeriod.end_date >= today)
        .order_by(AcademicPeriod.start_date.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()
