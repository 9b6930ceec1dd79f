"""
ClassTest - Test Configuration
Pytest fixtures and configuration for testing
"""
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from classtest.core.database import Base, build_engine, get_db
from classtest.core.security import create_access_token
from classtest.main import app
from classtest.models import RetestAssignment, RetestTarget, Test, TestResult


# Fixed clock for service tests
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
WINDOW_START = NOW - timedelta(days=5)
WINDOW_END = NOW + timedelta(days=5)


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """A fresh SQLite file database per test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_maker) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


class Seeder:
    """
    Inserts fixture rows and commits immediately.

    SQLite transactions start with BEGIN IMMEDIATE here, so a seeding
    session must not sit on an open transaction while other sessions write.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def test(
        self,
        test_type: str = "multiple_choice",
        teacher_id: str = "T1",
        subject_id: int = 1,
        test_name: str = "Unit 1 Quiz",
    ) -> Test:
        test = Test(
            test_type=test_type,
            test_name=test_name,
            teacher_id=teacher_id,
            subject_id=subject_id,
            num_questions=10,
        )
        self.session.add(test)
        await self.session.commit()
        return test

    async def result(
        self,
        test: Test,
        student_id: str,
        score: float | None,
        max_score: float | None = 100,
        **fields: Any,
    ) -> TestResult:
        percentage = None
        if score is not None and max_score:
            percentage = round(score / max_score * 100, 2)
        result = TestResult(
            test_id=test.id,
            test_type=test.test_type,
            test_name=test.test_name,
            student_id=student_id,
            teacher_id=test.teacher_id,
            subject_id=test.subject_id,
            score=score,
            max_score=max_score,
            percentage=percentage,
            answers={"q1": "a"},
            is_completed=True,
            **fields,
        )
        self.session.add(result)
        await self.session.commit()
        return result

    async def retest(
        self,
        test: Test,
        student_ids: list[str],
        max_attempts: int = 3,
        scoring_policy: str = "BEST",
        passing_threshold: float = 50.0,
        window_start: datetime = WINDOW_START,
        window_end: datetime = WINDOW_END,
        teacher_id: str | None = None,
    ) -> RetestAssignment:
        assignment = RetestAssignment(
            test_type=test.test_type,
            test_id=test.id,
            teacher_id=teacher_id or test.teacher_id,
            subject_id=test.subject_id,
            grade=5,
            class_=2,
            passing_threshold=passing_threshold,
            scoring_policy=scoring_policy,
            max_attempts=max_attempts,
            window_start=window_start,
            window_end=window_end,
        )
        self.session.add(assignment)
        await self.session.flush()
        for student_id in student_ids:
            self.session.add(RetestTarget(
                retest_assignment_id=assignment.id,
                student_id=student_id,
                attempt_count=0,
                status="PENDING",
            ))
        await self.session.commit()
        return assignment


@pytest.fixture
def seed(db_session: AsyncSession) -> Seeder:
    return Seeder(db_session)


@pytest.fixture
def teacher_headers() -> dict[str, str]:
    token = create_access_token("T1", additional_claims={"role": "teacher"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    token = create_access_token("A1", additional_claims={"role": "admin"})
    return {"Authorization": f"Bearer {token}"}


def student_token(student_id: str = "S1", **claims: Any) -> str:
    payload = {
        "role": "student",
        "name": "Ada",
        "surname": "Lovelace",
        "nickname": "ada",
        "grade": 5,
        "class": "5/2",
        "number": 7,
    }
    payload.update(claims)
    return create_access_token(student_id, additional_claims=payload)


@pytest.fixture
def student_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {student_token()}"}


@pytest.fixture
def student_headers_for():
    """Headers for an arbitrary student id."""
    def _headers(student_id: str, **claims: Any) -> dict[str, str]:
        return {"Authorization": f"Bearer {student_token(student_id, **claims)}"}
    return _headers


@pytest.fixture
def now() -> datetime:
    """The instant service tests run at; seeded windows span it by five days each way."""
    return NOW
