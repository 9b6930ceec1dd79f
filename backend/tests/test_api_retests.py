"""
ClassTest - Retest and Submission API Tests
"""
from datetime import timedelta

import pytest
from httpx import AsyncClient

from classtest.core.security import create_access_token
from classtest.core.timeutils import utcnow


def retest_payload(test, **overrides) -> dict:
    now = utcnow()
    payload = {
        "test_type": test.test_type,
        "original_test_id": test.id,
        "subject_id": test.subject_id,
        "grade": 5,
        "class": "5/2",
        "student_ids": ["S1"],
        "passing_threshold": 50,
        "scoring_policy": "BEST",
        "max_attempts": 3,
        "window_start": (now - timedelta(hours=1)).isoformat(),
        "window_end": (now + timedelta(days=3)).isoformat(),
    }
    payload.update(overrides)
    return payload


def submission(test, score, **fields) -> dict:
    payload = {
        "test_id": test.id,
        "test_name": test.test_name,
        "score": score,
        "maxScore": 100,
        "answers": {"q1": "a"},
    }
    payload.update(fields)
    return payload


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test the health check endpoint."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_missing_token(client: AsyncClient):
    response = await client.get("/api/v1/retests")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token(client: AsyncClient):
    response = await client.get(
        "/api/v1/retests",
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid token"


@pytest.mark.asyncio
async def test_expired_token(client: AsyncClient):
    token = create_access_token(
        "T1",
        expires_delta=timedelta(minutes=-1),
        additional_claims={"role": "teacher"},
    )
    response = await client.get(
        "/api/v1/retests",
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Token expired"


@pytest.mark.asyncio
async def test_student_cannot_assign_retest(client: AsyncClient, seed, student_headers):
    test = await seed.test()
    response = await client.post(
        "/api/v1/retests",
        json=retest_payload(test),
        headers=student_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_create_retest_validation_error(client: AsyncClient, seed, teacher_headers):
    test = await seed.test()
    response = await client.post(
        "/api/v1/retests",
        json=retest_payload(test, student_ids=[]),
        headers=teacher_headers,
    )
    assert response.status_code == 400
    data = response.json()
    assert data["success"] is False
    assert data["error_kind"] == "validation_error"


@pytest.mark.asyncio
async def test_retest_flow(client: AsyncClient, seed, teacher_headers, student_headers):
    """Assign, start, fail, pass, then get locked out."""
    test = await seed.test()
    await seed.result(test, "S1", 20, name="Ada", surname="Lovelace")
    await seed.result(test, "S2", 90)

    eligible = await client.get(
        "/api/v1/retests/eligible",
        params={"test_type": test.test_type, "original_test_id": test.id, "threshold": 50},
        headers=teacher_headers,
    )
    assert eligible.status_code == 200
    assert [s["student_id"] for s in eligible.json()["students"]] == ["S1"]

    created = await client.post(
        "/api/v1/retests",
        json=retest_payload(test),
        headers=teacher_headers,
    )
    assert created.status_code == 201
    retest_id = created.json()["retest_id"]
    assert created.json()["targets_created"] == 1

    available = await client.get("/api/v1/retests/available", headers=student_headers)
    assert [r["retest_assignment_id"] for r in available.json()["retests"]] == [retest_id]

    started = await client.post(f"/api/v1/retests/{retest_id}/start", headers=student_headers)
    assert started.status_code == 200
    assert started.json()["status"] == "IN_PROGRESS"
    assert started.json()["retest_attempts_left"] == 3

    failed = await client.post(
        "/api/v1/submissions/multiple_choice",
        json=submission(test, 30, retest_assignment_id=retest_id),
        headers=student_headers,
    )
    assert failed.status_code == 200
    assert failed.json()["attempt_number"] == 1
    assert failed.json()["status"] == "FAILED"

    passed = await client.post(
        "/api/v1/submissions/multiple_choice",
        json=submission(test, 60, retest_assignment_id=retest_id),
        headers=student_headers,
    )
    assert passed.status_code == 200
    assert passed.json()["attempt_number"] == 3
    assert passed.json()["status"] == "PASSED"
    assert passed.json()["attempt_count"] == 3

    locked = await client.post(
        "/api/v1/submissions/multiple_choice",
        json=submission(test, 100, retest_assignment_id=retest_id),
        headers=student_headers,
    )
    assert locked.status_code == 400
    assert locked.json() == {
        "success": False,
        "error_kind": "attempts_exhausted",
        "detail": "Maximum retest attempts reached",
    }

    history = await client.get(f"/api/v1/submissions/attempts/{test.id}", headers=student_headers)
    assert [a["attempt_number"] for a in history.json()["attempts"]] == [1, 3]

    listing = await client.get("/api/v1/retests", headers=teacher_headers)
    summary = listing.json()["retests"][0]
    assert summary["id"] == retest_id
    assert summary["class"] == 2
    assert summary["passed_count"] == 1

    targets = await client.get(f"/api/v1/retests/{retest_id}/targets", headers=teacher_headers)
    target = targets.json()["targets"][0]
    assert target["student_id"] == "S1"
    assert target["surname"] == "Lovelace"
    assert target["status"] == "PASSED"

    results = await client.get("/api/v1/results/students/S1", headers=student_headers)
    assert results.status_code == 200
    row = results.json()["results"][0]
    assert row["score"] == 60
    assert row["percentage"] == 60.0
    assert row["original_score"] == 20
    assert row["best_retest_attempt_number"] == 3
    assert row["retest_offered"] is True


@pytest.mark.asyncio
async def test_submission_not_assigned(client: AsyncClient, seed, teacher_headers, student_headers_for):
    test = await seed.test()
    created = await client.post(
        "/api/v1/retests",
        json=retest_payload(test, student_ids=["S1"]),
        headers=teacher_headers,
    )
    retest_id = created.json()["retest_id"]

    response = await client.post(
        "/api/v1/submissions/multiple_choice",
        json=submission(test, 80, retest_assignment_id=retest_id),
        headers=student_headers_for("S2"),
    )
    assert response.status_code == 400
    assert response.json()["error_kind"] == "not_assigned"


@pytest.mark.asyncio
async def test_original_submission(client: AsyncClient, seed, student_headers):
    test = await seed.test(test_type="true_false")
    response = await client.post(
        "/api/v1/submissions/true_false",
        json=submission(test, 45),
        headers=student_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["is_retest"] is False
    assert data["percentage"] == 45.0
    assert data["result_id"] is not None


@pytest.mark.asyncio
async def test_unknown_test_type_path(client: AsyncClient, seed, student_headers):
    test = await seed.test()
    response = await client.post(
        "/api/v1/submissions/essay",
        json=submission(test, 45),
        headers=student_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_results_pagination(client: AsyncClient, seed, teacher_headers):
    test = await seed.test()
    for score in (10, 20, 30):
        await seed.result(test, "S1", score)

    first = await client.get(
        "/api/v1/results/students/S1",
        params={"limit": 2},
        headers=teacher_headers,
    )
    page = first.json()
    assert [r["score"] for r in page["results"]] == [30, 20]
    assert page["pagination"]["has_more"] is True

    second = await client.get(
        "/api/v1/results/students/S1",
        params={"limit": 2, "cursor": page["pagination"]["next_cursor"]},
        headers=teacher_headers,
    )
    page = second.json()
    assert [r["score"] for r in page["results"]] == [10]
    assert page["pagination"]["has_more"] is False
    assert page["pagination"]["next_cursor"] is None


@pytest.mark.asyncio
async def test_results_bad_cursor(client: AsyncClient, teacher_headers):
    response = await client.get(
        "/api/v1/results/students/S1",
        params={"cursor": "yesterday"},
        headers=teacher_headers,
    )
    assert response.status_code == 400
    assert response.json()["error_kind"] == "validation_error"


@pytest.mark.asyncio
async def test_student_cannot_read_other_results(client: AsyncClient, student_headers):
    response = await client.get("/api/v1/results/students/S2", headers=student_headers)
    assert response.status_code == 403
