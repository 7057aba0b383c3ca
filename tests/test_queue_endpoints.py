"""Tests for the queue HTTP endpoints."""

import httpx
import pytest
from httpx import AsyncClient

QUEUE_URL = "/api/v1/queue"


@pytest.mark.asyncio
async def test_get_queue(client: AsyncClient, auth_headers, fake_service, pending_record) -> None:
    """Test reading the aggregated queue."""
    fake_service.pending = [pending_record("jane@x.edu", name="Jane Doe")]
    fake_service.assigned = [
        {"token": "T9", "patientName": "Raj", "sapEmail": "raj@x.edu", "doctorName": "Dr. Rao"}
    ]

    response = await client.get(QUEUE_URL, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["stale"] is False
    assert {item["identity"] for item in data["items"]} == {"jane@x.edu", "raj@x.edu"}
    jane = next(item for item in data["items"] if item["identity"] == "jane@x.edu")
    assert jane["status"] == "Pending"
    assert jane["token"] == "-"


@pytest.mark.asyncio
async def test_get_queue_search_filter_and_sort(
    client: AsyncClient, auth_headers, fake_service, pending_record
) -> None:
    """Test the query parameters of the queue view."""
    fake_service.pending = [
        pending_record("a@x.edu", name="Anna", reason="Fever"),
        pending_record("b@x.edu", name="Bala", reason="Fever"),
        pending_record("c@x.edu", name="Chen", reason="Sprain"),
    ]

    response = await client.get(
        QUEUE_URL,
        headers=auth_headers,
        params={"q": "fever", "status": "Pending", "sort_by": "display_name", "descending": True},
    )

    assert response.status_code == 200
    assert [item["display_name"] for item in response.json()["items"]] == ["Bala", "Anna"]


@pytest.mark.asyncio
async def test_get_queue_unknown_sort_column(client: AsyncClient, auth_headers) -> None:
    """Test that sorting on an unknown column is a bad request."""
    response = await client.get(QUEUE_URL, headers=auth_headers, params={"sort_by": "vitals"})

    assert response.status_code == 400
    assert response.json()["error"] == "BadRequestException"


@pytest.mark.asyncio
async def test_get_queue_marks_stale_on_source_failure(
    client: AsyncClient, auth_headers, fake_service, pending_record
) -> None:
    """Test that a failed list still returns the others, flagged stale."""
    fake_service.pending = [pending_record("jane@x.edu")]
    fake_service.fail("/api/AD/getCompletedQueue", httpx.ConnectError)

    response = await client.get(QUEUE_URL, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["stale"] is True
    assert data["total"] == 1
    assert [warning["source"] for warning in data["warnings"]] == ["appointed"]


@pytest.mark.asyncio
async def test_location_is_required(client: AsyncClient, actor) -> None:
    """Test that requests without coordinates are refused."""
    response = await client.get(QUEUE_URL, headers={"Authorization": f"Bearer {actor.token}"})

    assert response.status_code == 400
    assert "Location required" in response.json()["message"]


@pytest.mark.asyncio
async def test_bearer_token_is_required(client: AsyncClient) -> None:
    """Test that anonymous requests are refused."""
    response = await client.get(QUEUE_URL, headers={"X-Latitude": "1", "X-Longitude": "2"})

    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_queue_summary(
    client: AsyncClient, auth_headers, fake_service, pending_record
) -> None:
    """Test the dashboard counters."""
    fake_service.pending = [pending_record("a@x.edu"), pending_record("b@x.edu")]
    fake_service.appointed = [{"id": "a1", "sapEmail": "c@x.edu", "name": "C", "reason": "Cough"}]

    response = await client.get(f"{QUEUE_URL}/summary", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 3
    assert data["pending"] == 2
    assert data["assigned"] == 0
    assert data["appointed"] == 1


@pytest.mark.asyncio
async def test_refresh_observes_new_records(
    client: AsyncClient, auth_headers, fake_service, pending_record
) -> None:
    """Test that a forced refresh sees records added since the last cycle."""
    first = await client.get(QUEUE_URL, headers=auth_headers)
    assert first.json()["total"] == 0

    fake_service.pending = [pending_record("jane@x.edu")]
    response = await client.post(f"{QUEUE_URL}/refresh", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["total"] == 1


@pytest.mark.asyncio
async def test_assign_endpoint(
    client: AsyncClient, auth_headers, fake_service, pending_record
) -> None:
    """Test a successful assignment over HTTP."""
    fake_service.pending = [pending_record("jane@x.edu")]
    await client.get(QUEUE_URL, headers=auth_headers)

    response = await client.post(
        f"{QUEUE_URL}/assign",
        headers=auth_headers,
        json={"email": "jane@x.edu", "doctor_id": "D1", "weight_kg": 70, "temperature_f": 99.1},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "Assigned"
    assert data["token"] == "T101"


@pytest.mark.asyncio
async def test_assign_validation_errors(client: AsyncClient, auth_headers, fake_service) -> None:
    """Test that field errors are returned and nothing is sent."""
    response = await client.post(
        f"{QUEUE_URL}/assign",
        headers=auth_headers,
        json={"email": "jane@x.edu", "weight_kg": 400, "temperature_f": 98},
    )

    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "ValidationException"
    assert set(data["details"]) == {"doctor_id", "weight_kg"}
    assert fake_service.requests_to("/api/AD/submitAppointment") == []


@pytest.mark.asyncio
async def test_reject_forbidden(
    client: AsyncClient, auth_headers, fake_service, pending_record
) -> None:
    """Test that a cross-campus rejection answers 403."""
    fake_service.pending = [pending_record("jane@x.edu")]
    fake_service.fail("/api/AD/rejectAppointment", 403)

    response = await client.post(
        f"{QUEUE_URL}/reject", headers=auth_headers, json={"email": "jane@x.edu"}
    )

    assert response.status_code == 403
    data = response.json()
    assert data["error"] == "AuthorizationException"
    assert data["retryable"] is False


@pytest.mark.asyncio
async def test_write_transport_failure_is_retryable(
    client: AsyncClient, auth_headers, fake_service
) -> None:
    """Test that an unreachable service answers 503 with retryable set."""
    fake_service.fail("/api/AD/completeAppointment", httpx.ConnectTimeout)

    response = await client.post(
        f"{QUEUE_URL}/complete", headers=auth_headers, json={"email": "jane@x.edu"}
    )

    assert response.status_code == 503
    assert response.json()["retryable"] is True


@pytest.mark.asyncio
async def test_invalid_transition_conflict(
    client: AsyncClient, auth_headers, fake_service, pending_record
) -> None:
    """Test that an impossible transition answers 409."""
    fake_service.pending = [pending_record("jane@x.edu")]
    await client.get(QUEUE_URL, headers=auth_headers)

    response = await client.post(
        f"{QUEUE_URL}/complete", headers=auth_headers, json={"email": "jane@x.edu"}
    )

    assert response.status_code == 409
    assert response.json()["error"] == "InvalidTransitionException"


@pytest.mark.asyncio
async def test_reassign_and_divert(client: AsyncClient, auth_headers, fake_service) -> None:
    """Test the reassign and divert endpoints."""
    fake_service.assigned = [{"token": "T5", "patientName": "Raj", "sapEmail": "raj@x.edu"}]
    fake_service.pending = [
        {"id": "p1", "sapEmail": "li@x.edu", "name": "Li", "reason": "Cut"}
    ]

    reassign = await client.post(
        f"{QUEUE_URL}/reassign",
        headers=auth_headers,
        json={"email": "raj@x.edu", "doctor_email": "iyer@x.edu"},
    )
    divert = await client.post(
        f"{QUEUE_URL}/divert",
        headers=auth_headers,
        json={"name": "Li", "email": "li@x.edu", "reason": "Cut"},
    )

    assert reassign.status_code == 200
    assert reassign.json()["transition"] == "reassign"
    assert divert.status_code == 200
    assert divert.json()["status"] == "Pending"


@pytest.mark.asyncio
async def test_manual_intake(client: AsyncClient, auth_headers, fake_service) -> None:
    """Test creating a walk-in and refusing a duplicate."""
    payload = {"email": "walkin@x.edu", "reason": "Headache"}

    created = await client.post(f"{QUEUE_URL}/intake", headers=auth_headers, json=payload)
    duplicate = await client.post(f"{QUEUE_URL}/intake", headers=auth_headers, json=payload)

    assert created.status_code == 201
    assert created.json()["appointment_id"] == "apt-100"
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "AlreadyQueuedException"
    assert len(fake_service.requests_to("/api/AD/manualAppointment")) == 1


@pytest.mark.asyncio
async def test_manual_intake_rejects_invalid_email(client: AsyncClient, auth_headers) -> None:
    """Test request validation of the intake body."""
    response = await client.post(
        f"{QUEUE_URL}/intake", headers=auth_headers, json={"email": "not-an-email", "reason": "x"}
    )

    assert response.status_code == 422
    assert response.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_end_session(client: AsyncClient, auth_headers, registry) -> None:
    """Test that ending the session drops it from the registry."""
    await client.get(QUEUE_URL, headers=auth_headers)
    assert len(registry) == 1

    response = await client.delete(f"{QUEUE_URL}/session", headers=auth_headers)

    assert response.status_code == 204
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_available_doctors(client: AsyncClient, auth_headers) -> None:
    """Test listing doctors for the actor's campus."""
    response = await client.get("/api/v1/doctors/available", headers=auth_headers)

    assert response.status_code == 200
    assert [doctor["name"] for doctor in response.json()] == ["Dr. Rao", "Dr. Iyer"]
