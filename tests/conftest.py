import json
from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient

# Load environment variables from .env file
load_dotenv()

from frontdesk.config import Settings, settings
from frontdesk.core.identity import decode_email
from frontdesk.main import app
from frontdesk.schemas.actor import ActorContext
from frontdesk.services.appointment_client import AppointmentServiceClient
from frontdesk.services.queue_session import QueueSession, SessionRegistry, get_session_registry

APPOINTMENT_SERVICE_URL = "http://appointments.test"


class FakeAppointmentService:
    """
    In-memory stand-in for the appointment service.

    Serves the three queue lists from mutable state, applies writes to
    that state, records every request and lets a test make any route
    fail with a status code or a transport error.
    """

    def __init__(self) -> None:
        self.pending: list[dict[str, Any]] = []
        self.assigned: list[dict[str, Any]] = []
        self.appointed: list[dict[str, Any]] = []
        self.preferences: dict[str, dict[str, Any]] = {}
        self.doctors: list[dict[str, Any]] = [
            {"doctorId": "D1", "name": "Dr. Rao", "email": "rao@x.edu"},
            {"doctorId": "D2", "name": "Dr. Iyer", "email": "iyer@x.edu"},
        ]
        self.failures: dict[str, int | type[Exception]] = {}
        self.requests: list[httpx.Request] = []
        self.next_token = 101

    def fail(self, path: str, failure: int | type[Exception]) -> None:
        """Make every request to ``path`` fail."""
        self.failures[path] = failure

    def requests_to(self, path: str) -> list[httpx.Request]:
        """Requests whose path starts with ``path``."""
        return [request for request in self.requests if request.url.path.startswith(path)]

    @property
    def write_requests(self) -> list[httpx.Request]:
        """Requests other than the list and lookup reads."""
        reads = (
            "/api/AD/getPatientQueue",
            "/api/AD/getAssignedPatient",
            "/api/AD/getCompletedQueue",
            "/api/AD/getAptForm",
            "/api/AD/getAvailableDoctors",
        )
        return [request for request in self.requests if not request.url.path.startswith(reads)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        for prefix, failure in self.failures.items():
            if path.startswith(prefix):
                if isinstance(failure, int):
                    return httpx.Response(failure, json={"message": f"HTTP {failure}"})
                raise failure("injected failure", request=request)

        if path == "/":
            return httpx.Response(200, json={"status": "ok"})
        if path == "/api/AD/getPatientQueue":
            return httpx.Response(200, json=self.pending)
        if path == "/api/AD/getAssignedPatient":
            return httpx.Response(200, json=self.assigned)
        if path == "/api/AD/getCompletedQueue":
            return httpx.Response(200, json=self.appointed)
        if path == "/api/AD/getAvailableDoctors":
            return httpx.Response(200, json=self.doctors)
        if path.startswith("/api/AD/getAptForm/"):
            email = decode_email(path.rsplit("/", 1)[1])
            if email not in self.preferences:
                return httpx.Response(404, json={"message": "No appointment form"})
            return httpx.Response(200, json=self.preferences[email])
        if path == "/api/AD/submitAppointment":
            return self._assign(request)
        if path == "/api/AD/reassign":
            return self._reassign(request)
        if path == "/api/AD/rejectAppointment":
            return self._reject(decode_email(request.url.params["email"]))
        if path.startswith("/api/AD/completeAppointment/"):
            return self._complete(decode_email(path.rsplit("/", 1)[1]))
        if path == "/api/AD/submit/adHoc":
            return httpx.Response(200, json={"message": "Ad-hoc treatment recorded"})
        if path == "/api/AD/manualAppointment":
            return self._manual_intake(request)
        return httpx.Response(404, json={"message": f"No route for {path}"})

    def _assign(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        record = self._pop(self.pending, body["patEmail"])
        if record is None:
            return httpx.Response(404, json={"message": "Appointment not found"})

        token = f"T{self.next_token}"
        self.next_token += 1
        doctor = next(d for d in self.doctors if d["doctorId"] == body["doctorAss"])
        self.assigned.append(
            {
                "token": token,
                "patientName": record["name"],
                "sapEmail": record["sapEmail"],
                "reason": record["reason"],
                "doctorName": doctor["name"],
                "doctorId": doctor["doctorId"],
                "weight": body["weight"],
                "temperature": body["temperature"],
                "createdAt": record.get("createdAt"),
            }
        )
        return httpx.Response(200, json={"message": "Appointment assigned", "token": token})

    def _reassign(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        doctor = next((d for d in self.doctors if d["email"] == body["doctorEmail"]), None)
        for record in self.assigned:
            if record["sapEmail"] == body["patientEmail"] and doctor is not None:
                record["doctorName"] = doctor["name"]
                record["doctorId"] = doctor["doctorId"]
                return httpx.Response(200, json={"message": "Reassigned"})
        return httpx.Response(404, json={"message": "Appointment not found"})

    def _reject(self, email: str) -> httpx.Response:
        for collection in (self.pending, self.assigned, self.appointed):
            if self._pop(collection, email) is not None:
                return httpx.Response(200, text="Appointment rejected")
        return httpx.Response(404, json={"message": "Appointment not found"})

    def _complete(self, email: str) -> httpx.Response:
        for record in self.appointed:
            if record["sapEmail"] == email:
                record["status"] = "Completed"
                return httpx.Response(200, json={"message": "Appointment completed"})
        return httpx.Response(404, json={"message": "Appointment not found"})

    def _manual_intake(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if any(record["sapEmail"] == body["email"] for record in self.pending):
            return httpx.Response(409, json={"message": "Patient already has an appointment"})
        apt_id = f"apt-{len(self.pending) + 100}"
        self.pending.append(
            {
                "id": apt_id,
                "sapEmail": body["email"],
                "name": body["email"].split("@")[0],
                "reason": body["reason"],
                "createdAt": "2024-05-01T10:30:00Z",
            }
        )
        return httpx.Response(201, json={"aptId": apt_id, "message": "Appointment created"})

    @staticmethod
    def _pop(collection: list[dict[str, Any]], email: str) -> dict[str, Any] | None:
        for index, record in enumerate(collection):
            if record.get("sapEmail") == email:
                return collection.pop(index)
        return None


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a refresh interval long enough that only the first tick runs."""
    return settings.model_copy(
        update={
            "queue_refresh_interval_seconds": 3600.0,
            "redis_enabled": False,
            "verify_doctor_availability": True,
        }
    )


@pytest.fixture
def actor() -> ActorContext:
    """Front-desk actor on the main campus."""
    return ActorContext(token="test-token", latitude=12.9716, longitude=77.5946)


@pytest.fixture
def fake_service() -> FakeAppointmentService:
    """Empty fake appointment service."""
    return FakeAppointmentService()


@pytest.fixture
def pending_record() -> Callable[..., dict[str, Any]]:
    """Factory for pending list items as the appointment service sends them."""

    def make(email: str, name: str = "Jane", reason: str = "Fever", **extra: Any) -> dict[str, Any]:
        record = {
            "id": f"apt-{email.split('@')[0]}",
            "sapEmail": email,
            "name": name,
            "reason": reason,
            "createdAt": "2024-05-01T09:00:00Z",
        }
        record.update(extra)
        return record

    return make


@pytest_asyncio.fixture
async def http_client(fake_service: FakeAppointmentService) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client routed to the fake appointment service."""
    async with AsyncClient(
        transport=httpx.MockTransport(fake_service.handler),
        base_url=APPOINTMENT_SERVICE_URL,
    ) as client:
        yield client


@pytest.fixture
def appointment_client(http_client: AsyncClient) -> AppointmentServiceClient:
    """Appointment service client backed by the fake."""
    return AppointmentServiceClient(http_client)


@pytest_asyncio.fixture
async def session(
    actor: ActorContext,
    appointment_client: AppointmentServiceClient,
    test_settings: Settings,
) -> AsyncGenerator[QueueSession, None]:
    """Queue session without the periodic loop; tests drive refreshes."""
    queue_session = QueueSession(actor, appointment_client, config=test_settings)
    yield queue_session
    await queue_session.close()


@pytest_asyncio.fixture
async def registry(
    appointment_client: AppointmentServiceClient,
    test_settings: Settings,
) -> AsyncGenerator[SessionRegistry, None]:
    """Session registry backed by the fake appointment service."""
    session_registry = SessionRegistry(appointment_client, config=test_settings)
    yield session_registry
    await session_registry.close_all()


@pytest_asyncio.fixture
async def client(registry: SessionRegistry) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client for the API."""
    app.dependency_overrides[get_session_registry] = lambda: registry

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(actor: ActorContext) -> dict[str, str]:
    """Bearer token and location headers of the test actor."""
    return {
        "Authorization": f"Bearer {actor.token}",
        "X-Latitude": str(actor.latitude),
        "X-Longitude": str(actor.longitude),
    }
