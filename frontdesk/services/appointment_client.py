"""Client for the collaborator appointment service."""

from typing import Any, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from frontdesk.core.exceptions import (
    AppException,
    AppointmentServiceException,
    AuthorizationException,
    ConflictException,
    EnrichmentFailure,
    NotFoundException,
    PartialFetchFailure,
    TransportException,
    ValidationException,
)
from frontdesk.core.identity import encode_email
from frontdesk.schemas.actor import ActorContext
from frontdesk.schemas.appointments import (
    AppointedRecord,
    AssignedRecord,
    ManualIntakeRequest,
    PendingRecord,
    QueueSource,
    Vitals,
)
from frontdesk.schemas.doctors import Doctor, Preference

logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


class AppointmentServiceClient:
    """
    Thin async wrapper over the appointment service REST API.

    Translates HTTP failures into application exceptions; never retries.
    Emails are encoded here, and only here, when they become part of a URL.
    """

    PENDING_PATH = "/api/AD/getPatientQueue"
    ASSIGNED_PATH = "/api/AD/getAssignedPatient"
    APPOINTED_PATH = "/api/AD/getCompletedQueue"
    PREFERENCE_PATH = "/api/AD/getAptForm"
    AVAILABLE_DOCTORS_PATH = "/api/AD/getAvailableDoctors"
    ASSIGN_PATH = "/api/AD/submitAppointment"
    REJECT_PATH = "/api/AD/rejectAppointment"
    COMPLETE_PATH = "/api/AD/completeAppointment"
    REASSIGN_PATH = "/api/AD/reassign"
    AD_HOC_PATH = "/api/AD/submit/adHoc"
    MANUAL_INTAKE_PATH = "/api/AD/manualAppointment"

    def __init__(self, http_client: httpx.AsyncClient):
        """Initialize with a shared HTTP client."""
        self.http = http_client

    # Read path

    async def list_pending(self, actor: ActorContext) -> list[PendingRecord]:
        """List patients waiting to be seen by a nursing assistant."""
        return await self._list(actor, self.PENDING_PATH, PendingRecord, QueueSource.PENDING)

    async def list_assigned(self, actor: ActorContext) -> list[AssignedRecord]:
        """List patients handed to a doctor's queue."""
        return await self._list(actor, self.ASSIGNED_PATH, AssignedRecord, QueueSource.ASSIGNED)

    async def list_appointed(self, actor: ActorContext) -> list[AppointedRecord]:
        """List patients whose consultation is in progress or done."""
        return await self._list(
            actor, self.APPOINTED_PATH, AppointedRecord, QueueSource.APPOINTED
        )

    async def get_preference(self, actor: ActorContext, email: str) -> Preference:
        """
        Get the preferred doctor a patient named when booking.

        Args:
            actor: Requesting actor
            email: Plain patient email

        Returns:
            Preference, empty if the service has none for this patient

        Raises:
            EnrichmentFailure: If the lookup failed for any other reason
        """
        try:
            response = await self._request(
                "GET",
                f"{self.PREFERENCE_PATH}/{encode_email(email)}",
                actor,
                operation="get_preference",
            )
        except NotFoundException:
            return Preference()
        except AppException as e:
            raise EnrichmentFailure(email, e.message) from e

        if not response.content:
            return Preference()
        try:
            return Preference.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise EnrichmentFailure(email, "malformed preference payload") from e

    async def list_available_doctors(self, actor: ActorContext) -> list[Doctor]:
        """List doctors checked in at the actor's campus."""
        response = await self._request(
            "GET", self.AVAILABLE_DOCTORS_PATH, actor, operation="list_available_doctors"
        )
        try:
            payload = response.json()
            if not isinstance(payload, list):
                raise ValueError("expected a JSON array")
            return [Doctor.model_validate(item) for item in payload]
        except (ValueError, ValidationError) as e:
            raise AppointmentServiceException(f"Malformed doctor list: {e}") from e

    # Write path

    async def assign(
        self,
        actor: ActorContext,
        email: str,
        doctor_id: str,
        vitals: Vitals,
    ) -> dict[str, Any]:
        """Hand a pending patient to a doctor with the captured vitals."""
        response = await self._request(
            "POST",
            self.ASSIGN_PATH,
            actor,
            operation="assign",
            json={
                "weight": vitals.weight_kg,
                "temperature": vitals.temperature_f,
                "doctorAss": doctor_id,
                "patEmail": email,
            },
        )
        return self._acknowledgement(response)

    async def reassign(self, actor: ActorContext, email: str, doctor_email: str) -> dict[str, Any]:
        """Move an assigned patient to another doctor."""
        response = await self._request(
            "POST",
            self.REASSIGN_PATH,
            actor,
            operation="reassign",
            json={"patientEmail": email, "doctorEmail": doctor_email},
        )
        return self._acknowledgement(response)

    async def reject(self, actor: ActorContext, email: str) -> dict[str, Any]:
        """Reject an appointment. The service enforces the campus scope."""
        response = await self._request(
            "GET",
            self.REJECT_PATH,
            actor,
            operation="reject",
            params={"email": encode_email(email)},
        )
        return self._acknowledgement(response)

    async def complete(self, actor: ActorContext, email: str) -> dict[str, Any]:
        """Mark a consultation as completed."""
        response = await self._request(
            "GET",
            f"{self.COMPLETE_PATH}/{encode_email(email)}",
            actor,
            operation="complete",
        )
        return self._acknowledgement(response)

    async def divert_ad_hoc(
        self,
        actor: ActorContext,
        name: str,
        email: str,
        reason: str,
    ) -> dict[str, Any]:
        """Hand a pending request to the ad-hoc treatment flow."""
        response = await self._request(
            "POST",
            self.AD_HOC_PATH,
            actor,
            operation="divert_ad_hoc",
            json={"name": name, "patientEmail": email, "reason": reason},
        )
        return self._acknowledgement(response)

    async def create_manual_intake(
        self,
        actor: ActorContext,
        data: ManualIntakeRequest,
    ) -> dict[str, Any]:
        """Queue a walk-in patient."""
        response = await self._request(
            "POST",
            self.MANUAL_INTAKE_PATH,
            actor,
            operation="create_manual_intake",
            json={
                "email": str(data.email),
                "reason": data.reason,
                "preferredDoctor": data.preferred_doctor_id,
                "reasonPrefDoctor": data.preference_reason,
            },
        )
        return self._acknowledgement(response)

    async def check_connection(self) -> bool:
        """Check whether the appointment service answers at all."""
        try:
            await self.http.get("/")
            return True
        except httpx.HTTPError:
            return False

    # Internals

    async def _list(
        self,
        actor: ActorContext,
        path: str,
        model: type[RecordT],
        source: QueueSource,
    ) -> list[RecordT]:
        try:
            response = await self._request("GET", path, actor, operation=f"list_{source.value}")
        except AppException as e:
            raise PartialFetchFailure(source.value, e.message) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise PartialFetchFailure(source.value, "response is not JSON") from e
        if not isinstance(payload, list):
            raise PartialFetchFailure(source.value, "expected a JSON array")

        try:
            return [model.model_validate(item) for item in payload]
        except ValidationError as e:
            raise PartialFetchFailure(
                source.value, f"malformed record ({e.error_count()} errors)"
            ) from e

    async def _request(
        self,
        method: str,
        path: str,
        actor: ActorContext,
        operation: str,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        try:
            response = await self.http.request(
                method,
                path,
                headers=actor.headers(),
                params=params,
                json=json,
            )
        except httpx.TimeoutException as e:
            logger.warning("appointment_service_timeout", operation=operation)
            raise TransportException(f"{operation} timed out") from e
        except httpx.HTTPError as e:
            logger.warning("appointment_service_unreachable", operation=operation, error=str(e))
            raise TransportException(f"{operation} failed: {e}") from e

        self._raise_for_status(response, operation)
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, operation: str) -> None:
        """Map a non-2xx response to the matching application exception."""
        if response.is_success:
            return

        status_code = response.status_code
        message = AppointmentServiceClient._error_message(response, operation)
        logger.info(
            "appointment_service_error",
            operation=operation,
            status_code=status_code,
            message=message,
        )

        if status_code in (401, 403):
            raise AuthorizationException(message, status_code=status_code)
        if status_code == 404:
            raise NotFoundException(message)
        if status_code == 409:
            raise ConflictException(message)
        if status_code in (400, 422):
            raise ValidationException(message)
        if status_code >= 500:
            raise TransportException(message)
        raise AppointmentServiceException(message)

    @staticmethod
    def _error_message(response: httpx.Response, operation: str) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        text = response.text.strip()
        return text or f"{operation} failed with HTTP {response.status_code}"

    @staticmethod
    def _acknowledgement(response: httpx.Response) -> dict[str, Any]:
        """Normalize a write response, which may be JSON or plain text."""
        try:
            body = response.json()
        except ValueError:
            return {"message": response.text.strip() or None}
        if isinstance(body, dict):
            return body
        return {"message": str(body)}
