"""Appointment lifecycle transitions."""

import asyncio
from collections.abc import Awaitable
from typing import Any

import structlog

from frontdesk.core.exceptions import (
    AppException,
    InvalidTransitionException,
    ValidationException,
)
from frontdesk.core.identity import normalize_identity
from frontdesk.schemas.actor import ActorContext
from frontdesk.schemas.appointments import (
    AdHocDivertRequest,
    AppointmentStatus,
    AssignRequest,
    ReassignRequest,
    Transition,
    TransitionResult,
    Vitals,
)
from frontdesk.services.appointment_client import AppointmentServiceClient
from frontdesk.services.refresh_scheduler import RefreshScheduler

logger = structlog.get_logger(__name__)

# Weight must be in (0, 300] kg, temperature in [90, 110] °F
MAX_WEIGHT_KG = 300.0
MIN_TEMPERATURE_F = 90.0
MAX_TEMPERATURE_F = 110.0

ALLOWED_FROM: dict[Transition, frozenset[AppointmentStatus]] = {
    Transition.ASSIGN: frozenset({AppointmentStatus.PENDING}),
    Transition.REASSIGN: frozenset({AppointmentStatus.ASSIGNED}),
    Transition.REJECT: frozenset(
        {AppointmentStatus.PENDING, AppointmentStatus.ASSIGNED, AppointmentStatus.APPOINTED}
    ),
    Transition.COMPLETE: frozenset({AppointmentStatus.APPOINTED}),
    Transition.DIVERT: frozenset({AppointmentStatus.PENDING}),
}

# Divert hands the patient to another flow without touching the status here
TARGET_STATUS: dict[Transition, AppointmentStatus] = {
    Transition.ASSIGN: AppointmentStatus.ASSIGNED,
    Transition.REASSIGN: AppointmentStatus.ASSIGNED,
    Transition.REJECT: AppointmentStatus.REJECTED,
    Transition.COMPLETE: AppointmentStatus.COMPLETED,
    Transition.DIVERT: AppointmentStatus.PENDING,
}


def validate_assignment(request: AssignRequest) -> tuple[str, Vitals]:
    """
    Check the doctor selection and vitals of an assignment.

    Args:
        request: Assignment request

    Returns:
        Tuple of (doctor_id, vitals)

    Raises:
        ValidationException: With one message per invalid field
    """
    errors: dict[str, str] = {}

    doctor_id = (request.doctor_id or "").strip()
    if not doctor_id:
        errors["doctor_id"] = "Select a doctor"

    weight = request.weight_kg
    if weight is None:
        errors["weight_kg"] = "Weight is required"
    elif not 0 < weight <= MAX_WEIGHT_KG:
        errors["weight_kg"] = f"Weight must be above 0 and at most {MAX_WEIGHT_KG:g} kg"

    temperature = request.temperature_f
    if temperature is None:
        errors["temperature_f"] = "Temperature is required"
    elif not MIN_TEMPERATURE_F <= temperature <= MAX_TEMPERATURE_F:
        errors["temperature_f"] = (
            f"Temperature must be between {MIN_TEMPERATURE_F:g} and {MAX_TEMPERATURE_F:g} °F"
        )

    if errors:
        raise ValidationException("Invalid assignment", errors=errors)

    return doctor_id, Vitals(weight_kg=weight, temperature_f=temperature)


class LifecycleStateMachine:
    """
    Validate and execute queue transitions for one actor.

    Transitions go straight to the appointment service; the published
    queue is never edited here. A successful transition forces a refresh
    so the actor sees the result without waiting for the next tick.
    """

    def __init__(
        self,
        client: AppointmentServiceClient,
        scheduler: RefreshScheduler,
        actor: ActorContext,
        verify_doctor_availability: bool = True,
    ):
        """Initialize with the session's client, scheduler and actor."""
        self.client = client
        self.scheduler = scheduler
        self.actor = actor
        self.verify_doctor_availability = verify_doctor_availability

    async def assign(self, request: AssignRequest) -> TransitionResult:
        """
        Assign a pending patient to a doctor (Pending -> Assigned).

        Vitals and doctor selection are checked before any network call.
        The token comes from the appointment service; none is made up here.

        Raises:
            ValidationException: Missing or out-of-range fields, or doctor unavailable
            InvalidTransitionException: The patient is not pending
            AuthorizationException: The service refused the actor
            TransportException: The service could not be reached
        """
        doctor_id, vitals = validate_assignment(request)
        identity, email = self._check_transition(Transition.ASSIGN, request.email)

        if self.verify_doctor_availability:
            await self._ensure_doctor_available(doctor_id)

        ack = await self._dispatch(
            Transition.ASSIGN,
            identity,
            self.client.assign(self.actor, email, doctor_id, vitals),
        )
        return await self._finish(Transition.ASSIGN, identity, ack, token=_issued_token(ack))

    async def reassign(self, request: ReassignRequest) -> TransitionResult:
        """Hand an assigned patient to another doctor; the token is kept."""
        identity, email = self._check_transition(Transition.REASSIGN, request.email)
        ack = await self._dispatch(
            Transition.REASSIGN,
            identity,
            self.client.reassign(self.actor, email, str(request.doctor_email)),
        )
        return await self._finish(Transition.REASSIGN, identity, ack)

    async def reject(self, email: str) -> TransitionResult:
        """
        Reject an active appointment.

        Raises:
            AuthorizationException: The appointment belongs to another campus
        """
        identity, email = self._check_transition(Transition.REJECT, email)
        ack = await self._dispatch(
            Transition.REJECT, identity, self.client.reject(self.actor, email)
        )
        return await self._finish(Transition.REJECT, identity, ack)

    async def complete(self, email: str) -> TransitionResult:
        """Close a consultation (Appointed -> Completed)."""
        identity, email = self._check_transition(Transition.COMPLETE, email)
        ack = await self._dispatch(
            Transition.COMPLETE, identity, self.client.complete(self.actor, email)
        )
        return await self._finish(Transition.COMPLETE, identity, ack)

    async def divert(self, request: AdHocDivertRequest) -> TransitionResult:
        """
        Send a pending request to ad-hoc treatment.

        The pending record stays as it is; the ad-hoc flow rejects or
        completes it on its own.
        """
        identity, email = self._check_transition(Transition.DIVERT, str(request.email))
        ack = await self._dispatch(
            Transition.DIVERT,
            identity,
            self.client.divert_ad_hoc(self.actor, request.name, email, request.reason),
        )
        return await self._finish(Transition.DIVERT, identity, ack)

    def _check_transition(self, transition: Transition, email: str) -> tuple[str, str]:
        """
        Reject transitions the current view already rules out.

        Patients missing from the view are passed through: the view may
        be stale and the appointment service has the final word.

        Returns:
            Tuple of (identity, email to send)
        """
        try:
            identity = normalize_identity(email)
        except ValueError as e:
            raise ValidationException(
                "Patient email is required", errors={"email": "Patient email is required"}
            ) from e

        snapshot = self.scheduler.snapshot
        record = snapshot.get(identity) if snapshot is not None else None
        if record is None:
            return identity, email.strip()

        if record.status not in ALLOWED_FROM[transition]:
            raise InvalidTransitionException(transition.value, record.status.value)
        return identity, record.email or email.strip()

    async def _ensure_doctor_available(self, doctor_id: str) -> None:
        try:
            doctors = await self.client.list_available_doctors(self.actor)
        except AppException as e:
            # Cannot tell; the appointment service will arbitrate
            logger.warning("doctor_availability_unknown", doctor_id=doctor_id, error=e.message)
            return

        if all(doctor.doctor_id != doctor_id for doctor in doctors):
            raise ValidationException(
                "Doctor is not available",
                errors={"doctor_id": "Doctor is not available at this campus"},
            )

    async def _dispatch(
        self,
        transition: Transition,
        identity: str,
        call: Awaitable[dict[str, Any]],
    ) -> dict[str, Any]:
        """
        Send a state-changing call that must not be cancelled once sent.

        If the caller goes away mid-flight the call still completes and
        its outcome is logged.
        """
        logger.info("transition_dispatched", transition=transition.value, identity=identity)
        task = asyncio.ensure_future(call)
        try:
            ack = await asyncio.shield(task)
        except asyncio.CancelledError:
            task.add_done_callback(
                lambda done: self._settle_detached(transition, identity, done)
            )
            raise
        except AppException as e:
            logger.warning(
                "transition_failed",
                transition=transition.value,
                identity=identity,
                status_code=e.status_code,
                error=e.message,
            )
            raise

        logger.info("transition_succeeded", transition=transition.value, identity=identity)
        return ack

    async def _finish(
        self,
        transition: Transition,
        identity: str,
        ack: dict[str, Any],
        token: str | None = None,
    ) -> TransitionResult:
        refreshed_at = None
        try:
            snapshot = await self.scheduler.refresh()
            refreshed_at = snapshot.refreshed_at
        except Exception as e:
            # The write went through; the next tick will pick it up
            logger.warning(
                "post_transition_refresh_failed",
                transition=transition.value,
                identity=identity,
                error=str(e),
            )

        message = ack.get("message")
        return TransitionResult(
            identity=identity,
            transition=transition,
            status=TARGET_STATUS[transition],
            token=token,
            message=str(message) if message is not None else None,
            refreshed_at=refreshed_at,
        )

    def _settle_detached(
        self,
        transition: Transition,
        identity: str,
        task: asyncio.Future,
    ) -> None:
        """Log the outcome of a transition whose caller was cancelled."""
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(
                "detached_transition_failed",
                transition=transition.value,
                identity=identity,
                error=str(error),
            )
            return

        logger.info("detached_transition_succeeded", transition=transition.value, identity=identity)
        if not self.scheduler.stopped:
            self.scheduler.request_refresh().add_done_callback(_discard_outcome)


def _issued_token(ack: dict[str, Any]) -> str | None:
    for key in ("token", "PatientToken", "tokenNum"):
        value = ack.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def _discard_outcome(future: asyncio.Future) -> None:
    # Failures are logged by the scheduler; retrieve them so asyncio stays quiet
    if not future.cancelled():
        future.exception()
