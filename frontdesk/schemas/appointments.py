"""Appointment schemas for queue records and lifecycle requests."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
)

from frontdesk.core.identity import normalize_email, normalize_identity

# Shown in the token column until the appointment service issues one
NO_TOKEN = "-"


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "Pending"
    ASSIGNED = "Assigned"
    APPOINTED = "Appointed"
    COMPLETED = "Completed"
    REJECTED = "Rejected"

    @property
    def is_terminal(self) -> bool:
        """Completed and Rejected appointments never change again."""
        return self in (AppointmentStatus.COMPLETED, AppointmentStatus.REJECTED)


class QueueSource(str, Enum):
    """The appointment service list a record was read from."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    APPOINTED = "appointed"


class Transition(str, Enum):
    """Lifecycle operations a front-desk actor can request."""

    ASSIGN = "assign"
    REASSIGN = "reassign"
    REJECT = "reject"
    COMPLETE = "complete"
    DIVERT = "divert"


class Vitals(BaseModel):
    """Vitals captured by the nursing assistant at assignment time."""

    model_config = ConfigDict(frozen=True)

    weight_kg: float
    temperature_f: float


class Appointment(BaseModel):
    """A single authoritative queue row, one per patient identity."""

    model_config = ConfigDict(frozen=True)

    identity: str
    queue_id: str | None = None
    email: str | None = None
    display_name: str
    reason: str | None = None
    status: AppointmentStatus
    source: QueueSource
    assigned_doctor_id: str | None = None
    assigned_doctor_name: str | None = None
    preferred_doctor_name: str | None = None
    preference_reason: str | None = None
    token: str = NO_TOKEN
    vitals: Vitals | None = None
    created_at: datetime | None = None
    location: str | None = None
    waited_seconds: float | None = None

    @property
    def is_active(self) -> bool:
        """Whether the record belongs in the active queue view."""
        return not self.status.is_terminal


class SourceRecord(BaseModel):
    """
    Common parsing rules for raw appointment service list items.

    The service names fields inconsistently between lists (``sapEmail``,
    ``PatientName``, ``PatientToken`` ...), so every field accepts the
    documented name and the legacy one.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    @field_validator("email", mode="before", check_fields=False)
    @classmethod
    def decode_email(cls, v: Any) -> Any:
        """Undo the service's email encoding and normalize case."""
        if isinstance(v, str):
            return normalize_email(v)
        return v

    @field_validator("created_at", check_fields=False)
    @classmethod
    def ensure_timezone(cls, v: datetime | None) -> datetime | None:
        """Treat naive timestamps as UTC so records stay comparable."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @field_validator("token", mode="before", check_fields=False)
    @classmethod
    def blank_token(cls, v: Any) -> Any:
        """Missing or blank tokens render as the placeholder."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return NO_TOKEN
        return v


class PendingRecord(SourceRecord):
    """Item of the pending list: booked, not yet seen by a nursing assistant."""

    id: str | None = Field(None, validation_alias=AliasChoices("id", "Id", "aptId"))
    email: str | None = Field(None, validation_alias=AliasChoices("email", "sapEmail"))
    name: str
    reason: str
    token: str = Field(NO_TOKEN, validation_alias=AliasChoices("token", "PatientToken", "tokenNum"))
    created_at: datetime | None = Field(
        None, validation_alias=AliasChoices("createdAt", "created_at")
    )
    location: str | None = Field(None, validation_alias=AliasChoices("location", "locationName"))

    def to_appointment(self) -> Appointment:
        """Convert to a queue row."""
        return Appointment(
            identity=normalize_identity(self.email, self.id),
            queue_id=self.id,
            email=self.email,
            display_name=self.name,
            reason=self.reason,
            status=AppointmentStatus.PENDING,
            source=QueueSource.PENDING,
            token=self.token,
            created_at=self.created_at,
            location=self.location,
        )


class AssignedRecord(SourceRecord):
    """Item of the assigned list: vitals taken, handed to a doctor's queue."""

    token: str = Field(NO_TOKEN, validation_alias=AliasChoices("token", "PatientToken", "tokenNum"))
    patient_name: str = Field(
        ..., validation_alias=AliasChoices("patientName", "PatientName", "name")
    )
    email: str | None = Field(
        None, validation_alias=AliasChoices("email", "sapEmail", "patientEmail")
    )
    reason: str | None = None
    doctor_name: str | None = Field(
        None, validation_alias=AliasChoices("doctorName", "doctor_name")
    )
    doctor_id: str | None = Field(None, validation_alias=AliasChoices("doctorId", "doctor_id"))
    weight: float | None = Field(None, validation_alias=AliasChoices("weight", "weightKg"))
    temperature: float | None = Field(
        None, validation_alias=AliasChoices("temperature", "temperatureF")
    )
    created_at: datetime | None = Field(
        None, validation_alias=AliasChoices("createdAt", "created_at")
    )
    location: str | None = Field(None, validation_alias=AliasChoices("location", "locationName"))

    def to_appointment(self) -> Appointment:
        """Convert to a queue row."""
        vitals = None
        if self.weight is not None and self.temperature is not None:
            vitals = Vitals(weight_kg=self.weight, temperature_f=self.temperature)
        queue_id = self.token if self.token != NO_TOKEN else None
        return Appointment(
            identity=normalize_identity(self.email, queue_id, namespace="token"),
            queue_id=queue_id,
            email=self.email,
            display_name=self.patient_name,
            reason=self.reason,
            status=AppointmentStatus.ASSIGNED,
            source=QueueSource.ASSIGNED,
            assigned_doctor_id=self.doctor_id,
            assigned_doctor_name=self.doctor_name,
            token=self.token,
            vitals=vitals,
            created_at=self.created_at,
            location=self.location,
        )


class AppointedRecord(SourceRecord):
    """Item of the appointed/completed list: the doctor has the case."""

    id: str | None = Field(None, validation_alias=AliasChoices("id", "Id", "aptId"))
    email: str | None = Field(None, validation_alias=AliasChoices("email", "sapEmail"))
    name: str
    reason: str
    doctor_name: str | None = Field(
        None, validation_alias=AliasChoices("doctorName", "doctor_name")
    )
    doctor_id: str | None = Field(None, validation_alias=AliasChoices("doctorId", "doctor_id"))
    token: str = Field(NO_TOKEN, validation_alias=AliasChoices("token", "PatientToken", "tokenNum"))
    status: str | None = None
    created_at: datetime | None = Field(
        None, validation_alias=AliasChoices("createdAt", "created_at")
    )
    location: str | None = Field(None, validation_alias=AliasChoices("location", "locationName"))

    def to_appointment(self) -> Appointment:
        """Convert to a queue row, keeping explicit terminal statuses."""
        status = AppointmentStatus.APPOINTED
        if self.status:
            for candidate in (AppointmentStatus.COMPLETED, AppointmentStatus.REJECTED):
                if self.status.strip().lower() == candidate.value.lower():
                    status = candidate
        return Appointment(
            identity=normalize_identity(self.email, self.id),
            queue_id=self.id,
            email=self.email,
            display_name=self.name,
            reason=self.reason,
            status=status,
            source=QueueSource.APPOINTED,
            assigned_doctor_id=self.doctor_id,
            assigned_doctor_name=self.doctor_name,
            token=self.token,
            created_at=self.created_at,
            location=self.location,
        )


class AssignRequest(BaseModel):
    """Schema for assigning a pending patient to a doctor.

    Fields are optional here so that missing values are reported by the
    lifecycle validation with field-level messages.
    """

    email: str = Field(..., min_length=3)
    doctor_id: str | None = None
    weight_kg: float | None = None
    temperature_f: float | None = None


class ReassignRequest(BaseModel):
    """Schema for handing an assigned patient to another doctor."""

    email: str = Field(..., min_length=3)
    doctor_email: EmailStr


class PatientRequest(BaseModel):
    """Schema for transitions that only need the patient identity."""

    email: str = Field(..., min_length=3)


class AdHocDivertRequest(BaseModel):
    """Schema for diverting a pending request to ad-hoc treatment."""

    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    reason: str = Field(..., min_length=1, max_length=500)


class ManualIntakeRequest(BaseModel):
    """Schema for queuing a walk-in patient."""

    email: EmailStr
    reason: str = Field(..., min_length=1, max_length=500)
    preferred_doctor_id: str | None = None
    preference_reason: str | None = Field(None, max_length=500)


class TransitionResult(BaseModel):
    """Outcome of a lifecycle transition."""

    identity: str
    transition: Transition
    status: AppointmentStatus
    token: str | None = None
    message: str | None = None
    refreshed_at: datetime | None = None


class IntakeResult(BaseModel):
    """Outcome of a manual intake."""

    identity: str
    appointment_id: str | None = None
    status: AppointmentStatus = AppointmentStatus.PENDING
    message: str | None = None
    refreshed_at: datetime | None = None
