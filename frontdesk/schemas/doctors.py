"""Doctor and preferred-doctor schemas."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class Doctor(BaseModel):
    """A doctor currently available at the actor's campus."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    doctor_id: str = Field(..., validation_alias=AliasChoices("doctorId", "doctor_id", "id"))
    name: str
    email: str | None = None


class Preference(BaseModel):
    """Preferred doctor a patient named when booking, if any."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    preferred_doctor_name: str | None = Field(
        None, validation_alias=AliasChoices("preferredDoctorName", "preferred_doctor_name")
    )
    preference_reason: str | None = Field(
        None, validation_alias=AliasChoices("preferenceReason", "preference_reason")
    )

    @model_validator(mode="before")
    @classmethod
    def flatten_appointment_form(cls, data: Any) -> Any:
        """Accept the appointment form shape: ``{pref_doc: {name}, doc_reason}``."""
        if not isinstance(data, dict) or ("pref_doc" not in data and "doc_reason" not in data):
            return data
        pref_doc = data.get("pref_doc")
        name = pref_doc.get("name") if isinstance(pref_doc, dict) else pref_doc
        return {
            "preferred_doctor_name": name or None,
            "preference_reason": data.get("doc_reason") or None,
        }
