"""Medication schedule schemas for the dose monitor."""

from pydantic import BaseModel, Field, field_validator


class MedicationScheduleUpdate(BaseModel):
    """Request schema for (re)registering a medication's daily schedule."""

    name: str = Field(..., min_length=1, max_length=200)
    dosage: str = Field(default="1 dose", max_length=100)
    times: list[str] = Field(
        ...,
        min_length=1,
        max_length=12,
        description='Daily time slots, e.g. "08:00", "8", "2030".',
    )

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            msg = "Name cannot be empty or whitespace only"
            raise ValueError(msg)
        return v


class MedicationScheduleResponse(BaseModel):
    """Response schema for a registered medication schedule."""

    medication_id: str
    name: str
    dosage: str
    time_slots: list[str]


class DoseTakenResponse(BaseModel):
    """Response schema for a dose-taken confirmation."""

    dose_id: str
    stopped: bool
