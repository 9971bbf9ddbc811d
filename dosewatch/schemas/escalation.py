"""Escalation ladder and missed-dose API schemas."""

import enum
from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator


class RecipientScope(str, enum.Enum):
    """Which family contacts a level notifies."""

    NONE = "none"
    PRIMARY_CONTACT = "primary_contact"
    ALL_EMERGENCY_CONTACTS = "all_emergency_contacts"
    ALL_CONTACTS = "all_contacts"


class LocalAction(str, enum.Enum):
    """Actions run on the patient's own device or session."""

    GENTLE_NOTIFICATION = "gentle_notification"
    FIRM_NOTIFICATION = "firm_notification"
    EMERGENCY_NOTIFICATION = "emergency_notification"
    AUDIO_REMINDER = "audio_reminder"
    LOUDER_AUDIO = "louder_audio"
    SCREEN_FLASH = "screen_flash"
    # Markers for contact delivery, which the recipient scope drives
    FAMILY_NOTIFICATION = "family_notification"
    EMAIL_ALERT = "email_alert"
    SMS_ALERT = "sms_alert"
    PHONE_CALL = "phone_call"


class Urgency(str, enum.Enum):
    """Delivery urgency passed to the delivery channel."""

    MEDIUM = "medium"
    HIGH = "high"


class EscalationLevelConfig(BaseModel):
    """One rung of the escalation ladder."""

    model_config = {"frozen": True}

    level: int = Field(..., ge=1)
    name: str = Field(..., min_length=1, max_length=100)
    delay_minutes: float = Field(
        default=0,
        ge=0,
        description="Minutes after the previous level fired (after detection for level 1).",
    )
    local_actions: tuple[LocalAction, ...] = ()
    recipient_scope: RecipientScope = RecipientScope.NONE

    @property
    def delay_seconds(self) -> float:
        return self.delay_minutes * 60


class EscalationLadder(BaseModel):
    """Ordered escalation levels, numbered 1..N.

    Levels after the first must have a positive delay, so cumulative
    delay strictly increases along the ladder.
    """

    model_config = {"frozen": True}

    levels: tuple[EscalationLevelConfig, ...] = Field(..., min_length=1)

    @field_validator("levels")
    @classmethod
    def validate_ordering(
        cls, v: tuple[EscalationLevelConfig, ...]
    ) -> tuple[EscalationLevelConfig, ...]:
        for index, level in enumerate(v, start=1):
            if level.level != index:
                msg = (
                    f"Escalation levels must be numbered 1..{len(v)} in order; "
                    f"position {index} has level {level.level}"
                )
                raise ValueError(msg)
            if index > 1 and level.delay_minutes <= 0:
                msg = f"Level {index} must have a positive delay_minutes"
                raise ValueError(msg)
        return v

    def __len__(self) -> int:
        return len(self.levels)

    @property
    def first(self) -> EscalationLevelConfig:
        return self.levels[0]

    def get(self, level: int) -> EscalationLevelConfig | None:
        """Return the config for ``level`` or None past either end."""
        if 1 <= level <= len(self.levels):
            return self.levels[level - 1]
        return None

    def scaled(self, factor: float) -> "EscalationLadder":
        """Return a copy with every delay multiplied by ``factor``."""
        if factor <= 0:
            msg = "Delay scale must be positive"
            raise ValueError(msg)
        return EscalationLadder(
            levels=tuple(
                level.model_copy(update={"delay_minutes": level.delay_minutes * factor})
                for level in self.levels
            )
        )


MEDICATION_ID_MAX_LENGTH = 64


class ReportMissedRequest(BaseModel):
    """Request schema for reporting a missed dose."""

    medication_name: str = Field(..., min_length=1, max_length=200)
    dosage: str = Field(default="1 dose", max_length=100)
    scheduled_time: str = Field(..., min_length=1, max_length=32)
    medication_id: str | None = Field(default=None, max_length=MEDICATION_ID_MAX_LENGTH)

    @model_validator(mode="after")
    def strip_fields(self) -> "ReportMissedRequest":
        self.medication_name = self.medication_name.strip()
        self.scheduled_time = self.scheduled_time.strip()
        if not self.medication_name:
            msg = "medication_name cannot be empty or whitespace only"
            raise ValueError(msg)
        return self


class MissedDoseResponse(BaseModel):
    """Response schema for a missed dose's escalation state."""

    model_config = {"from_attributes": True}

    dose_id: str
    medication_id: str
    medication_name: str
    dosage: str
    scheduled_time: str
    status: str
    current_level: int
    pending_level: int | None
    detected_missed_at: datetime
    last_action_at: datetime | None
    next_level_due_at: datetime | None
    resolved_at: datetime | None


class MissedDoseListResponse(BaseModel):
    """Response schema for listing escalations."""

    escalations: list[MissedDoseResponse]
    count: int


class CancelResponse(BaseModel):
    """Response schema for a dose-taken signal."""

    dose_id: str
    cancelled: bool
