"""Family contact schemas.

The escalation engine only ever sees contacts through these read-only
shapes, whatever directory they come from.
"""

import re
import uuid
from datetime import time

from pydantic import BaseModel, ConfigDict, Field, field_validator

CLOCK_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def parse_clock_time(value: str) -> time:
    """Parse a local "HH:MM" clock time."""
    match = CLOCK_TIME_RE.match(value.strip())
    if match is None:
        msg = f"Invalid clock time {value!r}, expected HH:MM"
        raise ValueError(msg)
    return time(int(match.group(1)), int(match.group(2)))


class QuietHours(BaseModel):
    """Local-time window in which a contact is not notified.

    ``start`` later than ``end`` means the window wraps past midnight.
    """

    start: str = "22:00"
    end: str = "07:00"

    @field_validator("start", "end")
    @classmethod
    def validate_clock_time(cls, v: str) -> str:
        parsed = parse_clock_time(v)
        return parsed.strftime("%H:%M")

    @property
    def start_time(self) -> time:
        return parse_clock_time(self.start)

    @property
    def end_time(self) -> time:
        return parse_clock_time(self.end)


class NotificationPreferences(BaseModel):
    """Per-contact delivery opt-ins.

    Accepts both snake_case and the camelCase keys stored by the web app.
    An explicit ``quiet_hours: null`` disables quiet hours for the contact.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email: bool = True
    sms: bool = True
    push_notification: bool = Field(default=True, alias="pushNotification")
    voice_call: bool = Field(default=False, alias="voiceCall")
    quiet_hours: QuietHours | None = Field(
        default_factory=QuietHours,
        alias="quietHours",
    )


class Contact(BaseModel):
    """A family member or caregiver as seen by the escalation engine."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    name: str
    relationship: str = "other"
    email: str | None = None
    phone: str | None = None
    is_emergency_contact: bool = False
    position: int = 0
    timezone: str | None = None
    notification_preferences: NotificationPreferences | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: str | uuid.UUID) -> str:
        return str(v)

    @field_validator("relationship")
    @classmethod
    def normalize_relationship(cls, v: str) -> str:
        return v.strip().lower() or "other"
