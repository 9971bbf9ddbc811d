"""Missed-dose escalation state."""

import enum
from dataclasses import dataclass, field
from datetime import datetime

from dosewatch.services.timers import TimerHandle


class EscalationState(str, enum.Enum):
    """Lifecycle state of a dose's escalation."""

    IDLE = "idle"
    ESCALATING = "escalating"
    RESOLVED = "resolved"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class MedicationDetails:
    """Medication facts handed to the delivery channel."""

    medication_id: str
    name: str
    dosage: str
    scheduled_time: str
    status: str = "missed"


@dataclass
class MissedDose:
    """One outstanding missed dose, owned by the escalation engine.

    ``current_level`` is 0 until level 1 has executed and only ever
    increases. ``pending_level`` is the level the outstanding timer will
    fire, or None when no timer is registered.
    """

    dose_id: str
    medication_id: str
    medication_name: str
    dosage: str
    scheduled_time: str
    detected_missed_at: datetime
    current_level: int = 0
    last_action_at: datetime | None = None
    status: EscalationState = EscalationState.ESCALATING
    pending_level: int | None = None
    timer: TimerHandle | None = field(default=None, repr=False)
    resolved_at: datetime | None = None

    @property
    def next_level_due_at(self) -> datetime | None:
        return self.timer.due_at if self.timer is not None else None

    @property
    def medication_details(self) -> MedicationDetails:
        return MedicationDetails(
            medication_id=self.medication_id,
            name=self.medication_name,
            dosage=self.dosage,
            scheduled_time=self.scheduled_time,
        )
