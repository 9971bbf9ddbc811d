"""Medication intake log model.

Each row records what happened to one scheduled dose. The dose monitor
consults it when a dose's grace window ends.
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Enum, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from dosewatch.models.base import Base, TimestampMixin


class IntakeStatus(str, enum.Enum):
    """Outcome of a scheduled dose."""

    TAKEN = "taken"
    MISSED = "missed"
    SKIPPED = "skipped"


class MedicationLog(Base, TimestampMixin):
    """Intake record for one scheduled dose."""

    __tablename__ = "medication_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    medication_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Normalized "HH:MM"
    time_slot: Mapped[str] = mapped_column(String(5), nullable=False)

    dose_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[IntakeStatus] = mapped_column(
        Enum(
            IntakeStatus,
            name="intakestatus",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
    )

    taken_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<MedicationLog(medication={self.medication_id}, "
            f"{self.dose_date} {self.time_slot}, status={self.status.value})>"
        )
