"""Escalation alert model.

One row per escalation level that actually executed, kept as the
audit trail of a missed-dose escalation.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from dosewatch.models.base import Base


class EscalationAlert(Base):
    """Audit record of one executed escalation level."""

    __tablename__ = "escalation_alerts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    patient_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    medication_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    medication_name: Mapped[str] = mapped_column(String(200), nullable=False)

    alert_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="missed_dose",
    )

    # "medium" below level 3, "high" from level 3 on
    severity: Mapped[str] = mapped_column(String(16), nullable=False)

    message: Mapped[str] = mapped_column(Text, nullable=False)

    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    def __repr__(self) -> str:
        return (
            f"<EscalationAlert(medication={self.medication_name!r}, "
            f"level={self.escalation_level}, severity={self.severity})>"
        )
