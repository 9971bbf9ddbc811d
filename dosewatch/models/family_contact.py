"""Family contact model.

Family members and caregivers who are notified when the patient misses
a dose. Read by the escalation engine through the contact directory.
"""

import uuid
from typing import Any

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from dosewatch.models.base import Base, TimestampMixin


class FamilyContact(Base, TimestampMixin):
    """A family member or caregiver of a patient.

    ``position`` orders contacts within a patient's list; the lowest
    position among emergency contacts is the primary contact.
    """

    __tablename__ = "family_contacts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    patient_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    relationship: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="other",
    )

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)

    is_emergency_contact: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # IANA zone name for evaluating quiet hours; NULL uses the service default
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    notification_preferences: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB,
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<FamilyContact(name={self.name!r}, "
            f"relationship={self.relationship}, "
            f"emergency={self.is_emergency_contact})>"
        )
