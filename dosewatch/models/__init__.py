# Database Models
from dosewatch.models.base import Base, TimestampMixin
from dosewatch.models.escalation_alert import EscalationAlert
from dosewatch.models.family_contact import FamilyContact
from dosewatch.models.medication_log import IntakeStatus, MedicationLog

__all__ = [
    "Base",
    "EscalationAlert",
    "FamilyContact",
    "IntakeStatus",
    "MedicationLog",
    "TimestampMixin",
]
