"""Message text for missed-dose escalation.

Family messages go out through the delivery channel; patient-facing
texts are shown by the local notifier.
"""

from dosewatch.schemas.contact import Contact
from dosewatch.schemas.escalation import Urgency
from dosewatch.services.missed_dose import MissedDose

# Level at which severity and urgency become "high"
HIGH_URGENCY_LEVEL = 3

# How the patient is referred to, by the contact's relationship to them
RELATIONSHIP_LABEL: dict[str, str] = {
    "daughter": "Your parent",
    "son": "Your parent",
    "child": "Your parent",
    "spouse": "Your partner",
    "partner": "Your partner",
    "husband": "Your partner",
    "wife": "Your partner",
}

URGENCY_PREFIX: dict[Urgency, str] = {
    Urgency.HIGH: "\U0001f6a8 URGENT: ",  # 🚨
    Urgency.MEDIUM: "\U0001f48a ",  # 💊
}


def urgency_for_level(level: int) -> Urgency:
    return Urgency.HIGH if level >= HIGH_URGENCY_LEVEL else Urgency.MEDIUM


def severity_for_level(level: int) -> str:
    """Alert-log severity for an executed level."""
    return urgency_for_level(level).value


def patient_label(relationship: str, patient_name: str) -> str:
    return RELATIONSHIP_LABEL.get(relationship.lower(), patient_name)


def build_alert_message(dose: MissedDose) -> str:
    """Audit-trail text for an executed level."""
    return f"{dose.medication_name} missed at {dose.scheduled_time}"


def build_family_message(
    contact: Contact,
    dose: MissedDose,
    attempt: int,
    urgency: Urgency,
    patient_name: str,
) -> str:
    """Build the message sent to one family contact.

    Args:
        contact: Recipient, used to personalize how the patient is named.
        dose: The missed dose.
        attempt: Escalation level that produced this message.
        urgency: Delivery urgency for the level.
        patient_name: Fallback name for the patient.

    Returns:
        Plain-text message.
    """
    label = patient_label(contact.relationship, patient_name)
    if label[:1].islower():
        label = label[0].upper() + label[1:]
    return (
        f"{URGENCY_PREFIX[urgency]}{label} missed {dose.medication_name} "
        f"({dose.dosage}) at {dose.scheduled_time}. "
        f"This is attempt #{attempt}. Please check on them."
    )


def gentle_reminder_text(dose: MissedDose) -> str:
    return f"\U0001f48a Gentle reminder: please take your {dose.medication_name} ({dose.dosage})"


def firm_reminder_text(dose: MissedDose) -> str:
    return (
        f"\u26a0\ufe0f IMPORTANT: you missed your {dose.medication_name}. "
        f"Please take your {dose.dosage} now!"
    )


def emergency_text(dose: MissedDose) -> str:
    return (
        f"\U0001f6a8 URGENT: missed medication detected and your family has been "
        f"notified. Please take {dose.medication_name} ({dose.dosage}) immediately!"
    )
