"""Contact directory: the patient's current family contacts.

The escalation engine asks the directory again at every level that
notifies family, so edits made mid-escalation are honored.
"""

import json
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dosewatch.database import get_db_session
from dosewatch.logging_config import get_logger
from dosewatch.models.family_contact import FamilyContact
from dosewatch.schemas.contact import Contact, NotificationPreferences

logger = get_logger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class ContactDirectory(Protocol):
    """Read-only source of a patient's family contacts."""

    async def list_contacts(self, patient_id: str) -> list[Contact]: ...


def parse_preferences(raw: Any) -> NotificationPreferences:
    """Parse stored notification preferences.

    Accepts a dict or a JSON string. Anything unreadable falls back to the
    defaults (all methods on, quiet hours 22:00-07:00).
    """
    if raw is None:
        return NotificationPreferences()
    try:
        if isinstance(raw, str):
            raw = json.loads(raw)
        return NotificationPreferences.model_validate(raw)
    except (ValueError, ValidationError) as e:
        logger.warning(
            "Malformed notification preferences, using defaults",
            error=str(e),
        )
        return NotificationPreferences()


def contact_from_model(row: FamilyContact) -> Contact:
    return Contact(
        id=str(row.id),
        name=row.name,
        relationship=row.relationship or "other",
        email=row.email,
        phone=row.phone,
        is_emergency_contact=row.is_emergency_contact,
        position=row.position,
        timezone=row.timezone,
        notification_preferences=parse_preferences(row.notification_preferences),
    )


class SqlContactDirectory:
    """Contact directory backed by the ``family_contacts`` table."""

    def __init__(self, session_factory: SessionFactory = get_db_session):
        self._session_factory = session_factory

    async def list_contacts(self, patient_id: str) -> list[Contact]:
        """List a patient's contacts, ordered by position then creation."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(FamilyContact)
                .where(FamilyContact.patient_id == patient_id)
                .order_by(FamilyContact.position, FamilyContact.created_at)
            )
            rows = list(result.scalars().all())

        logger.debug("Loaded family contacts", patient_id=patient_id, count=len(rows))
        return [contact_from_model(row) for row in rows]


class InMemoryContactDirectory:
    """Contact directory held in memory."""

    def __init__(self, contacts: dict[str, list[Contact]] | None = None):
        self._contacts: dict[str, list[Contact]] = {
            patient_id: list(items) for patient_id, items in (contacts or {}).items()
        }
        self.lookups = 0

    def set_contacts(self, patient_id: str, contacts: list[Contact]) -> None:
        self._contacts[patient_id] = list(contacts)

    def add_contact(self, patient_id: str, contact: Contact) -> None:
        self._contacts.setdefault(patient_id, []).append(contact)

    def remove_contact(self, patient_id: str, contact_id: str) -> None:
        self._contacts[patient_id] = [
            c for c in self._contacts.get(patient_id, []) if c.id != contact_id
        ]

    async def list_contacts(self, patient_id: str) -> list[Contact]:
        self.lookups += 1
        return sorted(self._contacts.get(patient_id, []), key=lambda c: c.position)
