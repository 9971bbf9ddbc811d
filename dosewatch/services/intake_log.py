"""Intake log: whether a scheduled dose was confirmed taken."""

from datetime import date
from typing import Protocol

from sqlalchemy import and_, select

from dosewatch.database import get_db_session
from dosewatch.models.medication_log import IntakeStatus, MedicationLog
from dosewatch.services.contact_directory import SessionFactory


class IntakeLog(Protocol):
    async def was_taken(self, medication_id: str, time_slot: str, dose_date: date) -> bool: ...


class SqlIntakeLog:
    """Intake log backed by the ``medication_logs`` table."""

    def __init__(self, session_factory: SessionFactory = get_db_session):
        self._session_factory = session_factory

    async def was_taken(self, medication_id: str, time_slot: str, dose_date: date) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(
                select(MedicationLog.id)
                .where(
                    and_(
                        MedicationLog.medication_id == medication_id,
                        MedicationLog.time_slot == time_slot,
                        MedicationLog.dose_date == dose_date,
                        MedicationLog.status == IntakeStatus.TAKEN,
                    )
                )
                .limit(1)
            )
            return result.scalar_one_or_none() is not None


class InMemoryIntakeLog:
    """Intake log held in memory."""

    def __init__(self):
        self._taken: set[tuple[str, str, date]] = set()

    def mark_taken(self, medication_id: str, time_slot: str, dose_date: date) -> None:
        self._taken.add((medication_id, time_slot, dose_date))

    async def was_taken(self, medication_id: str, time_slot: str, dose_date: date) -> bool:
        return (medication_id, time_slot, dose_date) in self._taken
