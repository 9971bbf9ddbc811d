"""Alert log: durable audit trail of executed escalation levels."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from dosewatch.database import get_db_session
from dosewatch.logging_config import get_logger
from dosewatch.models.escalation_alert import EscalationAlert
from dosewatch.services.contact_directory import SessionFactory

logger = get_logger(__name__)


class AlertLog(Protocol):
    """Write-only sink for escalation alert records."""

    async def record(
        self,
        medication_id: str,
        severity: str,
        message: str,
        level: int,
        medication_name: str = "",
    ) -> None: ...


@dataclass(frozen=True)
class AlertRecord:
    """One executed level, as kept by the in-memory log."""

    medication_id: str
    severity: str
    message: str
    level: int
    medication_name: str = ""
    recorded_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class SqlAlertLog:
    """Alert log backed by the ``escalation_alerts`` table."""

    def __init__(
        self,
        patient_id: str,
        session_factory: SessionFactory = get_db_session,
    ):
        self._patient_id = patient_id
        self._session_factory = session_factory

    async def record(
        self,
        medication_id: str,
        severity: str,
        message: str,
        level: int,
        medication_name: str = "",
    ) -> None:
        async with self._session_factory() as db:
            alert = EscalationAlert(
                patient_id=self._patient_id,
                medication_id=medication_id,
                medication_name=medication_name or "Unknown Medication",
                alert_type="missed_dose",
                severity=severity,
                message=message,
                escalation_level=level,
                status="active",
            )
            db.add(alert)
            await db.commit()

        logger.debug(
            "Escalation alert recorded",
            medication_id=medication_id,
            level=level,
            severity=severity,
        )


class InMemoryAlertLog:
    """Alert log held in memory."""

    def __init__(self):
        self.records: list[AlertRecord] = []

    async def record(
        self,
        medication_id: str,
        severity: str,
        message: str,
        level: int,
        medication_name: str = "",
    ) -> None:
        self.records.append(
            AlertRecord(
                medication_id=medication_id,
                severity=severity,
                message=message,
                level=level,
                medication_name=medication_name,
            )
        )
