"""Local escalation actions on the patient's own device or session.

Each ladder level names the local actions it runs. Notifications that
cannot be shown through the normal mechanism fall back to a blocking
in-session alert, so a failure degrades how the patient is told, never
whether they are told.
"""

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from dosewatch.logging_config import get_logger
from dosewatch.schemas.escalation import LocalAction
from dosewatch.services.escalation_messages import (
    emergency_text,
    firm_reminder_text,
    gentle_reminder_text,
)
from dosewatch.services.missed_dose import MissedDose

logger = get_logger(__name__)


class NotifierUnavailableError(Exception):
    """The local notification mechanism cannot reach the patient."""


@dataclass(frozen=True)
class LocalNotification:
    """A patient-facing notification."""

    dose_id: str
    kind: str  # "reminder", "gentle", "firm" or "emergency"
    title: str
    body: str
    require_interaction: bool
    auto_close_seconds: float

    @property
    def tag(self) -> str:
        return f"{self.kind}-{self.dose_id}"


class LocalNotifier(Protocol):
    """Patient-side effects available to escalation actions."""

    async def notify(self, notification: LocalNotification) -> None: ...

    async def play_tone(self, volume: str) -> None: ...

    async def flash_screen(self, duration_seconds: float) -> None: ...

    async def blocking_alert(self, notification: LocalNotification) -> None: ...


class LoggingNotifier:
    """Notifier that only writes log lines. Used when no session surface exists."""

    async def notify(self, notification: LocalNotification) -> None:
        logger.info(
            "Patient notification",
            kind=notification.kind,
            title=notification.title,
            body=notification.body,
        )

    async def play_tone(self, volume: str) -> None:
        logger.info("Patient audio reminder", volume=volume)

    async def flash_screen(self, duration_seconds: float) -> None:
        logger.info("Patient screen flash", duration_seconds=duration_seconds)

    async def blocking_alert(self, notification: LocalNotification) -> None:
        logger.warning(
            "Patient blocking alert",
            kind=notification.kind,
            title=notification.title,
            body=notification.body,
        )


class SessionEventNotifier:
    """Publishes patient notifications to connected sessions.

    Each connected session (see ``routers.alert_stream``) owns a queue.
    With no session connected, ``notify`` raises NotifierUnavailableError
    and blocking alerts are held in a backlog replayed to the next session
    that subscribes.
    """

    def __init__(self, backlog_size: int = 20):
        self._subscribers: set[asyncio.Queue[dict[str, Any]]] = set()
        self._backlog: deque[dict[str, Any]] = deque(maxlen=backlog_size)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        while self._backlog:
            queue.put_nowait(self._backlog.popleft())
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[dict[str, Any]]) -> None:
        self._subscribers.discard(queue)

    def _event(self, event_type: str, data: dict[str, Any]) -> dict[str, Any]:
        return {
            "type": event_type,
            "data": data,
            "sent_at": datetime.now(UTC).isoformat(),
        }

    def _publish(self, event: dict[str, Any]) -> int:
        for queue in self._subscribers:
            queue.put_nowait(event)
        return len(self._subscribers)

    async def notify(self, notification: LocalNotification) -> None:
        if not self._subscribers:
            raise NotifierUnavailableError("No patient session connected")
        self._publish(self._event("notification", asdict(notification)))

    async def play_tone(self, volume: str) -> None:
        if not self._publish(self._event("tone", {"volume": volume})):
            logger.debug("No patient session for audio reminder", volume=volume)

    async def flash_screen(self, duration_seconds: float) -> None:
        if not self._publish(
            self._event("flash", {"duration_seconds": duration_seconds})
        ):
            logger.debug("No patient session for screen flash")

    async def blocking_alert(self, notification: LocalNotification) -> None:
        event = self._event("blocking_alert", asdict(notification))
        if not self._publish(event):
            self._backlog.append(event)
            logger.warning(
                "No patient session connected, holding blocking alert",
                kind=notification.kind,
                backlog=len(self._backlog),
            )


def medication_reminder(
    dose_id: str,
    medication_name: str,
    dosage: str,
    time_slot: str,
) -> LocalNotification:
    """On-time prompt shown when a scheduled dose falls due."""
    return LocalNotification(
        dose_id=dose_id,
        kind="reminder",
        title="Medication Time!",
        body=f"Time to take {medication_name} ({dosage}) - Scheduled for {time_slot}",
        require_interaction=True,
        auto_close_seconds=30,
    )


def gentle_notification(dose: MissedDose) -> LocalNotification:
    return LocalNotification(
        dose_id=dose.dose_id,
        kind="gentle",
        title="Medication Reminder",
        body=gentle_reminder_text(dose),
        require_interaction=False,
        auto_close_seconds=30,
    )


def firm_notification(dose: MissedDose) -> LocalNotification:
    return LocalNotification(
        dose_id=dose.dose_id,
        kind="firm",
        title="MISSED MEDICATION",
        body=firm_reminder_text(dose),
        require_interaction=True,
        auto_close_seconds=30,
    )


def emergency_notification(dose: MissedDose) -> LocalNotification:
    return LocalNotification(
        dose_id=dose.dose_id,
        kind="emergency",
        title="EMERGENCY ALERT",
        body=emergency_text(dose),
        require_interaction=True,
        auto_close_seconds=45,
    )


class LocalActionRunner:
    """Runs named local actions against a notifier.

    Every notifier call is bounded by ``timeout_seconds``. ``run`` and
    ``remind`` never raise; they report whether the patient was reached.
    """

    def __init__(self, notifier: LocalNotifier, timeout_seconds: float = 10.0):
        self._notifier = notifier
        self._timeout = timeout_seconds
        self._handlers: dict[LocalAction, Callable[[MissedDose], Awaitable[None]]] = {
            LocalAction.GENTLE_NOTIFICATION: lambda d: self._show(gentle_notification(d)),
            LocalAction.FIRM_NOTIFICATION: lambda d: self._show(firm_notification(d)),
            LocalAction.EMERGENCY_NOTIFICATION: lambda d: self._show(
                emergency_notification(d)
            ),
            LocalAction.AUDIO_REMINDER: lambda d: self._bounded(
                self._notifier.play_tone("soft")
            ),
            LocalAction.LOUDER_AUDIO: lambda d: self._bounded(
                self._notifier.play_tone("loud")
            ),
            LocalAction.SCREEN_FLASH: lambda d: self._bounded(
                self._notifier.flash_screen(1.5)
            ),
        }

    async def _bounded(self, awaitable: Awaitable[None]) -> None:
        await asyncio.wait_for(awaitable, timeout=self._timeout)

    async def _show(self, notification: LocalNotification) -> None:
        try:
            await self._bounded(self._notifier.notify(notification))
        except Exception as e:
            logger.warning(
                "Patient notification failed, using blocking alert",
                kind=notification.kind,
                error=str(e) or type(e).__name__,
            )
            await self._bounded(self._notifier.blocking_alert(notification))

    async def run(self, action: LocalAction, dose: MissedDose) -> bool:
        """Run one local action for a dose.

        Returns:
            True if the action completed, False if it failed.
        """
        handler = self._handlers.get(action)
        if handler is None:
            # Contact delivery markers; the level's recipient scope does the work
            logger.debug("Contact delivery action noted", action=action.value)
            return True

        try:
            await handler(dose)
        except Exception as e:
            logger.error(
                "Local escalation action failed",
                action=action.value,
                medication=dose.medication_name,
                error=str(e) or type(e).__name__,
            )
            return False
        return True

    async def remind(self, notification: LocalNotification) -> bool:
        """Show a due-time reminder with a soft tone.

        Returns:
            True if the reminder reached the patient, False if it failed.
        """
        try:
            await self._show(notification)
        except Exception as e:
            logger.error(
                "Medication reminder failed",
                dose_id=notification.dose_id,
                error=str(e) or type(e).__name__,
            )
            return False

        try:
            await self._bounded(self._notifier.play_tone("soft"))
        except Exception as e:
            logger.warning("Reminder tone failed", error=str(e) or type(e).__name__)
        return True
