"""Missed-dose escalation engine.

Drives each missed dose up the escalation ladder: level 1 runs as soon as
the miss is reported, every later level runs when the previous level's
timer fires, and a "taken" signal cancels whatever is still pending.

All state lives in ``EscalationEngine._live``. It is read and written only
between awaits on the event loop thread, so each read-modify-write in
``report_missed``, ``execute_level`` and ``cancel`` is atomic with respect
to other callers.
"""

import asyncio
from collections import deque
from collections.abc import Coroutine
from functools import partial
from typing import Any

from dosewatch.logging_config import dose_id_ctx, get_logger
from dosewatch.schemas.contact import Contact
from dosewatch.schemas.escalation import (
    EscalationLadder,
    EscalationLevelConfig,
    RecipientScope,
    Urgency,
)
from dosewatch.services.alert_log import AlertLog
from dosewatch.services.contact_directory import ContactDirectory
from dosewatch.services.delivery import DeliveryChannel
from dosewatch.services.escalation_messages import (
    build_alert_message,
    build_family_message,
    severity_for_level,
    urgency_for_level,
)
from dosewatch.services.local_actions import LocalActionRunner
from dosewatch.services.missed_dose import EscalationState, MissedDose
from dosewatch.services.recipients import is_in_quiet_hours, select_recipients
from dosewatch.services.timers import TimerSource

logger = get_logger(__name__)


class EscalationEngine:
    """Owns every live missed-dose escalation.

    Args:
        ladder: Validated escalation ladder.
        timers: Clock and one-shot timer source.
        contacts: Directory queried afresh at every family-notifying level.
        delivery: Channel used to reach family contacts.
        alert_log: Audit sink, one record per executed level.
        actions: Runner for the ladder's local actions.
        patient_id: Patient whose contacts are notified.
        patient_name: How family messages name the patient when the
            relationship gives no better label.
        default_timezone: Zone for contacts without their own.
        history_size: Number of resolved/exhausted records kept.
    """

    def __init__(
        self,
        ladder: EscalationLadder,
        timers: TimerSource,
        contacts: ContactDirectory,
        delivery: DeliveryChannel,
        alert_log: AlertLog,
        actions: LocalActionRunner,
        patient_id: str,
        patient_name: str = "your family member",
        default_timezone: str = "UTC",
        history_size: int = 100,
    ):
        self._ladder = ladder
        self._timers = timers
        self._contacts = contacts
        self._delivery = delivery
        self._alert_log = alert_log
        self._actions = actions
        self._patient_id = patient_id
        self._patient_name = patient_name
        self._default_timezone = default_timezone
        self._live: dict[str, MissedDose] = {}
        self._history: deque[MissedDose] = deque(maxlen=history_size)
        self._tasks: set[asyncio.Task] = set()

    @property
    def ladder(self) -> EscalationLadder:
        return self._ladder

    # ── Queries ──

    def get(self, dose_id: str) -> MissedDose | None:
        """Return the live record for a dose, or the latest terminal one."""
        dose = self._live.get(dose_id)
        if dose is not None:
            return dose
        for past in reversed(self._history):
            if past.dose_id == dose_id:
                return past
        return None

    def state_of(self, dose_id: str) -> EscalationState:
        dose = self.get(dose_id)
        return dose.status if dose is not None else EscalationState.IDLE

    def is_escalating(self, dose_id: str) -> bool:
        return dose_id in self._live

    def active(self) -> list[MissedDose]:
        return list(self._live.values())

    def history(self) -> list[MissedDose]:
        return list(self._history)

    # ── Transitions ──

    async def report_missed(
        self,
        dose_id: str,
        medication_name: str,
        dosage: str,
        scheduled_time: str,
        medication_id: str | None = None,
    ) -> bool:
        """Start escalating a missed dose.

        The record is registered before any action runs, so a cancel that
        arrives while level 1 is executing still stops level 2.

        Returns:
            True if escalation started, False if the dose was already
            escalating (the existing ladder is left untouched).
        """
        existing = self._live.get(dose_id)
        if existing is not None:
            logger.warning(
                "Dose already escalating, ignoring repeat miss report",
                dose_id=dose_id,
                current_level=existing.current_level,
            )
            return False

        dose = MissedDose(
            dose_id=dose_id,
            medication_id=medication_id or dose_id,
            medication_name=medication_name,
            dosage=dosage,
            scheduled_time=scheduled_time,
            detected_missed_at=self._timers.now(),
        )
        self._live[dose_id] = dose

        logger.info(
            "Medication missed, starting escalation",
            dose_id=dose_id,
            medication=medication_name,
            scheduled_time=scheduled_time,
        )

        first = self._ladder.first
        if first.delay_seconds > 0:
            self._schedule(dose, first)
        else:
            await self.execute_level(dose_id, first.level)
        return True

    async def execute_level(self, dose_id: str, level: int) -> bool:
        """Execute one ladder level for a live dose.

        A dose that is no longer live (taken, or replaced by a fresh
        report) is skipped. So is any level other than the one directly
        above ``current_level``: levels never repeat or skip.

        Returns:
            True if the level executed.
        """
        dose = self._live.get(dose_id)
        if dose is None:
            logger.debug(
                "Dose no longer escalating, skipping level",
                dose_id=dose_id,
                level=level,
            )
            return False

        config = self._ladder.get(level)
        if config is None or level != dose.current_level + 1:
            logger.warning(
                "Out-of-order escalation level ignored",
                dose_id=dose_id,
                level=level,
                current_level=dose.current_level,
            )
            return False

        token = dose_id_ctx.set(dose_id)
        try:
            dose.current_level = level
            dose.last_action_at = self._timers.now()
            if dose.timer is not None:
                # Executed directly rather than by its timer
                self._timers.cancel(dose.timer)
                dose.timer = None
            dose.pending_level = None

            logger.info(
                "Executing escalation level",
                level=level,
                level_name=config.name,
                medication=dose.medication_name,
            )

            self._spawn(
                self._record_alert(
                    medication_id=dose.medication_id,
                    medication_name=dose.medication_name,
                    severity=severity_for_level(level),
                    message=build_alert_message(dose),
                    level=level,
                )
            )

            for action in config.local_actions:
                await self._actions.run(action, dose)

            if config.recipient_scope != RecipientScope.NONE:
                self._spawn(self.notify_family(dose, config))

            self._advance(dose, config)
        finally:
            dose_id_ctx.reset(token)

        return True

    def cancel(self, dose_id: str) -> bool:
        """Stop escalation for a dose that has been taken.

        Safe to call repeatedly and for unknown doses.

        Returns:
            True if a live escalation was cancelled.
        """
        dose = self._live.pop(dose_id, None)
        if dose is None:
            logger.debug("No active escalation to cancel", dose_id=dose_id)
            return False

        if dose.timer is not None:
            self._timers.cancel(dose.timer)
        self._close(dose, EscalationState.RESOLVED)

        logger.info(
            "Dose taken, escalation cancelled",
            dose_id=dose_id,
            level_reached=dose.current_level,
        )
        return True

    # ── Family notification ──

    async def notify_family(self, dose: MissedDose, config: EscalationLevelConfig) -> int:
        """Notify the contacts a level's scope selects.

        Contacts are fetched now, not when escalation started. Contacts in
        quiet hours are skipped for this level. Recipients are dispatched
        concurrently and a failure for one never affects the others.

        Returns:
            Number of contacts the delivery channel reported as reached.
        """
        try:
            contacts = await self._contacts.list_contacts(self._patient_id)
        except Exception as e:
            logger.warning(
                "Failed to load family contacts",
                level=config.level,
                error=str(e),
            )
            return 0

        recipients = select_recipients(config.recipient_scope, contacts)
        if not recipients:
            logger.info(
                "No family contacts for escalation level",
                level=config.level,
                scope=config.recipient_scope.value,
            )
            return 0

        now = self._timers.now()
        urgency = urgency_for_level(config.level)
        awake: list[Contact] = []
        for contact in recipients:
            if is_in_quiet_hours(contact, now, self._default_timezone):
                logger.info(
                    "Skipping contact during quiet hours",
                    contact_id=contact.id,
                    contact_name=contact.name,
                    level=config.level,
                )
                continue
            awake.append(contact)

        results = await asyncio.gather(
            *(self._dispatch_one(contact, dose, config.level, urgency) for contact in awake)
        )
        sent = sum(results)

        logger.info(
            "Family notification completed",
            level=config.level,
            recipients=len(recipients),
            skipped_quiet_hours=len(recipients) - len(awake),
            delivered=sent,
        )
        return sent

    async def _dispatch_one(
        self,
        contact: Contact,
        dose: MissedDose,
        level: int,
        urgency: Urgency,
    ) -> bool:
        message = build_family_message(contact, dose, level, urgency, self._patient_name)
        try:
            delivered = await self._delivery.dispatch(
                contact, message, urgency, dose.medication_details
            )
        except Exception as e:
            logger.warning(
                "Failed to send escalation to contact",
                contact_id=contact.id,
                contact_name=contact.name,
                level=level,
                error=str(e) or type(e).__name__,
            )
            return False

        if not delivered:
            logger.warning(
                "Delivery channel reported failure",
                contact_id=contact.id,
                contact_name=contact.name,
                level=level,
            )
            return False

        logger.info(
            "Escalation notification sent to contact",
            contact_id=contact.id,
            contact_name=contact.name,
            level=level,
            urgency=urgency.value,
        )
        return True

    # ── Timers and housekeeping ──

    def _advance(self, dose: MissedDose, config: EscalationLevelConfig) -> None:
        """Schedule the level after ``config``, or finish the ladder."""
        if self._live.get(dose.dose_id) is not dose:
            # Cancelled while this level's actions ran
            logger.info(
                "Escalation cancelled during level, next level not scheduled",
                level=config.level,
            )
            return

        next_config = self._ladder.get(config.level + 1)
        if next_config is None:
            del self._live[dose.dose_id]
            self._close(dose, EscalationState.EXHAUSTED)
            logger.warning(
                "Escalation ladder exhausted without the dose being taken",
                medication=dose.medication_name,
                level_reached=dose.current_level,
            )
            return

        self._schedule(dose, next_config)

    def _schedule(self, dose: MissedDose, config: EscalationLevelConfig) -> None:
        if dose.timer is not None:
            self._timers.cancel(dose.timer)
        dose.pending_level = config.level
        # Next fire time counts from now, not from when the miss was detected
        dose.timer = self._timers.call_later(
            config.delay_seconds,
            partial(self._on_timer, dose.dose_id, config.level),
        )
        logger.info(
            "Next escalation level scheduled",
            dose_id=dose.dose_id,
            next_level=config.level,
            delay_minutes=config.delay_minutes,
            due_at=dose.timer.due_at.isoformat(),
        )

    async def _on_timer(self, dose_id: str, level: int) -> None:
        dose = self._live.get(dose_id)
        if dose is None or dose.pending_level != level:
            logger.debug("Stale escalation timer ignored", dose_id=dose_id, level=level)
            return
        dose.timer = None
        try:
            await self.execute_level(dose_id, level)
        except Exception:
            logger.exception(
                "Unexpected error executing escalation level",
                dose_id=dose_id,
                level=level,
            )

    def _close(self, dose: MissedDose, status: EscalationState) -> None:
        dose.timer = None
        dose.pending_level = None
        dose.status = status
        dose.resolved_at = self._timers.now()
        self._history.append(dose)

    async def _record_alert(
        self,
        medication_id: str,
        medication_name: str,
        severity: str,
        message: str,
        level: int,
    ) -> None:
        try:
            await self._alert_log.record(
                medication_id,
                severity,
                message,
                level,
                medication_name=medication_name,
            )
        except Exception as e:
            logger.warning(
                "Failed to write escalation alert record",
                medication_id=medication_id,
                level=level,
                error=str(e),
            )

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        """Run work in the background, off the level's critical path."""
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for background notification and audit work to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every pending timer and wait for in-flight work.

        Live records are kept so their state can still be inspected.
        """
        for dose in self._live.values():
            if dose.timer is not None:
                self._timers.cancel(dose.timer)
                dose.timer = None
                dose.pending_level = None
        await self.drain()
        logger.info("Escalation engine stopped", live_escalations=len(self._live))
