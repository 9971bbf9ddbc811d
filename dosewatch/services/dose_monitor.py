"""Dose monitor.

Watches the medication schedule and reports misses to the escalation
engine. Each time slot becomes due through an APScheduler cron job; the
dose then gets a grace window, after which the intake log decides
whether the dose was missed.
"""

import re
from dataclasses import dataclass
from datetime import date
from functools import partial
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from dosewatch.logging_config import get_logger
from dosewatch.services.escalation_engine import EscalationEngine
from dosewatch.services.intake_log import IntakeLog
from dosewatch.services.local_actions import LocalActionRunner, medication_reminder
from dosewatch.services.timers import TimerHandle, TimerSource

logger = get_logger(__name__)

_HOUR_ONLY_RE = re.compile(r"^\d{1,2}$")
_COMPACT_RE = re.compile(r"^\d{3,4}$")


def normalize_time_slot(value: str) -> str:
    """Normalize a schedule time to "HH:MM".

    Accepts "8", "08", "830", "0830", "8:30" and "08:30".

    Raises:
        ValueError: If the value is not a valid time of day.
    """
    slot = value.strip()
    if ":" not in slot:
        if _HOUR_ONLY_RE.match(slot):
            slot = f"{slot.zfill(2)}:00"
        elif _COMPACT_RE.match(slot):
            slot = slot.zfill(4)
            slot = f"{slot[:2]}:{slot[2:]}"

    parts = slot.split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        msg = f"Invalid time slot {value!r}"
        raise ValueError(msg)

    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        msg = f"Invalid time slot {value!r}"
        raise ValueError(msg)
    return f"{hours:02d}:{minutes:02d}"


def dose_id_for(medication_id: str, time_slot: str, dose_date: date) -> str:
    """Identifier of one scheduled dose: medication, day and time slot."""
    return f"{medication_id}:{dose_date.isoformat()}:{time_slot}"


@dataclass(frozen=True)
class MedicationSchedule:
    """A medication and its daily time slots."""

    medication_id: str
    name: str
    dosage: str
    times: tuple[str, ...]


class DoseMonitor:
    """Turns scheduled doses that were not taken into escalations."""

    def __init__(
        self,
        engine: EscalationEngine,
        intake_log: IntakeLog,
        timers: TimerSource,
        scheduler: AsyncIOScheduler | None = None,
        grace_minutes: float = 15.0,
        timezone: str = "UTC",
        reminders: LocalActionRunner | None = None,
    ):
        self._engine = engine
        self._intake_log = intake_log
        self._timers = timers
        self._scheduler = scheduler
        self._reminders = reminders
        self._grace_seconds = grace_minutes * 60
        self._zone = ZoneInfo(timezone)
        self._schedules: dict[str, MedicationSchedule] = {}
        self._job_ids: dict[str, list[str]] = {}
        self._grace_timers: dict[str, TimerHandle] = {}

    def schedules(self) -> list[MedicationSchedule]:
        return list(self._schedules.values())

    def pending_checks(self) -> list[str]:
        return list(self._grace_timers)

    def today(self) -> date:
        return self._timers.now().astimezone(self._zone).date()

    def register(self, schedule: MedicationSchedule) -> list[str]:
        """Start watching a medication, replacing any previous schedule.

        Invalid time slots are logged and skipped.

        Returns:
            The normalized time slots being watched.
        """
        self.unregister(schedule.medication_id)

        slots: list[str] = []
        for raw in schedule.times:
            try:
                slot = normalize_time_slot(raw)
            except ValueError:
                logger.warning(
                    "Invalid schedule time, skipping",
                    medication=schedule.name,
                    time=raw,
                )
                continue
            if slot not in slots:
                slots.append(slot)

        normalized = MedicationSchedule(
            medication_id=schedule.medication_id,
            name=schedule.name,
            dosage=schedule.dosage,
            times=tuple(slots),
        )
        self._schedules[schedule.medication_id] = normalized

        if self._scheduler is not None:
            job_ids = []
            for slot in slots:
                hours, minutes = slot.split(":")
                job_id = f"dose:{schedule.medication_id}:{slot}"
                self._scheduler.add_job(
                    self.dose_due,
                    trigger=CronTrigger(
                        hour=int(hours), minute=int(minutes), timezone=self._zone
                    ),
                    args=[schedule.medication_id, slot],
                    id=job_id,
                    name=f"Dose due: {schedule.name} at {slot}",
                    replace_existing=True,
                )
                job_ids.append(job_id)
            self._job_ids[schedule.medication_id] = job_ids

        logger.info(
            "Medication schedule registered",
            medication_id=schedule.medication_id,
            medication=schedule.name,
            time_slots=slots,
        )
        return slots

    def unregister(self, medication_id: str) -> bool:
        """Stop watching a medication and drop its pending grace checks."""
        schedule = self._schedules.pop(medication_id, None)

        for job_id in self._job_ids.pop(medication_id, []):
            try:
                self._scheduler.remove_job(job_id)
            except JobLookupError:
                pass

        prefix = f"{medication_id}:"
        for dose_id in [d for d in self._grace_timers if d.startswith(prefix)]:
            self._timers.cancel(self._grace_timers.pop(dose_id))

        return schedule is not None

    async def dose_due(self, medication_id: str, time_slot: str) -> str | None:
        """A scheduled time slot has arrived; start its grace window.

        Returns:
            The dose id being watched, or None for unknown medications.
        """
        if medication_id not in self._schedules:
            return None

        dose_date = self.today()
        dose_id = dose_id_for(medication_id, time_slot, dose_date)
        if dose_id in self._grace_timers:
            return dose_id

        self._grace_timers[dose_id] = self._timers.call_later(
            self._grace_seconds,
            partial(self.check_dose, medication_id, time_slot, dose_date),
        )
        logger.info(
            "Dose due, waiting for grace window",
            dose_id=dose_id,
            grace_minutes=self._grace_seconds / 60,
        )

        if self._reminders is not None:
            schedule = self._schedules[medication_id]
            await self._reminders.remind(
                medication_reminder(dose_id, schedule.name, schedule.dosage, time_slot)
            )
        return dose_id

    async def check_dose(self, medication_id: str, time_slot: str, dose_date: date) -> bool:
        """Grace window over: report the dose if it was not taken.

        An intake lookup failure counts as not taken, so a broken lookup
        errs towards alerting.

        Returns:
            True if an escalation was started.
        """
        dose_id = dose_id_for(medication_id, time_slot, dose_date)
        self._grace_timers.pop(dose_id, None)

        schedule = self._schedules.get(medication_id)
        if schedule is None:
            return False

        try:
            taken = await self._intake_log.was_taken(medication_id, time_slot, dose_date)
        except Exception as e:
            logger.warning(
                "Intake lookup failed, treating dose as missed",
                dose_id=dose_id,
                error=str(e),
            )
            taken = False

        if taken:
            logger.info("Dose confirmed taken", dose_id=dose_id)
            return False

        return await self._engine.report_missed(
            dose_id,
            schedule.name,
            schedule.dosage,
            time_slot,
            medication_id=medication_id,
        )

    def outstanding_dose_id(self, medication_id: str, time_slot: str) -> str | None:
        """Most recent dose of a slot still waiting on grace or escalating.

        A dose due late in the evening can still be escalating after
        midnight, so the slot's dose is looked up rather than assumed to
        be today's.
        """
        prefix = f"{medication_id}:"
        suffix = f":{time_slot}"
        candidates = [*self._grace_timers, *(d.dose_id for d in self._engine.active())]

        latest: tuple[date, str] | None = None
        for dose_id in candidates:
            if not (dose_id.startswith(prefix) and dose_id.endswith(suffix)):
                continue
            middle = dose_id[len(prefix) : len(dose_id) - len(suffix)]
            try:
                dose_date = date.fromisoformat(middle)
            except ValueError:
                continue
            if latest is None or dose_date > latest[0]:
                latest = (dose_date, dose_id)
        return latest[1] if latest is not None else None

    def resolve_dose_id(
        self,
        medication_id: str,
        time_slot: str,
        dose_date: date | None = None,
    ) -> str:
        """Dose id a "taken" signal refers to.

        An explicit date is used as given. Otherwise the most recent
        outstanding dose of the slot wins, falling back to today's.

        Raises:
            ValueError: If the time slot is invalid.
        """
        slot = normalize_time_slot(time_slot)
        if dose_date is not None:
            return dose_id_for(medication_id, slot, dose_date)
        return self.outstanding_dose_id(medication_id, slot) or dose_id_for(
            medication_id, slot, self.today()
        )

    def confirm_dose(self, dose_id: str) -> bool:
        """Stop a dose's grace check if still waiting and its escalation if running.

        Returns:
            True if a pending check or a live escalation was stopped.
        """
        handle = self._grace_timers.pop(dose_id, None)
        if handle is not None:
            self._timers.cancel(handle)
            logger.info("Dose taken during grace window", dose_id=dose_id)

        cancelled = self._engine.cancel(dose_id)
        return handle is not None or cancelled

    def confirm_taken(
        self,
        medication_id: str,
        time_slot: str,
        dose_date: date | None = None,
    ) -> bool:
        """Record that a dose was taken, from any source.

        Returns:
            True if a pending check or a live escalation was stopped.
        """
        return self.confirm_dose(self.resolve_dose_id(medication_id, time_slot, dose_date))
