"""Wiring of the escalation engine and dose monitor for the running service."""

from dataclasses import dataclass

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from dosewatch.config import settings
from dosewatch.services.alert_log import SqlAlertLog
from dosewatch.services.contact_directory import SqlContactDirectory
from dosewatch.services.delivery import build_dispatcher
from dosewatch.services.dose_monitor import DoseMonitor
from dosewatch.services.escalation_config import load_ladder
from dosewatch.services.escalation_engine import EscalationEngine
from dosewatch.services.intake_log import SqlIntakeLog
from dosewatch.services.local_actions import LocalActionRunner, SessionEventNotifier
from dosewatch.services.timers import SchedulerTimerSource


@dataclass
class EscalationRuntime:
    """Everything the HTTP layer needs to reach the escalation subsystem."""

    engine: EscalationEngine
    monitor: DoseMonitor
    notifier: SessionEventNotifier


def build_runtime(scheduler: AsyncIOScheduler) -> EscalationRuntime:
    """Build the production escalation subsystem.

    Raises:
        LadderConfigError: If the configured ladder is invalid.
    """
    ladder = load_ladder(settings.escalation_ladder_path, settings.escalation_delay_scale)
    timers = SchedulerTimerSource(scheduler)
    notifier = SessionEventNotifier()
    actions = LocalActionRunner(notifier, settings.local_action_timeout_seconds)

    engine = EscalationEngine(
        ladder=ladder,
        timers=timers,
        contacts=SqlContactDirectory(),
        delivery=build_dispatcher(),
        alert_log=SqlAlertLog(settings.patient_id),
        actions=actions,
        patient_id=settings.patient_id,
        patient_name=settings.patient_name,
        default_timezone=settings.default_timezone,
        history_size=settings.escalation_history_size,
    )

    monitor = DoseMonitor(
        engine=engine,
        intake_log=SqlIntakeLog(),
        timers=timers,
        scheduler=scheduler if settings.dose_monitor_enabled else None,
        grace_minutes=settings.missed_dose_grace_minutes,
        timezone=settings.default_timezone,
        reminders=actions,
    )

    return EscalationRuntime(engine=engine, monitor=monitor, notifier=notifier)
