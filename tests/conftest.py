"""Pytest configuration and shared fixtures.

Escalation tests run against a virtual clock and in-memory directories,
so no database or provider credentials are needed.
"""

import os
from unittest.mock import AsyncMock

import pytest

# Set testing mode BEFORE importing settings to use NullPool
os.environ["TESTING"] = "true"

from dosewatch.config import settings

# Override settings for testing
settings.testing = True

from dosewatch.services.alert_log import InMemoryAlertLog
from dosewatch.services.contact_directory import InMemoryContactDirectory
from dosewatch.services.escalation_config import DEFAULT_LADDER, parse_ladder
from dosewatch.services.escalation_engine import EscalationEngine
from dosewatch.services.local_actions import LocalActionRunner, LocalNotification
from dosewatch.services.timers import ManualTimerSource

PATIENT_ID = "patient-1"


class RecordingNotifier:
    """Local notifier that remembers every call."""

    def __init__(self):
        self.notifications: list[LocalNotification] = []
        self.blocking: list[LocalNotification] = []
        self.tones: list[str] = []
        self.flashes: list[float] = []

    async def notify(self, notification: LocalNotification) -> None:
        self.notifications.append(notification)

    async def play_tone(self, volume: str) -> None:
        self.tones.append(volume)

    async def flash_screen(self, duration_seconds: float) -> None:
        self.flashes.append(duration_seconds)

    async def blocking_alert(self, notification: LocalNotification) -> None:
        self.blocking.append(notification)

    @property
    def kinds(self) -> list[str]:
        return [n.kind for n in self.notifications]


@pytest.fixture
def ladder():
    """The built-in four-level ladder."""
    return parse_ladder(DEFAULT_LADDER)


@pytest.fixture
def timers():
    """Virtual clock starting 2024-01-01 08:00 UTC."""
    return ManualTimerSource()


@pytest.fixture
def contacts():
    return InMemoryContactDirectory()


@pytest.fixture
def alert_log():
    return InMemoryAlertLog()


@pytest.fixture
def delivery():
    """Delivery channel that reports every dispatch as delivered."""
    channel = AsyncMock()
    channel.dispatch.return_value = True
    return channel


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def engine(ladder, timers, contacts, delivery, alert_log, notifier):
    """Escalation engine wired to in-memory collaborators."""
    return EscalationEngine(
        ladder=ladder,
        timers=timers,
        contacts=contacts,
        delivery=delivery,
        alert_log=alert_log,
        actions=LocalActionRunner(notifier, timeout_seconds=1.0),
        patient_id=PATIENT_ID,
        patient_name="Grandma",
    )
