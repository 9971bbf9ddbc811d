"""Tests for local escalation actions and the session notifier."""

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
from conftest import RecordingNotifier

from dosewatch.schemas.escalation import LocalAction
from dosewatch.services.local_actions import (
    LocalActionRunner,
    LoggingNotifier,
    NotifierUnavailableError,
    SessionEventNotifier,
    emergency_notification,
    firm_notification,
    gentle_notification,
    medication_reminder,
)
from dosewatch.services.missed_dose import MissedDose


def make_dose() -> MissedDose:
    return MissedDose(
        dose_id="d1",
        medication_id="m1",
        medication_name="Heart Pill",
        dosage="5mg",
        scheduled_time="08:00",
        detected_missed_at=datetime(2024, 1, 1, 8, tzinfo=UTC),
    )


class TestNotificationFactories:
    def test_gentle(self):
        n = gentle_notification(make_dose())
        assert n.require_interaction is False
        assert n.auto_close_seconds == 30
        assert n.tag == "gentle-d1"

    def test_firm(self):
        n = firm_notification(make_dose())
        assert n.require_interaction is True
        assert n.auto_close_seconds == 30

    def test_emergency(self):
        n = emergency_notification(make_dose())
        assert n.require_interaction is True
        assert n.auto_close_seconds == 45
        assert "Heart Pill" in n.body

    def test_medication_reminder(self):
        n = medication_reminder("m1:2024-01-01:08:00", "Heart Pill", "5mg", "08:00")
        assert n.kind == "reminder"
        assert n.title == "Medication Time!"
        assert n.body == "Time to take Heart Pill (5mg) - Scheduled for 08:00"
        assert n.require_interaction is True
        assert n.auto_close_seconds == 30


class TestLocalActionRunner:
    """Tests for LocalActionRunner."""

    @pytest.mark.asyncio
    async def test_tones_and_flash(self):
        notifier = RecordingNotifier()
        runner = LocalActionRunner(notifier)

        await runner.run(LocalAction.AUDIO_REMINDER, make_dose())
        await runner.run(LocalAction.LOUDER_AUDIO, make_dose())
        await runner.run(LocalAction.SCREEN_FLASH, make_dose())

        assert notifier.tones == ["soft", "loud"]
        assert notifier.flashes == [1.5]

    @pytest.mark.asyncio
    async def test_delivery_markers_are_noops(self):
        notifier = RecordingNotifier()
        runner = LocalActionRunner(notifier)

        for action in (
            LocalAction.FAMILY_NOTIFICATION,
            LocalAction.EMAIL_ALERT,
            LocalAction.SMS_ALERT,
            LocalAction.PHONE_CALL,
        ):
            assert await runner.run(action, make_dose()) is True

        assert notifier.notifications == []
        assert notifier.tones == []

    @pytest.mark.asyncio
    async def test_slow_notification_falls_back_to_blocking_alert(self):
        notifier = RecordingNotifier()

        async def hang(notification):
            await asyncio.sleep(10)

        notifier.notify = hang
        runner = LocalActionRunner(notifier, timeout_seconds=0.01)

        assert await runner.run(LocalAction.FIRM_NOTIFICATION, make_dose()) is True
        assert [n.kind for n in notifier.blocking] == ["firm"]

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self):
        notifier = RecordingNotifier()
        notifier.notify = AsyncMock(side_effect=RuntimeError("denied"))
        notifier.blocking_alert = AsyncMock(side_effect=RuntimeError("no session"))
        runner = LocalActionRunner(notifier)

        assert await runner.run(LocalAction.GENTLE_NOTIFICATION, make_dose()) is False

    @pytest.mark.asyncio
    async def test_tone_failure_is_reported(self):
        notifier = RecordingNotifier()
        notifier.play_tone = AsyncMock(side_effect=OSError("no audio device"))
        runner = LocalActionRunner(notifier)

        assert await runner.run(LocalAction.AUDIO_REMINDER, make_dose()) is False

    @pytest.mark.asyncio
    async def test_logging_notifier(self):
        runner = LocalActionRunner(LoggingNotifier())
        assert await runner.run(LocalAction.EMERGENCY_NOTIFICATION, make_dose()) is True

    @pytest.mark.asyncio
    async def test_remind_shows_reminder_with_soft_tone(self):
        notifier = RecordingNotifier()
        runner = LocalActionRunner(notifier)
        reminder = medication_reminder("d1", "Heart Pill", "5mg", "08:00")

        assert await runner.remind(reminder) is True

        assert notifier.kinds == ["reminder"]
        assert notifier.tones == ["soft"]

    @pytest.mark.asyncio
    async def test_remind_falls_back_to_blocking_alert(self):
        notifier = RecordingNotifier()
        notifier.notify = AsyncMock(side_effect=NotifierUnavailableError("no session"))
        runner = LocalActionRunner(notifier)

        assert await runner.remind(medication_reminder("d1", "Heart Pill", "5mg", "08:00")) is True

        assert [n.kind for n in notifier.blocking] == ["reminder"]
        assert notifier.tones == ["soft"]

    @pytest.mark.asyncio
    async def test_remind_failure_is_reported_not_raised(self):
        notifier = RecordingNotifier()
        notifier.notify = AsyncMock(side_effect=RuntimeError("denied"))
        notifier.blocking_alert = AsyncMock(side_effect=RuntimeError("no session"))
        runner = LocalActionRunner(notifier)

        assert await runner.remind(medication_reminder("d1", "Heart Pill", "5mg", "08:00")) is False
        assert notifier.tones == []


class TestSessionEventNotifier:
    """Tests for the SSE-backed notifier."""

    @pytest.mark.asyncio
    async def test_notify_without_session_raises(self):
        notifier = SessionEventNotifier()

        with pytest.raises(NotifierUnavailableError):
            await notifier.notify(gentle_notification(make_dose()))

    @pytest.mark.asyncio
    async def test_notify_publishes_to_every_session(self):
        notifier = SessionEventNotifier()
        first = notifier.subscribe()
        second = notifier.subscribe()

        await notifier.notify(firm_notification(make_dose()))

        for queue in (first, second):
            event = queue.get_nowait()
            assert event["type"] == "notification"
            assert event["data"]["kind"] == "firm"
            assert event["data"]["dose_id"] == "d1"
            assert "sent_at" in event

    @pytest.mark.asyncio
    async def test_blocking_alert_held_until_session_connects(self):
        notifier = SessionEventNotifier()

        await notifier.blocking_alert(emergency_notification(make_dose()))
        queue = notifier.subscribe()

        event = queue.get_nowait()
        assert event["type"] == "blocking_alert"
        assert event["data"]["kind"] == "emergency"

        # Backlog is delivered only once
        assert notifier.subscribe().empty()

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        notifier = SessionEventNotifier()
        queue = notifier.subscribe()
        notifier.unsubscribe(queue)

        assert notifier.subscriber_count == 0
        await notifier.play_tone("soft")
        assert queue.empty()

    @pytest.mark.asyncio
    async def test_runner_falls_back_when_no_session(self):
        notifier = SessionEventNotifier()
        runner = LocalActionRunner(notifier)

        assert await runner.run(LocalAction.GENTLE_NOTIFICATION, make_dose()) is True

        event = notifier.subscribe().get_nowait()
        assert event["type"] == "blocking_alert"
        assert event["data"]["kind"] == "gentle"
