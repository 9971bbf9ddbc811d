"""Tests for family notification delivery over SES and Twilio."""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError
from twilio.base.exceptions import TwilioException

from dosewatch.config import settings
from dosewatch.schemas.contact import Contact, NotificationPreferences
from dosewatch.schemas.escalation import Urgency
from dosewatch.services.delivery import (
    DeliveryError,
    NotificationDispatcher,
    SesEmailSender,
    TwilioSender,
    build_dispatcher,
    email_subject,
    format_email_html,
)
from dosewatch.services.missed_dose import MedicationDetails

MEDICATION = MedicationDetails(
    medication_id="m1",
    name="Heart Pill",
    dosage="5mg",
    scheduled_time="08:00",
)


def make_contact(
    email_address: str | None = "ann@example.com",
    phone_number: str | None = "+15550100",
    **preferences,
) -> Contact:
    return Contact(
        id="c1",
        name="Ann",
        email=email_address,
        phone=phone_number,
        is_emergency_contact=True,
        notification_preferences=NotificationPreferences(**preferences),
    )


def make_ses_client() -> MagicMock:
    client = MagicMock()
    client.send_email.return_value = {"MessageId": "ses-1"}
    return client


def make_twilio_client() -> MagicMock:
    client = MagicMock()
    client.messages.create.return_value.sid = "SM1"
    client.calls.create.return_value.sid = "CA1"
    return client


def make_dispatcher(ses_client=None, twilio_client=None) -> NotificationDispatcher:
    return NotificationDispatcher(
        email=SesEmailSender("alerts@example.com", "us-east-1", client=ses_client or make_ses_client()),
        twilio=TwilioSender("+15550199", twilio_client or make_twilio_client()),
    )


# ── Formatting ──


class TestEmailFormatting:
    def test_subject_by_urgency(self):
        assert email_subject(Urgency.HIGH).startswith("URGENT")
        assert email_subject(Urgency.MEDIUM) == "Medication Notification"

    def test_html_is_escaped(self):
        contact = make_contact().model_copy(update={"name": "<b>Ann</b>"})

        body = format_email_html(contact, "Missed <script>", Urgency.HIGH, MEDICATION)

        assert "<script>" not in body
        assert "&lt;script&gt;" in body
        assert "&lt;b&gt;Ann&lt;/b&gt;" in body
        assert "Heart Pill" in body


# ── Dispatcher ──


class TestNotificationDispatcher:
    """Tests for NotificationDispatcher.dispatch."""

    @pytest.mark.asyncio
    async def test_medium_urgency_sends_email_and_sms(self):
        ses, twilio = make_ses_client(), make_twilio_client()
        dispatcher = make_dispatcher(ses, twilio)

        delivered = await dispatcher.dispatch(
            make_contact(voice_call=True), "Missed dose", Urgency.MEDIUM, MEDICATION
        )

        assert delivered is True
        kwargs = ses.send_email.call_args.kwargs
        assert kwargs["Destination"] == {"ToAddresses": ["ann@example.com"]}
        assert kwargs["Source"] == "alerts@example.com"
        twilio.messages.create.assert_called_once_with(
            body="Missed dose", from_="+15550199", to="+15550100"
        )
        twilio.calls.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_high_urgency_calls_when_opted_in(self):
        twilio = make_twilio_client()
        dispatcher = make_dispatcher(twilio_client=twilio)

        await dispatcher.dispatch(
            make_contact(voice_call=True), "Missed dose", Urgency.HIGH, MEDICATION
        )

        twilio.calls.create.assert_called_once()
        twiml = twilio.calls.create.call_args.kwargs["twiml"]
        assert twiml.count("Missed dose") == 2

    @pytest.mark.asyncio
    async def test_high_urgency_no_call_without_opt_in(self):
        twilio = make_twilio_client()
        dispatcher = make_dispatcher(twilio_client=twilio)

        await dispatcher.dispatch(make_contact(), "Missed dose", Urgency.HIGH, MEDICATION)

        twilio.calls.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_respects_opt_outs(self):
        ses, twilio = make_ses_client(), make_twilio_client()
        dispatcher = make_dispatcher(ses, twilio)

        await dispatcher.dispatch(
            make_contact(email=False), "Missed dose", Urgency.MEDIUM, MEDICATION
        )

        ses.send_email.assert_not_called()
        twilio.messages.create.assert_called_once()

    @pytest.mark.asyncio
    async def test_no_usable_method_raises(self):
        dispatcher = make_dispatcher()

        with pytest.raises(DeliveryError):
            await dispatcher.dispatch(
                make_contact(email_address=None, phone_number=None), "Missed dose", Urgency.HIGH, MEDICATION
            )

    @pytest.mark.asyncio
    async def test_no_providers_raises(self):
        with pytest.raises(DeliveryError):
            await NotificationDispatcher().dispatch(
                make_contact(), "Missed dose", Urgency.MEDIUM, MEDICATION
            )

    @pytest.mark.asyncio
    async def test_one_method_failing_still_delivers(self):
        ses = make_ses_client()
        ses.send_email.side_effect = ClientError(
            {"Error": {"Code": "MessageRejected", "Message": "Email address is not verified"}},
            "SendEmail",
        )
        dispatcher = make_dispatcher(ses_client=ses)

        delivered = await dispatcher.dispatch(
            make_contact(), "Missed dose", Urgency.MEDIUM, MEDICATION
        )

        assert delivered is True

    @pytest.mark.asyncio
    async def test_all_methods_failing_returns_false(self):
        ses = make_ses_client()
        ses.send_email.side_effect = ClientError(
            {"Error": {"Code": "Throttling", "Message": "Rate exceeded"}}, "SendEmail"
        )
        twilio = make_twilio_client()
        twilio.messages.create.side_effect = TwilioException("invalid number")
        dispatcher = make_dispatcher(ses, twilio)

        delivered = await dispatcher.dispatch(
            make_contact(), "Missed dose", Urgency.MEDIUM, MEDICATION
        )

        assert delivered is False


class TestSenders:
    @pytest.mark.asyncio
    async def test_ses_error_wrapped(self):
        client = make_ses_client()
        client.send_email.side_effect = ClientError(
            {"Error": {"Code": "MessageRejected", "Message": "nope"}}, "SendEmail"
        )
        sender = SesEmailSender("alerts@example.com", "us-east-1", client=client)

        with pytest.raises(DeliveryError, match="SES"):
            await sender.send("ann@example.com", "s", "t", "<p>t</p>")

    @pytest.mark.asyncio
    async def test_twilio_sms_returns_sid(self):
        sender = TwilioSender("+15550199", make_twilio_client())
        assert await sender.send_sms("+15550100", "hello") == "SM1"


class TestBuildDispatcher:
    def test_without_credentials(self):
        with (
            patch.object(settings, "ses_sender_email", ""),
            patch.object(settings, "twilio_account_sid", ""),
            patch.object(settings, "twilio_auth_token", ""),
        ):
            dispatcher = build_dispatcher()

        assert dispatcher._email is None
        assert dispatcher._twilio is None
