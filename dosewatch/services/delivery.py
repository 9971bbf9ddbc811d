"""Delivery channel for family escalation notifications.

One ``dispatch`` reaches one contact over every method they opted into:
email through AWS SES, SMS through Twilio, and for high urgency a Twilio
voice call. The SDK clients are blocking, so calls run in worker threads.
"""

import asyncio
import html
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from twilio.base.exceptions import TwilioException
from twilio.rest import Client as TwilioClient
from twilio.twiml.voice_response import VoiceResponse

from dosewatch.config import settings
from dosewatch.logging_config import get_logger
from dosewatch.schemas.contact import Contact, NotificationPreferences
from dosewatch.schemas.escalation import Urgency
from dosewatch.services.missed_dose import MedicationDetails

logger = get_logger(__name__)


class DeliveryError(Exception):
    """A notification could not be delivered to a contact."""


class DeliveryChannel(Protocol):
    """Sends one escalation message to one contact."""

    async def dispatch(
        self,
        contact: Contact,
        message: str,
        urgency: Urgency,
        medication: MedicationDetails,
    ) -> bool: ...


def email_subject(urgency: Urgency) -> str:
    if urgency == Urgency.HIGH:
        return "URGENT - Missed Medication Alert"
    return "Medication Notification"


def format_email_html(
    contact: Contact,
    message: str,
    urgency: Urgency,
    medication: MedicationDetails,
) -> str:
    """Render the HTML email body. All interpolated values are escaped."""
    heading = (
        "\U0001f6a8 URGENT ALERT" if urgency == Urgency.HIGH else "\U0001f48a Medication Reminder"
    )
    colour = "#dc2626" if urgency == Urgency.HIGH else "#f59e0b"
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px;">'
        f'<h2 style="color: {colour};">{heading}</h2>'
        f'<p style="font-size: 16px;">{html.escape(message)}</p>'
        f"<p><strong>Family member:</strong> {html.escape(contact.name)}</p>"
        "<h3>Medication details</h3>"
        "<ul>"
        f"<li><strong>Name:</strong> {html.escape(medication.name)}</li>"
        f"<li><strong>Dosage:</strong> {html.escape(medication.dosage)}</li>"
        f"<li><strong>Scheduled:</strong> {html.escape(medication.scheduled_time)}</li>"
        f"<li><strong>Status:</strong> {html.escape(medication.status)}</li>"
        "</ul>"
        "</div>"
    )


class SesEmailSender:
    """Sends email through AWS SES."""

    def __init__(self, sender: str, region: str, client=None):
        self._sender = sender
        self._client = client or boto3.client("ses", region_name=region)

    def _send(self, to: str, subject: str, text: str, body_html: str) -> str:
        response = self._client.send_email(
            Source=self._sender,
            Destination={"ToAddresses": [to]},
            Message={
                "Subject": {"Data": subject, "Charset": "UTF-8"},
                "Body": {
                    "Text": {"Data": text, "Charset": "UTF-8"},
                    "Html": {"Data": body_html, "Charset": "UTF-8"},
                },
            },
        )
        return response["MessageId"]

    async def send(self, to: str, subject: str, text: str, body_html: str) -> str:
        try:
            return await asyncio.to_thread(self._send, to, subject, text, body_html)
        except (BotoCoreError, ClientError) as e:
            raise DeliveryError(f"SES send failed: {e}") from e


class TwilioSender:
    """Sends SMS and places voice calls through Twilio."""

    def __init__(self, from_number: str, client: TwilioClient):
        self._from_number = from_number
        self._client = client

    def _sms(self, to: str, body: str) -> str:
        return self._client.messages.create(body=body, from_=self._from_number, to=to).sid

    def _call(self, to: str, spoken: str) -> str:
        response = VoiceResponse()
        # Say it twice; the first pass is often missed while answering
        response.say(spoken)
        response.pause(length=1)
        response.say(spoken)
        return self._client.calls.create(
            twiml=str(response), from_=self._from_number, to=to
        ).sid

    async def send_sms(self, to: str, body: str) -> str:
        try:
            return await asyncio.to_thread(self._sms, to, body)
        except TwilioException as e:
            raise DeliveryError(f"Twilio SMS failed: {e}") from e

    async def place_call(self, to: str, spoken: str) -> str:
        try:
            return await asyncio.to_thread(self._call, to, spoken)
        except TwilioException as e:
            raise DeliveryError(f"Twilio call failed: {e}") from e


class NotificationDispatcher:
    """Delivery channel fanning a message out over a contact's opted-in methods.

    A dispatch succeeds if at least one method delivered. A contact with
    no usable method raises DeliveryError.
    """

    def __init__(
        self,
        email: SesEmailSender | None = None,
        twilio: TwilioSender | None = None,
    ):
        self._email = email
        self._twilio = twilio

    async def dispatch(
        self,
        contact: Contact,
        message: str,
        urgency: Urgency,
        medication: MedicationDetails,
    ) -> bool:
        preferences = contact.notification_preferences or NotificationPreferences()
        attempts = []

        if self._email is not None and contact.email and preferences.email:
            attempts.append(
                (
                    "email",
                    lambda: self._email.send(
                        contact.email,
                        email_subject(urgency),
                        message,
                        format_email_html(contact, message, urgency, medication),
                    ),
                )
            )

        if self._twilio is not None and contact.phone:
            if preferences.sms:
                attempts.append(
                    ("sms", lambda: self._twilio.send_sms(contact.phone, message))
                )
            if urgency == Urgency.HIGH and preferences.voice_call:
                attempts.append(
                    ("voice", lambda: self._twilio.place_call(contact.phone, message))
                )

        if not attempts:
            raise DeliveryError(f"No usable delivery method for contact {contact.id}")

        delivered = False
        for method, send in attempts:
            try:
                reference = await send()
            except DeliveryError as e:
                logger.warning(
                    "Delivery method failed",
                    method=method,
                    contact_id=contact.id,
                    error=str(e),
                )
                continue
            delivered = True
            logger.info(
                "Escalation delivered",
                method=method,
                contact_id=contact.id,
                urgency=urgency.value,
                reference=reference,
            )

        return delivered


def build_dispatcher() -> NotificationDispatcher:
    """Build the dispatcher from configured provider credentials."""
    email = None
    if settings.ses_sender_email:
        email = SesEmailSender(settings.ses_sender_email, settings.ses_region)

    twilio = None
    if settings.twilio_account_sid and settings.twilio_auth_token:
        twilio = TwilioSender(
            settings.twilio_from_number,
            TwilioClient(settings.twilio_account_sid, settings.twilio_auth_token),
        )

    if email is None and twilio is None:
        logger.warning("No delivery providers configured; family alerts cannot be sent")

    return NotificationDispatcher(email=email, twilio=twilio)
