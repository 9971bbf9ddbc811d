"""Tests for recipient selection and quiet hours."""

from datetime import UTC, datetime

import pytest

from dosewatch.schemas.contact import Contact, NotificationPreferences, QuietHours
from dosewatch.schemas.escalation import RecipientScope
from dosewatch.services.recipients import is_in_quiet_hours, select_recipients


def make_contact(
    contact_id: str,
    emergency: bool = True,
    position: int = 0,
    timezone: str | None = None,
    quiet_hours: QuietHours | None = None,
    preferences: bool = True,
) -> Contact:
    return Contact(
        id=contact_id,
        name=contact_id.title(),
        is_emergency_contact=emergency,
        position=position,
        timezone=timezone,
        notification_preferences=(
            NotificationPreferences(quiet_hours=quiet_hours) if preferences else None
        ),
    )


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 6, 1, hour, minute, tzinfo=UTC)


class TestSelectRecipients:
    """Tests for select_recipients."""

    def test_none_scope(self):
        assert select_recipients(RecipientScope.NONE, [make_contact("a")]) == []

    def test_primary_is_lowest_position_emergency_contact(self):
        contacts = [
            make_contact("a", emergency=False, position=0),
            make_contact("b", position=5),
            make_contact("c", position=2),
        ]

        result = select_recipients(RecipientScope.PRIMARY_CONTACT, contacts)

        assert [c.id for c in result] == ["c"]

    def test_primary_tie_keeps_directory_order(self):
        contacts = [make_contact("b", position=1), make_contact("a", position=1)]

        result = select_recipients(RecipientScope.PRIMARY_CONTACT, contacts)

        assert [c.id for c in result] == ["b"]

    def test_primary_without_emergency_contacts(self):
        contacts = [make_contact("a", emergency=False)]
        assert select_recipients(RecipientScope.PRIMARY_CONTACT, contacts) == []

    def test_all_emergency_contacts(self):
        contacts = [
            make_contact("a"),
            make_contact("b", emergency=False),
            make_contact("c"),
        ]

        result = select_recipients(RecipientScope.ALL_EMERGENCY_CONTACTS, contacts)

        assert [c.id for c in result] == ["a", "c"]

    def test_all_contacts_deduplicated_by_id(self):
        a = make_contact("a")
        contacts = [a, make_contact("b", emergency=False), a]

        result = select_recipients(RecipientScope.ALL_CONTACTS, contacts)

        assert [c.id for c in result] == ["a", "b"]

    def test_empty_directory(self):
        for scope in RecipientScope:
            assert select_recipients(scope, []) == []


class TestQuietHours:
    """Tests for is_in_quiet_hours."""

    @pytest.mark.parametrize(
        ("hour", "minute", "expected"),
        [
            (21, 59, False),
            (22, 0, True),
            (23, 30, True),
            (3, 0, True),
            (7, 0, True),
            (7, 1, False),
            (12, 0, False),
        ],
    )
    def test_default_window_wraps_midnight(self, hour, minute, expected):
        contact = make_contact("a", quiet_hours=QuietHours())
        assert is_in_quiet_hours(contact, at(hour, minute)) is expected

    @pytest.mark.parametrize(
        ("hour", "expected"),
        [(12, False), (13, True), (14, True), (15, True), (16, False)],
    )
    def test_same_day_window_is_inclusive(self, hour, expected):
        contact = make_contact("a", quiet_hours=QuietHours(start="13:00", end="15:00"))
        assert is_in_quiet_hours(contact, at(hour)) is expected

    def test_equal_start_and_end_is_single_minute(self):
        contact = make_contact("a", quiet_hours=QuietHours(start="09:00", end="09:00"))
        assert is_in_quiet_hours(contact, at(9, 0)) is True
        assert is_in_quiet_hours(contact, at(9, 1)) is False

    def test_no_preferences_never_quiet(self):
        contact = make_contact("a", preferences=False)
        assert is_in_quiet_hours(contact, at(23)) is False

    def test_disabled_quiet_hours(self):
        contact = make_contact("a", quiet_hours=None)
        assert is_in_quiet_hours(contact, at(23)) is False

    def test_contact_timezone(self):
        # 03:00 UTC is 20:00 the previous day in Los Angeles (PDT)
        contact = make_contact(
            "a", timezone="America/Los_Angeles", quiet_hours=QuietHours()
        )
        assert is_in_quiet_hours(contact, at(3)) is False
        assert is_in_quiet_hours(contact, at(6)) is True

    def test_default_timezone_applies_without_contact_zone(self):
        contact = make_contact("a", quiet_hours=QuietHours())
        assert is_in_quiet_hours(contact, at(14), default_timezone="Asia/Tokyo") is True

    def test_unknown_timezone_falls_back_to_utc(self):
        contact = make_contact("a", timezone="Mars/Olympus", quiet_hours=QuietHours())
        assert is_in_quiet_hours(contact, at(23)) is True

    def test_naive_time_treated_as_utc(self):
        contact = make_contact("a", quiet_hours=QuietHours())
        assert is_in_quiet_hours(contact, datetime(2024, 6, 1, 23, 0)) is True
