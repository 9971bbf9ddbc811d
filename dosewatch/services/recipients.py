"""Recipient selection and quiet-hours filtering for escalation levels."""

from collections.abc import Iterable
from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dosewatch.logging_config import get_logger
from dosewatch.schemas.contact import Contact
from dosewatch.schemas.escalation import RecipientScope

logger = get_logger(__name__)


def _unique(contacts: Iterable[Contact]) -> list[Contact]:
    """Drop repeated contacts by id, keeping first occurrence order."""
    seen: set[str] = set()
    unique: list[Contact] = []
    for contact in contacts:
        if contact.id in seen:
            continue
        seen.add(contact.id)
        unique.append(contact)
    return unique


def select_recipients(scope: RecipientScope, contacts: list[Contact]) -> list[Contact]:
    """Pick the contacts a level notifies.

    The primary contact is the emergency contact with the lowest
    ``position``; ties keep directory order.

    Args:
        scope: Level's recipient scope.
        contacts: Current contact list, in directory order.

    Returns:
        Distinct contacts to notify, possibly empty.
    """
    if scope == RecipientScope.NONE:
        return []

    emergency = [c for c in contacts if c.is_emergency_contact]

    if scope == RecipientScope.PRIMARY_CONTACT:
        if not emergency:
            return []
        # min() returns the first of equal keys, so ties keep directory order
        return [min(emergency, key=lambda c: c.position)]

    if scope == RecipientScope.ALL_EMERGENCY_CONTACTS:
        return _unique(emergency)

    return _unique(contacts)


def _resolve_zone(name: str | None, default_timezone: str) -> ZoneInfo:
    for candidate in (name, default_timezone):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone, falling back", timezone=candidate)
    return ZoneInfo("UTC")


def is_in_quiet_hours(
    contact: Contact,
    now: datetime,
    default_timezone: str = "UTC",
) -> bool:
    """Check whether ``now`` falls inside the contact's quiet hours.

    The window is evaluated on the contact's local clock and includes both
    ends. A start later than the end wraps past midnight.
    """
    preferences = contact.notification_preferences
    if preferences is None or preferences.quiet_hours is None:
        return False

    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    local = now.astimezone(_resolve_zone(contact.timezone, default_timezone))
    current = local.hour * 60 + local.minute

    start_time = preferences.quiet_hours.start_time
    end_time = preferences.quiet_hours.end_time
    start = start_time.hour * 60 + start_time.minute
    end = end_time.hour * 60 + end_time.minute

    if start > end:
        return current >= start or current <= end
    return start <= current <= end
