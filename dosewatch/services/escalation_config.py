"""Escalation ladder configuration.

The ladder is deployment data: it is read once at startup from a JSON
document (or the built-in default) and validated. A bad ladder stops
the service from starting.
"""

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from dosewatch.logging_config import get_logger
from dosewatch.schemas.escalation import EscalationLadder

logger = get_logger(__name__)

DEFAULT_LADDER: dict[str, Any] = {
    "levels": [
        {
            "level": 1,
            "name": "Gentle Reminder",
            "delay_minutes": 0,
            "local_actions": ["gentle_notification", "audio_reminder"],
            "recipient_scope": "none",
        },
        {
            "level": 2,
            "name": "Firm Reminder",
            "delay_minutes": 30,
            "local_actions": ["firm_notification", "louder_audio", "screen_flash"],
            "recipient_scope": "none",
        },
        {
            "level": 3,
            "name": "Family Alert",
            "delay_minutes": 60,
            "local_actions": ["family_notification", "email_alert"],
            "recipient_scope": "primary_contact",
        },
        {
            "level": 4,
            "name": "Emergency Escalation",
            "delay_minutes": 120,
            "local_actions": ["emergency_notification", "phone_call", "sms_alert"],
            "recipient_scope": "all_contacts",
        },
    ]
}


class LadderConfigError(ValueError):
    """The escalation ladder configuration is missing or malformed."""


def parse_ladder(data: Any) -> EscalationLadder:
    """Validate a ladder document.

    Accepts either ``{"levels": [...]}`` or a bare list of levels.

    Raises:
        LadderConfigError: If the document does not describe a valid ladder.
    """
    if isinstance(data, list):
        data = {"levels": data}
    try:
        return EscalationLadder.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid escalation ladder: {e}"
        raise LadderConfigError(msg) from e


def load_ladder(path: str = "", delay_scale: float = 1.0) -> EscalationLadder:
    """Load the escalation ladder.

    Args:
        path: JSON ladder document. Empty uses DEFAULT_LADDER.
        delay_scale: Multiplier applied to every level's delay.

    Raises:
        LadderConfigError: If the file is unreadable or the ladder invalid.
    """
    if path:
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            msg = f"Cannot read escalation ladder from {path}: {e}"
            raise LadderConfigError(msg) from e
        source = path
    else:
        data = DEFAULT_LADDER
        source = "built-in"

    ladder = parse_ladder(data)
    if delay_scale != 1.0:
        try:
            ladder = ladder.scaled(delay_scale)
        except ValueError as e:
            raise LadderConfigError(str(e)) from e

    logger.info(
        "Escalation ladder loaded",
        source=source,
        levels=len(ladder),
        delay_scale=delay_scale,
    )
    return ladder
