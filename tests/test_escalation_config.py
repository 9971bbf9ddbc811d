"""Tests for escalation ladder loading and validation."""

import json

import pytest

from dosewatch.schemas.escalation import LocalAction, RecipientScope
from dosewatch.services.escalation_config import (
    DEFAULT_LADDER,
    LadderConfigError,
    load_ladder,
    parse_ladder,
)


def level(number: int, delay: float, scope: str = "none", actions=()) -> dict:
    return {
        "level": number,
        "name": f"Level {number}",
        "delay_minutes": delay,
        "local_actions": list(actions),
        "recipient_scope": scope,
    }


class TestParseLadder:
    """Tests for ladder document validation."""

    def test_default_ladder(self):
        ladder = parse_ladder(DEFAULT_LADDER)

        assert len(ladder) == 4
        assert [lv.delay_minutes for lv in ladder.levels] == [0, 30, 60, 120]
        assert [lv.recipient_scope for lv in ladder.levels] == [
            RecipientScope.NONE,
            RecipientScope.NONE,
            RecipientScope.PRIMARY_CONTACT,
            RecipientScope.ALL_CONTACTS,
        ]
        assert ladder.first.local_actions == (
            LocalAction.GENTLE_NOTIFICATION,
            LocalAction.AUDIO_REMINDER,
        )

    def test_bare_list_accepted(self):
        ladder = parse_ladder([level(1, 0), level(2, 5)])
        assert len(ladder) == 2

    def test_get_outside_range(self):
        ladder = parse_ladder([level(1, 0)])
        assert ladder.get(0) is None
        assert ladder.get(2) is None
        assert ladder.get(1).name == "Level 1"

    def test_empty_ladder_rejected(self):
        with pytest.raises(LadderConfigError):
            parse_ladder({"levels": []})

    def test_gap_in_numbering_rejected(self):
        with pytest.raises(LadderConfigError, match="numbered"):
            parse_ladder([level(1, 0), level(3, 5)])

    def test_out_of_order_rejected(self):
        with pytest.raises(LadderConfigError):
            parse_ladder([level(2, 5), level(1, 0)])

    def test_zero_delay_after_first_level_rejected(self):
        with pytest.raises(LadderConfigError, match="positive delay"):
            parse_ladder([level(1, 0), level(2, 0)])

    def test_negative_delay_rejected(self):
        with pytest.raises(LadderConfigError):
            parse_ladder([level(1, -1)])

    def test_unknown_action_rejected(self):
        with pytest.raises(LadderConfigError):
            parse_ladder([level(1, 0, actions=["fireworks"])])

    def test_unknown_scope_rejected(self):
        with pytest.raises(LadderConfigError):
            parse_ladder([level(1, 0, scope="neighbours")])

    def test_first_level_may_be_delayed(self):
        ladder = parse_ladder([level(1, 10)])
        assert ladder.first.delay_seconds == 600


class TestLoadLadder:
    """Tests for loading the ladder at startup."""

    def test_builtin_when_no_path(self):
        assert len(load_ladder()) == 4

    def test_from_file(self, tmp_path):
        path = tmp_path / "ladder.json"
        path.write_text(json.dumps([level(1, 0), level(2, 15, scope="all_emergency_contacts")]))

        ladder = load_ladder(str(path))

        assert len(ladder) == 2
        assert ladder.get(2).recipient_scope == RecipientScope.ALL_EMERGENCY_CONTACTS

    def test_missing_file(self, tmp_path):
        with pytest.raises(LadderConfigError, match="Cannot read"):
            load_ladder(str(tmp_path / "missing.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "ladder.json"
        path.write_text("{not json")

        with pytest.raises(LadderConfigError):
            load_ladder(str(path))

    def test_delay_scale(self):
        ladder = load_ladder(delay_scale=0.5)
        assert [lv.delay_minutes for lv in ladder.levels] == [0, 15, 30, 60]

    def test_non_positive_delay_scale_rejected(self):
        with pytest.raises(LadderConfigError):
            load_ladder(delay_scale=0)
