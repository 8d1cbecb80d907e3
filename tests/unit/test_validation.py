"""Tests for auditrack.core.validation: manual status overrides."""

from __future__ import annotations

from datetime import date

import pytest

from auditrack.core.errors import StatusNotSelectable, StatusUnknown
from auditrack.core.models import Action, Status
from auditrack.core.validation import validate_manual_status


def _actions(*statuses: str, refs: bool = True) -> list[Action]:
    return [
        Action(
            id=i,
            finding_id=1,
            status=s,
            due_date=date(2024, 1, 1),
            action_ref=f"ACT-{i}" if refs else None,
        )
        for i, s in enumerate(statuses, start=1)
    ]


class TestValidateManualStatus:
    def test_rejects_completed_with_open_action(self) -> None:
        result = validate_manual_status(1, "Completed", _actions("Completed", "Open"))
        assert result.allowed is False
        assert result.labels == ["ACT-2"]
        assert "1 of 2" in result.message
        assert "not completed" in result.message

    def test_falls_back_to_numeric_label(self) -> None:
        result = validate_manual_status(5, Status.CLOSED, _actions("Closed", "Open", "Completed", refs=False))
        assert result.labels == ["Action #2", "Action #3"]
        assert "2 of 3" in result.message
        assert "not closed" in result.message

    def test_risk_accepted_message(self) -> None:
        result = validate_manual_status(1, "risk accepted", _actions("Closed"))
        assert not result.allowed
        assert "not risk accepted" in result.message
        assert result.rejected_because[0].action_id == 1

    @pytest.mark.parametrize("target", ["Completed", "Closed", "Risk Accepted"])
    def test_allowed_when_every_action_agrees(self, target: str) -> None:
        loose = f"  {target.upper()} "
        result = validate_manual_status(1, target, _actions(target, loose))
        assert result.allowed is True
        assert result.rejected_because == ()

    @pytest.mark.parametrize("target", ["Open", "Completed", "Closed", "Risk Accepted"])
    def test_no_actions_always_allowed(self, target: str) -> None:
        assert validate_manual_status(1, target, []).allowed is True

    def test_open_always_allowed(self) -> None:
        assert validate_manual_status(1, "Open", _actions("Completed", "Closed")).allowed is True

    @pytest.mark.parametrize("target", ["Completed", "Closed", "Risk Accepted"])
    @pytest.mark.parametrize(
        "statuses",
        [
            ("Completed",), ("Closed",), ("Risk Accepted",), ("Open",), ("Overdue",),
            ("Completed", "Closed"), ("Risk Accepted", "Risk Accepted"), ("Completed", "Completed"),
        ],
    )
    def test_symmetry(self, target: str, statuses: tuple[str, ...]) -> None:
        result = validate_manual_status(1, target, _actions(*statuses))
        assert result.allowed == all(s == target for s in statuses)

    def test_overdue_is_not_selectable(self) -> None:
        with pytest.raises(StatusNotSelectable):
            validate_manual_status(1, "Overdue", [])

    def test_unknown_target(self) -> None:
        with pytest.raises(StatusUnknown):
            validate_manual_status(1, "Done", [])
