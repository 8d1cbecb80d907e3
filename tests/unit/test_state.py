"""Tests for auditrack.core.state: overdue transitioner and status aggregator."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from auditrack.core.errors import StatusUnknown
from auditrack.core.models import Action, Status
from auditrack.core.state import aggregate, is_past_due, make_event, transition_action

TODAY = date(2024, 6, 1)


def _action(status: str, due: date | None = TODAY, action_id: int = 1) -> Action:
    return Action(id=action_id, finding_id=1, status=status, due_date=due, description="keep me")


def _statuses(*names: str) -> list[Action]:
    return [_action(n, action_id=i) for i, n in enumerate(names, start=1)]


# ── Overdue transitioner ────────────────────────────────────
class TestTransitionAction:
    def test_open_past_due_becomes_overdue(self) -> None:
        a = _action("Open", date(2024, 1, 1))
        out = transition_action(a, TODAY)
        assert out.status == Status.OVERDUE.value

    def test_other_fields_carried_forward(self) -> None:
        a = _action("Open", date(2024, 1, 1))
        out = transition_action(a, TODAY)
        assert (out.id, out.finding_id, out.due_date, out.description) == (
            a.id, a.finding_id, a.due_date, a.description,
        )

    def test_same_day_is_not_overdue(self) -> None:
        a = _action("Open", TODAY)
        assert transition_action(a, TODAY) is a

    def test_one_day_late_is_overdue(self) -> None:
        a = _action("Open", TODAY - timedelta(days=1))
        assert transition_action(a, TODAY).status == "Overdue"

    def test_overdue_with_future_date_reopens(self) -> None:
        a = _action("Overdue", TODAY + timedelta(days=10))
        assert transition_action(a, TODAY).status == "Open"

    def test_overdue_due_today_reopens(self) -> None:
        a = _action("Overdue", TODAY)
        assert transition_action(a, TODAY).status == "Open"

    def test_overdue_still_late_unchanged(self) -> None:
        a = _action("Overdue", TODAY - timedelta(days=3))
        assert transition_action(a, TODAY) is a

    def test_loose_casing_is_understood(self) -> None:
        a = _action("  OPEN ", date(2024, 1, 1))
        assert transition_action(a, TODAY).status == "Overdue"

    def test_missing_due_date_unchanged(self) -> None:
        for status in ("Open", "Overdue"):
            a = _action(status, None)
            assert transition_action(a, TODAY) is a

    @pytest.mark.parametrize("status", ["Completed", "Closed", "Risk Accepted"])
    def test_terminal_statuses_never_move(self, status: str) -> None:
        a = _action(status, date(2020, 1, 1))
        assert transition_action(a, TODAY) is a

    def test_unknown_status_raises(self) -> None:
        with pytest.raises(StatusUnknown):
            transition_action(_action("In Progress"), TODAY)

    @pytest.mark.parametrize("status", ["Open", "Overdue", "Completed", "Closed", "Risk Accepted"])
    @pytest.mark.parametrize("offset", [-30, -1, 0, 1, 30])
    def test_idempotent(self, status: str, offset: int) -> None:
        a = _action(status, TODAY + timedelta(days=offset))
        once = transition_action(a, TODAY)
        assert transition_action(once, TODAY) == once


def test_is_past_due() -> None:
    assert is_past_due(TODAY - timedelta(days=1), TODAY)
    assert not is_past_due(TODAY, TODAY)
    assert not is_past_due(None, TODAY)


# ── Aggregator ──────────────────────────────────────────────
class TestAggregate:
    def test_empty_produces_no_result(self) -> None:
        assert aggregate([]) is None

    def test_mixed_with_open_is_open(self) -> None:
        assert aggregate(_statuses("Completed", "Open", "Closed")) is Status.OPEN

    def test_overdue_counts_as_outstanding(self) -> None:
        assert aggregate(_statuses("Completed", "Overdue")) is Status.OPEN

    def test_all_completed(self) -> None:
        assert aggregate(_statuses("Completed", "Completed")) is Status.COMPLETED

    def test_completed_with_untracked_is_completed(self) -> None:
        assert aggregate(_statuses("Completed", "Closed", "Risk Accepted")) is Status.COMPLETED

    def test_risk_accepted_dominates_closed(self) -> None:
        assert aggregate(_statuses("Closed", "Risk Accepted")) is Status.RISK_ACCEPTED

    def test_all_closed(self) -> None:
        assert aggregate(_statuses("Closed", "closed ")) is Status.CLOSED

    def test_all_risk_accepted(self) -> None:
        assert aggregate(_statuses("RISK ACCEPTED")) is Status.RISK_ACCEPTED

    def test_adding_open_breaks_completeness(self) -> None:
        done = _statuses("Completed", "Completed", "Completed")
        assert aggregate(done) is Status.COMPLETED
        assert aggregate([*done, _action("Open", action_id=99)]) is Status.OPEN

    @pytest.mark.parametrize(
        "names",
        [
            ("Open",), ("Overdue",), ("Completed",), ("Closed",), ("Risk Accepted",),
            ("Overdue", "Overdue"), ("Overdue", "Closed"), ("Open", "Risk Accepted"),
        ],
    )
    def test_never_overdue(self, names: tuple[str, ...]) -> None:
        result = aggregate(_statuses(*names))
        assert result in set(Status)
        assert result is not Status.OVERDUE

    def test_unknown_status_raises(self) -> None:
        with pytest.raises(StatusUnknown):
            aggregate(_statuses("Open", "Pending"))


def test_make_event_unwraps_enum_values() -> None:
    ev = make_event("action", 3, Status.OPEN, Status.OVERDUE, source="auto")
    assert (ev.from_status, ev.to_status) == ("Open", "Overdue")
    assert ev.entity_type == "action" and ev.entity_id == 3
    assert "T" in ev.at_utc
