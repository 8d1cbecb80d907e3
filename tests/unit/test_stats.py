"""Tests for auditrack.core.stats: dashboard figures."""

from __future__ import annotations

from auditrack.core.models import Action, Finding, Status
from auditrack.core.stats import summarize


def _a(i: int, finding_id: int, status: str) -> Action:
    return Action(id=i, finding_id=finding_id, status=status)


FINDINGS = [
    Finding(id=1, status="Open", name="a", financial_impact=1000.0),
    Finding(id=2, status="Open", name="b", financial_impact=250.0),
    Finding(id=3, status="Completed", name="c", financial_impact=None),
]


def test_empty() -> None:
    stats = summarize([])
    assert stats.total == 0
    assert stats.completion_rate == "0.0"
    assert stats.overdue_rate == "0.0"
    assert stats.financial_impact == 0.0


def test_counts_and_rates() -> None:
    actions = [
        _a(1, 1, "Open"),
        _a(2, 1, "Completed"),
        _a(3, 2, "Overdue"),
        _a(4, 3, "Completed"),
        _a(5, 3, "Closed"),
        _a(6, 3, "Risk Accepted"),
    ]
    stats = summarize(actions, FINDINGS)
    assert stats.total == 6
    assert stats.count(Status.COMPLETED) == 2
    assert stats.count(Status.OVERDUE) == 1
    assert stats.count(Status.RISK_ACCEPTED) == 1
    assert stats.completion_rate == "33.3"
    assert stats.overdue_rate == "16.7"


def test_money_counts_each_finding_once_per_bucket() -> None:
    actions = [
        _a(1, 1, "Open"),
        _a(2, 1, "Open"),
        _a(3, 1, "Overdue"),
        _a(4, 2, "Overdue"),
        _a(5, 3, "Open"),
    ]
    stats = summarize(actions, FINDINGS)
    assert stats.money_open == 1000.0
    assert stats.money_overdue == 1250.0
    assert stats.financial_impact == 1250.0
    assert stats.unresolved_findings == 3


def test_total_counts_finding_with_open_and_overdue_once() -> None:
    stats = summarize([_a(1, 1, "Open"), _a(2, 1, "Overdue")], FINDINGS)
    assert stats.money_open == 1000.0
    assert stats.money_overdue == 1000.0
    assert stats.financial_impact == 1000.0
    assert stats.unresolved_findings == 1


def test_loose_and_unknown_statuses() -> None:
    stats = summarize([_a(1, 1, " completed "), _a(2, 1, "In Progress")])
    assert stats.total == 2
    assert stats.count(Status.COMPLETED) == 1
    assert stats.completion_rate == "50.0"
