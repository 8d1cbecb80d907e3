"""Tests for auditrack.core.models: status taxonomy and records."""

from __future__ import annotations

import pytest

from auditrack.core.errors import StatusUnknown
from auditrack.core.models import (
    FINDING_STATUSES,
    SELECTABLE,
    TRACKED,
    UNTRACKED,
    Action,
    Status,
    normalize_status,
    parse_status,
    same_status,
)


# ── Normalisation ───────────────────────────────────────────
@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Open", Status.OPEN),
        ("  open ", Status.OPEN),
        ("OVERDUE", Status.OVERDUE),
        ("COMPLETED", Status.COMPLETED),
        ("RISK ACCEPTED", Status.RISK_ACCEPTED),
        ("risk   accepted", Status.RISK_ACCEPTED),
        ("\tClosed\n", Status.CLOSED),
    ],
)
def test_parse_status_is_case_and_space_insensitive(raw: str, expected: Status) -> None:
    assert parse_status(raw) is expected


def test_parse_status_passes_members_through() -> None:
    assert parse_status(Status.CLOSED) is Status.CLOSED


@pytest.mark.parametrize("raw", ["In Progress", "", "done", "Risk"])
def test_parse_status_rejects_unknown(raw: str) -> None:
    with pytest.raises(StatusUnknown) as info:
        parse_status(raw)
    assert info.value.raw == raw


def test_normalize_status() -> None:
    assert normalize_status("  Risk  ACCEPTED ") == "risk accepted"


def test_same_status_mixes_strings_and_members() -> None:
    assert same_status(" completed", Status.COMPLETED)
    assert same_status(Status.OPEN, "OPEN")
    assert not same_status("Open", "Overdue")


# ── Partitions ──────────────────────────────────────────────
def test_tracked_and_untracked_partition_the_taxonomy() -> None:
    assert TRACKED | UNTRACKED == set(Status)
    assert not TRACKED & UNTRACKED


def test_overdue_is_never_selectable() -> None:
    assert Status.OVERDUE not in SELECTABLE
    assert Status.OVERDUE not in FINDING_STATUSES
    assert SELECTABLE == set(Status) - {Status.OVERDUE}


# ── Records ─────────────────────────────────────────────────
def test_action_label_prefers_human_ref() -> None:
    a = Action(id=7, finding_id=1, status="Open", action_ref="ACT-7")
    assert a.label == "ACT-7"


def test_action_label_falls_back_to_numeric_id() -> None:
    assert Action(id=7, finding_id=1, status="Open").label == "Action #7"
    assert Action(id=8, finding_id=1, status="Open", action_ref="   ").label == "Action #8"
