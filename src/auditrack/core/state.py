from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone

from auditrack.core.models import TRACKED, Action, Status, parse_status


# Only these two states move with the calendar.
DATE_DRIVEN: frozenset[Status] = frozenset({Status.OPEN, Status.OVERDUE})


@dataclass(frozen=True)
class TransitionEvent:
    entity_type: str  # "finding" | "action"
    entity_id: int
    from_status: str
    to_status: str
    source: str  # "created" | "manual" | "auto"
    at_utc: str  # ISO string


def is_past_due(due_date: date | None, today: date) -> bool:
    """Strictly earlier than *today*; a same-day due date is not past due."""
    return due_date is not None and due_date < today


def transition_action(action: Action, today: date) -> Action:
    """Return *action* with its Open/Overdue status re-derived for *today*.

    Statuses other than Open and Overdue, and actions without a due date,
    come back unchanged (the same object).

    Raises
    ------
    StatusUnknown
        If the action carries a status outside the taxonomy.
    """
    current = parse_status(action.status)
    if current not in DATE_DRIVEN or action.due_date is None:
        return action

    if current is Status.OPEN and is_past_due(action.due_date, today):
        return replace(action, status=Status.OVERDUE.value)
    if current is Status.OVERDUE and not is_past_due(action.due_date, today):
        return replace(action, status=Status.OPEN.value)
    return action


def aggregate(actions: Iterable[Action]) -> Status | None:
    """Derive a Finding's status from the full set of its Actions.

    Returns ``None`` for an empty set: absence of actions never forces a
    status change.
    """
    statuses = [parse_status(a.status) for a in actions]
    if not statuses:
        return None

    tracked = [s for s in statuses if s in TRACKED]
    if not tracked:
        if Status.RISK_ACCEPTED in statuses:
            return Status.RISK_ACCEPTED
        return Status.CLOSED

    if all(s is Status.COMPLETED for s in tracked):
        return Status.COMPLETED
    return Status.OPEN


def make_event(
    entity_type: str,
    entity_id: int,
    from_status: str | Status,
    to_status: str | Status,
    *,
    source: str,
) -> TransitionEvent:
    return TransitionEvent(
        entity_type=entity_type,
        entity_id=entity_id,
        from_status=from_status.value if isinstance(from_status, Status) else from_status,
        to_status=to_status.value if isinstance(to_status, Status) else to_status,
        source=source,
        at_utc=datetime.now(timezone.utc).isoformat(),
    )
