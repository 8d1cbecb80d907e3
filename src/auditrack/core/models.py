"""auditrack domain models: status taxonomy and the Finding / Action records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum

from auditrack.core.errors import StatusUnknown


class Status(str, Enum):
    OPEN = "Open"
    OVERDUE = "Overdue"
    COMPLETED = "Completed"
    RISK_ACCEPTED = "Risk Accepted"
    CLOSED = "Closed"


def normalize_status(raw: str) -> str:
    """Comparison key for a status string: trimmed, single-spaced, case-folded."""
    return " ".join(str(raw).split()).casefold()


_BY_KEY: dict[str, Status] = {normalize_status(s.value): s for s in Status}


def parse_status(raw: str | Status) -> Status:
    """Map a loosely-cased status string onto the taxonomy.

    Raises
    ------
    StatusUnknown
        If *raw* is not one of the five taxonomy values.
    """
    if isinstance(raw, Status):
        return raw
    try:
        return _BY_KEY[normalize_status(raw)]
    except KeyError:
        raise StatusUnknown(str(raw)) from None


def same_status(a: str | Status, b: str | Status) -> bool:
    """Case/space-insensitive status equality."""
    a_val = a.value if isinstance(a, Status) else a
    b_val = b.value if isinstance(b, Status) else b
    return normalize_status(a_val) == normalize_status(b_val)


# Partitions
TRACKED: frozenset[Status] = frozenset({Status.OPEN, Status.OVERDUE, Status.COMPLETED})
UNTRACKED: frozenset[Status] = frozenset({Status.CLOSED, Status.RISK_ACCEPTED})
# Overdue is always machine-derived.
SELECTABLE: frozenset[Status] = frozenset(
    {Status.OPEN, Status.COMPLETED, Status.CLOSED, Status.RISK_ACCEPTED}
)
FINDING_STATUSES: frozenset[Status] = SELECTABLE


@dataclass(frozen=True)
class Finding:
    """An audit observation."""

    id: int
    status: str
    name: str
    finding_ref: str | None = None
    description: str | None = None
    audit_name: str | None = None
    audit_year: str | None = None
    risk_level: str | None = None
    financial_impact: float | None = None
    created_utc: str = ""
    updated_utc: str = ""


@dataclass(frozen=True)
class Action:
    """A remediation task owned by a Finding."""

    id: int
    finding_id: int
    status: str
    due_date: date | None = None
    action_ref: str | None = None
    description: str | None = None
    audit_lead: str | None = None
    responsible: str | None = None
    responsible_email: str | None = None
    created_utc: str = ""
    updated_utc: str = ""

    @property
    def label(self) -> str:
        """Human-readable identifier, ``Action #<id>`` when no ref exists."""
        ref = (self.action_ref or "").strip()
        return ref or f"Action #{self.id}"
