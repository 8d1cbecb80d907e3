"""Dashboard statistics over Actions."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from auditrack.core.errors import StatusUnknown
from auditrack.core.models import Action, Finding, Status, parse_status


@dataclass(frozen=True)
class DashboardStats:
    total: int
    by_status: dict[Status, int]
    completion_rate: str  # percent, one decimal
    overdue_rate: str
    money_open: float
    money_overdue: float
    financial_impact: float  # unique parents with any Open or Overdue action
    unresolved_findings: int

    def count(self, status: Status) -> int:
        return self.by_status.get(status, 0)


def _rate(part: int, whole: int) -> str:
    return f"{part / whole * 100:.1f}" if whole else "0.0"


def summarize(actions: Sequence[Action], findings: Iterable[Finding] = ()) -> DashboardStats:
    """Count actions per status and total the exposure still open.

    A Finding's ``financial_impact`` is counted once per bucket however many
    of its Actions are Open (or Overdue), and once in the total even when it
    has both.  Actions with a status outside the taxonomy are counted in
    ``total`` only.
    """
    impact = {f.id: f.financial_impact or 0.0 for f in findings}
    by_status: dict[Status, int] = {s: 0 for s in Status}
    open_parents: set[int] = set()
    overdue_parents: set[int] = set()

    for action in actions:
        try:
            status = parse_status(action.status)
        except StatusUnknown:
            continue
        by_status[status] += 1
        if status is Status.OPEN:
            open_parents.add(action.finding_id)
        elif status is Status.OVERDUE:
            overdue_parents.add(action.finding_id)

    total = len(actions)
    unresolved = open_parents | overdue_parents
    return DashboardStats(
        total=total,
        by_status=by_status,
        completion_rate=_rate(by_status[Status.COMPLETED], total),
        overdue_rate=_rate(by_status[Status.OVERDUE], total),
        money_open=sum(impact.get(fid, 0.0) for fid in open_parents),
        money_overdue=sum(impact.get(fid, 0.0) for fid in overdue_parents),
        financial_impact=sum(impact.get(fid, 0.0) for fid in unresolved),
        unresolved_findings=len(unresolved),
    )
