"""Manual status override validation.

A user may pick ``Open``, ``Completed``, ``Closed`` or ``Risk Accepted`` for
a Finding.  Anything other than ``Open`` is only legal when every Action
agrees with it; otherwise the caller gets a structured rejection naming the
offending actions, which it must show to the user as-is.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from auditrack.core.errors import StatusNotSelectable
from auditrack.core.models import SELECTABLE, Action, Status, parse_status


@dataclass(frozen=True)
class ActionRef:
    action_id: int
    label: str


@dataclass(frozen=True)
class ValidationResult:
    allowed: bool
    rejected_because: tuple[ActionRef, ...] = ()
    message: str = ""

    @property
    def labels(self) -> list[str]:
        return [ref.label for ref in self.rejected_because]


_ALLOWED = ValidationResult(allowed=True)

_PHRASES: dict[Status, str] = {
    Status.COMPLETED: "not completed",
    Status.CLOSED: "not closed",
    Status.RISK_ACCEPTED: "not risk accepted",
}


def validate_manual_status(
    finding_id: int,
    target_status: str | Status,
    actions: Sequence[Action],
) -> ValidationResult:
    """Decide whether *finding_id* may be set to *target_status* by hand.

    *actions* must be the Finding's freshly loaded Actions.

    Raises
    ------
    StatusNotSelectable
        If *target_status* is ``Overdue`` (machine-derived only).
    StatusUnknown
        If *target_status* is not a taxonomy value.
    """
    target = parse_status(target_status)
    if target not in SELECTABLE:
        raise StatusNotSelectable(target.value)

    if not actions or target is Status.OPEN:
        return _ALLOWED

    offending = [a for a in actions if parse_status(a.status) is not target]
    if not offending:
        return _ALLOWED

    message = (
        f"Cannot set finding #{finding_id} to {target.value}: "
        f"{len(offending)} of {len(actions)} actions are {_PHRASES[target]}."
    )
    return ValidationResult(
        allowed=False,
        rejected_because=tuple(ActionRef(action_id=a.id, label=a.label) for a in offending),
        message=message,
    )
