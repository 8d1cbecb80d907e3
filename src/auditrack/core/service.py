"""Tracker service: the CRUD surface the CLI (or any UI) talks to.

Wraps the store and the reconciliation coordinator so that the status rules
hold no matter which entry point edits a record:

* every Action create / update / delete is followed by a pass over its
  parent Finding, awaited before the call returns;
* a Finding's status only changes through :meth:`set_finding_status`, which
  validates against freshly loaded Actions and never writes on rejection;
* ``Overdue`` can never be chosen by hand, for either entity.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Any

import structlog

from auditrack.core.errors import StatusNotSelectable
from auditrack.core.models import SELECTABLE, Action, Finding, Status, parse_status, same_status
from auditrack.core.reconcile import ReconciliationCoordinator, SweepReport
from auditrack.core.state import make_event
from auditrack.core.store import SqliteStore
from auditrack.core.validation import ValidationResult

logger = structlog.get_logger()

_IMMUTABLE = frozenset({"id", "finding_id", "created_utc", "updated_utc"})


def _selectable(status: str | Status) -> Status:
    state = parse_status(status)
    if state not in SELECTABLE:
        raise StatusNotSelectable(state.value)
    return state


class TrackerService:
    def __init__(self, store: SqliteStore, coordinator: ReconciliationCoordinator) -> None:
        self.store = store
        self.coordinator = coordinator

    # ── Findings ────────────────────────────────────────────
    async def create_finding(self, *, name: str, **fields: Any) -> Finding:
        """Create a Finding in ``Open``."""
        if "status" in fields:
            raise ValueError("new findings always start Open")
        finding = await self.store.create_finding(name=name, **fields)
        await self.store.append_history(
            make_event("finding", finding.id, finding.status, finding.status, source="created"),
            notes="finding created",
        )
        self.coordinator.working_set.load(finding.id, [])
        logger.info("finding_created", finding_id=finding.id, finding_ref=finding.finding_ref)
        return finding

    async def edit_finding(self, finding_id: int, **changes: Any) -> Finding:
        """Edit descriptive fields; the stored status is resubmitted unchanged."""
        if "status" in changes:
            raise ValueError("use set_finding_status() to change a finding's status")
        bad = _IMMUTABLE & changes.keys()
        if bad:
            raise ValueError(f"immutable fields: {', '.join(sorted(bad))}")
        current = await self.store.get_finding(finding_id)
        return await self.store.update_finding(finding_id, replace(current, **changes))

    async def delete_finding(self, finding_id: int) -> None:
        await self.store.delete_finding(finding_id)
        self.coordinator.forget(finding_id)
        logger.info("finding_deleted", finding_id=finding_id)

    async def set_finding_status(
        self, finding_id: int, status: str | Status, *, notes: str = ""
    ) -> ValidationResult:
        """Manual override.  Returns the validation result; writes only if allowed.

        Raises
        ------
        StatusNotSelectable
            For ``Overdue``.
        FindingNotFound
            If the finding does not exist.
        """
        result = await self.coordinator.validate_manual_status(finding_id, status)
        if not result.allowed:
            logger.info(
                "manual_status_rejected",
                finding_id=finding_id,
                target=parse_status(status).value,
                rejected=result.labels,
            )
            return result

        target = parse_status(status)
        finding = await self.store.get_finding(finding_id)
        if same_status(finding.status, target):
            return result
        stored = await self.store.update_finding(finding_id, replace(finding, status=target.value))
        await self.store.append_history(
            make_event("finding", finding_id, finding.status, stored.status, source="manual"),
            notes=notes,
        )
        logger.info(
            "manual_status_applied",
            finding_id=finding_id,
            from_status=finding.status,
            to_status=stored.status,
        )
        return result

    # ── Actions ─────────────────────────────────────────────
    async def add_action(
        self,
        finding_id: int,
        *,
        due_date: date | None,
        status: str | Status = Status.OPEN,
        reconcile: bool = True,
        **fields: Any,
    ) -> Action:
        """Create an Action, reconcile its Finding, return the re-read Action.

        Batch importers pass ``reconcile=False`` and reconcile once at the end.
        """
        state = _selectable(status)
        action = await self.store.create_action(
            finding_id=finding_id, due_date=due_date, status=state, **fields
        )
        await self.store.append_history(
            make_event("action", action.id, action.status, action.status, source="created"),
            notes="action created",
        )
        logger.info("action_created", finding_id=finding_id, action_id=action.id)
        if not reconcile:
            return action
        await self.coordinator.reconcile_finding(finding_id)
        return await self.store.get_action(action.id)

    async def update_action(self, action_id: int, **changes: Any) -> Action:
        """Full-record update of an Action, then reconcile its Finding."""
        bad = _IMMUTABLE & changes.keys()
        if bad:
            raise ValueError(f"immutable fields: {', '.join(sorted(bad))}")
        if "status" in changes:
            changes["status"] = _selectable(changes["status"]).value

        current = await self.store.get_action(action_id)
        stored = await self.store.update_action(action_id, replace(current, **changes))
        if not same_status(current.status, stored.status):
            await self.store.append_history(
                make_event("action", action_id, current.status, stored.status, source="manual"),
            )
        await self.coordinator.reconcile_finding(stored.finding_id)
        return await self.store.get_action(action_id)

    async def set_action_status(self, action_id: int, status: str | Status) -> Action:
        return await self.update_action(action_id, status=status)

    async def delete_action(self, action_id: int) -> SweepReport:
        """Delete an Action; its Finding is reconciled over the remaining ones."""
        removed = await self.store.delete_action(action_id)
        logger.info("action_deleted", finding_id=removed.finding_id, action_id=action_id)
        return await self.coordinator.reconcile_finding(removed.finding_id)
