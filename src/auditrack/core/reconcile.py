"""Reconciliation coordinator.

Keeps Action and Finding statuses consistent with the calendar and with
each other.  One pass over a Finding:

1. Re-derive every Action's Open/Overdue status for today
   (:func:`auditrack.core.state.transition_action`) and persist the ones that
   changed.  The updates for one Finding are issued concurrently.
2. Once they have all settled, aggregate the Finding's Actions
   (:func:`auditrack.core.state.aggregate`).
3. Persist the Finding if the derived status differs from the stored one.

Passes over different Findings are independent and run concurrently.

Triggers
--------
* ``start_periodic()``: one sweep over every Finding at start, then a sweep
  of the resident :class:`WorkingSet` every ``interval_seconds``.
* ``reconcile_finding()`` / ``submit()``: after a direct Action edit, scoped
  to the parent Finding (Actions are re-read from the store first).
* ``reconcile_all()``: after a batch load, scoped to the loaded Findings.

Failure policy
--------------
Automatic writes are background work.  Under
:attr:`FailurePolicy.BEST_EFFORT` a failing store call is logged
(``reconcile_write_failed``) and recorded on the :class:`SweepReport`, and
the pass moves on to the next Action / Finding; the next sweep retries.
:attr:`FailurePolicy.STRICT` re-raises instead.

There are no locks.  A periodic sweep and an on-demand pass may race on the
same Finding; the last write wins and, because both steps are pure functions
of current Action state, the following pass converges.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from enum import Enum

import structlog

from auditrack.core.clock import Clock, SystemClock
from auditrack.core.errors import FindingNotFound
from auditrack.core.models import Action, Status, same_status
from auditrack.core.state import TransitionEvent, aggregate, make_event, transition_action
from auditrack.core.store import FindingStore, HistorySink
from auditrack.core.validation import ValidationResult, validate_manual_status

logger = structlog.get_logger()

DEFAULT_INTERVAL_SECONDS = 60.0


class FailurePolicy(str, Enum):
    BEST_EFFORT = "best_effort"
    STRICT = "strict"


@dataclass(frozen=True)
class WriteFailure:
    operation: str
    entity_type: str
    entity_id: int
    error: str


@dataclass
class SweepReport:
    """What one pass (or sweep) did."""

    finding_ids: list[int] = field(default_factory=list)
    transitions: list[TransitionEvent] = field(default_factory=list)
    derived: list[TransitionEvent] = field(default_factory=list)
    failures: list[WriteFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def changed(self) -> int:
        return len(self.transitions) + len(self.derived)


class WorkingSet:
    """In-memory Finding id → Actions map.

    A cache refreshed by explicit loads; the store stays authoritative.
    """

    def __init__(self) -> None:
        self._actions: dict[int, list[Action]] = {}

    def load(self, finding_id: int, actions: Iterable[Action]) -> None:
        self._actions[finding_id] = list(actions)

    def get(self, finding_id: int) -> list[Action]:
        return list(self._actions.get(finding_id, ()))

    def put(self, action: Action) -> None:
        current = self._actions.setdefault(action.finding_id, [])
        for i, existing in enumerate(current):
            if existing.id == action.id:
                current[i] = action
                return
        current.append(action)

    def discard(self, finding_id: int) -> None:
        self._actions.pop(finding_id, None)

    def finding_ids(self) -> list[int]:
        return list(self._actions)

    def __contains__(self, finding_id: object) -> bool:
        return finding_id in self._actions

    def __len__(self) -> int:
        return len(self._actions)


class ReconciliationCoordinator:
    def __init__(
        self,
        store: FindingStore,
        *,
        clock: Clock | None = None,
        history: HistorySink | None = None,
        policy: FailurePolicy = FailurePolicy.BEST_EFFORT,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        working_set: WorkingSet | None = None,
    ) -> None:
        self.store = store
        self.clock = clock or SystemClock()
        self.history = history
        self.policy = policy
        self.interval_seconds = interval_seconds
        self.working_set = working_set or WorkingSet()
        self._periodic: asyncio.Task[None] | None = None
        self._stopping: asyncio.Event | None = None
        self._inflight: set[asyncio.Task[SweepReport]] = set()

    # ── Public API ──────────────────────────────────────────
    async def load(self, finding_ids: Iterable[int]) -> SweepReport:
        """Refresh the working set for *finding_ids* from the store."""
        report = SweepReport()
        await self._load(list(dict.fromkeys(finding_ids)), report)
        return report

    async def reconcile_finding(self, finding_id: int) -> SweepReport:
        """Reload one Finding's Actions and run a pass over it."""
        return await self.reconcile_all([finding_id])

    async def reconcile_all(self, finding_ids: Iterable[int]) -> SweepReport:
        """Reload the given Findings' Actions and run a pass over each."""
        report = SweepReport()
        loaded = await self._load(list(dict.fromkeys(finding_ids)), report)
        await asyncio.gather(*(self._reconcile_loaded(fid, report) for fid in loaded))
        return report

    async def sweep(self) -> SweepReport:
        """Run a pass over every Finding already resident in the working set."""
        report = SweepReport()
        resident = self.working_set.finding_ids()
        report.finding_ids.extend(resident)
        await asyncio.gather(*(self._reconcile_loaded(fid, report) for fid in resident))
        logger.info(
            "sweep_completed",
            findings=len(resident),
            actions_transitioned=len(report.transitions),
            findings_updated=len(report.derived),
            failures=len(report.failures),
        )
        return report

    async def startup(self) -> SweepReport:
        """Load and reconcile every Finding the store knows about."""
        try:
            finding_ids = await self.store.list_finding_ids()
        except Exception as exc:
            report = SweepReport()
            self._fail(report, "list_findings", "finding", 0, exc)
            return report
        report = await self.reconcile_all(finding_ids)
        logger.info(
            "startup_reconciled",
            findings=len(report.finding_ids),
            actions_transitioned=len(report.transitions),
            findings_updated=len(report.derived),
            failures=len(report.failures),
        )
        return report

    def submit(self, finding_id: int) -> asyncio.Task[SweepReport]:
        """Schedule :meth:`reconcile_finding` and return its task.

        The caller may await the task or drop it; :meth:`stop` waits for
        tasks still in flight.
        """
        task = asyncio.get_running_loop().create_task(self.reconcile_finding(finding_id))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    def forget(self, finding_id: int) -> None:
        self.working_set.discard(finding_id)

    async def validate_manual_status(
        self, finding_id: int, target_status: str | Status
    ) -> ValidationResult:
        """Validate a user-requested Finding status against fresh Actions.

        Store errors propagate: this is a user-facing path.
        """
        await self.store.get_finding(finding_id)
        actions = await self.store.list_actions(finding_id)
        self.working_set.load(finding_id, actions)
        return validate_manual_status(finding_id, target_status, actions)

    # ── Periodic lifecycle ──────────────────────────────────
    @property
    def running(self) -> bool:
        return self._periodic is not None and not self._periodic.done()

    def start_periodic(
        self,
        interval_seconds: float | None = None,
        *,
        run_on_start: bool = True,
    ) -> asyncio.Task[None]:
        """Start the background timer.  Must be called from a running loop."""
        if self.running:
            raise RuntimeError("periodic reconciliation is already running")
        interval = self.interval_seconds if interval_seconds is None else interval_seconds
        if interval <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval}")
        self.interval_seconds = interval
        self._stopping = asyncio.Event()
        self._periodic = asyncio.get_running_loop().create_task(
            self._run_periodic(interval, run_on_start), name="auditrack-reconcile"
        )
        return self._periodic

    async def stop(self) -> None:
        """Stop the timer after the current sweep; wait for submitted passes."""
        if self._stopping is not None:
            self._stopping.set()
        if self._periodic is not None:
            task, self._periodic = self._periodic, None
            await task
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _run_periodic(self, interval: float, run_on_start: bool) -> None:
        assert self._stopping is not None
        logger.info("periodic_reconciliation_started", interval_seconds=interval)
        if run_on_start:
            await self.startup()
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except asyncio.TimeoutError:
                await self.sweep()
        logger.info("periodic_reconciliation_stopped")

    # ── Internals ───────────────────────────────────────────
    async def _load(self, finding_ids: list[int], report: SweepReport) -> list[int]:
        found = await asyncio.gather(
            *(self.store.get_finding(fid) for fid in finding_ids), return_exceptions=True
        )
        existing: list[int] = []
        for finding_id, result in zip(finding_ids, found):
            if isinstance(result, FindingNotFound):
                self.working_set.discard(finding_id)
                logger.warning("finding_not_found", finding_id=finding_id)
            elif isinstance(result, BaseException):
                self._fail(report, "get_finding", "finding", finding_id, result)
            else:
                existing.append(finding_id)

        results = await asyncio.gather(
            *(self.store.list_actions(fid) for fid in existing), return_exceptions=True
        )
        loaded: list[int] = []
        for finding_id, result in zip(existing, results):
            if isinstance(result, BaseException):
                self._fail(report, "list_actions", "finding", finding_id, result)
                continue
            self.working_set.load(finding_id, result)
            loaded.append(finding_id)
        report.finding_ids.extend(loaded)
        return loaded

    async def _reconcile_loaded(self, finding_id: int, report: SweepReport) -> None:
        today = self.clock.today()

        # 1. fan out the Action transitions
        pending: list[tuple[Action, Action]] = []
        for action in self.working_set.get(finding_id):
            try:
                updated = transition_action(action, today)
            except Exception as exc:
                self._fail(report, "transition_action", "action", action.id, exc)
                continue
            if updated is not action:
                pending.append((action, updated))

        results = await asyncio.gather(
            *(self.store.update_action(new.id, new) for _, new in pending),
            return_exceptions=True,
        )

        # 2. join
        for (old, new), result in zip(pending, results):
            if isinstance(result, BaseException):
                self._fail(report, "update_action", "action", old.id, result)
                continue
            self.working_set.put(result)
            event = make_event("action", old.id, old.status, result.status, source="auto")
            report.transitions.append(event)
            logger.info(
                "action_transitioned",
                finding_id=finding_id,
                action_id=old.id,
                from_status=old.status,
                to_status=result.status,
                due_date=old.due_date,
            )
            await self._record(event, report, notes=f"due {old.due_date}, today {today}")

        # 3. aggregate + write back
        try:
            derived = aggregate(self.working_set.get(finding_id))
        except Exception as exc:
            self._fail(report, "aggregate", "finding", finding_id, exc)
            return
        if derived is None:
            return

        try:
            finding = await self.store.get_finding(finding_id)
            if same_status(finding.status, derived):
                return
            stored = await self.store.update_finding(finding_id, replace(finding, status=derived.value))
        except FindingNotFound as exc:
            self.working_set.discard(finding_id)
            self._fail(report, "update_finding", "finding", finding_id, exc)
            return
        except Exception as exc:
            self._fail(report, "update_finding", "finding", finding_id, exc)
            return

        event = make_event("finding", finding_id, finding.status, stored.status, source="auto")
        report.derived.append(event)
        logger.info(
            "finding_status_derived",
            finding_id=finding_id,
            from_status=finding.status,
            to_status=stored.status,
        )
        await self._record(event, report, notes="derived from action statuses")

    async def _record(self, event: TransitionEvent, report: SweepReport, *, notes: str) -> None:
        if self.history is None:
            return
        try:
            await self.history.append_history(event, notes=notes)
        except Exception as exc:
            self._fail(report, "append_history", event.entity_type, event.entity_id, exc)

    def _fail(
        self,
        report: SweepReport,
        operation: str,
        entity_type: str,
        entity_id: int,
        exc: BaseException,
    ) -> None:
        if not isinstance(exc, Exception) or self.policy is FailurePolicy.STRICT:
            raise exc
        report.failures.append(
            WriteFailure(
                operation=operation,
                entity_type=entity_type,
                entity_id=entity_id,
                error=f"{type(exc).__name__}: {exc}",
            )
        )
        logger.warning(
            "reconcile_write_failed",
            operation=operation,
            entity_type=entity_type,
            entity_id=entity_id,
            error=str(exc),
            error_type=type(exc).__name__,
            policy=self.policy.value,
        )
