"""The Finding/Action store as seen by the reconciliation engine.

The engine only talks to the :class:`FindingStore` protocol (async, keyed by
numeric id, full-record updates).  :class:`SqliteStore` implements it on top
of :mod:`auditrack.core.repository`, running each call in a worker thread so
that concurrent updates fan out without blocking the event loop.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

from auditrack.core import audit, repository
from auditrack.core.models import Action, Finding
from auditrack.core.state import TransitionEvent

T = TypeVar("T")


class FindingStore(Protocol):
    async def list_finding_ids(self) -> list[int]: ...

    async def get_finding(self, finding_id: int) -> Finding: ...

    async def update_finding(self, finding_id: int, finding: Finding) -> Finding: ...

    async def list_actions(self, finding_id: int) -> list[Action]: ...

    async def get_action(self, action_id: int) -> Action: ...

    async def update_action(self, action_id: int, action: Action) -> Action: ...


class HistorySink(Protocol):
    async def append_history(self, event: TransitionEvent, *, notes: str = "") -> str: ...


class SqliteStore:
    """:class:`FindingStore` + :class:`HistorySink` over one SQLite connection.

    Calls are serialised on an internal lock; sqlite3 connections must not be
    used from two threads at once.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self._lock = threading.Lock()

    async def _call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        def run() -> T:
            with self._lock:
                return fn(self.conn, *args, **kwargs)

        return await asyncio.to_thread(run)

    # ── Findings ────────────────────────────────────────────
    async def list_finding_ids(self) -> list[int]:
        return await self._call(repository.list_finding_ids)

    async def list_findings(self) -> list[Finding]:
        return await self._call(repository.list_findings)

    async def get_finding(self, finding_id: int) -> Finding:
        return await self._call(repository.get_finding, finding_id)

    async def create_finding(self, **fields: Any) -> Finding:
        return await self._call(repository.create_finding, **fields)

    async def update_finding(self, finding_id: int, finding: Finding) -> Finding:
        if finding.id != finding_id:
            raise ValueError(f"record id {finding.id} does not match finding_id {finding_id}")
        return await self._call(repository.update_finding, finding)

    async def delete_finding(self, finding_id: int) -> None:
        await self._call(repository.delete_finding, finding_id)

    # ── Actions ─────────────────────────────────────────────
    async def list_actions(self, finding_id: int) -> list[Action]:
        return await self._call(repository.list_actions, finding_id)

    async def list_all_actions(self) -> list[Action]:
        return await self._call(repository.list_actions)

    async def get_action(self, action_id: int) -> Action:
        return await self._call(repository.get_action, action_id)

    async def create_action(self, **fields: Any) -> Action:
        return await self._call(repository.create_action, **fields)

    async def update_action(self, action_id: int, action: Action) -> Action:
        if action.id != action_id:
            raise ValueError(f"record id {action.id} does not match action_id {action_id}")
        return await self._call(repository.update_action, action)

    async def delete_action(self, action_id: int) -> Action:
        return await self._call(repository.delete_action, action_id)

    # ── History ─────────────────────────────────────────────
    async def append_history(self, event: TransitionEvent, *, notes: str = "") -> str:
        return await self._call(audit.append, event, notes=notes)
