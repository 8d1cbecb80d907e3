"""Append-only status history with hash chain.

Every status change of a Finding or Action (creation, manual override,
automatic overdue flip, derived aggregate) is recorded here.

How it works
------------
1. A status change produces a :class:`TransitionEvent`.
2. ``append()`` serialises the event canonically (sorted JSON, no spaces).
3. Computes ``entry_hash = SHA-256(canonical_blob + prev_hash)``.
4. Inserts an immutable row into the ``events`` table.

``verify_history()`` recomputes the chain and raises
:class:`HistoryChainBroken` on any edited, removed or reordered row.
``export_history()`` returns the log as a list of dicts and
``list_history()`` filters it to one record.
"""

from __future__ import annotations

import hashlib
import json
import sqlite3

import structlog

from auditrack.core.errors import HistoryChainBroken
from auditrack.core.state import TransitionEvent
from auditrack.modules.redaction import sanitise_notes

logger = structlog.get_logger()

_COLUMNS = (
    "seq, entity_type, entity_id, from_status, to_status, source, at_utc, "
    "entry_hash, prev_hash, notes"
)


def append(conn: sqlite3.Connection, event: TransitionEvent, *, notes: str = "") -> str:
    """Append *event* to the history and return its ``entry_hash``.

    *notes* are PII-redacted and included in the hash.
    """
    prev_hash = _get_last_hash(conn)
    notes = sanitise_notes(notes)

    canonical = _canonical_blob(event, notes=notes)
    entry_hash = hashlib.sha256((canonical + prev_hash).encode("utf-8")).hexdigest()

    cur = conn.execute(
        """
        INSERT INTO events (entity_type, entity_id, from_status, to_status, source,
                            at_utc, entry_hash, prev_hash, notes)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            event.entity_type,
            event.entity_id,
            event.from_status,
            event.to_status,
            event.source,
            event.at_utc,
            entry_hash,
            prev_hash,
            notes,
        ),
    )
    conn.commit()

    logger.info(
        "history_event_appended",
        entity=f"{event.entity_type}:{event.entity_id}",
        transition=f"{event.from_status}→{event.to_status}",
        source=event.source,
        entry_hash=entry_hash[:12],
        seq=cur.lastrowid,
    )
    return entry_hash


def verify_history(conn: sqlite3.Connection) -> int:
    """Verify the full hash chain.  Returns the number of events checked.

    Raises
    ------
    HistoryChainBroken
        If any link or hash does not match.
    """
    rows = conn.execute(f"SELECT {_COLUMNS} FROM events ORDER BY seq").fetchall()

    expected_prev = ""
    checked = 0
    for row in rows:
        seq = row["seq"]
        if row["prev_hash"] != expected_prev:
            raise HistoryChainBroken(
                f"Chain broken at seq={seq}: expected prev_hash={expected_prev[:12]}... "
                f"but found {row['prev_hash'][:12]}..."
            )

        event = TransitionEvent(
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            from_status=row["from_status"],
            to_status=row["to_status"],
            source=row["source"],
            at_utc=row["at_utc"],
        )
        canonical = _canonical_blob(event, notes=row["notes"])
        recomputed = hashlib.sha256((canonical + row["prev_hash"]).encode("utf-8")).hexdigest()
        if recomputed != row["entry_hash"]:
            raise HistoryChainBroken(
                f"Tamper detected at seq={seq}: recomputed hash={recomputed[:12]}... "
                f"does not match stored={row['entry_hash'][:12]}..."
            )

        expected_prev = row["entry_hash"]
        checked += 1

    logger.info("history_chain_verified", events_checked=checked)
    return checked


def export_history(conn: sqlite3.Connection) -> list[dict[str, str | int]]:
    rows = conn.execute(f"SELECT {_COLUMNS} FROM events ORDER BY seq").fetchall()
    return [dict(row) for row in rows]


def list_history(
    conn: sqlite3.Connection, entity_type: str, entity_id: int
) -> list[dict[str, str | int]]:
    """History of a single finding or action, oldest first."""
    rows = conn.execute(
        f"SELECT {_COLUMNS} FROM events WHERE entity_type = ? AND entity_id = ? ORDER BY seq",
        (entity_type, entity_id),
    ).fetchall()
    return [dict(row) for row in rows]


# ── Internal helpers ────────────────────────────────────────

def _canonical_blob(event: TransitionEvent, *, notes: str = "") -> str:
    """Deterministic JSON of an event (sorted keys, no whitespace), notes included."""
    obj: dict[str, str | int] = {
        "at_utc": event.at_utc,
        "entity_id": int(event.entity_id),
        "entity_type": event.entity_type,
        "from_status": event.from_status,
        "notes": notes,
        "source": event.source,
        "to_status": event.to_status,
    }
    return json.dumps(obj, sort_keys=True, separators=(",", ":"))


def _get_last_hash(conn: sqlite3.Connection) -> str:
    row = conn.execute("SELECT entry_hash FROM events ORDER BY seq DESC LIMIT 1").fetchone()
    return row["entry_hash"] if row else ""
