"""Findings / Actions repository: CRUD over SQLite.

Thin synchronous layer.  Updates are full-record writes: the caller passes
the complete :class:`Finding` / :class:`Action` and every column is
rewritten, which is what the reconciliation engine relies on when it carries
an unchanged record forward with a new status.

Validation happens here, at the storage boundary:

1. Labels and references are whitelisted (:mod:`auditrack.modules.redaction`).
2. Status strings must belong to the taxonomy; a Finding may never be stored
   as ``Overdue``.
3. Missing rows raise :class:`FindingNotFound` / :class:`ActionNotFound`.

This module never touches the events table; that's ``audit.py``'s job.
"""

from __future__ import annotations

import sqlite3
from datetime import date, datetime, timezone

from auditrack.core.errors import (
    ActionNotFound,
    FindingNotFound,
    RecordInvalid,
    StatusUnknown,
)
from auditrack.core.models import FINDING_STATUSES, Action, Finding, Status, parse_status
from auditrack.modules.redaction import clean_text, validate_name, validate_ref


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _finding_status(raw: str | Status) -> Status:
    try:
        status = parse_status(raw)
    except StatusUnknown as exc:
        raise RecordInvalid(str(exc)) from exc
    if status not in FINDING_STATUSES:
        raise RecordInvalid(f"Finding status cannot be {status.value!r}")
    return status


def _action_status(raw: str | Status) -> Status:
    try:
        return parse_status(raw)
    except StatusUnknown as exc:
        raise RecordInvalid(str(exc)) from exc


# ── Findings ────────────────────────────────────────────────
def create_finding(
    conn: sqlite3.Connection,
    *,
    name: str,
    finding_ref: str | None = None,
    description: str | None = None,
    audit_name: str | None = None,
    audit_year: str | None = None,
    risk_level: str | None = None,
    financial_impact: float | None = None,
    status: str | Status = Status.OPEN,
) -> Finding:
    """Insert a new finding (``Open`` unless told otherwise).

    When *finding_ref* is omitted it defaults to ``FND-<id:03d>``.

    Raises
    ------
    ValueError
        If a label fails whitelist validation.
    RecordInvalid
        If *status* is unknown or ``Overdue``.
    """
    name = validate_name(name)
    finding_ref = validate_ref(finding_ref, field="finding_ref")
    state = _finding_status(status)
    now = _now()
    cur = conn.execute(
        """
        INSERT INTO findings (finding_ref, name, description, audit_name, audit_year,
                              risk_level, financial_impact, status, created_utc, updated_utc)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            finding_ref,
            name,
            clean_text(description),
            clean_text(audit_name),
            clean_text(audit_year),
            clean_text(risk_level),
            financial_impact,
            state.value,
            now,
            now,
        ),
    )
    finding_id = int(cur.lastrowid)  # type: ignore[arg-type]
    if finding_ref is None:
        conn.execute(
            "UPDATE findings SET finding_ref = ? WHERE id = ?",
            (f"FND-{finding_id:03d}", finding_id),
        )
    conn.commit()
    return get_finding(conn, finding_id)


def get_finding(conn: sqlite3.Connection, finding_id: int) -> Finding:
    """Fetch a single finding by id.

    Raises
    ------
    FindingNotFound
        If no such row exists.
    """
    row = conn.execute("SELECT * FROM findings WHERE id = ?", (finding_id,)).fetchone()
    if row is None:
        raise FindingNotFound(finding_id)
    return _row_to_finding(row)


def list_findings(conn: sqlite3.Connection, *, status: str | Status | None = None) -> list[Finding]:
    """Return all findings ordered by id, optionally filtered by status."""
    rows = conn.execute("SELECT * FROM findings ORDER BY id").fetchall()
    findings = [_row_to_finding(r) for r in rows]
    if status is None:
        return findings
    wanted = parse_status(status)
    return [f for f in findings if parse_status(f.status) is wanted]


def list_finding_ids(conn: sqlite3.Connection) -> list[int]:
    return [row["id"] for row in conn.execute("SELECT id FROM findings ORDER BY id")]


def update_finding(conn: sqlite3.Connection, finding: Finding) -> Finding:
    """Rewrite every mutable column of *finding*; returns the stored row.

    Raises
    ------
    FindingNotFound
        If the finding does not exist.
    RecordInvalid
        If the status is unknown or ``Overdue``.
    """
    state = _finding_status(finding.status)
    cur = conn.execute(
        """
        UPDATE findings
           SET finding_ref = ?, name = ?, description = ?, audit_name = ?, audit_year = ?,
               risk_level = ?, financial_impact = ?, status = ?, updated_utc = ?
         WHERE id = ?
        """,
        (
            validate_ref(finding.finding_ref, field="finding_ref"),
            validate_name(finding.name),
            clean_text(finding.description),
            clean_text(finding.audit_name),
            clean_text(finding.audit_year),
            clean_text(finding.risk_level),
            finding.financial_impact,
            state.value,
            _now(),
            finding.id,
        ),
    )
    if cur.rowcount == 0:
        raise FindingNotFound(finding.id)
    conn.commit()
    return get_finding(conn, finding.id)


def delete_finding(conn: sqlite3.Connection, finding_id: int) -> None:
    """Delete a finding together with its actions."""
    cur = conn.execute("DELETE FROM findings WHERE id = ?", (finding_id,))
    if cur.rowcount == 0:
        raise FindingNotFound(finding_id)
    conn.commit()


# ── Actions ─────────────────────────────────────────────────
def create_action(
    conn: sqlite3.Connection,
    *,
    finding_id: int,
    due_date: date | None,
    description: str | None = None,
    action_ref: str | None = None,
    audit_lead: str | None = None,
    responsible: str | None = None,
    responsible_email: str | None = None,
    status: str | Status = Status.OPEN,
) -> Action:
    """Insert a new action under *finding_id*.

    Raises
    ------
    FindingNotFound
        If the parent finding does not exist.
    RecordInvalid
        If *status* is unknown.
    """
    get_finding(conn, finding_id)
    state = _action_status(status)
    now = _now()
    cur = conn.execute(
        """
        INSERT INTO actions (finding_id, action_ref, description, due_date, audit_lead,
                             responsible, responsible_email, status, created_utc, updated_utc)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            finding_id,
            validate_ref(action_ref, field="action_ref"),
            clean_text(description),
            due_date.isoformat() if due_date else None,
            clean_text(audit_lead),
            clean_text(responsible),
            clean_text(responsible_email),
            state.value,
            now,
            now,
        ),
    )
    conn.commit()
    return get_action(conn, int(cur.lastrowid))  # type: ignore[arg-type]


def get_action(conn: sqlite3.Connection, action_id: int) -> Action:
    row = conn.execute("SELECT * FROM actions WHERE id = ?", (action_id,)).fetchone()
    if row is None:
        raise ActionNotFound(action_id)
    return _row_to_action(row)


def list_actions(conn: sqlite3.Connection, finding_id: int | None = None) -> list[Action]:
    """Actions of one finding (or of all findings), ordered by id."""
    if finding_id is None:
        rows = conn.execute("SELECT * FROM actions ORDER BY id").fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM actions WHERE finding_id = ? ORDER BY id", (finding_id,)
        ).fetchall()
    return [_row_to_action(r) for r in rows]


def update_action(conn: sqlite3.Connection, action: Action) -> Action:
    """Rewrite every mutable column of *action*; returns the stored row.

    Raises
    ------
    ActionNotFound
        If the action does not exist.
    RecordInvalid
        If the status is unknown.
    """
    state = _action_status(action.status)
    cur = conn.execute(
        """
        UPDATE actions
           SET action_ref = ?, description = ?, due_date = ?, audit_lead = ?,
               responsible = ?, responsible_email = ?, status = ?, updated_utc = ?
         WHERE id = ?
        """,
        (
            validate_ref(action.action_ref, field="action_ref"),
            clean_text(action.description),
            action.due_date.isoformat() if action.due_date else None,
            clean_text(action.audit_lead),
            clean_text(action.responsible),
            clean_text(action.responsible_email),
            state.value,
            _now(),
            action.id,
        ),
    )
    if cur.rowcount == 0:
        raise ActionNotFound(action.id)
    conn.commit()
    return get_action(conn, action.id)


def delete_action(conn: sqlite3.Connection, action_id: int) -> Action:
    """Delete an action and return the removed record."""
    action = get_action(conn, action_id)
    conn.execute("DELETE FROM actions WHERE id = ?", (action_id,))
    conn.commit()
    return action


def _row_to_finding(row: sqlite3.Row) -> Finding:
    return Finding(
        id=row["id"],
        finding_ref=row["finding_ref"],
        name=row["name"],
        description=row["description"],
        audit_name=row["audit_name"],
        audit_year=row["audit_year"],
        risk_level=row["risk_level"],
        financial_impact=row["financial_impact"],
        status=row["status"],
        created_utc=row["created_utc"],
        updated_utc=row["updated_utc"],
    )


def _row_to_action(row: sqlite3.Row) -> Action:
    due = row["due_date"]
    return Action(
        id=row["id"],
        finding_id=row["finding_id"],
        action_ref=row["action_ref"],
        description=row["description"],
        due_date=date.fromisoformat(due[:10]) if due else None,
        audit_lead=row["audit_lead"],
        responsible=row["responsible"],
        responsible_email=row["responsible_email"],
        status=row["status"],
        created_utc=row["created_utc"],
        updated_utc=row["updated_utc"],
    )
