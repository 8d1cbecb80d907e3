"""SQLite database manager.

Owns the connection lifecycle, schema creation, and migration.
Every other module that needs the DB receives the connection from here;
they never open their own.

Design decisions
----------------
* WAL mode for concurrent reads.
* Foreign keys enforced; actions are deleted with their finding.
* ``CREATE TABLE IF NOT EXISTS``: idempotent, safe to call on every start.
* The connection may be handed to worker threads (``check_same_thread=False``);
  :class:`auditrack.core.store.SqliteStore` serialises access to it.
"""

from __future__ import annotations

import sqlite3
import stat
from pathlib import Path

import structlog

logger = structlog.get_logger()

# ── Schema version (bump when tables change) ────────────────
SCHEMA_VERSION = 1

_SCHEMA_SQL = """\
-- Findings: audit observations
CREATE TABLE IF NOT EXISTS findings (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    finding_ref       TEXT UNIQUE,
    name              TEXT NOT NULL,
    description       TEXT,
    audit_name        TEXT,
    audit_year        TEXT,
    risk_level        TEXT,
    financial_impact  REAL,
    status            TEXT NOT NULL DEFAULT 'Open',
    created_utc       TEXT NOT NULL,
    updated_utc       TEXT NOT NULL
);

-- Actions: remediation tasks owned by a finding
CREATE TABLE IF NOT EXISTS actions (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    finding_id         INTEGER NOT NULL,
    action_ref         TEXT,
    description        TEXT,
    due_date           TEXT,
    audit_lead         TEXT,
    responsible        TEXT,
    responsible_email  TEXT,
    status             TEXT NOT NULL DEFAULT 'Open',
    created_utc        TEXT NOT NULL,
    updated_utc        TEXT NOT NULL,
    FOREIGN KEY (finding_id) REFERENCES findings(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS actions_by_finding ON actions(finding_id);

-- Append-only status history (outlives deleted records)
CREATE TABLE IF NOT EXISTS events (
    seq          INTEGER PRIMARY KEY AUTOINCREMENT,
    entity_type  TEXT    NOT NULL,
    entity_id    INTEGER NOT NULL,
    from_status  TEXT    NOT NULL,
    to_status    TEXT    NOT NULL,
    source       TEXT    NOT NULL,
    at_utc       TEXT    NOT NULL,
    entry_hash   TEXT    NOT NULL,
    prev_hash    TEXT    NOT NULL DEFAULT '',
    notes        TEXT    NOT NULL DEFAULT ''
);

-- Schema metadata
CREATE TABLE IF NOT EXISTS meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TRIGGER IF NOT EXISTS events_no_update
    BEFORE UPDATE ON events
    BEGIN
        SELECT RAISE(ABORT, 'events table is append-only: UPDATE blocked');
    END;

CREATE TRIGGER IF NOT EXISTS events_no_delete
    BEFORE DELETE ON events
    BEGIN
        SELECT RAISE(ABORT, 'events table is append-only: DELETE blocked');
    END;
"""


def open_db(db_path: Path) -> sqlite3.Connection:
    """Open (or create) the auditrack database and ensure the schema exists.

    Parameters
    ----------
    db_path:
        Absolute path to the SQLite file (e.g. ``data/auditrack.db``).

    Returns
    -------
    sqlite3.Connection
        Ready-to-use connection with WAL mode and foreign keys enabled.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path), isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")

    conn.executescript(_SCHEMA_SQL)

    conn.execute(
        "INSERT OR IGNORE INTO meta(key, value) VALUES (?, ?)",
        ("schema_version", str(SCHEMA_VERSION)),
    )
    conn.commit()

    # Owner read/write only.
    try:
        db_path.chmod(stat.S_IRUSR | stat.S_IWUSR)
        for suffix in ("-wal", "-shm"):
            side = db_path.parent / (db_path.name + suffix)
            if side.exists():
                side.chmod(stat.S_IRUSR | stat.S_IWUSR)
    except OSError:
        # Not supported on every filesystem.
        pass

    logger.debug("database_opened", path=str(db_path), schema_version=SCHEMA_VERSION)
    return conn
