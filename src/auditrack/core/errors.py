"""auditrack domain exceptions.

Every module raises typed exceptions so callers can handle failures
explicitly instead of catching bare ValueError/RuntimeError.
"""

from __future__ import annotations


# ── Base ────────────────────────────────────────────────────
class AuditrackError(Exception):
    """Root exception for all auditrack errors."""


# ── Repo / filesystem ──────────────────────────────────────
class RepoRootNotFound(AuditrackError):
    """Could not locate the workspace root (pyproject.toml / .auditrack marker)."""

    def __init__(self, start_path: str | None = None) -> None:
        where = f" (searched from {start_path})" if start_path else ""
        super().__init__(f"Workspace root not found{where}: no marker in parent chain")
        self.start_path = start_path


# ── Seed import ─────────────────────────────────────────────
class SeedNotFound(AuditrackError):
    """The seed YAML file does not exist at the expected path."""


class SeedInvalid(AuditrackError):
    """The seed file failed schema validation or safe-load."""


class SeedTooLarge(SeedInvalid):
    """The seed file exceeds the allowed size limit."""


# ── Status taxonomy ─────────────────────────────────────────
class StatusUnknown(AuditrackError):
    """A status string does not belong to the taxonomy."""

    def __init__(self, raw: str) -> None:
        super().__init__(f"Unknown status: {raw!r}")
        self.raw = raw


class StatusNotSelectable(AuditrackError):
    """A user tried to pick a status that is machine-derived only."""

    def __init__(self, status: str) -> None:
        super().__init__(f"Status {status!r} cannot be chosen manually")
        self.status = status


# ── Store ───────────────────────────────────────────────────
class StoreError(AuditrackError):
    """Base for failures reported by the Finding/Action store."""


class FindingNotFound(StoreError):
    def __init__(self, finding_id: int) -> None:
        super().__init__(f"Finding not found: {finding_id}")
        self.finding_id = finding_id


class ActionNotFound(StoreError):
    def __init__(self, action_id: int) -> None:
        super().__init__(f"Action not found: {action_id}")
        self.action_id = action_id


class RecordInvalid(StoreError):
    """A full-record write was rejected by store validation."""


# ── History / chain ────────────────────────────────────────
class HistoryChainBroken(AuditrackError):
    """Hash-chain integrity verification of the status history failed."""
