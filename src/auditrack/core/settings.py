"""auditrack runtime settings (Pydantic v2 Settings).

Centralises every configurable path / flag so that:

* The CLI never hard-codes relative paths.
* Environment overrides work (``AUDITRACK_DATA_DIR``,
  ``AUDITRACK_RECONCILE_INTERVAL_SECONDS``, ...).
* Tests can inject a custom root via ``Settings(repo_root=tmp_path)``.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from auditrack.core.paths import find_repo_root
from auditrack.core.reconcile import DEFAULT_INTERVAL_SECONDS, FailurePolicy


class Settings(BaseSettings):
    """All runtime configuration for auditrack.

    *repo_root* anchors every derived path.  If not supplied, it is
    auto-detected via :func:`auditrack.core.paths.find_repo_root`.
    """

    model_config = SettingsConfigDict(
        env_prefix="AUDITRACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Root ────────────────────────────────────────────────
    repo_root: Path | None = None

    # ── Derived directory paths ─────────────────────────────
    data_dir: Path | None = None
    seeds_dir: Path | None = None
    exports_dir: Path | None = None

    db_filename: str = "auditrack.db"

    # ── Seed import ─────────────────────────────────────────
    seed_filename: str = "findings_seed.yaml"
    seed_max_size_kb: int = 512

    # ── Reconciliation ──────────────────────────────────────
    reconcile_interval_seconds: float = DEFAULT_INTERVAL_SECONDS
    failure_policy: FailurePolicy = FailurePolicy.BEST_EFFORT
    timezone: str | None = None  # "today" is taken in this zone; host zone if unset

    # ── Logging ─────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("reconcile_interval_seconds")
    @classmethod
    def _positive_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("reconcile_interval_seconds must be positive")
        return v

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Fill in any path that was not explicitly overridden."""
        if self.repo_root is None:
            self.repo_root = find_repo_root()

        root = self.repo_root
        defaults: dict[str, Path] = {
            "data_dir": root / "data",
            "seeds_dir": root / "seeds",
            "exports_dir": root / "exports",
        }
        for attr, default_val in defaults.items():
            if getattr(self, attr) is None:
                setattr(self, attr, default_val)
        return self

    # ── Convenience ─────────────────────────────────────────
    @property
    def db_path(self) -> Path:
        assert self.data_dir is not None  # guaranteed after validation
        return self.data_dir / self.db_filename

    @property
    def seed_path(self) -> Path:
        assert self.seeds_dir is not None
        return self.seeds_dir / self.seed_filename

    @property
    def seed_max_size_bytes(self) -> int:
        return self.seed_max_size_kb * 1024

    def ensure_dirs(self) -> None:
        """Create all local-state directories if they don't exist."""
        for d in (self.data_dir, self.seeds_dir, self.exports_dir):
            assert d is not None
            d.mkdir(parents=True, exist_ok=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached :class:`Settings` instance (tests build ``Settings`` directly)."""
    return Settings()
