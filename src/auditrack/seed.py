"""Bulk-import seed loader.

Loads ``findings_seed.yaml`` with safety guards:

* Size limit (default 512 KB); oversized files are rejected.
* ``yaml.safe_load`` only, no arbitrary Python objects.
* Encoding validated (UTF-8).
* Typed exceptions (:class:`SeedNotFound`, :class:`SeedInvalid`,
  :class:`SeedTooLarge`).

Shape::

    findings:
      - name: Segregation of duties in AP
        audit_name: Procure to Pay
        risk_level: High
        financial_impact: 25000
        actions:
          - action_ref: ACT-1
            description: Split vendor master maintenance
            due_date: 2024-03-31
            responsible: AP Lead

:func:`import_seed` creates the records through the tracker service and then
reconciles exactly the imported Findings as one batch.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from auditrack.core.errors import SeedInvalid, SeedNotFound, SeedTooLarge, StatusUnknown
from auditrack.core.models import SELECTABLE, Finding, parse_status
from auditrack.core.reconcile import SweepReport
from auditrack.core.service import TrackerService
from auditrack.modules.redaction import validate_name, validate_ref

_DEFAULT_MAX_SIZE_BYTES = 512 * 1024  # 512 KB


def _selectable_status(v: str) -> str:
    try:
        status = parse_status(v)
    except StatusUnknown as exc:
        raise ValueError(str(exc)) from exc
    if status not in SELECTABLE:
        raise ValueError(f"status {status.value!r} cannot be imported")
    return status.value


# ── Pydantic v2 strict models ──────────────────────────────
class ActionSeed(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    due_date: date | None = None
    action_ref: str | None = None
    description: str | None = None
    audit_lead: str | None = None
    responsible: str | None = None
    responsible_email: str | None = None
    status: str = "Open"

    @field_validator("status")
    @classmethod
    def _status_selectable(cls, v: str) -> str:
        return _selectable_status(v)

    @field_validator("action_ref")
    @classmethod
    def _safe_ref(cls, v: str | None) -> str | None:
        return validate_ref(v, field="action_ref")


class FindingSeed(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    finding_ref: str | None = None
    description: str | None = None
    audit_name: str | None = None
    audit_year: str | None = None
    risk_level: str | None = None
    financial_impact: float | None = None
    actions: list[ActionSeed] = []

    @field_validator("name")
    @classmethod
    def _valid_name(cls, v: str) -> str:
        return validate_name(v)

    @field_validator("finding_ref")
    @classmethod
    def _safe_ref(cls, v: str | None) -> str | None:
        return validate_ref(v, field="finding_ref")

    @field_validator("audit_year", mode="before")
    @classmethod
    def _year_as_text(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v


# ── Loader ──────────────────────────────────────────────────
def load_seed(path: Path, *, max_size_bytes: int = _DEFAULT_MAX_SIZE_BYTES) -> list[FindingSeed]:
    """Load and validate a seed YAML file.

    Raises
    ------
    SeedNotFound
        File does not exist.
    SeedTooLarge
        File exceeds *max_size_bytes*.
    SeedInvalid
        YAML parse error or schema validation failure.
    """
    if not path.exists():
        raise SeedNotFound(f"seed file not found: {path}")

    size = path.stat().st_size
    if size > max_size_bytes:
        raise SeedTooLarge(f"seed {path.name} is {size:,} bytes (limit {max_size_bytes:,})")

    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise SeedInvalid(f"seed is not valid UTF-8: {exc}") from exc

    try:
        raw: Any = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise SeedInvalid(f"YAML parse error: {exc}") from exc

    if raw is None:
        return []

    # Accept {"findings": [...]} or bare [...]
    if isinstance(raw, dict) and "findings" in raw:
        items = raw["findings"]
    elif isinstance(raw, list):
        items = raw
    else:
        raise SeedInvalid("seed schema invalid: expected list or {'findings': list}")

    if not isinstance(items, list):
        raise SeedInvalid("seed 'findings' key must contain a list")

    out: list[FindingSeed] = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise SeedInvalid(f"seed item #{i} must be a mapping")
        try:
            out.append(FindingSeed.model_validate(item))
        except Exception as exc:
            raise SeedInvalid(f"seed item #{i}: {exc}") from exc
    return out


async def import_seed(
    service: TrackerService, seeds: list[FindingSeed]
) -> tuple[list[Finding], SweepReport]:
    """Create every seeded Finding and Action, then reconcile them as a batch.

    If a record fails to write, the error propagates after the Findings
    already created have been reconciled.
    """
    created: list[Finding] = []
    try:
        for seed in seeds:
            finding = await service.create_finding(
                **seed.model_dump(exclude={"actions"}),
            )
            created.append(finding)
            for action in seed.actions:
                await service.add_action(finding.id, reconcile=False, **action.model_dump())
    finally:
        report = await service.coordinator.reconcile_all(f.id for f in created)
    return created, report
