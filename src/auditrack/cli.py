"""auditrack CLI: presentation layer.

Thin adapter: all business logic lives in core.  The CLI only maps user
intents to service / coordinator calls and formats output.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from collections.abc import Coroutine
from datetime import date, datetime
from pathlib import Path
from typing import Any, TypeVar

import structlog
import typer
from rich import print
from rich.table import Table

from auditrack.core.audit import export_history, list_history, verify_history
from auditrack.core.clock import Clock, FixedClock, SystemClock
from auditrack.core.db import open_db
from auditrack.core.errors import (
    AuditrackError,
    HistoryChainBroken,
    RepoRootNotFound,
    SeedInvalid,
    SeedNotFound,
)
from auditrack.core.logging import configure_logging
from auditrack.core.models import Status, parse_status, same_status
from auditrack.core.reconcile import FailurePolicy, ReconciliationCoordinator, SweepReport
from auditrack.core.service import TrackerService
from auditrack.core.settings import Settings
from auditrack.core.stats import summarize
from auditrack.core.store import SqliteStore
from auditrack.core.validation import ValidationResult
from auditrack.seed import import_seed, load_seed

logger = structlog.get_logger()

app = typer.Typer(help="auditrack: audit findings and remediation actions tracker.")

T = TypeVar("T")

_STATUS_COLORS = {
    Status.OPEN: "cyan",
    Status.OVERDUE: "red",
    Status.COMPLETED: "green",
    Status.RISK_ACCEPTED: "magenta",
    Status.CLOSED: "white",
}
_DATE_FORMATS = ["%Y-%m-%d"]


# ── Callback (runs before every command) ────────────────────
@app.callback(invoke_without_command=True)
def _main_callback(  # pyright: ignore[reportUnusedFunction]
    ctx: typer.Context,
    log_level: str = typer.Option("INFO", "--log-level", envvar="AUDITRACK_LOG_LEVEL", help="Log level."),
    log_json: bool = typer.Option(True, "--log-json/--log-text", envvar="AUDITRACK_LOG_JSON", help="JSON or human logs."),
) -> None:
    """Configure logging + settings, then store in context for sub-commands."""
    configure_logging(level=log_level, json_output=log_json)
    try:
        settings = Settings(log_level=log_level, log_json=log_json)
    except RepoRootNotFound:
        print("[red]ERROR:[/red] could not find workspace root (no .auditrack or pyproject.toml in parents).")
        raise typer.Exit(code=2)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings

    if ctx.invoked_subcommand is None:
        print(ctx.get_help())


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj["settings"]


def _db(ctx: typer.Context) -> sqlite3.Connection:
    """Return an open DB connection, caching it in the context."""
    if "db" not in ctx.obj:
        s = _settings(ctx)
        s.ensure_dirs()
        ctx.obj["db"] = open_db(s.db_path)
    return ctx.obj["db"]


def _service(
    ctx: typer.Context,
    *,
    clock: Clock | None = None,
    policy: FailurePolicy | None = None,
) -> TrackerService:
    s = _settings(ctx)
    store = SqliteStore(_db(ctx))
    coordinator = ReconciliationCoordinator(
        store,
        clock=clock or SystemClock(s.timezone),
        history=store,
        policy=policy or s.failure_policy,
        interval_seconds=s.reconcile_interval_seconds,
    )
    return TrackerService(store, coordinator)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run *coro*, turning domain errors into a red message and exit code 1."""
    try:
        return asyncio.run(coro)
    except (AuditrackError, ValueError) as exc:
        print(f"[red]ERROR:[/red] {exc}")
        raise typer.Exit(code=1)


def _paint(status: str) -> str:
    try:
        color = _STATUS_COLORS[parse_status(status)]
    except AuditrackError:
        color = "yellow"
    return f"[{color}]{status}[/{color}]"


def _as_date(value: datetime | None) -> date | None:
    return value.date() if value else None


def _print_report(report: SweepReport) -> None:
    for ev in report.transitions:
        print(f"  action #{ev.entity_id}: {ev.from_status} → {_paint(ev.to_status)}")
    for ev in report.derived:
        print(f"  finding #{ev.entity_id}: {ev.from_status} → {_paint(ev.to_status)}")
    for failure in report.failures:
        print(
            f"  [yellow]skipped[/yellow] {failure.operation} "
            f"{failure.entity_type} #{failure.entity_id}: {failure.error}"
        )


def _print_rejection(result: ValidationResult) -> None:
    print(f"[red]REJECTED:[/red] {result.message}")
    for label in result.labels:
        print(f"  • {label}")


# ── Commands ────────────────────────────────────────────────
@app.command()
def init(ctx: typer.Context) -> None:
    """Create directories and database."""
    s = _settings(ctx)
    s.ensure_dirs()
    _db(ctx)
    print("[green]auditrack initialised.[/green]  Directories + database ready.")
    logger.info("auditrack_initialised", repo_root=str(s.repo_root), db=str(s.db_path))


@app.command()
def status(ctx: typer.Context) -> None:
    """Show paths and record counts."""
    s = _settings(ctx)
    print("[bold]auditrack[/bold]  v0.1.0")
    print(f"  Workspace   : {s.repo_root}")
    print(f"  Database    : {s.db_path}  {'[green]OK[/green]' if s.db_path.exists() else '[yellow]NOT CREATED[/yellow]'}")
    print(f"  Seed file   : {s.seed_path}  {'[green]OK[/green]' if s.seed_path.exists() else '[yellow]MISSING[/yellow]'}")
    print(f"  Interval    : {s.reconcile_interval_seconds:g}s ({s.failure_policy.value})")

    if not s.db_path.exists():
        return
    service = _service(ctx)
    findings = _run(service.store.list_findings())
    actions = _run(service.store.list_all_actions())
    print(f"\n  Findings    : {len(findings)} total")
    for st in Status:
        n = sum(1 for f in findings if same_status(f.status, st))
        if n:
            print(f"    {st.value:<14}: {n}")
    print(f"  Actions     : {len(actions)} total")
    for st in Status:
        n = sum(1 for a in actions if same_status(a.status, st))
        if n:
            print(f"    {st.value:<14}: {n}")


# ── Findings ────────────────────────────────────────────────
@app.command(name="add-finding")
def add_finding(
    ctx: typer.Context,
    name: str = typer.Argument(help="Finding title."),
    ref: str = typer.Option(None, "--ref", help="Human reference (default FND-<id>)."),
    audit: str = typer.Option(None, "--audit", "-a", help="Audit name."),
    year: str = typer.Option(None, "--year", "-y", help="Audit year."),
    risk: str = typer.Option(None, "--risk", "-r", help="Risk level."),
    impact: float = typer.Option(None, "--impact", help="Financial impact."),
    description: str = typer.Option(None, "--description", "-d", help="Description."),
) -> None:
    """Add a new finding in Open state."""
    service = _service(ctx)
    f = _run(
        service.create_finding(
            name=name,
            finding_ref=ref,
            audit_name=audit,
            audit_year=year,
            risk_level=risk,
            financial_impact=impact,
            description=description,
        )
    )
    print(f"[green]Added:[/green] #{f.id} {f.finding_ref}  {f.name}  [{f.status}]")


@app.command()
def findings(
    ctx: typer.Context,
    status_filter: str = typer.Option(None, "--status", "-s", help="Only findings in this status."),
) -> None:
    """List findings."""
    service = _service(ctx)
    rows = _run(service.store.list_findings())
    if status_filter:
        try:
            wanted = parse_status(status_filter)
        except AuditrackError as exc:
            print(f"[red]ERROR:[/red] {exc}")
            raise typer.Exit(code=1)
        rows = [f for f in rows if parse_status(f.status) is wanted]

    if not rows:
        print("[yellow]No findings.[/yellow] Run [bold]auditrack add-finding[/bold] to start.")
        return

    table = Table(title="Findings", show_lines=False)
    table.add_column("ID", style="bold")
    table.add_column("Ref")
    table.add_column("Name")
    table.add_column("Audit")
    table.add_column("Risk")
    table.add_column("Status")
    for f in rows:
        table.add_row(str(f.id), f.finding_ref or "", f.name, f.audit_name or "", f.risk_level or "", _paint(f.status))
    print(table)


@app.command(name="set-status")
def set_status(
    ctx: typer.Context,
    finding_id: int = typer.Argument(help="Finding id."),
    to: str = typer.Argument(help="Open, Completed, Closed or Risk Accepted."),
    notes: str = typer.Option("", "--notes", "-n", help="History note."),
) -> None:
    """Manually set a finding's status (validated against its actions)."""
    service = _service(ctx)
    result = _run(service.set_finding_status(finding_id, to, notes=notes))
    if not result.allowed:
        _print_rejection(result)
        raise typer.Exit(code=1)
    print(f"[green]Status set:[/green] finding #{finding_id} → {_paint(parse_status(to).value)}")


@app.command()
def check(
    ctx: typer.Context,
    finding_id: int = typer.Argument(help="Finding id."),
    to: str = typer.Argument(help="Status to check."),
) -> None:
    """Dry run: would a manual status change be allowed?"""
    service = _service(ctx)
    result = _run(service.coordinator.validate_manual_status(finding_id, to))
    if not result.allowed:
        _print_rejection(result)
        raise typer.Exit(code=1)
    print(f"[green]Allowed:[/green] finding #{finding_id} may be set to {parse_status(to).value}")


@app.command(name="delete-finding")
def delete_finding(
    ctx: typer.Context,
    finding_id: int = typer.Argument(help="Finding id."),
    yes: bool = typer.Option(False, "--yes", help="Skip confirmation."),
) -> None:
    """Delete a finding and all of its actions."""
    if not yes:
        print("[red bold]WARNING:[/red bold] this deletes the finding and all of its actions.")
        print("Run with --yes to confirm.")
        raise typer.Exit(code=1)
    service = _service(ctx)
    _run(service.delete_finding(finding_id))
    print(f"[green]Deleted:[/green] finding #{finding_id}")


# ── Actions ─────────────────────────────────────────────────
@app.command(name="add-action")
def add_action(
    ctx: typer.Context,
    finding_id: int = typer.Argument(help="Parent finding id."),
    due: datetime = typer.Option(None, "--due", formats=_DATE_FORMATS, help="Due date (YYYY-MM-DD)."),
    ref: str = typer.Option(None, "--ref", help="Human reference, e.g. ACT-12."),
    description: str = typer.Option(None, "--description", "-d", help="What must be done."),
    responsible: str = typer.Option(None, "--responsible", help="Responsible person."),
    email: str = typer.Option(None, "--email", help="Responsible person's e-mail."),
    lead: str = typer.Option(None, "--lead", help="Audit lead."),
    status_: str = typer.Option("Open", "--status", help="Initial status."),
) -> None:
    """Add an action to a finding, then reconcile the finding."""
    service = _service(ctx)
    a = _run(
        service.add_action(
            finding_id,
            due_date=_as_date(due),
            status=status_,
            action_ref=ref,
            description=description,
            responsible=responsible,
            responsible_email=email,
            audit_lead=lead,
        )
    )
    print(f"[green]Added:[/green] {a.label} (#{a.id}) under finding #{finding_id}  [{_paint(a.status)}]")


@app.command()
def actions(
    ctx: typer.Context,
    finding_id: int = typer.Argument(None, help="Only this finding's actions."),
) -> None:
    """List actions."""
    service = _service(ctx)
    if finding_id is None:
        rows = _run(service.store.list_all_actions())
    else:
        rows = _run(service.store.list_actions(finding_id))

    if not rows:
        print("[yellow]No actions.[/yellow]")
        return

    table = Table(title="Actions", show_lines=False)
    table.add_column("ID", style="bold")
    table.add_column("Action")
    table.add_column("Finding")
    table.add_column("Due")
    table.add_column("Responsible")
    table.add_column("Status")
    for a in rows:
        table.add_row(
            str(a.id), a.label, str(a.finding_id),
            a.due_date.isoformat() if a.due_date else "", a.responsible or "", _paint(a.status),
        )
    print(table)


@app.command(name="action-status")
def action_status(
    ctx: typer.Context,
    action_id: int = typer.Argument(help="Action id."),
    to: str = typer.Argument(help="Open, Completed, Closed or Risk Accepted."),
) -> None:
    """Set an action's status, then reconcile its finding."""
    service = _service(ctx)
    a = _run(service.set_action_status(action_id, to))
    print(f"[green]Updated:[/green] {a.label} → {_paint(a.status)}")


@app.command(name="edit-action")
def edit_action(
    ctx: typer.Context,
    action_id: int = typer.Argument(help="Action id."),
    due: datetime = typer.Option(None, "--due", formats=_DATE_FORMATS, help="New due date."),
    description: str = typer.Option(None, "--description", "-d", help="New description."),
    responsible: str = typer.Option(None, "--responsible", help="New responsible person."),
) -> None:
    """Edit an action's descriptive fields, then reconcile its finding."""
    changes: dict[str, Any] = {}
    if due is not None:
        changes["due_date"] = due.date()
    if description is not None:
        changes["description"] = description
    if responsible is not None:
        changes["responsible"] = responsible
    if not changes:
        print("[yellow]Nothing to change.[/yellow]")
        raise typer.Exit(code=0)
    service = _service(ctx)
    a = _run(service.update_action(action_id, **changes))
    print(f"[green]Updated:[/green] {a.label}  [{_paint(a.status)}]")


@app.command(name="delete-action")
def delete_action(
    ctx: typer.Context,
    action_id: int = typer.Argument(help="Action id."),
) -> None:
    """Delete an action, then reconcile its finding."""
    service = _service(ctx)
    report = _run(service.delete_action(action_id))
    print(f"[green]Deleted:[/green] action #{action_id}")
    _print_report(report)


# ── Reconciliation ──────────────────────────────────────────
@app.command()
def reconcile(
    ctx: typer.Context,
    finding_ids: list[int] = typer.Argument(None, help="Findings to reconcile (default: all)."),
    as_of: datetime = typer.Option(None, "--as-of", formats=_DATE_FORMATS, help="Pretend today is this date."),
    strict: bool = typer.Option(False, "--strict", help="Fail on the first write error."),
) -> None:
    """Run one reconciliation pass now."""
    clock = FixedClock(as_of.date()) if as_of else None
    service = _service(ctx, clock=clock, policy=FailurePolicy.STRICT if strict else None)
    coordinator = service.coordinator
    if finding_ids:
        report = _run(coordinator.reconcile_all(finding_ids))
    else:
        report = _run(coordinator.startup())

    print(
        f"[green]Reconciled[/green] {len(report.finding_ids)} findings: "
        f"{len(report.transitions)} action(s) transitioned, "
        f"{len(report.derived)} finding(s) updated."
    )
    _print_report(report)
    if report.failures:
        raise typer.Exit(code=1)


@app.command()
def watch(
    ctx: typer.Context,
    interval: float = typer.Option(None, "--interval", "-i", help="Seconds between sweeps."),
    duration: float = typer.Option(0, "--duration", help="Stop after this many seconds (0 = until Ctrl-C)."),
) -> None:
    """Reconcile at start, then periodically until interrupted."""
    service = _service(ctx)
    coordinator = service.coordinator

    async def _watch() -> None:
        coordinator.start_periodic(interval)
        try:
            if duration > 0:
                await asyncio.sleep(duration)
            else:
                await asyncio.Event().wait()
        finally:
            await coordinator.stop()

    print(f"[bold]Watching[/bold] every {interval or coordinator.interval_seconds:g}s. Ctrl-C to stop.")
    try:
        _run(_watch())
    except KeyboardInterrupt:
        print("[yellow]Stopped.[/yellow]")


@app.command(name="import")
def import_cmd(
    ctx: typer.Context,
    path: Path = typer.Argument(None, help="Seed YAML (default: seeds/findings_seed.yaml)."),
) -> None:
    """Bulk-import findings and actions from a seed file, then reconcile them."""
    s = _settings(ctx)
    seed_path = path if path else s.seed_path
    if not seed_path.is_absolute():
        assert s.repo_root is not None
        seed_path = (s.repo_root / seed_path).resolve()

    try:
        seeds = load_seed(seed_path, max_size_bytes=s.seed_max_size_bytes)
    except (SeedNotFound, SeedInvalid) as exc:
        print(f"[red]ERROR:[/red] {exc}")
        raise typer.Exit(code=1)

    service = _service(ctx)
    created, report = _run(import_seed(service, seeds))
    n_actions = sum(len(seed.actions) for seed in seeds)
    print(f"[green]Imported[/green] {len(created)} findings, {n_actions} actions from {seed_path}")
    _print_report(report)


@app.command()
def stats(ctx: typer.Context) -> None:
    """Dashboard numbers across all actions."""
    service = _service(ctx)
    all_actions = _run(service.store.list_all_actions())
    all_findings = _run(service.store.list_findings())
    st = summarize(all_actions, all_findings)

    table = Table(title="Actions", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Total", str(st.total))
    for s_ in Status:
        table.add_row(s_.value, str(st.count(s_)))
    table.add_row("Completion rate", f"{st.completion_rate}%")
    table.add_row("Overdue rate", f"{st.overdue_rate}%")
    table.add_row("Impact (Open)", f"{st.money_open:,.2f}")
    table.add_row("Impact (Overdue)", f"{st.money_overdue:,.2f}")
    table.add_row("Impact (total)", f"{st.financial_impact:,.2f}")
    table.add_row("Unresolved findings", str(st.unresolved_findings))
    print(table)


# ── History ─────────────────────────────────────────────────
@app.command()
def history(
    ctx: typer.Context,
    entity: str = typer.Argument(help="finding or action."),
    entity_id: int = typer.Argument(help="Record id."),
) -> None:
    """Show the status history of one finding or action."""
    entity = entity.strip().lower()
    if entity not in ("finding", "action"):
        print("[red]ERROR:[/red] entity must be 'finding' or 'action'.")
        raise typer.Exit(code=1)
    rows = list_history(_db(ctx), entity, entity_id)
    if not rows:
        print(f"[yellow]No history for {entity} #{entity_id}.[/yellow]")
        return

    table = Table(title=f"{entity.title()} #{entity_id} history")
    table.add_column("Seq", style="bold")
    table.add_column("When")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Source")
    table.add_column("Notes")
    for r in rows:
        table.add_row(
            str(r["seq"]), str(r["at_utc"]), str(r["from_status"]),
            _paint(str(r["to_status"])), str(r["source"]), str(r["notes"]),
        )
    print(table)


@app.command(name="verify-history")
def verify_history_cmd(ctx: typer.Context) -> None:
    """Verify the integrity of the status history chain."""
    try:
        count = verify_history(_db(ctx))
    except HistoryChainBroken as exc:
        print(f"[red bold]INTEGRITY FAILURE:[/red bold] {exc}")
        raise typer.Exit(code=1)
    print(f"[green]Chain OK[/green]: {count} events verified, no tampering detected.")


@app.command(name="export-history")
def export_history_cmd(
    ctx: typer.Context,
    output: Path | None = typer.Option(None, "--output", "-o", help="Output file (default: exports/history.json)."),
    verify: bool = typer.Option(True, "--verify/--no-verify", help="Verify chain before exporting."),
) -> None:
    """Export the full status history to JSON."""
    s = _settings(ctx)
    conn = _db(ctx)
    if verify:
        try:
            verify_history(conn)
        except HistoryChainBroken as exc:
            print(f"[red bold]INTEGRITY FAILURE:[/red bold] {exc}")
            print("[yellow]Export aborted. Use --no-verify to force.[/yellow]")
            raise typer.Exit(code=1)

    events = export_history(conn)
    if output is None:
        assert s.exports_dir is not None
        s.exports_dir.mkdir(parents=True, exist_ok=True)
        output = s.exports_dir / "history.json"

    output.write_text(json.dumps(events, indent=2, default=str), encoding="utf-8")
    print(f"[green]Exported[/green] {len(events)} events → {output}")


# ── Entrypoint ──────────────────────────────────────────────
def main() -> None:  # noqa: D103
    app()
