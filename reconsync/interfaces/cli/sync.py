"""Synchronization CLI commands: status preview, sync and run history."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from reconsync.app.config import ConfigError
from reconsync.domain.models import SyncStatus
from reconsync.entities import available_entities, get_entity
from reconsync.infrastructure.http import RemoteError
from reconsync.interfaces.cli.context import build_cli_context
from reconsync.services.sync import SyncError
from reconsync.services.sync_service import SyncRunSummary, SyncService, build_list_filter

ENTITY_CHOICES = [spec.name for spec in available_entities()]


def _common_options(fn):
    fn = click.option(
        "--config",
        "config_path",
        type=click.Path(dir_okay=False, path_type=str),
        default=None,
        help="Path to config.json (defaults to $RECONSYNC_CONFIG or ./config.json).",
    )(fn)
    fn = click.option(
        "--db",
        "db_path",
        type=click.Path(dir_okay=False, path_type=str),
        default=None,
        help="Path to the SQLite database file. Overrides the config value.",
    )(fn)
    fn = click.option(
        "--json-output",
        is_flag=True,
        default=False,
        help="Print machine-readable JSON instead of a table.",
    )(fn)
    return fn


def _filter_options(fn):
    fn = click.option(
        "--entity",
        type=click.Choice(ENTITY_CHOICES),
        required=True,
        help="Entity to reconcile.",
    )(fn)
    fn = click.option("--branch", "branch_id", required=True, help="Branch id from the config.")(fn)
    fn = click.option("--date-from", help="Start date (YYYY-MM-DD). Defaults to today; not used by customers or items.")(fn)
    fn = click.option("--date-to", help="End date (YYYY-MM-DD). Defaults to the start date.")(fn)
    fn = click.option(
        "--date-filter-type",
        default=None,
        help="Remote date field to filter on (entity default, e.g. transDate).",
    )(fn)
    fn = click.option("--warehouse-id", default=None, help="Warehouse filter (stock mutations).")(fn)
    return fn


def _build_service(config_path: str | None, db_path: str | None) -> SyncService:
    cli_context = build_cli_context(config_path, db_path)
    return SyncService(cli_context.connection_factory, cli_context.config_holder)


def _print_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _render_status(console: Console, entity: str, branch_id: str, status: SyncStatus) -> None:
    table = Table(title=f"{entity} @ {branch_id}")
    table.add_column("Total", justify="right")
    table.add_column("New", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Unchanged", justify="right")
    table.add_column("Need sync", justify="right")
    table.add_column("In database", justify="right")
    table.add_row(
        str(status.total),
        str(status.new),
        str(status.updated),
        str(status.unchanged),
        str(status.need_sync),
        str(status.in_database),
    )
    console.print(table)
    for label, samples in (("New", status.new_samples), ("Updated", status.updated_samples)):
        if samples:
            numbers = ", ".join(ref.display_number or ref.external_id for ref in samples)
            console.print(f"[cyan]{label} samples:[/cyan] {numbers}")


def _render_summary(console: Console, summary: SyncRunSummary) -> None:
    report = summary.report
    if summary.status == "aborted" or report is None:
        console.print(f"[red]Sync aborted: {summary.error or 'unknown error'}[/red]")
        return
    colour = "green" if report.status == "success" else "yellow"
    console.print(
        f"[{colour}]Sync {report.status}[/{colour}] (run #{report.run_id}): "
        f"scanned={report.scanned}, new={report.new}, updated={report.updated}, "
        f"unchanged={report.unchanged}, synced={report.synced}, failed={report.failed}, "
        f"duration={report.duration_ms}ms"
    )
    if report.failed_samples:
        console.print(f"[yellow]Failures (showing {len(report.failed_samples)} of {report.failed}):[/yellow]")
        for sample in report.failed_samples:
            console.print(
                f"  - {sample.external_id} ({sample.error_kind}) "
                f"after {sample.attempts} attempt(s): {sample.error}"
            )


@click.command(name="status")
@_filter_options
@_common_options
def status(
    entity: str,
    branch_id: str,
    date_from: str | None,
    date_to: str | None,
    date_filter_type: str | None,
    warehouse_id: str | None,
    config_path: str | None,
    db_path: str | None,
    json_output: bool,
) -> None:
    """Preview a sync: count new, updated and unchanged records."""
    console = Console()
    try:
        service = _build_service(config_path, db_path)
        spec = get_entity(entity)
        list_filter = build_list_filter(
            spec,
            date_from=date_from,
            date_to=date_to,
            date_filter_type=date_filter_type,
            warehouse_id=warehouse_id,
        )
        with console.status("Checking sync status..."):
            result = asyncio.run(
                service.check_status(entity=entity, branch_id=branch_id, list_filter=list_filter)
            )
    except (ConfigError, SyncError, ValueError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise click.exceptions.Exit(1)
    except RemoteError as exc:
        console.print(f"[red]Status check failed: {exc}[/red]")
        raise click.exceptions.Exit(1)

    if json_output:
        _print_json(result.to_dict())
        return
    _render_status(console, entity, branch_id, result)


@click.command(name="sync")
@_filter_options
@click.option(
    "--mode",
    type=click.Choice(["missing", "all"], case_sensitive=False),
    default="missing",
    show_default=True,
    help="'missing' fetches new and updated records only; 'all' refetches everything listed.",
)
@click.option("--batch-size", type=int, default=None, help="Detail fetches per batch.")
@click.option("--batch-delay", type=float, default=None, help="Seconds between batches.")
@click.option("--max-retries", type=int, default=None, help="Retries per record on transient errors.")
@_common_options
def sync(
    entity: str,
    branch_id: str,
    date_from: str | None,
    date_to: str | None,
    date_filter_type: str | None,
    warehouse_id: str | None,
    mode: str,
    batch_size: int | None,
    batch_delay: float | None,
    max_retries: int | None,
    config_path: str | None,
    db_path: str | None,
    json_output: bool,
) -> None:
    """Reconcile one entity of one branch into the local database."""
    console = Console()
    try:
        service = _build_service(config_path, db_path)
        spec = get_entity(entity)
        list_filter = build_list_filter(
            spec,
            date_from=date_from,
            date_to=date_to,
            date_filter_type=date_filter_type,
            warehouse_id=warehouse_id,
        )
        with console.status(f"Syncing {entity} for {branch_id}..."):
            summary = asyncio.run(
                service.trigger_sync(
                    entity=entity,
                    branch_id=branch_id,
                    list_filter=list_filter,
                    mode=mode.lower(),
                    batch_size=batch_size,
                    batch_delay=batch_delay,
                    max_retries=max_retries,
                )
            )
    except (ConfigError, SyncError, ValueError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise click.exceptions.Exit(1)

    if json_output:
        _print_json(summary.to_dict())
    else:
        _render_summary(console, summary)
    if summary.status == "aborted":
        raise click.exceptions.Exit(1)


@click.command(name="runs")
@click.option("--entity", type=click.Choice(ENTITY_CHOICES), default=None)
@click.option("--branch", "branch_id", default=None)
@click.option("--limit", type=int, default=20, show_default=True)
@_common_options
def runs(
    entity: str | None,
    branch_id: str | None,
    limit: int,
    config_path: str | None,
    db_path: str | None,
    json_output: bool,
) -> None:
    """List recent sync runs."""
    console = Console()
    try:
        service = _build_service(config_path, db_path)
        rows = service.recent_runs(entity=entity, branch_id=branch_id, limit=limit)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        raise click.exceptions.Exit(1)

    if json_output:
        _print_json(rows)
        return
    if not rows:
        console.print("No sync runs recorded.")
        return
    table = Table(title="Recent sync runs")
    for column in ("Run", "Entity", "Branch", "Mode", "Status", "Started", "Synced", "Failed"):
        table.add_column(column)
    for row in rows:
        table.add_row(
            str(row["id"]),
            row["entity"],
            row["scope_key"],
            row.get("mode") or "",
            row.get("status") or "",
            row.get("started_at") or "",
            str(row.get("synced_count") or 0),
            str(row.get("failed_count") or 0),
        )
    console.print(table)
