"""Read-only listings of configured branches and supported entities."""

from __future__ import annotations

import json

import click
from rich.console import Console
from rich.table import Table

from reconsync.app.config import ConfigError, ConfigHolder
from reconsync.entities import available_entities


@click.command(name="branches")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=str),
    default=None,
    help="Path to config.json (defaults to $RECONSYNC_CONFIG or ./config.json).",
)
@click.option("--json-output", is_flag=True, default=False)
def branches(config_path: str | None, json_output: bool) -> None:
    """Show active branches from the configuration."""
    console = Console()
    try:
        config = ConfigHolder(config_path).config
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        raise click.exceptions.Exit(1)

    active = config.active_branches()
    if json_output:
        click.echo(
            json.dumps(
                [
                    {
                        "id": b.id,
                        "name": b.name,
                        "db_id": b.db_id,
                        "has_credentials": bool(b.credentials and b.credentials.complete),
                    }
                    for b in active
                ],
                indent=2,
            )
        )
        return
    if not active:
        console.print("No active branches configured.")
        return
    table = Table(title="Branches")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Remote DB")
    table.add_column("Credentials")
    for branch in active:
        source = "config" if branch.credentials and branch.credentials.complete else "env"
        table.add_row(branch.id, branch.name, branch.db_id, source)
    console.print(table)


@click.command(name="entities")
def entities() -> None:
    """Show the entities that can be synced."""
    table = Table(title="Entities")
    table.add_column("Name")
    table.add_column("Endpoint")
    table.add_column("Table")
    table.add_column("Child policy")
    table.add_column("Date field")
    for spec in available_entities():
        table.add_row(
            spec.name,
            spec.endpoint,
            spec.header_table,
            spec.child_policy.value,
            spec.date_filter_type or "-",
        )
    Console().print(table)
