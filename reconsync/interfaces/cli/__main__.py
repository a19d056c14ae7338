"""Entry point for running the reconsync CLI.

Executing ``python -m reconsync.interfaces.cli`` (or the ``reconsync``
console script) invokes the top-level group below.
"""

import logging

import click

from reconsync.infrastructure.observability import configure_logging

from .catalog import branches, entities
from .sync import runs, status, sync


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """reconsync command-line interface."""
    configure_logging(level=logging.DEBUG if verbose else logging.INFO)


cli.add_command(branches)
cli.add_command(entities)
cli.add_command(status)
cli.add_command(sync)
cli.add_command(runs)


if __name__ == "__main__":
    cli()
