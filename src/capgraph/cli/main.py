"""
capgraph CLI entry point.

Commands:
  capgraph provision FILE                     apply a provisioning file to the database
  capgraph resolve CODE [--json]              effective capabilities of an entity
  capgraph capabilities CODE [--json]         an entity's own declarations only
  capgraph check CODE REQUIREMENT... [--any]  exit 0 if the requirements hold, 1 if not
  capgraph version                            show version

Global options ``--config``, ``--log-level`` and ``--log-json`` come before
the command name.
"""

from __future__ import annotations

import sys

import click

from capgraph import __version__
from capgraph.core.constants import ExitCode


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-V", message="capgraph %(version)s")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Config file (default: $CAPGRAPH_CONFIG or the platform data dir).",
)
@click.option("--log-level", default=None, hidden=True, help="Log level for structured logging.")
@click.option("--log-json", is_flag=True, default=False, hidden=True, help="Emit JSON log lines.")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str | None, log_json: bool) -> None:
    """capgraph: capability-based access control for entity workflows."""
    from capgraph.core.config import load_config_or_default
    from capgraph.core.exceptions import ConfigError
    from capgraph.core.logging import configure_logging

    try:
        config = load_config_or_default(config_path)
    except ConfigError as exc:
        click.echo(f"Config error: {exc}", err=True)
        sys.exit(ExitCode.CONFIG_ERROR)

    configure_logging(
        level=log_level or config.logging.level,
        json_output=log_json or config.logging.format == "json",
    )
    ctx.obj = config


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command()
def version() -> None:
    """Show the capgraph version."""
    click.echo(f"capgraph {__version__}")


# ---------------------------------------------------------------------------
# provision / resolve / capabilities / check
# ---------------------------------------------------------------------------

from capgraph.cli._capability_cmd import (  # noqa: E402
    capabilities_cmd,
    check_cmd,
    provision_cmd,
    resolve_cmd,
)

cli.add_command(provision_cmd)
cli.add_command(resolve_cmd)
cli.add_command(capabilities_cmd)
cli.add_command(check_cmd)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
