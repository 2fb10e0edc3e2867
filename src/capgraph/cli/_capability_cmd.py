"""
CLI commands: ``capgraph provision``, ``capgraph resolve``,
``capgraph capabilities`` and ``capgraph check``.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import click
from rich.console import Console
from rich.table import Table

from capgraph.core.capability import (
    CapabilityEngine,
    CapabilityMode,
    CapabilityRequirement,
    CapabilitySet,
    Guarded,
    RequirementConfig,
)
from capgraph.core.config import CapGraphConfig
from capgraph.core.constants import ExitCode
from capgraph.core.exceptions import (
    CapabilityDecodeError,
    CapGraphError,
    ConfigError,
    InvalidSubjectError,
    ItemNotFoundError,
    RoleBuildError,
    RoleCycleError,
)
from capgraph.core.store.database import SqliteEntityStore

console = Console()


def _exit_code_for(exc: CapGraphError) -> ExitCode:
    if isinstance(exc, ItemNotFoundError):
        return ExitCode.NOT_FOUND
    if isinstance(exc, ConfigError):
        return ExitCode.CONFIG_ERROR
    invalid = (InvalidSubjectError, CapabilityDecodeError, RoleBuildError, RoleCycleError)
    if isinstance(exc, invalid):
        return ExitCode.INVALID_INPUT
    if isinstance(exc, ValueError):
        return ExitCode.INVALID_INPUT
    return ExitCode.ERROR


def _fail(exc: CapGraphError) -> None:
    click.echo(f"Error: {exc}", err=True)
    sys.exit(_exit_code_for(exc))


@contextmanager
def _open_engine(config: CapGraphConfig, *, create: bool = False) -> Iterator[CapabilityEngine]:
    """Open the configured SQLite store and wrap it in an engine."""
    db_path = config.db_path
    if not create and not db_path.exists():
        click.echo(
            f"No capgraph database at {db_path}. Run 'capgraph provision FILE' first.", err=True
        )
        sys.exit(ExitCode.NOT_FOUND)
    store = SqliteEntityStore(db_path)
    store.connect()
    try:
        yield CapabilityEngine(
            store,
            max_role_depth=config.engine.max_role_depth,
            accepted_prefixes=config.engine.accepted_prefixes,
        )
    finally:
        store.close()


def _print_capabilities(caps: CapabilitySet, title: str, as_json: bool) -> None:
    if as_json:
        payload = {"subject": caps.subject_code, "capabilities": caps.to_dict()}
        click.echo(json.dumps(payload, indent=2))
        return
    if not len(caps):
        console.print(f"[dim]{caps.subject_code} holds no capabilities.[/dim]")
        return
    table = Table(title=title, show_lines=False)
    table.add_column("Capability", style="cyan", no_wrap=True)
    for mode in CapabilityMode:
        table.add_column(mode.name.title())
    for cap in caps:
        row = [cap.code]
        for mode in CapabilityMode:
            node = cap.get_node(mode)
            row.append(node.scope.name if node else "-")
        table.add_row(*row)
    console.print(table)


# ---------------------------------------------------------------------------
# provision
# ---------------------------------------------------------------------------


@click.command("provision")
@click.argument("provisioning_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def provision_cmd(config: CapGraphConfig, provisioning_file: str) -> None:
    """
    Apply a provisioning YAML file (capabilities, roles, people) to the database.

    Applying the same file again is safe: codes and roles are got-or-created.
    """
    from capgraph.core.provisioning import apply_provisioning, load_provisioning

    try:
        doc = load_provisioning(provisioning_file)
        with _open_engine(config, create=True) as engine:
            result = apply_provisioning(doc, engine)
    except CapGraphError as exc:
        _fail(exc)
        return

    click.echo(
        f"Provisioned {len(result.capabilities)} capabilities, {len(result.roles)} roles, "
        f"{len(result.people)} people into {config.db_path}"
    )


# ---------------------------------------------------------------------------
# resolve / capabilities
# ---------------------------------------------------------------------------


@click.command("resolve")
@click.argument("entity_code")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
@click.pass_obj
def resolve_cmd(config: CapGraphConfig, entity_code: str, as_json: bool) -> None:
    """Show the effective capabilities of ENTITY_CODE, roles included."""
    try:
        with _open_engine(config) as engine:
            caps = engine.resolve(entity_code.upper())
    except CapGraphError as exc:
        _fail(exc)
        return
    _print_capabilities(caps, f"Effective capabilities of {caps.subject_code}", as_json)


@click.command("capabilities")
@click.argument("entity_code")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
@click.pass_obj
def capabilities_cmd(config: CapGraphConfig, entity_code: str, as_json: bool) -> None:
    """Show the capabilities ENTITY_CODE declares itself, without its roles."""
    try:
        with _open_engine(config) as engine:
            caps = engine.own_capabilities(entity_code.upper())
    except CapGraphError as exc:
        _fail(exc)
        return
    _print_capabilities(caps, f"Own capabilities of {caps.subject_code}", as_json)


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


@click.command("check")
@click.argument("entity_code")
@click.argument("requirements", nargs=-1, required=True)
@click.option(
    "--any",
    "any_of",
    is_flag=True,
    default=False,
    help="Pass when any one requirement holds (default: all must hold).",
)
@click.pass_obj
def check_cmd(
    config: CapGraphConfig, entity_code: str, requirements: tuple[str, ...], any_of: bool
) -> None:
    """
    Check ENTITY_CODE against one or more REQUIREMENTs.

    A requirement is a capability code, optionally followed by the nodes it
    needs: ``CAP_ITEM`` (present at all), ``CAP_ITEM:V:A`` or
    ``ITEM:V:G,E:S``.  Exits 0 when granted, 1 when denied.

    Example::

        capgraph check PER_ALICE CAP_ITEM:V:A CAP_USER:E:S --any
    """
    try:
        parsed = [CapabilityRequirement.parse(text) for text in requirements]
        with _open_engine(config) as engine:
            caps = engine.resolve(entity_code.upper())
    except CapGraphError as exc:
        _fail(exc)
        return

    for requirement in parsed:
        mark = "✓" if requirement.is_satisfied_by(caps) else "✗"
        click.echo(f"  {mark}  {requirement}")

    guard = Guarded(capability_requirements=parsed)
    granted = guard.requirements_met(caps, RequirementConfig(requires_all_caps=not any_of))
    click.echo(f"{caps.subject_code}: {'granted' if granted else 'denied'}")
    sys.exit(ExitCode.SUCCESS if granted else ExitCode.ERROR)
