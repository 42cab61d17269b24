"""Click-based CLI for Replisync."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, Optional

import click
import yaml
from pydantic import ValidationError
from rich.prompt import Confirm

from replisync import __version__
from replisync.config import (
    ReplicationConfig,
    ReplisyncConfig,
    ensure_config_exists,
    get_config_path,
    load_config,
    validate_config_file,
)
from replisync.errors import HandlerImportError, ReplicationCancelledError
from replisync.logger import ReplicationReporter, configure_logging
from replisync.output.console import Console, create_console
from replisync.sync.checkpoint import FileCheckpointStore
from replisync.sync.collection import MemoryCollection, ReplicatedCollection
from replisync.sync.runner import CycleResult
from replisync.sync.state import ReplicationState, replicate
from replisync.utils.callables import resolve_callable
from replisync.utils.paths import expand_path


def _config_path(ctx: click.Context) -> Path:
    return ctx.obj.get("config_path") or get_config_path()


def _load(ctx: click.Context) -> ReplisyncConfig:
    """Load configuration or exit with a readable message."""
    try:
        return load_config(_config_path(ctx))
    except FileNotFoundError as e:
        create_console().print_error(str(e))
        sys.exit(1)
    except (ValidationError, yaml.YAMLError) as e:
        create_console().print_error(f"Invalid configuration: {e}")
        sys.exit(1)


def _select(config: ReplisyncConfig, names: tuple[str, ...]) -> dict[str, ReplicationConfig]:
    if not names:
        return dict(config.replications)

    selected = {}
    for name in names:
        replication = config.get_replication(name)
        if replication is None:
            raise click.BadParameter(f"Replication '{name}' not found in configuration", param_hint="NAME")
        selected[name] = replication
    return selected


def _open_collection(config: ReplisyncConfig, name: str) -> ReplicatedCollection:
    if config.collection_factory:
        factory = resolve_callable(config.collection_factory)
        collection = factory(name)
        # status and reset look checkpoints up by the configured name
        if getattr(collection, "name", name) != name:
            raise click.ClickException(
                f"{config.collection_factory} returned collection '{collection.name}' for '{name}'"
            )
        return collection
    return MemoryCollection(name)


def _handlers(replication: ReplicationConfig) -> dict[str, Any]:
    """Resolve the handler and modifier references of one replication."""
    handlers: dict[str, Any] = {}
    if replication.push is not None and replication.push.handler:
        handlers["push_handler"] = resolve_callable(replication.push.handler)
        if replication.push.modifier:
            handlers["push_modifier"] = resolve_callable(replication.push.modifier)
    if replication.pull is not None and replication.pull.handler:
        handlers["pull_handler"] = resolve_callable(replication.pull.handler)
        if replication.pull.modifier:
            handlers["pull_modifier"] = resolve_callable(replication.pull.modifier)
    return handlers


async def _run_replications(
    config: ReplisyncConfig,
    selected: dict[str, ReplicationConfig],
    console: Console,
    *,
    once: bool,
) -> tuple[dict[str, Optional[CycleResult]], dict[str, dict[str, int]]]:
    store = FileCheckpointStore(expand_path(config.checkpoint_path))
    states: dict[str, ReplicationState] = {}
    reporters: dict[str, ReplicationReporter] = {}

    try:
        for name, replication in selected.items():
            handlers = _handlers(replication)
            if not handlers:
                console.print_warning(f"{name}: no push or pull handler configured, skipping")
                continue

            if once:
                replication = replication.model_copy(update={"live": False, "auto_start": False})

            collection = _open_collection(config, replication.collection)
            state = replicate(collection, replication, checkpoint_store=store, **handlers)
            states[name] = state
            reporters[name] = ReplicationReporter(name, state, console)
            console.print_info(f"{name}: {replication.collection} <-> {replication.replication_identifier}")

        if once:
            await asyncio.gather(*(state.run() for state in states.values()))
        else:
            # Runs until every replication is cancelled or the process is interrupted
            await asyncio.gather(*(_wait_cancelled(state) for state in states.values()))
    finally:
        for state in states.values():
            await state.cancel()
        for reporter in reporters.values():
            reporter.close()

    results = {name: state.last_result for name, state in states.items()}
    counts = {name: reporter.counts for name, reporter in reporters.items()}
    return results, counts


async def _wait_cancelled(state: ReplicationState) -> None:
    try:
        await state.await_initial_replication()
    except ReplicationCancelledError:
        return
    async for canceled in state.canceled.listen():
        if canceled:
            return


@click.group()
@click.version_option(version=__version__, prog_name="replisync")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (default: $REPLISYNC_CONFIG or ~/.config/replisync/config.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path]) -> None:
    """Replisync - replicate local document collections against a remote.

    \b
    Each cycle pushes pending local writes, then pulls remote changes
    after the stored checkpoint. The remote decides every conflict.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.argument("names", nargs=-1)
@click.option("--once", is_flag=True, help="Run a single cycle per replication and exit")
@click.option("--verbose", "-v", is_flag=True, help="Show every document and cycle")
@click.pass_context
def run(ctx: click.Context, names: tuple[str, ...], once: bool, verbose: bool) -> None:
    """Run replications (all configured ones if no NAME is given).

    Without --once, replication continues until interrupted with Ctrl+C.
    """
    config = _load(ctx)
    verbose = verbose or config.output.verbose
    console = create_console(verbose=verbose, colored=config.output.colored)
    configure_logging(config.output.log_level, verbose=verbose, log_file=config.output.log_file)

    selected = _select(config, names)
    if not selected:
        console.print_warning("No replications configured")
        return

    try:
        results, counts = asyncio.run(_run_replications(config, selected, console, once=once))
    except HandlerImportError as e:
        console.print_error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        console.print_warning("Interrupted")
        return

    console.print_run_summary(results, counts)
    if once and any(result is None or not result.success for result in results.values()):
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show configured replications and their stored checkpoints."""
    config = _load(ctx)
    console = create_console(verbose=config.output.verbose, colored=config.output.colored)
    store = FileCheckpointStore(expand_path(config.checkpoint_path))
    records = {record.key: record for record in store.records()}
    console.print_status(config.replications, records)


@cli.command()
@click.argument("names", nargs=-1)
@click.option("--all", "reset_all", is_flag=True, help="Forget every stored checkpoint")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def reset(ctx: click.Context, names: tuple[str, ...], reset_all: bool, yes: bool) -> None:
    """Forget stored checkpoints so the next run pulls from the beginning."""
    config = _load(ctx)
    console = create_console(verbose=config.output.verbose, colored=config.output.colored)

    if not names and not reset_all:
        console.print_error("Give at least one replication NAME or --all")
        sys.exit(2)

    if not yes:
        target = "all checkpoints" if reset_all else ", ".join(names)
        if not Confirm.ask(f"Reset {target}?", default=False):
            console.print_warning("Reset cancelled")
            return

    store = FileCheckpointStore(expand_path(config.checkpoint_path))
    if reset_all:
        count = store.reset_all()
        console.print_success(f"Removed {count} checkpoint(s)")
        return

    for name, replication in _select(config, names).items():
        if store.reset(replication.checkpoint_key):
            console.print_success(f"Reset checkpoint of {name}")
        else:
            console.print_info(f"{name} has no stored checkpoint")


# ============================================================================
# Configuration Commands
# ============================================================================


@cli.group("config")
def config_group() -> None:
    """Configuration file commands."""
    pass


@config_group.command("init")
@click.pass_context
def config_init(ctx: click.Context) -> None:
    """Create a default configuration file if none exists."""
    console = create_console()
    path, created = ensure_config_exists(_config_path(ctx))
    if created:
        console.print_success(f"Created configuration: {path}")
    else:
        console.print_info(f"Configuration already exists: {path}")


@config_group.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show the effective configuration."""
    config = _load(ctx)
    console = create_console(colored=config.output.colored)
    console.print_config_summary(str(_config_path(ctx)), len(config.replications))
    console.print(yaml.dump(config.model_dump(mode="json"), default_flow_style=False, sort_keys=False))


@config_group.command("validate")
@click.argument("file", required=False, type=click.Path(path_type=Path))
@click.pass_context
def config_validate(ctx: click.Context, file: Optional[Path]) -> None:
    """Validate a configuration file (default: the active one)."""
    console = create_console()
    path = file or _config_path(ctx)
    valid, messages = validate_config_file(path)
    if valid:
        console.print_success(f"Configuration is valid: {path}")
        return

    console.print_error(f"Configuration is invalid: {path}")
    for message in messages:
        console.print(f"  • {message}")
    sys.exit(1)
