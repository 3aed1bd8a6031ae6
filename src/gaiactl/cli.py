"""Typer-powered command line interface for ``gaiactl``."""
from __future__ import annotations

import json
import textwrap
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import ConfigError, load_config
from .errors import ExtractionError, ProcessExecutionError, ValidationError
from .exit_codes import ExitCode
from .jobs import JOB_OPERATIONS, JobDispatcher
from .locking import LockTimeoutError
from .logging import OperationScope
from .models import ConfigUpdate, LifecycleOperation, LifecycleResult, Step
from .runtime import NodeRuntime, build_runtime

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to gaiactl's YAML config file.",
)
DRY_RUN_OPTION = typer.Option(
    False,
    "--dry-run",
    help="Print the steps that would run without executing them.",
)
JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit the result as JSON.",
)
ASSIGNMENTS_ARGUMENT = typer.Argument(
    ...,
    metavar="KEY=VALUE...",
    help="Configuration updates, applied in the order given.",
)

# Lines of captured output shown per step in the summary table.
OUTPUT_PREVIEW_LINES = 3

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        GaiaNet node lifecycle CLI.

        Installs, starts, stops, upgrades and reconfigures a GaiaNet node by
        running the node tool's commands in a fixed order.
        """
    ).strip(),
)
config_app = typer.Typer(help="Inspect gaiactl and node configuration keys.")
job_app = typer.Typer(help="Run lifecycle jobs the way the dispatch service does.")

app.add_typer(config_app, name="config")
app.add_typer(job_app, name="job")


def _ensure_runtime(
    ctx: typer.Context,
    config_file: Path | None,
    lock_timeout_override: float | None = None,
) -> NodeRuntime:
    runtime = ctx.obj
    if isinstance(runtime, NodeRuntime):
        return runtime

    overrides: dict[str, object] = {}
    if lock_timeout_override is not None:
        overrides["lock_timeout"] = lock_timeout_override

    try:
        config = load_config(config_file=config_file, overrides=overrides)
    except ConfigError as exc:
        console.print(f"[red]Configuration error: {exc}[/red]")
        raise typer.Exit(code=ExitCode.ENVIRONMENT) from exc
    runtime = build_runtime(config)
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> NodeRuntime:
    runtime = ctx.obj
    if isinstance(runtime, NodeRuntime):
        return runtime
    return _ensure_runtime(ctx, None, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the gaiactl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    lock_timeout: float | None = typer.Option(
        None,
        "--lock-timeout",
        help="Override lock acquisition timeout in seconds.",
    ),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"gaiactl {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    _ensure_runtime(ctx, config_file, lock_timeout)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------
def _parse_assignments(assignments: Sequence[str]) -> list[ConfigUpdate]:
    updates: list[ConfigUpdate] = []
    for item in assignments:
        try:
            updates.append(ConfigUpdate.parse_assignment(item))
        except ValueError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(code=ExitCode.VALIDATION) from exc
    return updates


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.VALIDATION,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{message}[/red]")
    op.error(message, errors=list(errors or [message]), rc=rc)
    raise typer.Exit(code=rc)


def _render_plan(operation: LifecycleOperation, steps: Sequence[Step]) -> None:
    table = Table(title=f"Planned {operation.value} steps")
    table.add_column("#", justify="right")
    table.add_column("Step")
    table.add_column("Command")
    for index, step in enumerate(steps, 1):
        table.add_row(str(index), step.name, step.command)
    console.print(table)


def _render_result(operation: LifecycleOperation, result: LifecycleResult) -> None:
    table = Table(title=f"{operation.value} steps")
    table.add_column("Step")
    table.add_column("Output")
    for name, output in result.outputs.items():
        lines = output.strip().splitlines()
        preview = "\n".join(lines[-OUTPUT_PREVIEW_LINES:]) if lines else "-"
        table.add_row(name, preview)
    console.print(table)
    if result.public_url:
        console.print(f"[green]Public URL:[/green] {result.public_url}")
    console.print(f"[green]Node {operation.value} completed.[/green]")


def _plan_dry_run(
    runtime: NodeRuntime,
    operation: LifecycleOperation,
    updates: Sequence[ConfigUpdate],
    *,
    json_output: bool,
) -> None:
    with runtime.logger.operation(
        f"{operation.value} --dry-run",
        args={"dry_run": True, "keys": [update.key for update in updates]},
        target={"kind": "node", "name": runtime.config.node_name},
    ) as op:
        try:
            steps = runtime.lifecycle.plan(operation, updates)
        except ValidationError as exc:
            _command_error(op, str(exc), rc=ExitCode.VALIDATION)
        for step in steps:
            op.add_step(step.name, status="skipped", detail="dry-run")
        if json_output:
            payload = [{"name": step.name, "command": step.command} for step in steps]
            typer.echo(json.dumps(payload, indent=2))
        else:
            _render_plan(operation, steps)
        op.success("Dry run complete.", changed=0)


def _run_operation(
    ctx: typer.Context,
    operation: LifecycleOperation,
    updates: Sequence[ConfigUpdate] = (),
    *,
    dry_run: bool,
    json_output: bool,
) -> None:
    runtime = _get_runtime(ctx)
    if dry_run:
        _plan_dry_run(runtime, operation, updates, json_output=json_output)
        return

    args: Mapping[str, object] = {"keys": [update.key for update in updates]}
    try:
        result = runtime.execute(operation, updates, args=args)
    except ValidationError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=ExitCode.VALIDATION) from exc
    except (ProcessExecutionError, ExtractionError) as exc:
        console.print(f"[red]{exc}[/red]")
        if isinstance(exc, ProcessExecutionError) and exc.diagnostic.strip():
            console.print(exc.diagnostic.rstrip(), markup=False, highlight=False)
        raise typer.Exit(code=ExitCode.PROVIDER) from exc
    except LockTimeoutError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=ExitCode.ENVIRONMENT) from exc

    if json_output:
        typer.echo(json.dumps(result.to_payload(), indent=2))
    else:
        _render_result(operation, result)


# ----------------------------------------------------------------------
# Lifecycle commands
# ----------------------------------------------------------------------
@app.command()
def install(
    ctx: typer.Context,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Install, initialise and start the node."""
    _run_operation(ctx, LifecycleOperation.INSTALL, dry_run=dry_run, json_output=json_output)


@app.command()
def stop(
    ctx: typer.Context,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Stop the node."""
    _run_operation(ctx, LifecycleOperation.STOP, dry_run=dry_run, json_output=json_output)


@app.command()
def upgrade(
    ctx: typer.Context,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Upgrade the node to the latest release and restart it."""
    _run_operation(ctx, LifecycleOperation.UPGRADE, dry_run=dry_run, json_output=json_output)


@app.command()
def configure(
    ctx: typer.Context,
    assignments: list[str] = ASSIGNMENTS_ARGUMENT,
    dry_run: bool = DRY_RUN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Apply configuration updates, then re-initialise and restart the node."""
    updates = _parse_assignments(assignments)
    _run_operation(
        ctx,
        LifecycleOperation.CONFIGURE,
        updates,
        dry_run=dry_run,
        json_output=json_output,
    )


@app.command()
def validate(
    ctx: typer.Context,
    assignments: list[str] = ASSIGNMENTS_ARGUMENT,
) -> None:
    """Check configuration updates without touching the node."""
    runtime = _get_runtime(ctx)
    updates = _parse_assignments(assignments)
    try:
        runtime.lifecycle.validator.validate_batch(updates)
    except ValidationError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=ExitCode.VALIDATION) from exc
    console.print(f"[green]{len(updates)} config update(s) valid.[/green]")


# ----------------------------------------------------------------------
# config
# ----------------------------------------------------------------------
@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show the resolved gaiactl configuration."""
    runtime = _get_runtime(ctx)
    payload = runtime.config.to_dict()
    if json_output:
        typer.echo(json.dumps(payload, indent=2))
        return
    table = Table(title="gaiactl configuration")
    table.add_column("Key")
    table.add_column("Value")
    for key, value in payload.items():
        rendered = json.dumps(value) if isinstance(value, (dict, list)) else str(value)
        table.add_row(key, rendered)
    console.print(table)


@config_app.command("keys")
def config_keys(ctx: typer.Context) -> None:
    """List node configuration keys accepted by ``configure``."""
    runtime = _get_runtime(ctx)
    table = Table(title="Node configuration keys")
    table.add_column("Key")
    table.add_column("Accepts")
    for key, rule in runtime.lifecycle.validator.rules.items():
        table.add_row(key, rule.describe())
    console.print(table)


# ----------------------------------------------------------------------
# job
# ----------------------------------------------------------------------
@job_app.command("run")
def job_run(
    ctx: typer.Context,
    job_id: int = typer.Argument(..., help="Job id (1 install, 2 stop, 3 upgrade, 4 configure)."),
    payload: str = typer.Argument("", help="Job payload; a JSON array for job 4."),
) -> None:
    """Run a lifecycle job and print its JSON response."""
    if job_id not in JOB_OPERATIONS:
        known = ", ".join(str(key) for key in sorted(JOB_OPERATIONS))
        console.print(f"[red]Unknown job id {job_id}. Known ids: {known}.[/red]")
        raise typer.Exit(code=ExitCode.VALIDATION)
    dispatcher = JobDispatcher(_get_runtime(ctx))
    response = dispatcher.dispatch(job_id, payload)
    typer.echo(response)
    if "error" in json.loads(response):
        raise typer.Exit(code=ExitCode.PROVIDER)


__all__ = ["app"]
