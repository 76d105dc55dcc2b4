"""Command-line interface for dofi."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Iterable

import tomli_w
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .config import DEFAULT_CONFIG_FILENAME, DEFAULT_IGNORE, ConfigError, default_config_path, load_config
from .errors import DofiError
from .manager import DofiManager
from .models import (
    CreateDir,
    CreateLink,
    Plan,
    RemoveLink,
    RunResult,
    ScanIssue,
    SkipConflict,
    StatusReport,
    Strictness,
    TargetClass,
)

app = typer.Typer(help="A simple dotfile manager, inspired by stow", no_args_is_help=True)
console = Console()
err_console = Console(stderr=True)


class ExitCode(IntEnum):
    OK = 0
    FATAL = 1
    CONFLICTS = 2
    FAILURES = 3


@dataclass
class CliState:
    config: Path | None = None
    dotfiles: Path | None = None
    base: Path | None = None


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _load_manager(state: CliState) -> DofiManager:
    config_obj = load_config(state.config).with_overrides(dotfiles=state.dotfiles, base=state.base)
    return DofiManager(config_obj)


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Check that you can write to the base directory.")
        raise typer.Exit(code=ExitCode.FATAL)
    if isinstance(exc, ConfigError):
        message = str(exc)
        console.print(f"[red]{message}[/red]")
        if "does not exist" in message:
            console.print("[yellow]Use 'dofi init --config <path>' to create a configuration file.[/yellow]")
        raise typer.Exit(code=ExitCode.FATAL)
    if isinstance(exc, DofiError):
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=ExitCode.FATAL)
    raise exc


def _exit_code(result: RunResult) -> ExitCode:
    if result.report.has_failures:
        return ExitCode.FAILURES
    if result.plan.conflicts or result.issues:
        return ExitCode.CONFLICTS
    return ExitCode.OK


def _describe(operation) -> tuple[str, str, str]:  # noqa: ANN001
    if isinstance(operation, CreateLink):
        return "create_link", operation.target.as_posix(), str(operation.source)
    if isinstance(operation, RemoveLink):
        return "remove_link", operation.target.as_posix(), operation.link_value or ""
    if isinstance(operation, CreateDir):
        return "create_dir", operation.target.as_posix(), ""
    if isinstance(operation, SkipConflict):
        return "skip_conflict", operation.target.as_posix(), operation.reason.value
    raise TypeError(f"Unsupported operation {operation!r}")


def _format_plan(plan: Plan) -> None:
    if plan.is_empty:
        console.print("[green]Nothing to do, everything is linked.[/green]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Operation")
    table.add_column("Path")
    table.add_column("Details", overflow="fold")

    op_styles = {"create_link": "green", "remove_link": "yellow", "create_dir": "cyan", "skip_conflict": "red"}
    for operation in plan:
        name, path, details = _describe(operation)
        style = op_styles[name]
        table.add_row(f"[{style}]{name}[/{style}]", path, details)

    console.print(table)


def _format_run(result: RunResult) -> None:
    report = result.report
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Operation")
    table.add_column("Path")
    table.add_column("Status")
    table.add_column("Details", overflow="fold")

    status_styles = {
        "applied": "green",
        "skipped": "yellow",
        "failed": "red",
        "rolled_back": "yellow",
        "pending": "white",
    }
    for outcome in report.outcomes:
        name, path, details = _describe(outcome.operation)
        status = outcome.status.value
        style = status_styles.get(status, "white")
        if outcome.error is not None:
            details = str(outcome.error)
        table.add_row(name, path, f"[{style}]{status}[/{style}]", details)

    if report.outcomes:
        console.print(table)

    for failure in report.undo_failures:
        console.print(f"[red]Rollback incomplete:[/red] {failure.error}")
    if report.cancelled:
        console.print("[yellow]Cancelled before all operations ran.[/yellow]")
    _format_issues(result.issues)

    summary = report.summary()
    prefix = "[dim](dry run)[/dim] " if report.dry_run else ""
    console.print(
        f"{prefix}linked: {summary.linked}, removed: {summary.removed}, directories: {summary.directories}, "
        f"skipped: {summary.skipped}, failed: {summary.failed}, rolled back: {summary.rolled_back}",
        soft_wrap=True,
    )


def _format_status(report: StatusReport) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Entry")
    table.add_column("Kind")
    table.add_column("State")
    table.add_column("Details", overflow="fold")

    status_styles = {
        TargetClass.LINKED_CORRECT: "green",
        TargetClass.ABSENT: "yellow",
        TargetClass.LINKED_WRONG: "red",
        TargetClass.FOREIGN: "red",
    }

    for entry in report.entries:
        style = status_styles.get(entry.state, "white")
        table.add_row(
            entry.relative_path.as_posix(),
            entry.kind.value,
            f"[{style}]{entry.state.value}[/{style}]",
            entry.details or "",
        )

    console.print(table)
    _format_issues(report.issues)


def _format_issues(issues: Iterable[ScanIssue]) -> None:
    issues = list(issues)
    if not issues:
        return

    table = Table(show_header=True, header_style="bold magenta", title="Scan issues")
    table.add_column("Entry")
    table.add_column("Problem")
    table.add_column("Details", overflow="fold")
    for issue in issues:
        table.add_row(issue.relative_path.as_posix(), issue.kind.value, issue.message)
    console.print(table)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"dofi version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dofi.toml"),
    dotfiles: Path | None = typer.Option(
        None,
        "--dotfiles",
        "-d",
        envvar="DOFI_DIR",
        help="Dotfiles directory",
    ),
    base: Path | None = typer.Option(
        None,
        "--base",
        "-b",
        help="Directory the dotfiles are linked into (defaults to your home directory)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool | None = typer.Option(
        None,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """A simple dotfile manager, inspired by stow."""

    _configure_logging(verbose)
    ctx.obj = CliState(config=config, dotfiles=dotfiles, base=base)


@app.command()
def init(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", help="Overwrite existing config if present"),
) -> None:
    """Create a starter dofi configuration file."""

    state: CliState = ctx.obj
    config_path = state.config or default_config_path()
    if config_path.exists() and not force:
        console.print(f"[red]Configuration '{config_path}' already exists. Use --force to overwrite.[/red]")
        raise typer.Exit(code=ExitCode.FATAL)

    dotfiles = state.dotfiles or Path("~/dotfiles")
    data = {
        "settings": {
            "dotfiles": str(dotfiles),
            "mode": Strictness.BEST_EFFORT.value,
            "prune": False,
            "relative_links": True,
            "ignore": list(DEFAULT_IGNORE),
        }
    }

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(f"# {DEFAULT_CONFIG_FILENAME}\n\n{tomli_w.dumps(data)}")
    console.print(f"[green]Created '{config_path}'.[/green]")


@app.command()
def link(
    ctx: typer.Context,
    mode: Strictness | None = typer.Option(
        None,
        "--mode",
        "-m",
        case_sensitive=False,
        help="best-effort keeps going after a failure, atomic rolls everything back",
    ),
    prune: bool = typer.Option(
        False,
        "--prune",
        help="Remove stale links that point at dotfiles which no longer exist",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show what would happen without changing anything"),
) -> None:
    """Links or relinks all dotfiles."""

    try:
        manager = _load_manager(ctx.obj)
        result = manager.link(mode=mode, prune=prune or None, dry_run=dry_run)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)

    _format_run(result)
    raise typer.Exit(code=_exit_code(result))


@app.command("plan")
def show_plan(
    ctx: typer.Context,
    prune: bool = typer.Option(False, "--prune", help="Include stale link removal"),
) -> None:
    """Show the operations 'link' would perform."""

    try:
        manager = _load_manager(ctx.obj)
        plan, scan = manager.plan(prune=prune or None)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)

    _format_plan(plan)
    _format_issues(scan.issues)
    if plan.conflicts or scan.issues:
        raise typer.Exit(code=ExitCode.CONFLICTS)


@app.command()
def status(ctx: typer.Context) -> None:
    """Show every dotfile and the state of its link."""

    try:
        manager = _load_manager(ctx.obj)
        report = manager.status()
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)

    _format_status(report)
    if not report.in_sync:
        console.print("[yellow]Some entries are not linked. Run 'dofi plan' to review or 'dofi link' to fix.[/yellow]")
        if any(entry.state in (TargetClass.FOREIGN, TargetClass.LINKED_WRONG) for entry in report.entries):
            raise typer.Exit(code=ExitCode.CONFLICTS)


@app.command()
def unlink(
    ctx: typer.Context,
    mode: Strictness | None = typer.Option(None, "--mode", "-m", case_sensitive=False, help="Execution mode"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show what would happen without changing anything"),
) -> None:
    """Remove every link that points into the dotfiles directory."""

    try:
        manager = _load_manager(ctx.obj)
        result = manager.unlink(mode=mode, dry_run=dry_run)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)

    _format_run(result)
    raise typer.Exit(code=_exit_code(result))


app.command("sync", help="Alias of 'link'.")(link)
app.command("uninstall", help="Alias of 'unlink'.")(unlink)


@app.command("list")
def list_dotfiles(ctx: typer.Context) -> None:
    """Lists all dotfiles."""

    try:
        manager = _load_manager(ctx.obj)
        entries = manager.list_entries()
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)

    for entry in entries:
        console.print(str(entry.source), highlight=False, soft_wrap=True)


@app.command()
def add(ctx: typer.Context, file: Path = typer.Argument(..., help="File in the base directory")) -> None:
    """Adds a dotfile to the dotfiles and links it back to its original place."""

    try:
        manager = _load_manager(ctx.obj)
        destination = manager.add(file)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)

    console.print(f"[green]Added '{file}' as '{destination}'.[/green]")


@app.command()
def remove(ctx: typer.Context, file: Path = typer.Argument(..., help="The symlink or the dotfile itself")) -> None:
    """Remove a dotfile and its symlink, restoring the file to its original place."""

    try:
        manager = _load_manager(ctx.obj)
        restored = manager.remove(file)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)

    console.print(f"[green]Restored '{restored}'.[/green]")


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
