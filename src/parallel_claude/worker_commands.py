"""Worker commands for the parallel-claude CLI.

spawn, list/ls, cleanup/rm, focus, send and mark. Reported failures are
recorded in ~/.parallel-claude/errors.jsonl and exit with status 1.
"""

import json
import subprocess
import sys
import time
import traceback
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from parallel_claude.allocation import AllocationConflictError
from parallel_claude.config import TERMINAL_BACKENDS
from parallel_claude.error_logging import ErrorType, log_error
from parallel_claude.registry import WorkerStatus
from parallel_claude.repo_setup import ExternalToolError
from parallel_claude.terminal.base import TerminalError
from parallel_claude.workers import (
    SpawnOptions,
    WorkerNotFoundError,
    WorkerSpawnError,
    build_manager,
)

STATUS_STYLES = {
    WorkerStatus.SETTING_UP: "yellow",
    WorkerStatus.RUNNING: "green",
    WorkerStatus.STOPPED: "dim",
    WorkerStatus.FAILED: "red",
}


def _command_line() -> str:
    return " ".join(["parallel-claude", *sys.argv[1:]])


def _record_error(subcommand: str, error_type: ErrorType, message: str,
                  context: Optional[dict] = None, start_time: Optional[float] = None,
                  stack_trace: Optional[str] = None) -> None:
    duration_ms = int((time.time() - start_time) * 1000) if start_time else None
    log_error(
        command=_command_line(),
        subcommand=subcommand,
        error_type=error_type,
        message=message,
        context=context,
        stack_trace=stack_trace,
        duration_ms=duration_ms,
    )


def _fail(console: Console, subcommand: str, error_type: ErrorType, message: str,
          context: Optional[dict] = None, start_time: Optional[float] = None) -> None:
    """Record the error, print it and exit 1."""
    _record_error(subcommand, error_type, message, context, start_time)
    console.print(f"[red]Error:[/red] {escape(message)}")
    raise SystemExit(1)


def _manager(console: Console, subcommand: str, terminal: Optional[str] = None, on_progress=None):
    try:
        return build_manager(terminal=terminal, on_progress=on_progress)
    except ValueError as e:
        _fail(console, subcommand, ErrorType.CONFIG_ERROR, str(e))


def _spawn_error_type(error: Exception) -> ErrorType:
    if isinstance(error, AllocationConflictError):
        return ErrorType.ALLOCATION_CONFLICT
    cause = getattr(error, "cause", None)
    if isinstance(cause, ExternalToolError):
        return ErrorType.EXTERNAL_TOOL_FAILED
    if isinstance(cause, TerminalError):
        return ErrorType.TERMINAL_ERROR
    return ErrorType.SPAWN_FAILED


def register_worker_commands(cli):
    """Register worker commands with the CLI."""

    @cli.command()
    @click.argument('repo_url')
    @click.option('--task', '-t', 'tasks', multiple=True, required=True,
                  help='Task for the agent (repeat for several workers)')
    @click.option('--branch', '-b', default=None, help='Branch name (default: feat/<task-slug>-<name>-<date>)')
    @click.option('--port', '-p', type=int, default=None, help='Dev server port (default: next free port)')
    @click.option('--name', '-n', default=None, help='Worker name (default: adjective-animal)')
    @click.option('--no-dev', is_flag=True, default=False, help='Do not start a dev server pane')
    @click.option('--terminal', type=click.Choice(TERMINAL_BACKENDS), default=None,
                  help='Terminal backend (default: from config, iterm2)')
    def spawn(repo_url: str, tasks: tuple, branch: Optional[str], port: Optional[int],
              name: Optional[str], no_dev: bool, terminal: Optional[str]):
        """Spawn one worker per task.

        \b
        Each worker gets its own clone, branch, dev server port and a tab in
        the shared parallel-claude terminal window.

        \b
        Examples:
          parallel-claude spawn git@github.com:acme/web.git -t "Fix login redirect"
          parallel-claude spawn https://github.com/acme/web -t "Add dark mode" -t "Write tests"
          parallel-claude spawn https://github.com/acme/web -t "Refactor API" -n api -p 3200 --no-dev
        """
        if len(tasks) > 1 and (name or port is not None):
            raise click.UsageError("--name and --port can only be used with a single task")

        console = Console()
        start_time = time.time()
        status = console.status("Preparing worker...")
        manager = _manager(console, "spawn", terminal, on_progress=status.update)
        options = SpawnOptions(branch=branch, port=port, name=name, dev=not no_dev)

        try:
            with status:
                outcomes = manager.spawn_batch(repo_url, list(tasks), options)
        except Exception as e:
            _record_error("spawn", ErrorType.UNEXPECTED_ERROR, str(e),
                          {"repo": repo_url}, start_time, traceback.format_exc())
            raise

        failed = 0
        for outcome in outcomes:
            if outcome.ok:
                worker = outcome.result.worker
                console.print(f"[green]✓[/green] Created worker [bold]{worker.name}[/bold]")
                console.print(f"    Branch:    {escape(worker.branch)}")
                console.print(f"    Port:      {worker.port}")
                console.print(f"    Directory: {escape(worker.directory)}")
                if outcome.result.created_window:
                    console.print("    [dim]Opened new parallel-claude window[/dim]")
                continue

            failed += 1
            error = outcome.error
            context = {"task": outcome.task, "repo": repo_url}
            if isinstance(error, WorkerSpawnError):
                context["worker"] = error.worker_name
            _record_error("spawn", _spawn_error_type(error), str(error), context, start_time)
            console.print(f"[red]✗[/red] {escape(str(error))}")
            if isinstance(error, WorkerSpawnError) and error.recorded:
                console.print(
                    f"    [dim]Run 'parallel-claude cleanup {error.worker_name}' to remove it[/dim]"
                )

        if len(outcomes) > 1:
            console.print(f"\n{len(outcomes) - failed}/{len(outcomes)} workers created")
        if failed:
            raise SystemExit(1)

    @cli.command(name='list')
    @click.option('--json', 'output_json', is_flag=True, help='Output as JSON')
    def list_workers(output_json: bool):
        """List active workers."""
        console = Console()
        workers = _manager(console, "list").list_workers()

        if output_json:
            click.echo(json.dumps([w.to_dict() for w in workers], indent=2, ensure_ascii=False))
            return

        if not workers:
            console.print("No active workers.")
            return

        table = Table(title="Workers")
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Status")
        table.add_column("Branch", style="blue")
        table.add_column("Port", justify="right")
        table.add_column("Task")
        table.add_column("Created", style="dim")

        for worker in workers:
            style = STATUS_STYLES.get(worker.status, "")
            task = worker.task if len(worker.task) <= 50 else worker.task[:47] + "..."
            table.add_row(
                worker.name,
                f"[{style}]{worker.status.value}[/{style}]",
                escape(worker.branch),
                str(worker.port),
                escape(task),
                worker.created_at[:16].replace("T", " "),
            )

        console.print(table)

    cli.add_command(list_workers, name='ls')

    @cli.command()
    @click.argument('name', required=False)
    @click.option('--all', 'all_workers', is_flag=True, default=False, help='Remove every worker')
    @click.option('--force', '-f', is_flag=True, default=False,
                  help='With --all: actually remove (default is a dry run)')
    def cleanup(name: Optional[str], all_workers: bool, force: bool):
        """Close a worker's terminal tab and delete its directory.

        \b
        Examples:
          parallel-claude cleanup swift-fox
          parallel-claude cleanup --all            # Show what would be removed
          parallel-claude cleanup --all --force    # Remove every worker
        """
        if bool(name) == all_workers:
            raise click.UsageError("Specify either a worker NAME or --all")

        console = Console()
        start_time = time.time()
        status = console.status("Cleaning up...")
        manager = _manager(console, "cleanup", on_progress=status.update)

        if name:
            try:
                with status:
                    worker = manager.cleanup(name)
            except WorkerNotFoundError as e:
                _fail(console, "cleanup", ErrorType.WORKER_NOT_FOUND, str(e),
                      {"name_or_id": name}, start_time)
            except (OSError, subprocess.SubprocessError) as e:
                _fail(console, "cleanup", ErrorType.CLEANUP_FAILED,
                      f"Failed to remove {name}: {e}", {"name_or_id": name}, start_time)
            console.print(f"[green]✓[/green] Removed worker [bold]{worker.name}[/bold]")
            return

        with status:
            report = manager.cleanup_all(force=force)

        if not report.workers:
            console.print("No workers to clean up.")
            return

        if report.dry_run:
            console.print(f"Would remove {len(report.workers)} worker(s):\n")
            for worker in report.workers:
                console.print(f"  • [bold]{worker.name}[/bold] ({escape(worker.branch)})")
            console.print("\n[dim]Run with --force to remove them[/dim]")
            return

        for worker_name in report.cleaned:
            console.print(f"[green]✓[/green] Removed {worker_name}")
        for worker_name in report.not_found:
            console.print(f"[yellow]-[/yellow] {worker_name} already gone")
        for worker_name, reason in report.failed.items():
            _record_error("cleanup", ErrorType.CLEANUP_FAILED, f"Failed to remove {worker_name}: {reason}",
                          {"name_or_id": worker_name}, start_time)
            console.print(f"[red]✗[/red] {worker_name}: {escape(reason)}")

        console.print(
            f"\nCleaned {len(report.cleaned)}, failed {len(report.failed)}, "
            f"not found {len(report.not_found)}"
        )
        if report.failed:
            raise SystemExit(1)

    cli.add_command(cleanup, name='rm')

    @cli.command()
    @click.argument('name')
    def focus(name: str):
        """Bring a worker's terminal tab to the front."""
        console = Console()
        manager = _manager(console, "focus")
        try:
            focused = manager.focus(name)
        except WorkerNotFoundError as e:
            _fail(console, "focus", ErrorType.WORKER_NOT_FOUND, str(e), {"name_or_id": name})
        if not focused:
            _fail(console, "focus", ErrorType.TERMINAL_ERROR,
                  f"Terminal session for {name} is no longer open", {"name_or_id": name})
        console.print(f"Focused [bold]{name}[/bold]")

    @cli.command()
    @click.argument('name')
    @click.argument('message')
    def send(name: str, message: str):
        """Type MESSAGE into a worker's agent pane and press Enter."""
        console = Console()
        manager = _manager(console, "send")
        try:
            sent = manager.send(name, message)
        except WorkerNotFoundError as e:
            _fail(console, "send", ErrorType.WORKER_NOT_FOUND, str(e), {"name_or_id": name})
        if not sent:
            _fail(console, "send", ErrorType.TERMINAL_ERROR,
                  f"Terminal session for {name} is no longer open", {"name_or_id": name})
        console.print(f"[green]✓[/green] Sent to {name}")

    @cli.command()
    @click.argument('name')
    @click.argument('status', type=click.Choice([s.value for s in WorkerStatus]))
    def mark(name: str, status: str):
        """Set a worker's recorded status (e.g. 'stopped')."""
        console = Console()
        manager = _manager(console, "mark")
        try:
            worker = manager.set_status(name, WorkerStatus(status))
        except WorkerNotFoundError as e:
            _fail(console, "mark", ErrorType.WORKER_NOT_FOUND, str(e), {"name_or_id": name})
        console.print(f"{worker.name}: {worker.status.value}")
