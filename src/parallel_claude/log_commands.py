"""Log viewing command for the parallel-claude CLI."""

import click
from rich.console import Console
from rich.markup import escape

from parallel_claude.logging import WorkerLogger

LEVEL_MARKS = {
    'INFO': '[green]✓[/green]',
    'ERROR': '[red]✗[/red]',
    'WARN': '[yellow]⚠[/yellow]',
    'WARNING': '[yellow]⚠[/yellow]',
    'DEBUG': '[dim]·[/dim]',
}


def register_log_commands(cli):
    """Register log commands with the CLI."""

    @cli.command()
    @click.option('--limit', default=50, type=int, help='Number of log entries to show (default: 50)')
    @click.option('--command', 'command_filter', help='Filter by command name (spawn, cleanup, registry, etc.)')
    @click.option('--level', 'level_filter', help='Filter by log level (INFO, ERROR, etc.)')
    def logs(limit, command_filter, level_filter):
        """View parallel-claude logs with optional filtering."""
        console = Console()
        entries = WorkerLogger().read_logs(
            limit=limit,
            command_filter=command_filter,
            level_filter=level_filter.upper() if level_filter else None,
        )

        if not entries:
            console.print("No log entries found.")
            return

        console.print(f"[bold]parallel-claude logs[/bold] (showing {len(entries)} entries)\n")

        # Oldest first so the newest entry ends up next to the prompt
        for entry in reversed(entries):
            mark = LEVEL_MARKS.get(entry['level'], '·')
            console.print(
                f"{mark} {entry['timestamp']} [cyan]\\[{escape(entry['command'])}][/cyan] "
                f"{escape(entry['message'])}"
            )

            data = entry['data']
            if 'worker' in data:
                console.print(f"   Worker: {escape(str(data['worker']))}")
            if 'duration_ms' in data:
                console.print(f"   Duration: {data['duration_ms']}ms")
