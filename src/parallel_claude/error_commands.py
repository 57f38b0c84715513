"""Error reporting command for the parallel-claude CLI.

`parallel-claude errors` summarises ~/.parallel-claude/errors.jsonl.
"""

import json
from datetime import datetime
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from parallel_claude.error_logging import ErrorLogger, ErrorType


def register_error_commands(cli):
    """Register error commands with the CLI."""

    @cli.command()
    @click.option('--days', default=7, type=int, help='Number of days to include in stats (default: 7)')
    @click.option('--type', 'error_type', default=None,
                  type=click.Choice([t.value for t in ErrorType]),
                  help='Filter by error type (e.g., WORKER_NOT_FOUND)')
    @click.option('--json', 'output_json', is_flag=True, help='Output as JSON for programmatic access')
    @click.option('--limit', default=10, type=int, help='Number of recent errors to show (default: 10)')
    def errors(days: int, error_type: Optional[str], output_json: bool, limit: int):
        """Show error statistics and recent errors.

        \b
        Examples:
            parallel-claude errors                    # Last 7 days
            parallel-claude errors --days 30
            parallel-claude errors --type SPAWN_FAILED
            parallel-claude errors --json
        """
        logger = ErrorLogger()
        stats = logger.get_error_stats(days=days)
        recent = logger.get_recent_errors(limit=limit, error_type=error_type)

        if error_type:
            count = stats['by_type'].get(error_type, 0)
            stats = {
                'total': count,
                'by_type': {error_type: count} if count else {},
                'by_command': {},
            }

        if output_json:
            click.echo(json.dumps({'stats': stats, 'recent_errors': recent, 'days': days}, indent=2))
        else:
            _output_human(stats, recent, days, error_type)


def _format_timestamp(value: str) -> str:
    try:
        return datetime.fromisoformat(value.rstrip('Z')).strftime('%Y-%m-%d %H:%M')
    except (ValueError, AttributeError):
        return value[:16] if value else 'unknown'


def _output_human(stats: dict, recent: list, days: int, error_type: Optional[str]) -> None:
    console = Console()
    total = stats['total']

    if total == 0:
        if error_type:
            console.print(f"No errors of type '{error_type}' in the last {days} days.")
        else:
            console.print(f"No errors in the last {days} days.")
        return

    console.print(f"[bold]Error summary (last {days} days):[/bold] {total} total\n")

    by_type = sorted(stats.get('by_type', {}).items(), key=lambda x: x[1], reverse=True)
    if by_type:
        console.print("By type:")
        for name, count in by_type:
            console.print(f"  {name:25} {count:4} ({count / total * 100:.0f}%)")
        console.print()

    by_command = sorted(stats.get('by_command', {}).items(), key=lambda x: x[1], reverse=True)
    if by_command:
        console.print("By command:")
        for name, count in by_command:
            console.print(f"  {name:25} {count:4} ({count / total * 100:.0f}%)")
        console.print()

    if recent:
        table = Table(title="Recent errors")
        table.add_column("When", style="dim", no_wrap=True)
        table.add_column("Command", style="cyan")
        table.add_column("Type", style="red")
        table.add_column("Message")
        for entry in recent:
            message = entry.get('message', '')
            if len(message) > 60:
                message = message[:57] + '...'
            table.add_row(
                _format_timestamp(entry.get('timestamp', '')),
                entry.get('subcommand', 'unknown'),
                entry.get('error_type', 'UNKNOWN'),
                escape(message),
            )
        console.print(table)
