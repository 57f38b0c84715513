"""Logging module for parallel-claude with hybrid format.

Logs are written in hybrid format:
    YYYY-MM-DD HH:MM:SS LEVEL [command] Human message | {"json": "data"}

The left side is for people tailing the file, the right side for scripts.
"""
import json
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional


class WorkerLogger:
    """Logger for worker lifecycle events with hybrid format output.

    Logs are written to monthly files: parallel-claude-YYYY-MM.log
    Default location: ~/.parallel-claude/logs/
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """Initialize logger with log directory.

        Args:
            log_dir: Directory for log files. Defaults to ~/.parallel-claude/logs/
        """
        if log_dir is None:
            log_dir = Path.home() / ".parallel-claude" / "logs"

        self.log_dir = Path(log_dir)

    def _get_log_file(self) -> Path:
        """Get current month's log file path."""
        month_str = datetime.now().strftime("%Y-%m")
        return self.log_dir / f"parallel-claude-{month_str}.log"

    def _format_log_line(
        self,
        level: str,
        command: str,
        message: str,
        data: Dict[str, Any]
    ) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        # Pad level to 5 characters for alignment
        level_padded = level.ljust(5)

        json_str = json.dumps(data, ensure_ascii=False, default=str)
        return f"{timestamp} {level_padded} [{command}] {message} | {json_str}\n"

    def log_event(
        self,
        command: str,
        message: str,
        data: Dict[str, Any],
        level: str = "INFO"
    ) -> None:
        """Log an event with hybrid format.

        Args:
            command: Component or command name (spawn, cleanup, registry, session, ...)
            message: Human-readable message
            data: Structured data as dict
            level: Log level (DEBUG, INFO, WARNING, ERROR)
        """
        log_line = self._format_log_line(level, command, message, data)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        with open(self._get_log_file(), "a") as f:
            f.write(log_line)

    def log_command_start(self, command: str, data: Dict[str, Any]) -> None:
        """Log command start event."""
        task = data.get("task", "")
        message = "Starting command"
        if task:
            message = f"Starting command: {task}"

        self.log_event(command, message, data, level="INFO")

    def log_command_complete(
        self,
        command: str,
        duration_ms: int,
        data: Dict[str, Any]
    ) -> None:
        """Log command completion event.

        Args:
            command: Command name
            duration_ms: Command duration in milliseconds
            data: Result data
        """
        worker = data.get("worker", "")
        message = f"Command complete ({duration_ms}ms)"
        if worker:
            message = f"Command complete: {worker} ({duration_ms}ms)"

        if "duration_ms" not in data:
            data = {**data, "duration_ms": duration_ms}

        self.log_event(command, message, data, level="INFO")

    def log_error(
        self,
        command: str,
        message: str,
        data: Dict[str, Any]
    ) -> None:
        """Log error event, folding data['reason'] into the message."""
        reason = data.get("reason", "")
        if reason:
            full_message = f"{message}: {reason}"
        else:
            full_message = message

        self.log_event(command, full_message, data, level="ERROR")

    def get_log_files(self, months_back: int = 6) -> list[Path]:
        """Get list of available log files (most recent first)."""
        if not self.log_dir.exists():
            return []
        log_files = list(self.log_dir.glob("parallel-claude-*.log"))

        # Filenames embed YYYY-MM, so lexical order is chronological
        return sorted(log_files, reverse=True)[:months_back]

    def read_logs(
        self,
        limit: int = 50,
        command_filter: Optional[str] = None,
        level_filter: Optional[str] = None
    ) -> list[dict]:
        """Read and parse log entries with optional filtering.

        Args:
            limit: Maximum number of entries to return
            command_filter: Only return entries for this command
            level_filter: Only return entries with this log level

        Returns:
            Parsed entries (timestamp, level, command, message, data), newest first
        """
        entries = []

        for log_file in self.get_log_files():
            with open(log_file, 'r') as f:
                lines = f.readlines()
            for line in reversed(lines):
                entry = self._parse_log_line(line)
                if not entry:
                    continue

                if command_filter and entry['command'] != command_filter:
                    continue
                if level_filter and entry['level'] != level_filter:
                    continue

                entries.append(entry)
                if len(entries) >= limit:
                    return entries

        return entries

    def _parse_log_line(self, line: str) -> dict | None:
        """Parse a hybrid log line, or return None if it is not one."""
        try:
            parts = line.split(' | ', 1)
            if len(parts) != 2:
                return None

            left_part = parts[0]
            json_part = parts[1].strip()

            tokens = left_part.split(None, 3)
            if len(tokens) < 4:
                return None

            timestamp = f"{tokens[0]} {tokens[1]}"
            level = tokens[2].strip()
            command_and_message = tokens[3]
            if not command_and_message.startswith('['):
                return None

            bracket_end = command_and_message.index(']')
            command = command_and_message[1:bracket_end]
            message = command_and_message[bracket_end + 2:].strip()

            data = json.loads(json_part)

            return {
                'timestamp': timestamp,
                'level': level,
                'command': command,
                'message': message,
                'data': data
            }
        except (ValueError, IndexError, json.JSONDecodeError):
            return None
