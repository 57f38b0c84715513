"""Error logging for the parallel-claude CLI.

Reported failures are appended to ~/.parallel-claude/errors.jsonl so repeated
problems (a terminal that keeps refusing scripts, clones that keep failing)
show up in `parallel-claude errors`.

Entry schema:
{
    "timestamp": "2025-12-09T10:42:00Z",
    "command": "parallel-claude cleanup swift-fox",
    "subcommand": "cleanup",
    "error_type": "WORKER_NOT_FOUND",
    "message": "Worker not found: swift-fox",
    "context": {"name_or_id": "swift-fox"},
    "duration_ms": 12
}
"""

import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class ErrorType(Enum):
    """Error taxonomy for worker orchestration failures."""

    WORKER_NOT_FOUND = "WORKER_NOT_FOUND"
    ALLOCATION_CONFLICT = "ALLOCATION_CONFLICT"
    EXTERNAL_TOOL_FAILED = "EXTERNAL_TOOL_FAILED"
    TERMINAL_ERROR = "TERMINAL_ERROR"
    SPAWN_FAILED = "SPAWN_FAILED"
    CLEANUP_FAILED = "CLEANUP_FAILED"
    CONFIG_ERROR = "CONFIG_ERROR"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


@dataclass
class ErrorEntry:
    """Represents a single error log entry."""

    timestamp: str
    command: str
    subcommand: str
    error_type: ErrorType
    message: str
    context: Optional[dict[str, Any]] = None
    stack_trace: Optional[str] = None
    duration_ms: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON storage."""
        result = {
            "timestamp": self.timestamp,
            "command": self.command,
            "subcommand": self.subcommand,
            "error_type": self.error_type.value,
            "message": self.message,
        }
        if self.context is not None:
            result["context"] = self.context
        if self.stack_trace is not None:
            result["stack_trace"] = self.stack_trace
        if self.duration_ms is not None:
            result["duration_ms"] = self.duration_ms
        return result


class ErrorLogger:
    """Logger for error telemetry to a JSONL file, rotated by entry count."""

    DEFAULT_MAX_ENTRIES = 5000

    def __init__(
        self,
        error_file: Optional[Path] = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        if error_file is None:
            error_file = Path.home() / ".parallel-claude" / "errors.jsonl"

        self.error_file = Path(error_file)
        self.max_entries = max_entries

    def log_error(
        self,
        command: str,
        subcommand: str,
        error_type: ErrorType,
        message: str,
        context: Optional[dict[str, Any]] = None,
        stack_trace: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> None:
        """Append an error entry to the JSONL file.

        Args:
            command: Full command string (e.g., "parallel-claude focus swift-fox")
            subcommand: Subcommand name (e.g., "focus")
            error_type: ErrorType enum value
            message: Human-readable error message
            context: Optional context dict with error details
            stack_trace: Optional stack trace for unexpected errors
            duration_ms: Optional command duration in milliseconds
        """
        entry = ErrorEntry(
            timestamp=datetime.now().isoformat() + "Z",
            command=command,
            subcommand=subcommand,
            error_type=error_type,
            message=message,
            context=context,
            stack_trace=stack_trace,
            duration_ms=duration_ms,
        )

        self.error_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.error_file, "a") as f:
            f.write(json.dumps(entry.to_dict(), default=str) + "\n")

        self._rotate_if_needed()

    def _rotate_if_needed(self) -> None:
        if not self.error_file.exists():
            return

        lines = self.error_file.read_text().strip().split("\n")
        if len(lines) > self.max_entries:
            keep_lines = lines[-self.max_entries:]
            self.error_file.write_text("\n".join(keep_lines) + "\n")

    def get_error_stats(self, days: int = 7) -> dict[str, Any]:
        """Get totals by error type and by subcommand for the last `days` days."""
        cutoff = datetime.now() - timedelta(days=days)
        entries = self._read_entries(cutoff=cutoff)

        stats: dict[str, Any] = {
            "total": len(entries),
            "by_type": {},
            "by_command": {},
        }

        for entry in entries:
            error_type = entry.get("error_type", "UNKNOWN")
            stats["by_type"][error_type] = stats["by_type"].get(error_type, 0) + 1

            subcommand = entry.get("subcommand", "unknown")
            stats["by_command"][subcommand] = stats["by_command"].get(subcommand, 0) + 1

        return stats

    def get_recent_errors(
        self, limit: int = 10, error_type: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """Get recent error entries, most recent first, optionally of one type."""
        entries = self._read_entries()
        if error_type:
            entries = [e for e in entries if e.get("error_type") == error_type]
        return list(reversed(entries[-limit:]))

    def _read_entries(
        self, cutoff: Optional[datetime] = None
    ) -> list[dict[str, Any]]:
        if not self.error_file.exists():
            return []

        entries = []
        for line in self.error_file.read_text().strip().split("\n"):
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue

            if cutoff:
                ts_str = entry.get("timestamp", "").rstrip("Z")
                try:
                    if datetime.fromisoformat(ts_str) < cutoff:
                        continue
                except ValueError:
                    continue

            entries.append(entry)

        return entries


# Module-level singleton and convenience functions
_default_logger: Optional[ErrorLogger] = None


def _get_default_logger() -> ErrorLogger:
    global _default_logger
    if _default_logger is None:
        _default_logger = ErrorLogger()
    return _default_logger


def reset_default_logger() -> None:
    """Forget the cached default logger (tests change HOME between runs)."""
    global _default_logger
    _default_logger = None


def log_error(
    command: str,
    subcommand: str,
    error_type: ErrorType,
    message: str,
    context: Optional[dict[str, Any]] = None,
    stack_trace: Optional[str] = None,
    duration_ms: Optional[int] = None,
) -> None:
    """Log an error to ~/.parallel-claude/errors.jsonl."""
    _get_default_logger().log_error(
        command=command,
        subcommand=subcommand,
        error_type=error_type,
        message=message,
        context=context,
        stack_trace=stack_trace,
        duration_ms=duration_ms,
    )

