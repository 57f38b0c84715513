"""
Identity and port allocation for new workers.

The registry is the source of truth: names are checked against active
workers, and ports come from the monotonic nextPortOffset counter. Reading
the next port does not reserve it; the offset only moves when a worker
record is persisted. A requested port may not sit on a slot the counter has
yet to reach, so automatic and requested ports never meet.
"""

import re
from pathlib import Path
from typing import Optional

from parallel_claude.naming import (
    generate_branch_name,
    generate_worker_name,
    new_worker_id,
)
from parallel_claude.registry import WorkerRegistry

# One path component under the workers root
WORKER_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class AllocationConflictError(Exception):
    """A name, port or directory is already taken."""


class IdentityAllocator:
    """Mint collision-free names, branches, ports and directories."""

    def __init__(
        self,
        registry: WorkerRegistry,
        workers_dir: Path,
        base_port: int = 3100,
        port_increment: int = 10,
    ):
        self.registry = registry
        self.workers_dir = Path(workers_dir)
        self.base_port = base_port
        self.port_increment = port_increment

    def next_port(self) -> int:
        """Preview the port the next persisted worker will get."""
        return self.base_port + self.registry.next_port_offset() * self.port_increment

    def worker_id(self) -> str:
        return new_worker_id()

    def worker_name(self, requested: Optional[str] = None) -> str:
        existing = self.registry.names()
        if requested:
            if not WORKER_NAME_RE.match(requested):
                raise AllocationConflictError(
                    f"Invalid worker name: {requested!r} (use letters, digits, '.', '_' and '-')"
                )
            if requested in existing:
                raise AllocationConflictError(f"Worker name already in use: {requested}")
            return requested
        return generate_worker_name(existing)

    def branch_name(self, task: str, worker_name: str, requested: Optional[str] = None) -> str:
        return requested or generate_branch_name(task, worker_name)

    def port(self, requested: Optional[int] = None) -> int:
        if requested is None:
            return self.next_port()
        for worker in self.registry.list_workers():
            if worker.port == requested:
                raise AllocationConflictError(
                    f"Port {requested} is already used by worker '{worker.name}'"
                )
        if self._is_future_slot(requested):
            raise AllocationConflictError(
                f"Port {requested} is reserved for automatically assigned workers "
                f"(every {self.port_increment} from {self.base_port}); pick a port off that sequence"
            )
        return requested

    def _is_future_slot(self, port: int) -> bool:
        """True if a later automatic allocation would hand out this port."""
        slot, remainder = divmod(port - self.base_port, self.port_increment)
        return remainder == 0 and slot >= self.registry.next_port_offset()

    def worker_directory(self, worker_name: str) -> Path:
        """
        Directory for a new worker; it must not exist yet.

        Raises:
            AllocationConflictError: If the directory already exists
        """
        directory = self.workers_dir / worker_name
        if directory.exists():
            raise AllocationConflictError(f"Worker directory already exists: {directory}")
        return directory
