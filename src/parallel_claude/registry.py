"""
Worker Registry - persisted worker records and allocation counters.

The whole registry is one JSON document that is rewritten on every mutation.
Every WorkerRegistry operation is load-mutate-save against a StateStore, so
tests can swap the file for MemoryStateStore.

Reads take a shared fcntl lock and writes an exclusive one, which keeps a
reader from seeing a half-written file. Two processes can still interleave
their load-mutate-save cycles; the tool is single-operator and accepts that.
"""

import copy
import fcntl
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from parallel_claude.logging import WorkerLogger


class WorkerStatus(str, Enum):
    SETTING_UP = "setting-up"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass
class WorkerRecord:
    """One active worker: clone, branch, port and terminal session."""
    id: str
    name: str
    repo_url: str
    repo_name: str
    branch: str
    task: str
    directory: str
    port: int
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    status: WorkerStatus = WorkerStatus.SETTING_UP
    session_handle: Optional[str] = None

    def matches(self, name_or_id: str) -> bool:
        return self.name == name_or_id or self.id == name_or_id

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'name': self.name,
            'repoUrl': self.repo_url,
            'repoName': self.repo_name,
            'branch': self.branch,
            'task': self.task,
            'directory': self.directory,
            'port': self.port,
            'createdAt': self.created_at,
            'status': self.status.value,
        }
        if self.session_handle is not None:
            data['sessionHandle'] = self.session_handle
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkerRecord":
        return cls(
            id=data['id'],
            name=data['name'],
            repo_url=data['repoUrl'],
            repo_name=data['repoName'],
            branch=data['branch'],
            task=data['task'],
            directory=data['directory'],
            port=int(data['port']),
            created_at=data['createdAt'],
            status=WorkerStatus(data['status']),
            session_handle=data.get('sessionHandle'),
        )


@dataclass
class RegistryState:
    """The persisted document: workers in creation order plus counters."""
    workers: List[WorkerRecord] = field(default_factory=list)
    next_port_offset: int = 0
    shared_window_handle: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'workers': [w.to_dict() for w in self.workers],
            'nextPortOffset': self.next_port_offset,
        }
        if self.shared_window_handle is not None:
            data['sharedWindowHandle'] = self.shared_window_handle
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryState":
        return cls(
            workers=[WorkerRecord.from_dict(w) for w in data.get('workers', [])],
            next_port_offset=int(data.get('nextPortOffset', 0)),
            shared_window_handle=data.get('sharedWindowHandle'),
        )


class StateStore:
    """load/save contract shared by the file store and the in-memory fake."""

    def load(self) -> RegistryState:
        raise NotImplementedError

    def save(self, state: RegistryState) -> None:
        raise NotImplementedError


class JsonStateStore(StateStore):
    """Registry document on disk (default ~/.parallel-claude/state.json)."""

    def __init__(self, path: Optional[Path] = None):
        if path is None:
            path = Path.home() / '.parallel-claude' / 'state.json'
        self.path = Path(path)

    def load(self) -> RegistryState:
        """Load state; a missing, unreadable or corrupt file yields an empty state."""
        try:
            with open(self.path, 'r') as f:
                try:
                    fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                    data = json.load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
            return RegistryState.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError, AttributeError):
            return RegistryState()

    def save(self, state: RegistryState) -> None:
        """Overwrite the whole document under an exclusive lock."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        mode = 'r+' if self.path.exists() else 'w'
        with open(self.path, mode) as f:
            try:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                f.seek(0)
                f.truncate()
                json.dump(state.to_dict(), f, indent=2, ensure_ascii=False)
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)


class MemoryStateStore(StateStore):
    """In-memory store with the same whole-document semantics."""

    def __init__(self, state: Optional[RegistryState] = None):
        self._state = copy.deepcopy(state) if state is not None else RegistryState()

    def load(self) -> RegistryState:
        return copy.deepcopy(self._state)

    def save(self, state: RegistryState) -> None:
        self._state = copy.deepcopy(state)


class WorkerRegistry:
    """
    Worker records and allocation counters on top of a StateStore.

    Lookups accept either the human name or the opaque id; both identify the
    same record.
    """

    def __init__(self, store: Optional[StateStore] = None, logger: Optional[WorkerLogger] = None):
        self.store = store if store is not None else JsonStateStore()
        self._logger = logger or WorkerLogger()

    def load(self) -> RegistryState:
        return self.store.load()

    def list_workers(self) -> List[WorkerRecord]:
        return self.store.load().workers

    def names(self) -> List[str]:
        return [w.name for w in self.list_workers()]

    def find(self, name_or_id: str) -> Optional[WorkerRecord]:
        for worker in self.list_workers():
            if worker.matches(name_or_id):
                return worker
        return None

    def next_port_offset(self) -> int:
        return self.store.load().next_port_offset

    def add(self, worker: WorkerRecord) -> WorkerRecord:
        """
        Append a worker and bump nextPortOffset by one.

        Raises:
            ValueError: If the name, directory or port is already used by a record
        """
        state = self.store.load()
        for existing in state.workers:
            if existing.name == worker.name:
                raise ValueError(f"Worker '{worker.name}' already registered.")
            if existing.directory == worker.directory:
                raise ValueError(
                    f"Directory '{worker.directory}' already belongs to worker '{existing.name}'."
                )
            if existing.port == worker.port:
                raise ValueError(f"Port {worker.port} already belongs to worker '{existing.name}'.")

        state.workers.append(worker)
        state.next_port_offset += 1
        self.store.save(state)

        self._logger.log_event("registry", f"Worker registered: {worker.name}", {
            "worker": worker.name,
            "id": worker.id,
            "port": worker.port,
            "next_port_offset": state.next_port_offset,
        }, level="INFO")
        return worker

    def remove(self, name_or_id: str) -> Optional[WorkerRecord]:
        """Delete a record. Unknown identifiers return None and change nothing."""
        state = self.store.load()
        for index, worker in enumerate(state.workers):
            if worker.matches(name_or_id):
                removed = state.workers.pop(index)
                self.store.save(state)
                self._logger.log_event("registry", f"Worker removed: {removed.name}", {
                    "worker": removed.name,
                    "id": removed.id,
                    "remaining": len(state.workers),
                }, level="INFO")
                return removed
        return None

    def update_status(
        self,
        name_or_id: str,
        status: WorkerStatus,
        session_handle: Optional[str] = None,
    ) -> Optional[WorkerRecord]:
        state = self.store.load()
        for worker in state.workers:
            if worker.matches(name_or_id):
                previous = worker.status
                worker.status = WorkerStatus(status)
                if session_handle is not None:
                    worker.session_handle = session_handle
                self.store.save(state)
                self._logger.log_event("registry", f"Worker {worker.name}: {previous.value} -> {worker.status.value}", {
                    "worker": worker.name,
                    "from": previous.value,
                    "to": worker.status.value,
                    "session_handle": worker.session_handle,
                }, level="INFO")
                return worker
        return None

    def get_shared_window(self) -> Optional[str]:
        return self.store.load().shared_window_handle

    def set_shared_window(self, handle: str) -> None:
        state = self.store.load()
        state.shared_window_handle = handle
        self.store.save(state)

    def clear_shared_window(self) -> None:
        state = self.store.load()
        if state.shared_window_handle is None:
            return
        state.shared_window_handle = None
        self.store.save(state)
        self._logger.log_event("registry", "Shared window hint cleared", {}, level="INFO")
