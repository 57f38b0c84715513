"""
Shared pytest fixtures for parallel-claude tests.

Provides an isolated HOME, in-memory registries, a recording fake terminal
and a fake workspace preparer so worker lifecycles can be exercised without
git, package managers or a real terminal application.
"""

from pathlib import Path
from typing import Dict, List

import pytest
from click.testing import CliRunner

from parallel_claude import config, error_logging
from parallel_claude.allocation import IdentityAllocator
from parallel_claude.logging import WorkerLogger
from parallel_claude.registry import MemoryStateStore, WorkerRegistry
from parallel_claude.repo_setup import DEFAULT_PACKAGE_MANAGER, ExternalToolError, PreparedWorkspace
from parallel_claude.session import SessionOrchestrator
from parallel_claude.terminal.base import (
    PaneRef,
    SessionInfo,
    SessionNotFoundError,
    TerminalController,
)
from parallel_claude.workers import WorkerManager


# =============================================================================
# FAKES
# =============================================================================

class FakeTerminal(TerminalController):
    """
    In-memory terminal that records every call.

    Windows, tabs and sessions are tracked so that calls against closed
    sessions fail with SessionNotFoundError like the real backends. Set
    `fail_on[method] = exc` to make a method raise.
    """

    def __init__(self, running: bool = True):
        self.running = running
        self.calls: List[tuple] = []
        self.sessions: Dict[str, dict] = {}
        self.fail_on: Dict[str, Exception] = {}
        self._counter = 0

    @property
    def name(self) -> str:
        return "fake"

    def _record(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        error = self.fail_on.get(method)
        if error is not None:
            raise error

    def _new_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}{self._counter}"

    def _require(self, session_id: str) -> dict:
        if session_id not in self.sessions:
            raise SessionNotFoundError(f"no session {session_id}")
        return self.sessions[session_id]

    @property
    def windows(self) -> set:
        return {s['window'] for s in self.sessions.values()}

    def calls_to(self, method: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == method]

    def written(self, session_id: str) -> List[str]:
        return [c[2] for c in self.calls if c[0] == 'write_text' and c[1] == session_id]

    def close_window(self, window_id: str) -> None:
        """Simulate the user closing a window by hand."""
        self.sessions = {k: v for k, v in self.sessions.items() if v['window'] != window_id}

    def is_running(self) -> bool:
        self._record('is_running')
        return self.running

    def launch(self) -> None:
        self._record('launch')
        self.running = True

    def list_sessions(self) -> List[SessionInfo]:
        self._record('list_sessions')
        return [SessionInfo(s['window'], sid, s['name']) for sid, s in self.sessions.items()]

    def create_window(self) -> PaneRef:
        self._record('create_window')
        window_id = self._new_id("w")
        session_id = self._new_id("s")
        self.sessions[session_id] = {'window': window_id, 'tab': self._new_id("t"), 'name': ""}
        return PaneRef(window_id=window_id, session_id=session_id)

    def create_tab(self, window_id: str, title: str) -> str:
        self._record('create_tab', window_id, title)
        if window_id not in self.windows:
            raise SessionNotFoundError(f"no window {window_id}")
        session_id = self._new_id("s")
        self.sessions[session_id] = {'window': window_id, 'tab': self._new_id("t"), 'name': title}
        return session_id

    def split_vertically(self, session_id: str) -> str:
        self._record('split_vertically', session_id)
        parent = self._require(session_id)
        new_id = self._new_id("s")
        self.sessions[new_id] = {**parent, 'name': ""}
        return new_id

    def set_name(self, session_id: str, name: str) -> None:
        self._record('set_name', session_id, name)
        self._require(session_id)['name'] = name

    def write_text(self, session_id: str, text: str) -> None:
        self._record('write_text', session_id, text)
        self._require(session_id)

    def interrupt(self, session_id: str) -> None:
        self._record('interrupt', session_id)
        self._require(session_id)

    def close(self, session_id: str) -> None:
        self._record('close', session_id)
        tab = self._require(session_id)['tab']
        self.sessions = {k: v for k, v in self.sessions.items() if v['tab'] != tab}

    def select(self, session_id: str) -> None:
        self._record('select', session_id)
        self._require(session_id)


class FakePreparer:
    """Stands in for WorkspacePreparer: creates the directory, runs nothing."""

    def __init__(self, package_manager=DEFAULT_PACKAGE_MANAGER):
        self.package_manager = package_manager
        self.calls: List[dict] = []
        self.fail_for: Dict[int, Exception] = {}

    def prepare(self, repo_url, directory, branch, worker_name, on_step=None):
        index = len(self.calls)
        self.calls.append({
            'repo_url': repo_url,
            'directory': Path(directory),
            'branch': branch,
            'worker_name': worker_name,
        })
        if index in self.fail_for:
            raise self.fail_for[index]
        Path(directory).mkdir(parents=True)
        return PreparedWorkspace(directory=Path(directory), package_manager=self.package_manager)


def clone_failure() -> ExternalToolError:
    return ExternalToolError(["git", "clone"], "fatal: repository not found")


# =============================================================================
# ENVIRONMENT FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Point HOME at a temp dir and reset module caches that depend on it."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    config.reset_config_cache()
    error_logging.reset_default_logger()
    yield home
    config.reset_config_cache()
    error_logging.reset_default_logger()


@pytest.fixture
def cli_runner():
    """Provide Click CLI test runner."""
    return CliRunner()


# =============================================================================
# COMPONENT FIXTURES
# =============================================================================

@pytest.fixture
def logger(tmp_path):
    return WorkerLogger(log_dir=tmp_path / "logs")


@pytest.fixture
def registry(logger):
    """WorkerRegistry backed by an in-memory store."""
    return WorkerRegistry(MemoryStateStore(), logger=logger)


@pytest.fixture
def workers_dir(tmp_path):
    return tmp_path / "workers"


@pytest.fixture
def allocator(registry, workers_dir):
    return IdentityAllocator(registry, workers_dir=workers_dir, base_port=3100, port_increment=10)


@pytest.fixture
def fake_terminal():
    return FakeTerminal()


@pytest.fixture
def sleeps():
    """Collects the delays the orchestrator asked for."""
    return []


@pytest.fixture
def orchestrator(fake_terminal, sleeps, logger):
    return SessionOrchestrator(fake_terminal, sleep=sleeps.append, logger=logger)


@pytest.fixture
def preparer():
    return FakePreparer()


@pytest.fixture
def manager(registry, allocator, orchestrator, preparer, logger):
    return WorkerManager(
        registry,
        allocator,
        orchestrator,
        preparer,
        agent_command="claude",
        logger=logger,
    )

