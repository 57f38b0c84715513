"""
Worker lifecycle: spawn, query, update and clean up workers.

Record states:

    setting-up -> running        session attached
    setting-up -> failed         terminal or session step failed
    running / failed -> deleted  cleanup

`stopped` is only ever set from outside (`parallel-claude mark`).
"""

import shutil
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from parallel_claude.allocation import AllocationConflictError, IdentityAllocator
from parallel_claude.logging import WorkerLogger
from parallel_claude.naming import get_repo_name
from parallel_claude.registry import WorkerRecord, WorkerRegistry, WorkerStatus
from parallel_claude.repo_setup import ExternalToolError, WorkspacePreparer
from parallel_claude.session import SessionOrchestrator, SharedWindow, WindowState
from parallel_claude.terminal.base import TerminalError


class WorkerNotFoundError(Exception):
    """No worker with that name or id (or it has no terminal session)."""

    def __init__(self, name_or_id: str, reason: Optional[str] = None):
        self.name_or_id = name_or_id
        self.reason = reason
        message = f"Worker not found: {name_or_id}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class WorkerSpawnError(Exception):
    """
    A worker could not be created.

    When `recorded` is set the record was already written and is now
    `failed`; otherwise nothing was persisted.
    """

    def __init__(self, worker_name: str, cause: Exception, recorded: bool = True):
        self.worker_name = worker_name
        self.cause = cause
        self.recorded = recorded
        super().__init__(f"Failed to spawn worker {worker_name}: {cause}")


@dataclass
class SpawnOptions:
    branch: Optional[str] = None
    port: Optional[int] = None
    name: Optional[str] = None
    dev: bool = True


@dataclass
class SpawnResult:
    worker: WorkerRecord
    window: SharedWindow
    created_window: bool


@dataclass
class SpawnOutcome:
    """Result of one task in a batch: either a SpawnResult or the error."""
    task: str
    result: Optional[SpawnResult] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CleanupReport:
    dry_run: bool
    workers: List[WorkerRecord] = field(default_factory=list)
    cleaned: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    not_found: List[str] = field(default_factory=list)


def remove_directory(directory: Path) -> None:
    """Delete a worker directory, falling back to `rm -rf` when rmtree fails."""
    directory = Path(directory)
    if not directory.exists():
        return
    try:
        shutil.rmtree(directory)
    except OSError:
        # node_modules trees and read-only pack files can defeat rmtree
        subprocess.run(['rm', '-rf', str(directory)], check=True, capture_output=True)


class WorkerManager:
    """Composes allocation, workspace setup and session orchestration."""

    def __init__(
        self,
        registry: WorkerRegistry,
        allocator: IdentityAllocator,
        orchestrator: SessionOrchestrator,
        preparer: WorkspacePreparer,
        agent_command: str = "claude --dangerously-skip-permissions",
        task_formatter: Optional[Callable[[str], str]] = None,
        logger: Optional[WorkerLogger] = None,
        on_progress: Optional[Callable[[str], None]] = None,
        remove_dir: Callable[[Path], None] = remove_directory,
    ):
        self.registry = registry
        self.allocator = allocator
        self.orchestrator = orchestrator
        self.preparer = preparer
        self.agent_command = agent_command
        self.task_formatter = task_formatter
        self._logger = logger or WorkerLogger()
        self.on_progress = on_progress
        self._remove_dir = remove_dir

    def _progress(self, message: str) -> None:
        if self.on_progress:
            self.on_progress(message)

    def _discard_workspace(self, name: str, directory: Path) -> None:
        """Remove a half-prepared clone that no record points at."""
        try:
            self._remove_dir(directory)
        except (OSError, subprocess.SubprocessError) as e:
            self._logger.log_error("spawn", f"Could not remove partial workspace: {name}", {
                "worker": name,
                "directory": str(directory),
                "reason": str(e),
            })

    def _log_spawn_failure(self, name: str, error: Exception, start_time: float, recorded: bool) -> None:
        self._logger.log_error("spawn", f"Spawn failed: {name}", {
            "worker": name,
            "reason": str(error),
            "error_type": type(error).__name__,
            "recorded": recorded,
            "duration_ms": int((time.time() - start_time) * 1000),
        })

    def list_workers(self) -> List[WorkerRecord]:
        return self.registry.list_workers()

    def get(self, name_or_id: str) -> WorkerRecord:
        worker = self.registry.find(name_or_id)
        if worker is None:
            raise WorkerNotFoundError(name_or_id)
        return worker

    def spawn(
        self,
        repo_url: str,
        task: str,
        options: Optional[SpawnOptions] = None,
        known_window: Optional[SharedWindow] = None,
    ) -> SpawnResult:
        """
        Create one worker: allocate, prepare, record, attach a session.

        The record (and with it the port offset) is only written once the
        workspace is ready, so a bad URL or a failed install costs nothing.

        Args:
            repo_url: Repository to clone
            task: Task text for the agent
            options: Explicit branch/port/name and whether to run a dev server
            known_window: Shared window already verified earlier in this run

        Returns:
            SpawnResult with the running worker record

        Raises:
            AllocationConflictError: Name, port or directory taken (nothing written)
            WorkerSpawnError: Workspace setup failed (nothing written), or the
                terminal step failed after the record was written
        """
        options = options or SpawnOptions()
        start_time = time.time()

        self._progress("Preparing worker...")
        name = self.allocator.worker_name(options.name)
        port = self.allocator.port(options.port)
        branch = self.allocator.branch_name(task, name, options.branch)
        directory = self.allocator.worker_directory(name)

        # Decided before the record exists: the first worker gets a fresh window
        is_first = not self.registry.list_workers()

        self._logger.log_command_start("spawn", {
            "worker": name,
            "task": task,
            "repo": repo_url,
            "branch": branch,
            "port": port,
            "is_first": is_first,
        })

        try:
            self._progress(f"Creating worker {name}...")
            prepared = self.preparer.prepare(repo_url, directory, branch, name, on_step=self._progress)
        except (ExternalToolError, OSError) as e:
            self._discard_workspace(name, directory)
            self._log_spawn_failure(name, e, start_time, recorded=False)
            raise WorkerSpawnError(name, e, recorded=False) from e

        record = WorkerRecord(
            id=self.allocator.worker_id(),
            name=name,
            repo_url=repo_url,
            repo_name=get_repo_name(repo_url),
            branch=branch,
            task=task,
            directory=str(directory),
            port=port,
        )
        try:
            self.registry.add(record)
        except ValueError as e:
            self._discard_workspace(name, directory)
            raise AllocationConflictError(str(e))

        try:
            dev_command = prepared.package_manager.dev_command(port) if options.dev else None

            self._progress("Opening terminal...")
            self.orchestrator.ensure_terminal_running()

            if known_window is not None and known_window.state == WindowState.VERIFIED:
                window = known_window
            else:
                window = self.orchestrator.resolve_shared_window(self.registry.get_shared_window(), is_first)

            if window.handle is None:
                self._progress("Creating new parallel-claude window...")
            else:
                self._progress("Adding tab to parallel-claude window...")

            task_line = self.task_formatter(task) if self.task_formatter else task
            session = self.orchestrator.create_session(
                window.handle, name, str(directory), dev_command, self.agent_command, task_line,
            )
        except (TerminalError, OSError) as e:
            self.registry.update_status(record.id, WorkerStatus.FAILED)
            self._log_spawn_failure(name, e, start_time, recorded=True)
            raise WorkerSpawnError(name, e) from e

        self.registry.set_shared_window(session.window_handle)
        running = self.registry.update_status(
            record.id, WorkerStatus.RUNNING, session_handle=session.session_handle,
        )

        self._logger.log_command_complete("spawn", int((time.time() - start_time) * 1000), {
            "worker": name,
            "window": session.window_handle,
            "session": session.session_handle,
            "created_window": session.created_window,
        })

        return SpawnResult(
            worker=running or record,
            window=SharedWindow.verified(session.window_handle),
            created_window=session.created_window,
        )

    def spawn_batch(
        self,
        repo_url: str,
        tasks: List[str],
        options: Optional[SpawnOptions] = None,
    ) -> List[SpawnOutcome]:
        """
        Spawn one worker per task, one at a time in request order.

        The first successful worker settles the shared window; later workers
        reuse it without scanning again. A failed task does not stop the
        remaining ones.
        """
        outcomes = []
        known_window: Optional[SharedWindow] = None

        for task in tasks:
            try:
                result = self.spawn(repo_url, task, options, known_window=known_window)
            except (AllocationConflictError, WorkerSpawnError) as e:
                outcomes.append(SpawnOutcome(task=task, error=e))
                continue
            known_window = result.window
            outcomes.append(SpawnOutcome(task=task, result=result))

        return outcomes

    def cleanup(self, name_or_id: str) -> WorkerRecord:
        """
        Close a worker's session, delete its directory and forget it.

        Raises:
            WorkerNotFoundError: Unknown name or id
            OSError / subprocess.CalledProcessError: Directory could not be removed
        """
        worker = self.get(name_or_id)

        if worker.session_handle:
            self._progress("Closing terminal tabs...")
            self.orchestrator.close_session(worker.session_handle)

        self._progress("Removing directory...")
        self._remove_dir(Path(worker.directory))

        self.registry.remove(worker.id)
        if not self.registry.list_workers():
            self.registry.clear_shared_window()

        self._logger.log_event("cleanup", f"Removed worker: {worker.name}", {
            "worker": worker.name,
            "id": worker.id,
            "directory": worker.directory,
            "branch": worker.branch,
        }, level="INFO")
        return worker

    def cleanup_all(self, force: bool = False) -> CleanupReport:
        """
        Remove every worker, or with force=False only report what would go.

        Each worker is handled independently; failures are collected in the
        report instead of stopping the loop. A worker whose directory could
        not be removed keeps its record. The shared-window hint is cleared
        in any case.
        """
        workers = self.registry.list_workers()
        report = CleanupReport(dry_run=not force, workers=workers)
        if not force:
            return report

        for worker in workers:
            try:
                self.cleanup(worker.id)
            except WorkerNotFoundError:
                report.not_found.append(worker.name)
            except (OSError, subprocess.SubprocessError) as e:
                report.failed[worker.name] = str(e)
                self._logger.log_error("cleanup", f"Cleanup failed: {worker.name}", {
                    "worker": worker.name,
                    "reason": str(e),
                })
            else:
                report.cleaned.append(worker.name)

        # Cleared even when a directory removal failed
        self.registry.clear_shared_window()

        self._logger.log_event("cleanup", "Cleanup all finished", {
            "cleaned": len(report.cleaned),
            "failed": len(report.failed),
            "not_found": len(report.not_found),
        }, level="INFO")
        return report

    def _session_of(self, name_or_id: str) -> str:
        worker = self.get(name_or_id)
        if not worker.session_handle:
            raise WorkerNotFoundError(name_or_id, reason="no terminal session")
        return worker.session_handle

    def focus(self, name_or_id: str) -> bool:
        """Bring a worker's tab to the front. False if the session has vanished."""
        return self.orchestrator.focus_session(self._session_of(name_or_id))

    def send(self, name_or_id: str, text: str) -> bool:
        """Type a line into a worker's agent pane. False if the session has vanished."""
        return self.orchestrator.send_text(self._session_of(name_or_id), text)

    def set_status(self, name_or_id: str, status: WorkerStatus) -> WorkerRecord:
        worker = self.registry.update_status(name_or_id, WorkerStatus(status))
        if worker is None:
            raise WorkerNotFoundError(name_or_id)
        return worker


def build_manager(
    terminal: Optional[str] = None,
    on_progress: Optional[Callable[[str], None]] = None,
) -> WorkerManager:
    """Wire a WorkerManager from ~/.parallel-claude/config.yaml."""
    from parallel_claude import config
    from parallel_claude.registry import JsonStateStore
    from parallel_claude.terminal import get_controller

    registry = WorkerRegistry(JsonStateStore(config.get_state_file()))
    allocator = IdentityAllocator(
        registry,
        workers_dir=config.get_workers_dir(),
        base_port=config.get_base_port(),
        port_increment=config.get_port_increment(),
    )
    controller = get_controller(config.get_terminal_backend(terminal), config.get_tmux_session())

    def on_stage(stage, worker_name):
        if on_progress:
            on_progress(f"{worker_name}: {stage.value}")

    orchestrator = SessionOrchestrator(controller, on_stage=on_stage, **config.get_delays())
    preparer = WorkspacePreparer(clone_depth=config.get_clone_depth())

    return WorkerManager(
        registry,
        allocator,
        orchestrator,
        preparer,
        agent_command=config.get_agent_command(),
        task_formatter=config.format_task,
        on_progress=on_progress,
    )
