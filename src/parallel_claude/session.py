"""
Session orchestration for worker terminals.

All worker tabs live in one shared window. The window is recognised by a
marker session (MARKER_NAME) that runs nothing, so it can be rediscovered by
scanning live terminal state even after this process has exited.

Creating a worker session is a fixed sequence of stages:

    create-window -> mark-window      (only when no shared window exists)
    create-tab -> split               (split only with a dev command)
    inject-command -> await-fixed-delay -> inject-task -> confirm

Nothing confirms that the agent actually received the task; the fixed
delays are the whole handshake.
"""

import shlex
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from parallel_claude.logging import WorkerLogger
from parallel_claude.terminal.base import TerminalController, TerminalError

MARKER_NAME = "⚡ parallel-claude"

DEFAULT_AGENT_START_DELAY = 3.0
DEFAULT_CONFIRM_DELAY = 0.5
DEFAULT_INTERRUPT_DELAY = 0.5
DEFAULT_LAUNCH_DELAY = 1.0


class Stage(str, Enum):
    CREATE_WINDOW = "create-window"
    MARK_WINDOW = "mark-window"
    CREATE_TAB = "create-tab"
    SPLIT = "split"
    INJECT_COMMAND = "inject-command"
    AWAIT_FIXED_DELAY = "await-fixed-delay"
    INJECT_TASK = "inject-task"
    CONFIRM = "confirm"


class WindowState(str, Enum):
    NONE = "none"
    HINT_PRESENT = "hint-present"
    VERIFIED = "verified"


@dataclass(frozen=True)
class SharedWindow:
    """What is known about the shared window at a given moment."""
    state: WindowState
    handle: Optional[str] = None

    @classmethod
    def from_hint(cls, hint: Optional[str]) -> "SharedWindow":
        if hint:
            return cls(WindowState.HINT_PRESENT, hint)
        return cls(WindowState.NONE)

    @classmethod
    def verified(cls, handle: str) -> "SharedWindow":
        return cls(WindowState.VERIFIED, handle)


@dataclass(frozen=True)
class SessionResult:
    """Outcome of create_session."""
    window_handle: str
    session_handle: str
    created_window: bool


def single_line(text: str) -> str:
    """Collapse line breaks so injected text arrives as one input line."""
    return ' '.join(part.strip() for part in text.splitlines() if part.strip())


def shell_command(directory: str, command: str) -> str:
    return f"cd {shlex.quote(str(directory))} && {command}"


class SessionOrchestrator:
    """
    Drives a TerminalController through worker session setup and teardown.

    Setup failures propagate (a worker without a session is not running);
    close, send and focus are best-effort and never raise.
    """

    def __init__(
        self,
        terminal: TerminalController,
        agent_start_delay: float = DEFAULT_AGENT_START_DELAY,
        confirm_delay: float = DEFAULT_CONFIRM_DELAY,
        interrupt_delay: float = DEFAULT_INTERRUPT_DELAY,
        launch_delay: float = DEFAULT_LAUNCH_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[WorkerLogger] = None,
        on_stage: Optional[Callable[[Stage, str], None]] = None,
    ):
        self.terminal = terminal
        self.agent_start_delay = agent_start_delay
        self.confirm_delay = confirm_delay
        self.interrupt_delay = interrupt_delay
        self.launch_delay = launch_delay
        self._sleep = sleep
        self._logger = logger or WorkerLogger()
        self.on_stage = on_stage

    def _stage(self, stage: Stage, worker_name: str, **data) -> None:
        self._logger.log_event("session", f"{worker_name}: {stage.value}", {
            "worker": worker_name,
            "stage": stage.value,
            **data,
        }, level="DEBUG")
        if self.on_stage:
            self.on_stage(stage, worker_name)

    def ensure_terminal_running(self) -> None:
        if self.terminal.is_running():
            return
        self._logger.log_event("session", f"Launching {self.terminal.name}", {
            "terminal": self.terminal.name,
        }, level="INFO")
        self.terminal.launch()
        self._sleep(self.launch_delay)

    def discover_shared_window(self, prefer: Optional[str] = None) -> Optional[str]:
        """
        Find the window holding the marker session.

        Returns prefer when that window carries a marker, otherwise the
        first marked window found, or None.
        """
        matches: List[str] = []
        for session in self.terminal.list_sessions():
            if session.name.startswith(MARKER_NAME) and session.window_id not in matches:
                matches.append(session.window_id)

        if prefer and prefer in matches:
            return prefer
        return matches[0] if matches else None

    def verify(self, window: SharedWindow) -> SharedWindow:
        """Re-check a hinted window against live terminal state."""
        if window.state == WindowState.VERIFIED:
            return window

        discovered = self.discover_shared_window(prefer=window.handle)
        if discovered is None:
            if window.state == WindowState.HINT_PRESENT:
                self._logger.log_event("session", "Shared window hint is stale", {
                    "hint": window.handle,
                }, level="WARNING")
            return SharedWindow(WindowState.NONE)
        return SharedWindow.verified(discovered)

    def resolve_shared_window(self, hint: Optional[str], is_first: bool) -> SharedWindow:
        """
        Decide where a new worker tab goes.

        The first worker overall always gets a fresh window. Later workers
        reuse the hinted window only after it has been found again on screen.
        """
        if is_first:
            return SharedWindow(WindowState.NONE)
        return self.verify(SharedWindow.from_hint(hint))

    def create_session(
        self,
        window_handle: Optional[str],
        worker_name: str,
        directory: str,
        dev_command: Optional[str],
        agent_command: str,
        task: str,
    ) -> SessionResult:
        """
        Create the worker tab and hand the task to the agent.

        Args:
            window_handle: Verified shared window, or None to create one
            worker_name: Worker name, used for tab and pane names
            directory: Working directory for both panes
            dev_command: Dev server command, or None for a single agent pane
            agent_command: Command that starts the agent
            task: Task line typed into the agent once it has started

        Returns:
            SessionResult whose session_handle is the agent pane

        Raises:
            TerminalError: If any scripting call fails
        """
        created_window = False
        if window_handle is None:
            self._stage(Stage.CREATE_WINDOW, worker_name)
            pane = self.terminal.create_window()
            window_handle = pane.window_id
            created_window = True

            self._stage(Stage.MARK_WINDOW, worker_name, window=window_handle)
            self.terminal.set_name(pane.session_id, MARKER_NAME)

        self._stage(Stage.CREATE_TAB, worker_name, window=window_handle)
        primary = self.terminal.create_tab(window_handle, worker_name)

        if dev_command:
            self.terminal.set_name(primary, f"{worker_name} - dev")
            self.terminal.write_text(primary, shell_command(directory, dev_command))

            self._stage(Stage.SPLIT, worker_name, session=primary)
            agent_session = self.terminal.split_vertically(primary)
            self.terminal.set_name(agent_session, f"{worker_name} - claude")
        else:
            agent_session = primary
            self.terminal.set_name(agent_session, worker_name)

        self._stage(Stage.INJECT_COMMAND, worker_name, session=agent_session)
        self.terminal.write_text(agent_session, shell_command(directory, agent_command))

        self._stage(Stage.AWAIT_FIXED_DELAY, worker_name, seconds=self.agent_start_delay)
        self._sleep(self.agent_start_delay)

        self._stage(Stage.INJECT_TASK, worker_name, session=agent_session)
        self.terminal.write_text(agent_session, single_line(task))

        self._sleep(self.confirm_delay)
        self._stage(Stage.CONFIRM, worker_name, session=agent_session)
        self.terminal.write_text(agent_session, "")

        self._logger.log_event("session", f"Session created for {worker_name}", {
            "worker": worker_name,
            "window": window_handle,
            "session": agent_session,
            "created_window": created_window,
            "split": bool(dev_command),
        }, level="INFO")

        return SessionResult(
            window_handle=window_handle,
            session_handle=agent_session,
            created_window=created_window,
        )

    def close_session(self, session_handle: str) -> None:
        """Interrupt, wait briefly, then close the tab. Failures are ignored."""
        try:
            self.terminal.interrupt(session_handle)
            self._sleep(self.interrupt_delay)
            self.terminal.close(session_handle)
        except TerminalError as e:
            # Session might already be closed
            self._logger.log_event("session", "Close failed (ignored)", {
                "session": session_handle,
                "reason": str(e),
            }, level="DEBUG")

    def send_text(self, session_handle: str, text: str) -> bool:
        """Type a line into a session. False when the session is gone."""
        try:
            self.terminal.write_text(session_handle, single_line(text))
            return True
        except TerminalError as e:
            self._logger.log_event("session", "Send failed", {
                "session": session_handle,
                "reason": str(e),
            }, level="WARNING")
            return False

    def focus_session(self, session_handle: str) -> bool:
        """Bring a session's tab to the front. False when the session is gone."""
        try:
            self.terminal.select(session_handle)
            return True
        except TerminalError as e:
            self._logger.log_event("session", "Focus failed", {
                "session": session_handle,
                "reason": str(e),
            }, level="WARNING")
            return False
