"""TmuxController - drives tmux through libtmux.

Mapping onto the terminal model:
    shared window  -> tmux session (named after the tmux_session config key)
    tab            -> tmux window
    session handle -> tmux pane id (e.g. '%12')

Session names live in a pane user option rather than the pane title, because
shells and agents overwrite pane titles with escape sequences.
"""

import logging
import time
from typing import List, Optional

import libtmux
from libtmux.exc import LibTmuxException

from .base import PaneRef, SessionInfo, SessionNotFoundError, TerminalController, TerminalError

logger = logging.getLogger(__name__)

NAME_OPTION = "@parallel_claude_name"


class TmuxController(TerminalController):
    """tmux backend. Window handles are tmux session ids, session handles pane ids."""

    def __init__(self, session_name: str = "parallel-claude", server: Optional[libtmux.Server] = None):
        self.session_name = session_name
        self._server = server

    @property
    def name(self) -> str:
        return "tmux"

    @property
    def server(self) -> libtmux.Server:
        if self._server is None:
            self._server = libtmux.Server()
        return self._server

    def _cmd(self, *args: str) -> List[str]:
        try:
            result = self.server.cmd(*args)
        except (LibTmuxException, OSError) as e:
            raise TerminalError(f"tmux {args[0]} failed: {e}")

        if result.stderr:
            message = "; ".join(result.stderr)
            if "can't find" in message:
                raise SessionNotFoundError(message)
            raise TerminalError(f"tmux {args[0]} failed: {message}")
        return result.stdout

    def is_running(self) -> bool:
        try:
            return bool(self.server.is_alive())
        except (LibTmuxException, OSError):
            return False

    def launch(self) -> None:
        self._cmd("start-server")

    def list_sessions(self) -> List[SessionInfo]:
        if not self.is_running():
            return []

        sessions = []
        lines = self._cmd("list-panes", "-a", "-F", f"#{{session_id}}\t#{{pane_id}}\t#{{{NAME_OPTION}}}")
        for line in lines:
            parts = line.split('\t', 2)
            if len(parts) != 3:
                continue
            sessions.append(SessionInfo(window_id=parts[0], session_id=parts[1], name=parts[2]))
        return sessions

    def _free_session_name(self) -> str:
        try:
            taken = self.server.has_session(self.session_name)
        except (LibTmuxException, OSError):
            taken = False
        if not taken:
            return self.session_name
        return f"{self.session_name}-{int(time.time())}"

    def create_window(self) -> PaneRef:
        session_name = self._free_session_name()
        lines = self._cmd(
            "new-session", "-d", "-s", session_name,
            "-P", "-F", "#{session_id}\t#{pane_id}",
        )
        window_id, sep, pane_id = (lines[0] if lines else "").partition('\t')
        if not sep or not window_id or not pane_id:
            raise TerminalError(f"Unexpected new-session output: {lines!r}")
        logger.debug(f"Created tmux session {session_name} ({window_id})")
        return PaneRef(window_id=window_id, session_id=pane_id)

    def create_tab(self, window_id: str, title: str) -> str:
        lines = self._cmd(
            "new-window", "-d", "-t", f"{window_id}:",
            "-n", title,
            "-P", "-F", "#{pane_id}",
        )
        if not lines or not lines[0]:
            raise TerminalError(f"No pane id returned for new window in {window_id}")
        return lines[0]

    def split_vertically(self, session_id: str) -> str:
        lines = self._cmd("split-window", "-h", "-t", session_id, "-P", "-F", "#{pane_id}")
        if not lines or not lines[0]:
            raise TerminalError(f"No pane id returned when splitting {session_id}")
        return lines[0]

    def set_name(self, session_id: str, name: str) -> None:
        self._cmd("set-option", "-p", "-t", session_id, NAME_OPTION, name)
        self._cmd("select-pane", "-t", session_id, "-T", name)

    def write_text(self, session_id: str, text: str) -> None:
        if text:
            self._cmd("send-keys", "-t", session_id, "-l", text)
        self._cmd("send-keys", "-t", session_id, "Enter")

    def interrupt(self, session_id: str) -> None:
        for pane_id in self._cmd("list-panes", "-t", session_id, "-F", "#{pane_id}"):
            self._cmd("send-keys", "-t", pane_id, "C-c")

    def close(self, session_id: str) -> None:
        self._cmd("kill-window", "-t", session_id)

    def select(self, session_id: str) -> None:
        self._cmd("select-window", "-t", session_id)
        self._cmd("select-pane", "-t", session_id)
