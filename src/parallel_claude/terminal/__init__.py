"""Terminal backends (iTerm2 via AppleScript, tmux via libtmux)."""

from typing import Optional

from .base import PaneRef, SessionInfo, SessionNotFoundError, TerminalController, TerminalError
from .iterm import ITermController, escape_applescript
from .tmux import TmuxController

__all__ = [
    "PaneRef",
    "SessionInfo",
    "SessionNotFoundError",
    "TerminalController",
    "TerminalError",
    "ITermController",
    "TmuxController",
    "escape_applescript",
    "get_controller",
]


def get_controller(backend: str, tmux_session: Optional[str] = None) -> TerminalController:
    """Instantiate the controller for a backend name ('iterm2' or 'tmux')."""
    if backend == "iterm2":
        return ITermController()
    if backend == "tmux":
        return TmuxController(session_name=tmux_session or "parallel-claude")
    raise ValueError(f"Unsupported terminal: {backend}. Supported terminals: iterm2, tmux")
