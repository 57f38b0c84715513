"""Abstract terminal controller (iTerm2, tmux)."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List


class TerminalError(Exception):
    """A terminal scripting call failed."""


class SessionNotFoundError(TerminalError):
    """The referenced session no longer exists."""


@dataclass(frozen=True)
class SessionInfo:
    """One live session as reported by the terminal."""
    window_id: str
    session_id: str
    name: str


@dataclass(frozen=True)
class PaneRef:
    """A window together with the session it was created with."""
    window_id: str
    session_id: str


class TerminalController(ABC):
    """
    Imperative scripting interface to an interactive terminal application.

    Calls are fire-and-forget: there is no way to confirm that a program
    running inside a session received the text written to it. Any failure
    surfaces as TerminalError.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name (e.g., "iterm2", "tmux")."""

    @abstractmethod
    def is_running(self) -> bool:
        """Whether the host terminal application is running."""

    @abstractmethod
    def launch(self) -> None:
        """Start or activate the host terminal application."""

    @abstractmethod
    def list_sessions(self) -> List[SessionInfo]:
        """Enumerate every session of every window/tab."""

    @abstractmethod
    def create_window(self) -> PaneRef:
        """Open a new window with a single session."""

    @abstractmethod
    def create_tab(self, window_id: str, title: str) -> str:
        """Open a new tab in a window and return its session id."""

    @abstractmethod
    def split_vertically(self, session_id: str) -> str:
        """Split a session side by side and return the new session id."""

    @abstractmethod
    def set_name(self, session_id: str, name: str) -> None:
        """Set the display name of a session."""

    @abstractmethod
    def write_text(self, session_id: str, text: str) -> None:
        """Type text into a session followed by a newline."""

    @abstractmethod
    def interrupt(self, session_id: str) -> None:
        """Send Ctrl-C to every session in the tab containing session_id."""

    @abstractmethod
    def close(self, session_id: str) -> None:
        """Close the tab containing session_id."""

    @abstractmethod
    def select(self, session_id: str) -> None:
        """Bring the tab containing session_id to the front."""
