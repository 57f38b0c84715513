"""ITermController - drives iTerm2 through AppleScript (osascript)."""

import logging
import subprocess
from typing import List

from .base import PaneRef, SessionInfo, SessionNotFoundError, TerminalController, TerminalError

logger = logging.getLogger(__name__)

MISSING = "__missing__"
OSASCRIPT_TIMEOUT = 30


def escape_applescript(text: str) -> str:
    """
    Escape text for use inside an AppleScript double-quoted string literal.

    Backslashes and double quotes are backslash-escaped; CR, LF and TAB
    become the \\r, \\n and \\t escapes AppleScript understands.
    """
    return (
        text.replace('\\', '\\\\')
        .replace('"', '\\"')
        .replace('\r', '\\r')
        .replace('\n', '\\n')
        .replace('\t', '\\t')
    )


def run_applescript(script: str) -> str:
    """
    Run an AppleScript via `osascript -` and return its trimmed stdout.

    The script is passed on stdin so no temp files or shell quoting are
    involved.

    Raises:
        TerminalError: If osascript is missing, times out or exits non-zero
    """
    try:
        result = subprocess.run(
            ['osascript', '-'],
            input=script,
            capture_output=True,
            text=True,
            timeout=OSASCRIPT_TIMEOUT,
        )
    except FileNotFoundError:
        raise TerminalError("osascript not found (iTerm2 control requires macOS)")
    except subprocess.TimeoutExpired:
        raise TerminalError(f"osascript timed out after {OSASCRIPT_TIMEOUT}s")

    if result.returncode != 0:
        raise TerminalError(result.stderr.strip() or f"osascript exited with {result.returncode}")
    return result.stdout.strip()


def _window_ref(window_id: str) -> str:
    if not str(window_id).isdigit():
        raise TerminalError(f"Invalid iTerm2 window id: {window_id!r}")
    return f"window id {window_id}"


def _session_script(session_id: str, action: str) -> str:
    """Wrap an action so it runs with w/t/s bound to the session's window, tab and session."""
    return f'''
tell application "iTerm2"
    repeat with w in windows
        repeat with t in tabs of w
            repeat with s in sessions of t
                if (id of s as text) is "{escape_applescript(session_id)}" then
{action}
                end if
            end repeat
        end repeat
    end repeat
    return "{MISSING}"
end tell
'''


class ITermController(TerminalController):
    """
    iTerm2 backend. Window handles are numeric window ids, session handles
    are iTerm2 session unique ids.
    """

    def __init__(self, runner=run_applescript):
        self._run = runner

    @property
    def name(self) -> str:
        return "iterm2"

    def _on_session(self, session_id: str, action: str) -> str:
        output = self._run(_session_script(session_id, action))
        if output == MISSING:
            raise SessionNotFoundError(f"iTerm2 session not found: {session_id}")
        return output

    def is_running(self) -> bool:
        try:
            output = self._run(
                'tell application "System Events"\n'
                '    return (name of processes) contains "iTerm2"\n'
                'end tell'
            )
        except TerminalError as e:
            logger.debug(f"Could not query iTerm2 process state: {e}")
            return False
        return output == "true"

    def launch(self) -> None:
        self._run('tell application "iTerm2" to activate')

    def list_sessions(self) -> List[SessionInfo]:
        output = self._run('''
set sep to ASCII character 9
set nl to ASCII character 10
tell application "iTerm2"
    set output to ""
    repeat with w in windows
        repeat with t in tabs of w
            repeat with s in sessions of t
                set output to output & (id of w as text) & sep & (id of s as text) & sep & (name of s as text) & nl
            end repeat
        end repeat
    end repeat
    return output
end tell
''')
        sessions = []
        for line in output.splitlines():
            parts = line.split('\t', 2)
            if len(parts) != 3:
                continue
            sessions.append(SessionInfo(window_id=parts[0], session_id=parts[1], name=parts[2]))
        return sessions

    def create_window(self) -> PaneRef:
        output = self._run('''
tell application "iTerm2"
    activate
    set newWindow to (create window with default profile)
    return (id of newWindow as text) & (ASCII character 9) & (id of current session of newWindow as text)
end tell
''')
        window_id, sep, session_id = output.partition('\t')
        if not sep or not window_id or not session_id:
            raise TerminalError(f"Unexpected create window output: {output!r}")
        return PaneRef(window_id=window_id, session_id=session_id)

    def create_tab(self, window_id: str, title: str) -> str:
        output = self._run(f'''
tell application "iTerm2"
    tell {_window_ref(window_id)}
        set newTab to (create tab with default profile)
        tell current session of newTab
            set name to "{escape_applescript(title)}"
        end tell
        return (id of current session of newTab as text)
    end tell
end tell
''')
        if not output:
            raise TerminalError(f"No session id returned for new tab in window {window_id}")
        return output

    def split_vertically(self, session_id: str) -> str:
        return self._on_session(session_id, '''
                    tell s
                        set newSession to (split vertically with default profile)
                    end tell
                    return (id of newSession as text)''')

    def set_name(self, session_id: str, name: str) -> None:
        self._on_session(session_id, f'''
                    tell s to set name to "{escape_applescript(name)}"
                    return "ok"''')

    def write_text(self, session_id: str, text: str) -> None:
        self._on_session(session_id, f'''
                    tell s to write text "{escape_applescript(text)}"
                    return "ok"''')

    def interrupt(self, session_id: str) -> None:
        self._on_session(session_id, '''
                    repeat with s2 in sessions of t
                        tell s2 to write text (ASCII character 3) newline NO
                    end repeat
                    return "ok"''')

    def close(self, session_id: str) -> None:
        self._on_session(session_id, '''
                    close t
                    return "ok"''')

    def select(self, session_id: str) -> None:
        self._on_session(session_id, '''
                    activate
                    select w
                    select t
                    select s
                    return "ok"''')
