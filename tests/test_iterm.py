"""Tests for the iTerm2 AppleScript controller."""

import subprocess
from unittest.mock import Mock, patch

import pytest

from parallel_claude.terminal.base import PaneRef, SessionNotFoundError, TerminalError
from parallel_claude.terminal.iterm import (
    MISSING,
    ITermController,
    escape_applescript,
    run_applescript,
)


class ScriptRunner:
    """Records scripts and replays canned outputs in order."""

    def __init__(self, *outputs):
        self.outputs = list(outputs)
        self.scripts = []

    def __call__(self, script):
        self.scripts.append(script)
        output = self.outputs.pop(0) if self.outputs else "ok"
        if isinstance(output, Exception):
            raise output
        return output


class TestEscapeApplescript:

    @pytest.mark.parametrize("text,expected", [
        ('plain text', 'plain text'),
        ('say "hi"', 'say \\"hi\\"'),
        ('C:\\path', 'C:\\\\path'),
        ('line one\nline two', 'line one\\nline two'),
        ('cr\rlf', 'cr\\rlf'),
        ('tab\there', 'tab\\there'),
        ('\\"', '\\\\\\"'),
    ])
    def test_escaping(self, text, expected):
        assert escape_applescript(text) == expected


class TestRunApplescript:

    def test_passes_script_on_stdin(self):
        with patch('parallel_claude.terminal.iterm.subprocess.run') as mock_run:
            mock_run.return_value = Mock(returncode=0, stdout="42\n", stderr="")

            assert run_applescript('return 42') == "42"

        args, kwargs = mock_run.call_args
        assert args[0] == ['osascript', '-']
        assert kwargs['input'] == 'return 42'

    def test_nonzero_exit_raises(self):
        with patch('parallel_claude.terminal.iterm.subprocess.run') as mock_run:
            mock_run.return_value = Mock(returncode=1, stdout="", stderr="execution error: boom\n")

            with pytest.raises(TerminalError, match="boom"):
                run_applescript('bad')

    def test_missing_osascript_raises(self):
        with patch('parallel_claude.terminal.iterm.subprocess.run', side_effect=FileNotFoundError):
            with pytest.raises(TerminalError, match="osascript not found"):
                run_applescript('return 1')

    def test_timeout_raises(self):
        error = subprocess.TimeoutExpired(cmd=['osascript', '-'], timeout=30)
        with patch('parallel_claude.terminal.iterm.subprocess.run', side_effect=error):
            with pytest.raises(TerminalError, match="timed out"):
                run_applescript('delay 60')


class TestITermController:

    def test_is_running(self):
        assert ITermController(ScriptRunner("true")).is_running() is True
        assert ITermController(ScriptRunner("false")).is_running() is False

    def test_is_running_false_on_error(self):
        assert ITermController(ScriptRunner(TerminalError("no"))).is_running() is False

    def test_list_sessions_parses_lines(self):
        runner = ScriptRunner("1\tA-1\t⚡ parallel-claude\n1\tB-2\tswift-fox - dev\nbroken line\n")

        sessions = ITermController(runner).list_sessions()

        assert [(s.window_id, s.session_id, s.name) for s in sessions] == [
            ("1", "A-1", "⚡ parallel-claude"),
            ("1", "B-2", "swift-fox - dev"),
        ]

    def test_create_window(self):
        pane = ITermController(ScriptRunner("77\tSESSION-1")).create_window()

        assert pane == PaneRef(window_id="77", session_id="SESSION-1")

    def test_create_window_unexpected_output(self):
        with pytest.raises(TerminalError):
            ITermController(ScriptRunner("garbage")).create_window()

    def test_create_tab_escapes_title(self):
        runner = ScriptRunner("SESSION-2")

        session_id = ITermController(runner).create_tab("77", 'say "hi"')

        assert session_id == "SESSION-2"
        assert 'tell window id 77' in runner.scripts[0]
        assert 'set name to "say \\"hi\\""' in runner.scripts[0]

    def test_create_tab_rejects_non_numeric_window(self):
        runner = ScriptRunner()

        with pytest.raises(TerminalError, match="Invalid iTerm2 window id"):
            ITermController(runner).create_tab('1" & do shell script "x', "t")
        assert runner.scripts == []

    def test_write_text_escapes_task(self):
        runner = ScriptRunner("ok")

        ITermController(runner).write_text("S-1", 'fix "quotes"\nand newlines')

        assert 'write text "fix \\"quotes\\"\\nand newlines"' in runner.scripts[0]
        assert '"S-1"' in runner.scripts[0]

    def test_missing_session_raises_not_found(self):
        runner = ScriptRunner(MISSING)

        with pytest.raises(SessionNotFoundError):
            ITermController(runner).select("gone")

    def test_interrupt_targets_every_session_in_tab(self):
        runner = ScriptRunner("ok")

        ITermController(runner).interrupt("S-1")

        assert "repeat with s2 in sessions of t" in runner.scripts[0]
        assert "ASCII character 3" in runner.scripts[0]

    def test_split_returns_new_session(self):
        assert ITermController(ScriptRunner("S-2")).split_vertically("S-1") == "S-2"

    def test_close_closes_tab(self):
        runner = ScriptRunner("ok")

        ITermController(runner).close("S-1")

        assert "close t" in runner.scripts[0]
