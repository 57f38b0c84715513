"""Tests for `parallel-claude errors`."""

import json

import pytest

from parallel_claude.cli import cli
from parallel_claude.error_logging import ErrorLogger, ErrorType


@pytest.fixture
def seeded(isolated_home):
    error_logger = ErrorLogger()
    error_logger.log_error("parallel-claude spawn x", "spawn", ErrorType.EXTERNAL_TOOL_FAILED, "clone failed")
    error_logger.log_error("parallel-claude spawn y", "spawn", ErrorType.EXTERNAL_TOOL_FAILED, "install failed")
    error_logger.log_error("parallel-claude focus z", "focus", ErrorType.WORKER_NOT_FOUND, "Worker not found: z")
    return error_logger


def test_no_errors(cli_runner):
    result = cli_runner.invoke(cli, ['errors'])

    assert result.exit_code == 0
    assert "No errors in the last 7 days." in result.output


def test_summary(cli_runner, seeded, monkeypatch):
    monkeypatch.setenv("COLUMNS", "200")

    result = cli_runner.invoke(cli, ['errors'])

    assert result.exit_code == 0
    assert "3 total" in result.output
    assert "EXTERNAL_TOOL_FAILED" in result.output
    assert "Worker not found: z" in result.output


def test_json(cli_runner, seeded):
    result = cli_runner.invoke(cli, ['errors', '--json', '--limit', '2'])

    data = json.loads(result.output)
    assert data['stats']['total'] == 3
    assert data['stats']['by_command'] == {"spawn": 2, "focus": 1}
    assert [e['message'] for e in data['recent_errors']] == ["Worker not found: z", "install failed"]


def test_filter_by_type(cli_runner, seeded):
    result = cli_runner.invoke(cli, ['errors', '--json', '--type', 'WORKER_NOT_FOUND'])

    data = json.loads(result.output)
    assert data['stats']['total'] == 1
    assert all(e['error_type'] == 'WORKER_NOT_FOUND' for e in data['recent_errors'])


def test_filter_with_no_matches(cli_runner, seeded):
    result = cli_runner.invoke(cli, ['errors', '--type', 'CLEANUP_FAILED'])

    assert "No errors of type 'CLEANUP_FAILED'" in result.output


def test_unknown_type_rejected(cli_runner):
    assert cli_runner.invoke(cli, ['errors', '--type', 'NOPE']).exit_code == 2


def test_type_filter_applied_before_limit(cli_runner, seeded):
    for i in range(3):
        seeded.log_error("parallel-claude send a", "send", ErrorType.TERMINAL_ERROR, f"gone {i}")

    result = cli_runner.invoke(cli, ['errors', '--json', '--type', 'EXTERNAL_TOOL_FAILED', '--limit', '2'])

    data = json.loads(result.output)
    assert [e['message'] for e in data['recent_errors']] == ["install failed", "clone failed"]
