"""Tests for the hybrid-format worker logger."""

import json

import pytest
import time_machine

from parallel_claude.logging import WorkerLogger


@pytest.fixture
def log_dir(tmp_path):
    return tmp_path / "logs"


@pytest.fixture
def logger(log_dir):
    return WorkerLogger(log_dir=log_dir)


def test_default_location(isolated_home):
    assert WorkerLogger().log_dir == isolated_home / ".parallel-claude" / "logs"


def test_log_directory_created_on_write(log_dir, logger):
    assert not log_dir.exists()

    logger.log_event("test", "message", {})

    assert log_dir.exists()


@time_machine.travel("2025-11-10 15:30:45", tick=False)
def test_hybrid_format(logger, log_dir):
    logger.log_event("spawn", "Worker created", {"worker": "swift-fox", "port": 3100})

    line = (log_dir / "parallel-claude-2025-11.log").read_text().strip()

    assert line.startswith("2025-11-10 15:30:45 INFO  [spawn] Worker created | ")
    assert json.loads(line.split(" | ", 1)[1]) == {"worker": "swift-fox", "port": 3100}


def test_monthly_files(logger, log_dir):
    with time_machine.travel("2025-01-31 23:59:00", tick=False):
        logger.log_event("spawn", "january", {})
    with time_machine.travel("2025-02-01 00:01:00", tick=False):
        logger.log_event("spawn", "february", {})

    assert [p.name for p in logger.get_log_files()] == [
        "parallel-claude-2025-02.log",
        "parallel-claude-2025-01.log",
    ]


def test_command_complete_message(logger):
    logger.log_command_complete("spawn", 1234, {"worker": "calm-owl"})

    entry = logger.read_logs(limit=1)[0]
    assert entry['message'] == "Command complete: calm-owl (1234ms)"
    assert entry['data']['duration_ms'] == 1234


def test_error_folds_reason(logger):
    logger.log_error("cleanup", "Cleanup failed: calm-owl", {"reason": "device busy"})

    entry = logger.read_logs(limit=1)[0]
    assert entry['level'] == "ERROR"
    assert entry['message'] == "Cleanup failed: calm-owl: device busy"


def test_read_logs_filters_newest_first(logger):
    logger.log_event("registry", "one", {}, level="INFO")
    logger.log_event("session", "two", {}, level="DEBUG")
    logger.log_event("registry", "three", {}, level="WARNING")

    assert [e['message'] for e in logger.read_logs(command_filter="registry")] == ["three", "one"]
    assert [e['message'] for e in logger.read_logs(level_filter="DEBUG")] == ["two"]


def test_unparseable_lines_skipped(logger, log_dir):
    logger.log_event("spawn", "good", {})
    log_file = logger.get_log_files()[0]
    with open(log_file, "a") as f:
        f.write("garbage without separator\n")

    assert [e['message'] for e in logger.read_logs()] == ["good"]
