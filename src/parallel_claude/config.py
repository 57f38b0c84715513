"""Lightweight configuration loader for parallel-claude.

Reads optional settings from ~/.parallel-claude/config.yaml with safe defaults.

Supported keys:
- workers_dir: root directory for worker clones (default: ~/.parallel-claude/workers)
- state_file: registry document (default: ~/.parallel-claude/state.json)
- base_port / port_increment: dev server port allocation (default: 3100 / 10)
- terminal: terminal backend - 'iterm2' or 'tmux' (default: 'iterm2')
- tmux_session: tmux session name used as the shared window (default: 'parallel-claude')
- agent_command: command started in the agent pane
- task_template: format string for the task line, must contain '{task}'
- agent_start_delay, confirm_delay, interrupt_delay, launch_delay: seconds
- clone_depth: depth passed to git clone (default: 50)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional
import yaml

_CONFIG_CACHE: Optional[Dict[str, Any]] = None

TERMINAL_BACKENDS = ('iterm2', 'tmux')


def get_base_dir() -> Path:
    return Path.home() / '.parallel-claude'


def _defaults() -> Dict[str, Any]:
    base = get_base_dir()
    return {
        'workers_dir': str(base / 'workers'),
        'state_file': str(base / 'state.json'),
        'base_port': 3100,
        'port_increment': 10,
        'terminal': 'iterm2',
        'tmux_session': 'parallel-claude',
        'agent_command': 'claude --dangerously-skip-permissions',
        'task_template': 'Always make sure to follow CLAUDE.md before starting. Task: {task}',
        'agent_start_delay': 3.0,
        'confirm_delay': 0.5,
        'interrupt_delay': 0.5,
        'launch_delay': 1.0,
        'clone_depth': 50,
    }


def get_config() -> Dict[str, Any]:
    """Load config.yaml once and cache the result."""
    global _CONFIG_CACHE
    if _CONFIG_CACHE is not None:
        return _CONFIG_CACHE

    cfg_path = get_base_dir() / 'config.yaml'
    data: Dict[str, Any] = {}
    if cfg_path.exists():
        try:
            loaded = yaml.safe_load(cfg_path.read_text())
            if isinstance(loaded, dict):
                data = loaded
        except (yaml.YAMLError, OSError):
            # Ignore malformed configs; fall back to defaults
            data = {}

    merged = {**_defaults(), **data}
    _CONFIG_CACHE = merged
    return merged


def reset_config_cache() -> None:
    global _CONFIG_CACHE
    _CONFIG_CACHE = None


def _get(key: str) -> Any:
    value = get_config().get(key)
    return _defaults()[key] if value is None else value


def get_workers_dir() -> Path:
    return Path(_get('workers_dir')).expanduser()


def get_state_file() -> Path:
    return Path(_get('state_file')).expanduser()


def get_base_port() -> int:
    return int(_get('base_port'))


def get_port_increment() -> int:
    return int(_get('port_increment'))


def get_tmux_session() -> str:
    return str(_get('tmux_session'))


def get_agent_command() -> str:
    return str(_get('agent_command'))


def get_clone_depth() -> int:
    return int(_get('clone_depth'))


def format_task(task: str) -> str:
    """Render the line delivered to the agent for a task."""
    template = str(_get('task_template'))
    if '{task}' not in template:
        return f"{template} {task}".strip()
    return template.replace('{task}', task)


def get_delays() -> Dict[str, float]:
    """Fixed delays (seconds) used while driving the terminal."""
    return {
        key: float(_get(key))
        for key in ('agent_start_delay', 'confirm_delay', 'interrupt_delay', 'launch_delay')
    }


def get_terminal_backend(cli_terminal: Optional[str] = None) -> str:
    """
    Get terminal backend with priority: CLI flag > config file > default.

    Args:
        cli_terminal: Backend given via --terminal (highest priority)

    Returns:
        'iterm2' or 'tmux'

    Raises:
        ValueError: If the configured backend is not supported
    """
    backend = cli_terminal if cli_terminal is not None else str(_get('terminal'))
    if backend not in TERMINAL_BACKENDS:
        raise ValueError(
            f"Unsupported terminal: {backend}. Supported terminals: {', '.join(TERMINAL_BACKENDS)}"
        )
    return backend
