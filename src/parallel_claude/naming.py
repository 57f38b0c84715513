"""
Naming utilities for workers.

Worker names are `adjective-animal` pairs, branch names are derived from the
task text, and repository names from the clone URL.
"""

import random
import re
import secrets
import time
from datetime import date
from typing import Iterable, Optional


ADJECTIVES = [
    "swift", "brave", "calm", "bright", "bold", "keen", "wise", "quick",
    "sharp", "cool", "warm", "fair", "pure", "true", "kind", "proud",
]

ANIMALS = [
    "fox", "owl", "eagle", "wolf", "bear", "hawk", "deer", "lion",
    "tiger", "raven", "falcon", "panther", "jaguar", "leopard", "lynx", "otter",
]

MAX_NAME_ATTEMPTS = 100
MAX_SLUG_LENGTH = 40
BRANCH_PREFIX = "feat/"
DEFAULT_REPO_NAME = "repo"


def generate_worker_name(existing_names: Iterable[str] = (), rng: Optional[random.Random] = None) -> str:
    """
    Pick a random `adjective-animal` name not in existing_names.

    Gives up after MAX_NAME_ATTEMPTS draws and returns `worker-<epoch ms>`
    so a crowded registry can never loop forever.

    Args:
        existing_names: Names of currently active workers
        rng: Random source (tests pass a seeded one)

    Returns:
        A name absent from existing_names
    """
    existing = set(existing_names)
    rng = rng or random.Random()

    for _ in range(MAX_NAME_ATTEMPTS):
        name = f"{rng.choice(ADJECTIVES)}-{rng.choice(ANIMALS)}"
        if name not in existing:
            return name

    name = f"worker-{int(time.time() * 1000)}"
    while name in existing:
        name = f"worker-{int(time.time() * 1000)}-{secrets.token_hex(2)}"
    return name


def slugify_task(task: str) -> str:
    """
    Reduce task text to a branch-safe slug.

    Lower-cases, turns every run of non-alphanumerics into one hyphen,
    truncates to MAX_SLUG_LENGTH and strips edge hyphens. May be empty.
    """
    slug = re.sub(r'[^a-z0-9]+', '-', task.lower())
    return slug[:MAX_SLUG_LENGTH].strip('-')


def generate_branch_name(task: str, worker_name: str, today: Optional[date] = None) -> str:
    """
    Build `feat/<slug>-<worker>-<YYYYMMDD>` for a task.

    Examples:
        >>> generate_branch_name("Fix login bug!", "swift-fox", date(2025, 3, 9))
        'feat/fix-login-bug-swift-fox-20250309'
        >>> generate_branch_name("???", "calm-owl", date(2025, 3, 9))
        'feat/calm-owl-20250309'
    """
    stamp = (today or date.today()).strftime("%Y%m%d")
    parts = [p for p in (slugify_task(task), worker_name, stamp) if p]
    return BRANCH_PREFIX + '-'.join(parts)


def get_repo_name(repo_url: str) -> str:
    """
    Extract the repository name from a clone URL.

    Examples:
        >>> get_repo_name("https://github.com/acme/web-app.git")
        'web-app'
        >>> get_repo_name("git@github.com:acme/api")
        'api'
    """
    match = re.search(r'[/:]([^/:]+?)(?:\.git)?/*$', repo_url.strip())
    if not match:
        return DEFAULT_REPO_NAME
    return match.group(1)


def new_worker_id() -> str:
    """Opaque 10-character id, stable even if the worker name is reused later."""
    return secrets.token_urlsafe(8)[:10]
