"""Tests for worker, branch and repository naming."""

import random
import re
from datetime import date

import pytest
import time_machine

from parallel_claude.naming import (
    ADJECTIVES,
    ANIMALS,
    generate_branch_name,
    generate_worker_name,
    get_repo_name,
    new_worker_id,
    slugify_task,
)

ALL_NAMES = {f"{a}-{b}" for a in ADJECTIVES for b in ANIMALS}
BRANCH_PATTERN = re.compile(r'^feat/([a-z0-9]+(?:-[a-z0-9]+)*-)?[a-z]+-[a-z]+-\d{8}$')


class TestGenerateWorkerName:

    def test_name_is_adjective_animal(self):
        name = generate_worker_name(rng=random.Random(1))
        adjective, animal = name.split("-")

        assert adjective in ADJECTIVES
        assert animal in ANIMALS

    def test_never_returns_existing_name(self):
        rng = random.Random(7)
        # Leave exactly one combination free
        free = "proud-otter"
        existing = ALL_NAMES - {free}

        for _ in range(20):
            name = generate_worker_name(existing, rng=rng)
            assert name not in existing

    @time_machine.travel("2025-03-09 10:00:00", tick=False)
    def test_falls_back_to_timestamp_when_exhausted(self):
        name = generate_worker_name(ALL_NAMES, rng=random.Random(3))

        assert re.fullmatch(r'worker-\d+', name)

    @time_machine.travel("2025-03-09 10:00:00", tick=False)
    def test_fallback_avoids_existing_timestamp_name(self):
        taken = generate_worker_name(ALL_NAMES, rng=random.Random(3))

        name = generate_worker_name(ALL_NAMES | {taken}, rng=random.Random(3))

        assert name != taken
        assert name.startswith(f"{taken}-")


class TestSlugifyTask:

    @pytest.mark.parametrize("task,expected", [
        ("Fix Login Bug!!", "fix-login-bug"),
        ("Fix: the ~login~ bug", "fix-the-login-bug"),
        ("  leading and trailing  ", "leading-and-trailing"),
        ("???", ""),
        ("Ünïcode stays out", "n-code-stays-out"),
    ])
    def test_slugify(self, task, expected):
        assert slugify_task(task) == expected

    def test_truncates_then_strips_edge_hyphen(self):
        slug = slugify_task("word " * 10)

        assert slug == "-".join(["word"] * 8)
        assert len(slug) <= 40


class TestGenerateBranchName:

    def test_branch_format(self):
        branch = generate_branch_name("Fix login bug!", "swift-fox", date(2025, 3, 9))

        assert branch == "feat/fix-login-bug-swift-fox-20250309"

    def test_empty_slug_drops_separator(self):
        assert generate_branch_name("???", "calm-owl", date(2025, 3, 9)) == "feat/calm-owl-20250309"

    @time_machine.travel("2025-12-31 23:00:00")
    def test_defaults_to_today(self):
        assert generate_branch_name("Add dark mode", "bold-lynx") == "feat/add-dark-mode-bold-lynx-20251231"

    @pytest.mark.parametrize("task", [
        "Refactor the API client so that retries are configurable per endpoint",
        "--weird--input--",
        "UPPER case / mixed_chars.and.dots",
    ])
    def test_branch_always_matches_pattern(self, task):
        branch = generate_branch_name(task, "keen-hawk", date(2025, 1, 2))

        assert BRANCH_PATTERN.match(branch)
        slug = branch[len("feat/"):-len("-keen-hawk-20250102")]
        assert len(slug) <= 40
        assert "--" not in slug


class TestGetRepoName:

    @pytest.mark.parametrize("url,expected", [
        ("https://github.com/acme/web-app.git", "web-app"),
        ("https://github.com/acme/web-app", "web-app"),
        ("https://github.com/acme/web-app/", "web-app"),
        ("git@github.com:acme/api.git", "api"),
        ("git@github.com:api", "api"),
        ("not-a-url", "repo"),
    ])
    def test_repo_name(self, url, expected):
        assert get_repo_name(url) == expected


def test_worker_ids_are_short_and_unique():
    ids = {new_worker_id() for _ in range(50)}

    assert len(ids) == 50
    assert all(len(i) == 10 for i in ids)
