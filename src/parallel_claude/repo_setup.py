"""
Workspace preparation for a new worker.

Plain sequential shell steps: clone, git identity, branch, .env.local copy,
dependency install. A failed step raises ExternalToolError and leaves
whatever was already created on disk for manual inspection.
"""

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

GIT_EMAIL = "agent@parallel-claude.local"
ENV_FILE = ".env.local"


class ExternalToolError(Exception):
    """An external command (git, package manager) failed."""

    def __init__(self, command: Sequence[str], message: str):
        self.command = list(command)
        super().__init__(f"{' '.join(self.command)}: {message}")


@dataclass(frozen=True)
class PackageManager:
    """A JavaScript package manager recognised by its lockfile."""
    name: str
    lockfile: Optional[str]

    def install_command(self) -> List[str]:
        return [self.name, "install"]

    def dev_command(self, port: int) -> str:
        """Command that starts the dev server on a given port; only bun runs it itself."""
        if self.name == "bun":
            return f"bun run dev --port {port}"
        return f"npm run dev -- --port {port}"


# Checked in this order; the first lockfile present wins
PACKAGE_MANAGERS = [
    PackageManager("bun", "bun.lockb"),
    PackageManager("pnpm", "pnpm-lock.yaml"),
    PackageManager("yarn", "yarn.lock"),
    PackageManager("npm", "package-lock.json"),
]
DEFAULT_PACKAGE_MANAGER = PackageManager("npm", None)


def detect_package_manager(directory: Path) -> PackageManager:
    """Pick the package manager whose lockfile is present, npm by default."""
    for manager in PACKAGE_MANAGERS:
        if (Path(directory) / manager.lockfile).exists():
            return manager
    return DEFAULT_PACKAGE_MANAGER


def run_tool(command: Sequence[str], cwd: Optional[Path] = None) -> str:
    """
    Run an external command and return stdout.

    Raises:
        ExternalToolError: If the command is missing or exits non-zero
    """
    try:
        result = subprocess.run(
            list(command),
            cwd=cwd,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        raise ExternalToolError(command, "command not found")

    if result.returncode != 0:
        raise ExternalToolError(command, result.stderr.strip() or f"exit code {result.returncode}")
    return result.stdout


def clone_repository(repo_url: str, directory: Path, depth: int = 50) -> None:
    run_tool(["git", "clone", "--depth", str(depth), repo_url, str(directory)])


def configure_git_identity(directory: Path, worker_name: str) -> None:
    run_tool(["git", "config", "user.email", GIT_EMAIL], cwd=directory)
    run_tool(["git", "config", "user.name", f"Parallel Claude ({worker_name})"], cwd=directory)


def create_branch(directory: Path, branch: str) -> None:
    run_tool(["git", "checkout", "-b", branch], cwd=directory)


def copy_env_file(directory: Path, search_dirs: Sequence[Path]) -> Optional[Path]:
    """Copy the first .env.local found in search_dirs into the worker directory."""
    for search_dir in search_dirs:
        source = Path(search_dir) / ENV_FILE
        if source.is_file():
            shutil.copyfile(source, Path(directory) / ENV_FILE)
            return source
    return None


def install_dependencies(directory: Path, manager: PackageManager) -> None:
    run_tool(manager.install_command(), cwd=directory)


@dataclass(frozen=True)
class PreparedWorkspace:
    directory: Path
    package_manager: PackageManager
    env_source: Optional[Path] = None


class WorkspacePreparer:
    """Clone and set up a worker directory, one step at a time."""

    def __init__(self, clone_depth: int = 50, env_search_dirs: Optional[Sequence[Path]] = None):
        self.clone_depth = clone_depth
        self.env_search_dirs = env_search_dirs

    def prepare(
        self,
        repo_url: str,
        directory: Path,
        branch: str,
        worker_name: str,
        on_step=None,
    ) -> PreparedWorkspace:
        """
        Run clone, git identity, branch, env copy and install in order.

        Args:
            repo_url: Repository to clone
            directory: Target directory (must not exist)
            branch: Branch to create and check out
            worker_name: Used in the git author name
            on_step: Optional callback receiving a short progress message

        Raises:
            ExternalToolError: On the first failing step
        """
        def step(message: str) -> None:
            if on_step:
                on_step(message)

        directory = Path(directory)
        directory.parent.mkdir(parents=True, exist_ok=True)

        step(f"Cloning {repo_url}...")
        clone_repository(repo_url, directory, depth=self.clone_depth)
        configure_git_identity(directory, worker_name)

        step(f"Creating branch {branch}...")
        create_branch(directory, branch)

        search_dirs = self.env_search_dirs
        if search_dirs is None:
            search_dirs = [Path.cwd(), Path.home()]
        env_source = copy_env_file(directory, search_dirs)
        if env_source:
            step(f"Copied {ENV_FILE}...")

        manager = detect_package_manager(directory)
        step(f"Installing dependencies ({manager.name})...")
        install_dependencies(directory, manager)

        return PreparedWorkspace(directory=directory, package_manager=manager, env_source=env_source)
