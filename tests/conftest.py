"""Test configuration and fixtures."""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Callable
from pathlib import Path

import pytest

from mure.config import CoreConfig, MureConfig
from mure.git.command import GitCommand
from mure.workspace.paths import RemoteIdentity

GitRunner = Callable[..., str]

_GIT_ENV = {
    **os.environ,
    "GIT_AUTHOR_NAME": "mure tests",
    "GIT_AUTHOR_EMAIL": "tests@example.com",
    "GIT_COMMITTER_NAME": "mure tests",
    "GIT_COMMITTER_EMAIL": "tests@example.com",
    "GIT_CONFIG_NOSYSTEM": "1",
    "GIT_TERMINAL_PROMPT": "0",
}


@pytest.fixture
def base_dir(tmp_path: Path) -> Path:
    """Provide an empty workspace base directory."""
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def mure_config(base_dir: Path) -> MureConfig:
    """Provide a config rooted at the temporary workspace."""
    return MureConfig(core=CoreConfig(base_dir=str(base_dir), concurrency=4))


@pytest.fixture
def identity() -> RemoteIdentity:
    return RemoteIdentity(host="example.com", owner="acme", name="widget")


@pytest.fixture
def git() -> GitRunner:
    """Run the real git executable; skips the test when git is not installed."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    def run(*args: str, cwd: Path) -> str:
        result = subprocess.run(
            ["git", "-c", "commit.gpgsign=false", *args],
            cwd=cwd,
            env=_GIT_ENV,
            capture_output=True,
            text=True,
            check=True,
        )
        return result.stdout.strip()

    return run


@pytest.fixture
def git_command(git: GitRunner) -> GitCommand:
    return GitCommand()


@pytest.fixture
def seed_repo(tmp_path: Path, git: GitRunner) -> Path:
    """A working repository with one commit on `main` that pushes to `upstream`."""
    seed = tmp_path / "seed"
    seed.mkdir()
    git("init", "--initial-branch=main", cwd=seed)
    (seed / "README.md").write_text("widget\n", encoding="utf-8")
    git("add", "README.md", cwd=seed)
    git("commit", "-m", "initial", cwd=seed)
    return seed


@pytest.fixture
def upstream(tmp_path: Path, seed_repo: Path, git: GitRunner) -> Path:
    """A bare repository playing the role of the remote."""
    bare = tmp_path / "upstream.git"
    git("clone", "--bare", str(seed_repo), str(bare), cwd=tmp_path)
    git("remote", "add", "origin", str(bare), cwd=seed_repo)
    git("fetch", "origin", cwd=seed_repo)
    return bare


@pytest.fixture
def push_upstream(
    seed_repo: Path, upstream: Path, git: GitRunner
) -> Callable[[str, str], str]:
    """Commit a file in the seed repository and push it; returns the new commit id."""

    def push(filename: str, content: str) -> str:
        (seed_repo / filename).write_text(content, encoding="utf-8")
        git("add", filename, cwd=seed_repo)
        git("commit", "-m", f"update {filename}", cwd=seed_repo)
        git("push", "origin", "main", cwd=seed_repo)
        return git("rev-parse", "HEAD", cwd=seed_repo)

    return push
