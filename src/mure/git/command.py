"""Git capability backed by the `git` executable.

mure never reimplements git; it drives the installed binary through
`subprocess` and interprets its exit codes and porcelain output.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Protocol

from mure.errors import GitOperationError

logger = logging.getLogger(__name__)


class GitRepository(Protocol):
    """Operations RepoSync needs from git. Paths are repository work trees."""

    def clone(self, url: str, dest: Path) -> None: ...

    def fetch(self, repo_path: Path, remote: str = "origin") -> None: ...

    def current_branch(self, repo_path: Path) -> str | None: ...

    def default_branch(self, repo_path: Path, remote: str = "origin") -> str | None: ...

    def is_clean(self, repo_path: Path) -> bool: ...

    def fast_forward(self, repo_path: Path, branch: str, remote: str = "origin") -> None: ...

    def is_work_tree(self, repo_path: Path) -> bool: ...

    def has_remote(self, repo_path: Path) -> bool: ...

    def is_empty(self, repo_path: Path) -> bool: ...

    def ahead_behind(
        self, repo_path: Path, branch: str, remote: str = "origin"
    ) -> tuple[int, int]: ...

    def merged_branches(self, repo_path: Path, into: str) -> list[str]: ...

    def delete_branch(self, repo_path: Path, branch: str) -> None: ...


def split_lines(text: str) -> list[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


class GitCommand:
    """`GitRepository` implementation that shells out to git."""

    def __init__(self, executable: str = "git", timeout_seconds: float | None = 600.0) -> None:
        self._executable = executable
        self._timeout = timeout_seconds
        self._env = {**os.environ, "GIT_TERMINAL_PROMPT": "0", "LC_ALL": "C"}

    def _run(
        self, *args: str, cwd: Path, check: bool = True
    ) -> subprocess.CompletedProcess[str]:
        command = [self._executable, *args]
        logger.debug("Running git", extra={"git_args": list(args), "cwd": str(cwd)})
        try:
            result = subprocess.run(
                command,
                cwd=cwd,
                capture_output=True,
                text=True,
                env=self._env,
                timeout=self._timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise GitOperationError("git command not found", command=command) from e
        except subprocess.TimeoutExpired as e:
            raise GitOperationError(
                f"git {args[0]} timed out after {self._timeout}s", command=command
            ) from e
        except OSError as e:
            raise GitOperationError(f"failed to execute git: {e}", command=command) from e

        if check and result.returncode != 0:
            raise GitOperationError(
                f"git {args[0]} failed",
                command=command,
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result

    def clone(self, url: str, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        self._run("clone", "--", url, str(dest), cwd=dest.parent)

    def fetch(self, repo_path: Path, remote: str = "origin") -> None:
        self._run("fetch", "--prune", remote, cwd=repo_path)

    def current_branch(self, repo_path: Path) -> str | None:
        """Checked-out branch, or None for a detached HEAD."""

        result = self._run("symbolic-ref", "--quiet", "--short", "HEAD", cwd=repo_path, check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def default_branch(self, repo_path: Path, remote: str = "origin") -> str | None:
        """Branch the remote's HEAD points at, as recorded locally by clone."""

        result = self._run(
            "symbolic-ref",
            "--quiet",
            "--short",
            f"refs/remotes/{remote}/HEAD",
            cwd=repo_path,
            check=False,
        )
        if result.returncode != 0:
            return None
        ref = result.stdout.strip()
        prefix = f"{remote}/"
        return ref[len(prefix) :] if ref.startswith(prefix) else ref or None

    def is_clean(self, repo_path: Path) -> bool:
        # Untracked files count as local work too.
        result = self._run("status", "--porcelain", "--untracked-files=normal", cwd=repo_path)
        return not result.stdout.strip()

    def fast_forward(self, repo_path: Path, branch: str, remote: str = "origin") -> None:
        self._run("merge", "--ff-only", f"refs/remotes/{remote}/{branch}", cwd=repo_path)

    def is_work_tree(self, repo_path: Path) -> bool:
        result = self._run("rev-parse", "--is-inside-work-tree", cwd=repo_path, check=False)
        if result.returncode != 0 or result.stdout.strip() != "true":
            return False
        top = self._run("rev-parse", "--show-toplevel", cwd=repo_path, check=False)
        return top.returncode == 0 and Path(top.stdout.strip()).resolve() == repo_path.resolve()

    def has_remote(self, repo_path: Path) -> bool:
        return bool(split_lines(self._run("remote", cwd=repo_path).stdout))

    def is_empty(self, repo_path: Path) -> bool:
        """True when the repository has no commits yet."""

        result = self._run("rev-parse", "--verify", "-q", "HEAD", cwd=repo_path, check=False)
        return result.returncode != 0

    def ahead_behind(
        self, repo_path: Path, branch: str, remote: str = "origin"
    ) -> tuple[int, int]:
        """Commits (ahead, behind) of the local branch relative to its remote counterpart."""

        result = self._run(
            "rev-list",
            "--left-right",
            "--count",
            f"refs/heads/{branch}...refs/remotes/{remote}/{branch}",
            cwd=repo_path,
        )
        parts = result.stdout.split()
        if len(parts) != 2:
            raise GitOperationError(
                "unexpected rev-list output", command=["rev-list"], stderr=result.stdout
            )
        return int(parts[0]), int(parts[1])

    def merged_branches(self, repo_path: Path, into: str) -> list[str]:
        result = self._run(
            "for-each-ref",
            "--format=%(refname:short)",
            f"--merged=refs/heads/{into}",
            "refs/heads/",
            cwd=repo_path,
        )
        return split_lines(result.stdout)

    def delete_branch(self, repo_path: Path, branch: str) -> None:
        # -d refuses to delete unmerged branches; never use -D here.
        self._run("branch", "-d", branch, cwd=repo_path)

    def config_value(self, key: str, cwd: Path) -> str | None:
        """Value of a git config key as seen from `cwd`, or None when unset."""

        result = self._run("config", "--get", key, cwd=cwd, check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None
