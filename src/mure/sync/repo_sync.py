"""Clone-if-absent / refresh-if-present for a single repository.

Refresh is conservative: it never discards local work, never switches
branches and never force-resets. Anything that would need one of those is
reported as `Skipped` or `Diverged` instead.

Precondition: a single repository subtree is not operated on by two mure
processes at the same time. This is not enforced by locking.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path

from mure.config import MureConfig
from mure.errors import GitOperationError, LinkConflict, MureError, WorkspaceIOError
from mure.git.command import GitRepository
from mure.sync.outcome import (
    Cloned,
    Diverged,
    Failed,
    RepoState,
    Skipped,
    SkipReason,
    SyncOutcome,
    SyncState,
    Updated,
    transition,
)
from mure.workspace.linker import ensure_link
from mure.workspace.paths import RemoteIdentity, alias, layout

logger = logging.getLogger(__name__)

DefaultBranchResolver = Callable[[RemoteIdentity], str | None]


def _is_absent(path: Path) -> bool:
    if not path.exists():
        return True
    return path.is_dir() and not path.is_symlink() and not any(path.iterdir())


class RepoSync:
    """Bring one repository's canonical clone into a safe, up-to-date state."""

    def __init__(
        self,
        config: MureConfig,
        *,
        git: GitRepository,
        default_branch_resolver: DefaultBranchResolver | None = None,
        remote: str = "origin",
    ) -> None:
        self._config = config
        self._base_dir = config.base_path
        self._git = git
        self._default_branch_resolver = default_branch_resolver
        self._remote = remote

    def sync(
        self,
        identity: RemoteIdentity,
        *,
        clone_url: str | None = None,
        cancel: threading.Event | None = None,
    ) -> SyncOutcome:
        path = layout(identity, self._base_dir)
        if cancel is not None and cancel.is_set():
            return Skipped(identity=identity, path=path, reason=SkipReason.CANCELLED)

        try:
            if _is_absent(path):
                return self._clone(identity, path, clone_url or identity.https_url)
            return self._refresh(identity, path, cancel)
        except (MureError, OSError) as e:
            logger.warning(
                "Repository sync failed",
                extra={"repo": identity.fully_qualified_name, "error": str(e)},
            )
            return Failed(identity=identity, path=path, error=e)

    def inspect(self, path: Path, identity: RemoteIdentity) -> RepoState:
        """Compute the current state of an existing clone without changing it.

        Ahead and behind counts are taken against the remote-tracking ref as
        of the last fetch; nothing is fetched here.
        """

        default_branch = self._git.default_branch(path, self._remote)
        if default_branch is None and self._default_branch_resolver is not None:
            default_branch = self._default_branch_resolver(identity)
        if not default_branch:
            raise GitOperationError(
                f"cannot determine the default branch of {identity.name_with_owner}"
            )
        try:
            ahead, behind = self._git.ahead_behind(path, default_branch, self._remote)
        except GitOperationError:
            # No remote-tracking ref for the default branch yet.
            ahead, behind = 0, 0
        return RepoState(
            exists_on_disk=True,
            current_branch=self._git.current_branch(path),
            default_branch=default_branch,
            is_clean=self._git.is_clean(path),
            ahead=ahead,
            behind=behind,
        )

    def _clone(self, identity: RemoteIdentity, path: Path, url: str) -> SyncOutcome:
        state = transition(SyncState.ABSENT, SyncState.CLONING)
        logger.info("Cloning repository", extra={"repo": identity.fully_qualified_name, "url": url})
        try:
            self._git.clone(url, path)
        except GitOperationError as e:
            transition(state, SyncState.FAILED)
            logger.warning(
                "Clone failed", extra={"repo": identity.fully_qualified_name, "error": str(e)}
            )
            return Failed(identity=identity, path=path, error=e)

        transition(state, SyncState.CLONED)
        return Cloned(identity=identity, path=path, link_error=self._link(identity, path))

    def _refresh(
        self, identity: RemoteIdentity, path: Path, cancel: threading.Event | None
    ) -> SyncOutcome:
        state = SyncState.PRESENT
        if not self._git.is_work_tree(path):
            transition(state, SyncState.SKIPPED)
            return Skipped(identity=identity, path=path, reason=SkipReason.NOT_GIT_REPOSITORY)
        if not self._git.has_remote(path):
            transition(state, SyncState.SKIPPED)
            return Skipped(identity=identity, path=path, reason=SkipReason.NO_REMOTE)
        if self._git.is_empty(path):
            transition(state, SyncState.SKIPPED)
            logger.info(
                "Skipping repository without commits",
                extra={"repo": identity.fully_qualified_name},
            )
            return Skipped(identity=identity, path=path, reason=SkipReason.EMPTY_REPOSITORY)

        state = transition(state, SyncState.INSPECTING)
        repo_state = self.inspect(path, identity)
        branch = repo_state.default_branch
        if branch is None:
            raise MureError(f"no default branch recorded for {identity.name_with_owner}")

        if not repo_state.is_clean or not repo_state.on_default_branch:
            state = transition(state, SyncState.DIRTY)
            transition(state, SyncState.SKIPPED)
            logger.info(
                "Skipping repository with local work",
                extra={
                    "repo": identity.fully_qualified_name,
                    "current_branch": repo_state.current_branch,
                    "default_branch": branch,
                    "clean": repo_state.is_clean,
                },
            )
            return Skipped(
                identity=identity,
                path=path,
                reason=SkipReason.DIRTY_OR_NON_DEFAULT_BRANCH,
                state=repo_state,
            )

        state = transition(state, SyncState.CLEAN)
        if cancel is not None and cancel.is_set():
            transition(state, SyncState.SKIPPED)
            return Skipped(
                identity=identity, path=path, reason=SkipReason.CANCELLED, state=repo_state
            )

        self._git.fetch(path, self._remote)
        ahead, behind = self._git.ahead_behind(path, branch, self._remote)

        if ahead > 0 and behind > 0:
            state = transition(state, SyncState.DIVERGED)
            transition(state, SyncState.SKIPPED)
            logger.warning(
                "Default branch has diverged from upstream",
                extra={
                    "repo": identity.fully_qualified_name,
                    "branch": branch,
                    "ahead": ahead,
                    "behind": behind,
                },
            )
            return Diverged(identity=identity, path=path, branch=branch, ahead=ahead, behind=behind)

        if behind > 0:
            self._git.fast_forward(path, branch, self._remote)

        pruned = self._prune_merged(path, branch) if self._config.core.prune_merged_branches else ()

        transition(state, SyncState.UPDATED)
        logger.info(
            "Repository refreshed",
            extra={"repo": identity.fully_qualified_name, "branch": branch, "behind": behind},
        )
        return Updated(
            identity=identity,
            path=path,
            branch=branch,
            fast_forwarded=behind > 0,
            pruned_branches=pruned,
            link_error=self._link(identity, path),
        )

    def _prune_merged(self, path: Path, default_branch: str) -> tuple[str, ...]:
        deleted: list[str] = []
        for branch in self._git.merged_branches(path, default_branch):
            if branch == default_branch:
                continue
            try:
                self._git.delete_branch(path, branch)
            except GitOperationError as e:
                logger.warning(
                    "Could not delete merged branch",
                    extra={"path": str(path), "branch": branch, "error": str(e)},
                )
                continue
            deleted.append(branch)
        return tuple(deleted)

    def _link(self, identity: RemoteIdentity, path: Path) -> MureError | None:
        alias_path = alias(identity, self._base_dir, self._config.core.alias_style)
        try:
            ensure_link(alias_path, path)
        except (LinkConflict, WorkspaceIOError) as e:
            logger.warning("Workspace link not created", extra={"error": str(e)})
            return e
        return None


def sync(
    identity: RemoteIdentity,
    config: MureConfig,
    *,
    git: GitRepository,
    clone_url: str | None = None,
    default_branch_resolver: DefaultBranchResolver | None = None,
    cancel: threading.Event | None = None,
) -> SyncOutcome:
    """Sync one repository; convenience wrapper around `RepoSync`."""

    return RepoSync(
        config, git=git, default_branch_resolver=default_branch_resolver
    ).sync(identity, clone_url=clone_url, cancel=cancel)
