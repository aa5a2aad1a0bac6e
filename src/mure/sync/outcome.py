"""Explicit outcome types of a repository sync.

A sync walks one of two paths::

    ABSENT -> CLONING -> CLONED
    PRESENT -> INSPECTING -> {CLEAN, DIRTY, DIVERGED} -> UPDATED | SKIPPED

and always ends in exactly one outcome: `Cloned`, `Updated`, `Skipped`,
`Diverged` or `Failed`. Callers `match` on the outcome instead of reading
side-channel flags.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from mure.errors import IllegalTransitionError, MureError
from mure.workspace.paths import RemoteIdentity


class SyncState(str, Enum):
    ABSENT = "absent"
    CLONING = "cloning"
    CLONED = "cloned"
    PRESENT = "present"
    INSPECTING = "inspecting"
    CLEAN = "clean"
    DIRTY = "dirty"
    DIVERGED = "diverged"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


_TERMINAL = {SyncState.CLONED, SyncState.UPDATED, SyncState.SKIPPED, SyncState.FAILED}

ALLOWED_TRANSITIONS: dict[SyncState, set[SyncState]] = {
    SyncState.ABSENT: {SyncState.CLONING},
    SyncState.CLONING: {SyncState.CLONED, SyncState.FAILED},
    SyncState.PRESENT: {SyncState.INSPECTING, SyncState.SKIPPED},
    SyncState.INSPECTING: {
        SyncState.CLEAN,
        SyncState.DIRTY,
        SyncState.DIVERGED,
        SyncState.SKIPPED,
        SyncState.FAILED,
    },
    SyncState.CLEAN: {
        SyncState.UPDATED,
        SyncState.DIVERGED,
        SyncState.SKIPPED,
        SyncState.FAILED,
    },
    SyncState.DIRTY: {SyncState.SKIPPED},
    SyncState.DIVERGED: {SyncState.SKIPPED},
}


def transition(current: SyncState, to: SyncState) -> SyncState:
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.value} -> {to.value}")
    return to


def is_terminal(state: SyncState) -> bool:
    return state in _TERMINAL


class SkipReason(str, Enum):
    DIRTY_OR_NON_DEFAULT_BRANCH = "dirty-or-non-default-branch"
    NOT_GIT_REPOSITORY = "not-a-git-repository"
    NO_REMOTE = "no-remote"
    EMPTY_REPOSITORY = "empty-repository"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class RepoState:
    """Snapshot of a local clone, recomputed on every refresh.

    `ahead` and `behind` compare the default branch with its remote-tracking
    ref as it stood before this refresh fetched.
    """

    exists_on_disk: bool
    current_branch: str | None = None
    default_branch: str | None = None
    is_clean: bool = False
    ahead: int = 0
    behind: int = 0

    @property
    def on_default_branch(self) -> bool:
        return self.current_branch is not None and self.current_branch == self.default_branch


@dataclass(frozen=True, slots=True)
class Cloned:
    identity: RemoteIdentity
    path: Path
    link_error: MureError | None = None


@dataclass(frozen=True, slots=True)
class Updated:
    identity: RemoteIdentity
    path: Path
    branch: str
    fast_forwarded: bool
    pruned_branches: tuple[str, ...] = ()
    link_error: MureError | None = None


@dataclass(frozen=True, slots=True)
class Skipped:
    identity: RemoteIdentity
    path: Path
    reason: SkipReason
    state: RepoState | None = None


@dataclass(frozen=True, slots=True)
class Diverged:
    identity: RemoteIdentity
    path: Path
    branch: str
    ahead: int
    behind: int


@dataclass(frozen=True, slots=True)
class Failed:
    identity: RemoteIdentity | None
    path: Path | None
    error: BaseException


SyncOutcome = Cloned | Updated | Skipped | Diverged | Failed


def describe(outcome: SyncOutcome) -> str:
    """One-line, human readable summary of an outcome."""

    match outcome:
        case Cloned(link_error=None):
            return "cloned"
        case Cloned(link_error=err):
            return f"cloned (link not created: {err})"
        case Updated(fast_forwarded=ff, branch=branch, pruned_branches=pruned, link_error=err):
            text = f"fast-forwarded {branch}" if ff else f"{branch} already up to date"
            if pruned:
                text += f"; deleted merged branches: {', '.join(pruned)}"
            if err is not None:
                text += f" (link not created: {err})"
            return text
        case Skipped(reason=reason):
            return f"skipped: {reason.value}"
        case Diverged(branch=branch, ahead=ahead, behind=behind):
            return f"diverged: {branch} is {ahead} ahead and {behind} behind upstream"
        case Failed(error=error):
            return f"failed: {error}"
    raise TypeError(f"unknown outcome {outcome!r}")


def is_problem(outcome: SyncOutcome) -> bool:
    """True for outcomes that deserve a non-zero exit status."""

    match outcome:
        case Failed() | Diverged():
            return True
        case Cloned(link_error=err) | Updated(link_error=err):
            return err is not None
    return False
