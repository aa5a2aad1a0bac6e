"""Unit tests for the sync state machine and outcome helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from mure.errors import GitOperationError, IllegalTransitionError, LinkConflict
from mure.sync.outcome import (
    Cloned,
    Diverged,
    Failed,
    Skipped,
    SkipReason,
    SyncState,
    Updated,
    describe,
    is_problem,
    is_terminal,
    transition,
)
from mure.workspace.paths import RemoteIdentity

IDENTITY = RemoteIdentity(host="example.com", owner="acme", name="widget")
PATH = Path("/dev/repo/example.com/acme/widget")


def test_transition_rejects_illegal_transitions() -> None:
    with pytest.raises(IllegalTransitionError):
        transition(SyncState.ABSENT, SyncState.UPDATED)
    with pytest.raises(IllegalTransitionError):
        transition(SyncState.DIRTY, SyncState.UPDATED)


def test_transition_allows_refresh_path() -> None:
    state = transition(SyncState.PRESENT, SyncState.INSPECTING)
    state = transition(state, SyncState.CLEAN)
    state = transition(state, SyncState.UPDATED)
    assert is_terminal(state)
    assert not is_terminal(SyncState.CLEAN)


@pytest.mark.parametrize(
    ("outcome", "text", "problem"),
    [
        (Cloned(identity=IDENTITY, path=PATH), "cloned", False),
        (
            Updated(identity=IDENTITY, path=PATH, branch="main", fast_forwarded=True),
            "fast-forwarded main",
            False,
        ),
        (
            Updated(identity=IDENTITY, path=PATH, branch="main", fast_forwarded=False),
            "main already up to date",
            False,
        ),
        (
            Skipped(identity=IDENTITY, path=PATH, reason=SkipReason.DIRTY_OR_NON_DEFAULT_BRANCH),
            "skipped: dirty-or-non-default-branch",
            False,
        ),
        (
            Diverged(identity=IDENTITY, path=PATH, branch="main", ahead=2, behind=3),
            "diverged: main is 2 ahead and 3 behind upstream",
            True,
        ),
        (
            Failed(identity=IDENTITY, path=PATH, error=GitOperationError("git clone failed")),
            "failed: git clone failed",
            True,
        ),
    ],
)
def test_describe_and_is_problem(outcome: object, text: str, problem: bool) -> None:
    assert describe(outcome) == text  # type: ignore[arg-type]
    assert is_problem(outcome) is problem  # type: ignore[arg-type]


def test_link_error_is_reported() -> None:
    error = LinkConflict(PATH.parent, PATH, found="file")
    outcome = Cloned(identity=IDENTITY, path=PATH, link_error=error)

    assert "link not created" in describe(outcome)
    assert is_problem(outcome)
