"""Repository synchronization: clone when absent, conservative refresh when present."""

from mure.sync.outcome import (
    Cloned,
    Diverged,
    Failed,
    RepoState,
    Skipped,
    SkipReason,
    SyncOutcome,
    Updated,
)
from mure.sync.repo_sync import RepoSync, sync

__all__ = [
    "Cloned",
    "Diverged",
    "Failed",
    "RepoState",
    "RepoSync",
    "SkipReason",
    "Skipped",
    "SyncOutcome",
    "Updated",
    "sync",
]
