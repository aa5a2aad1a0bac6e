"""Exception hierarchy shared by every mure component.

Per-unit failures (one repository, one query) are attached to that unit's
outcome by the caller; only precondition failures such as
`MissingCredentialError` or `ConfigError` are meant to stop a whole run.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mure.issues.aggregator import QueryError, RepoIssueSummary


class MureError(Exception):
    """Base class for all errors raised by mure."""


class ConfigError(MureError):
    """The configuration file is missing, unreadable or inconsistent."""


class MissingCredentialError(ConfigError):
    """A required access token is not available."""


class ParseError(MureError):
    """A remote URL could not be mapped to a repository identity."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"invalid repository url {url!r}: {reason}")
        self.url = url
        self.reason = reason


class NotFound(MureError):
    """A workspace name does not resolve to a repository directory."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"{path} is not a git repository")
        self.path = path


class LinkConflict(MureError):
    """The workspace alias path is occupied by something other than the expected link."""

    def __init__(self, alias_path: Path, target_path: Path, found: str) -> None:
        super().__init__(f"{alias_path} already exists ({found}); expected a link to {target_path}")
        self.alias_path = alias_path
        self.target_path = target_path
        self.found = found


class IllegalTransitionError(MureError, ValueError):
    pass


class WorkspaceIOError(MureError):
    """A filesystem operation on the workspace failed."""


class GitOperationError(MureError):
    """A git command failed or could not be executed."""

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str] = (),
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.command = tuple(command)
        self.returncode = returncode
        self.stderr = stderr

    def __str__(self) -> str:
        base = super().__str__()
        detail = self.stderr.strip()
        return f"{base}: {detail}" if detail else base


class APIError(MureError):
    """The remote hosting API failed (transport, authorization or payload)."""

    def __init__(
        self, message: str, *, status_code: int | None = None, retryable: bool = False
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class RateLimitedError(APIError):
    """The shared API rate-limit budget is exhausted."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message, status_code=status_code, retryable=True)


class PartialAggregationError(MureError):
    """Some queries failed; wraps their errors alongside what was collected."""

    def __init__(
        self, errors: Sequence[QueryError], summaries: Sequence[RepoIssueSummary]
    ) -> None:
        labels = ", ".join(e.query.label for e in errors)
        super().__init__(f"{len(errors)} of the search queries failed: {labels}")
        self.errors = list(errors)
        self.summaries = list(summaries)
