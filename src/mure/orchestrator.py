"""Entry points that fan work out over many repositories or queries.

Configuration is always passed in; nothing here reads global state.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Sequence
from pathlib import Path

from pydantic import ValidationError

from mure.config import GitHubSettings, MureConfig, MureSettings, SearchQuery
from mure.errors import MissingCredentialError, MureError, NotFound, ParseError
from mure.executor import UnitResult, run
from mure.git.command import GitRepository
from mure.github.client import GitHubClient
from mure.issues.aggregator import AggregationResult, aggregate
from mure.sync.outcome import Failed, Skipped, SkipReason, SyncOutcome
from mure.sync.repo_sync import DefaultBranchResolver, RepoSync
from mure.workspace import paths
from mure.workspace.paths import RemoteIdentity

logger = logging.getLogger(__name__)

__all__ = ["UnitResult", "aggregate_issues", "resolve_path", "run", "sync_all"]

SyncTarget = str | RemoteIdentity


def _to_outcome(
    result: UnitResult[tuple[RemoteIdentity, str | None], SyncOutcome], base_dir: Path
) -> SyncOutcome:
    identity, _ = result.unit
    path = paths.layout(identity, base_dir)
    if result.cancelled:
        return Skipped(identity=identity, path=path, reason=SkipReason.CANCELLED)
    if result.error is not None:
        return Failed(identity=identity, path=path, error=result.error)
    if result.value is None:
        return Failed(
            identity=identity, path=path, error=MureError("sync produced no outcome")
        )
    return result.value


def sync_all(
    targets: Iterable[SyncTarget],
    config: MureConfig,
    *,
    git: GitRepository,
    default_branch_resolver: DefaultBranchResolver | None = None,
    timeout: float | None = None,
    cancel: threading.Event | None = None,
) -> list[SyncOutcome]:
    """Sync every target concurrently; one outcome per target, in input order.

    Targets are remote URLs or already resolved identities. A URL that cannot
    be parsed becomes a `Failed` outcome without stopping the others.
    """

    base_dir = config.require_base_path()
    syncer = RepoSync(config, git=git, default_branch_resolver=default_branch_resolver)

    outcomes: list[SyncOutcome | None] = []
    units: list[tuple[RemoteIdentity, str | None]] = []
    slots: list[int] = []
    for target in targets:
        if isinstance(target, RemoteIdentity):
            identity, clone_url = target, None
        else:
            try:
                identity, clone_url = paths.resolve(target), target
            except ParseError as e:
                logger.warning("Skipping unparseable URL", extra={"url": target})
                outcomes.append(Failed(identity=None, path=None, error=e))
                continue
        slots.append(len(outcomes))
        outcomes.append(None)
        units.append((identity, clone_url))

    def work(unit: tuple[RemoteIdentity, str | None], event: threading.Event) -> SyncOutcome:
        identity, clone_url = unit
        return syncer.sync(identity, clone_url=clone_url, cancel=event)

    results = run(
        units,
        work,
        concurrency_limit=config.core.concurrency,
        timeout=timeout,
        cancel=cancel,
    )
    for slot, result in zip(slots, results, strict=True):
        outcomes[slot] = _to_outcome(result, base_dir)

    return [o for o in outcomes if o is not None]


def github_client(settings: MureSettings) -> GitHubClient:
    """Build an authenticated client from `GH_TOKEN`.

    Raises:
        MissingCredentialError: `GH_TOKEN` is not set.
    """

    try:
        credentials = GitHubSettings()
    except ValidationError as e:
        raise MissingCredentialError("GH_TOKEN is not set") from e
    return GitHubClient(
        token=credentials.token,
        base_url=settings.github_base_url,
        graphql_url=settings.github_graphql_url,
    )


def aggregate_issues(
    queries: Sequence[SearchQuery] | None,
    settings: MureSettings,
    config: MureConfig,
    *,
    client: GitHubClient | None = None,
    cancel: threading.Event | None = None,
) -> AggregationResult:
    """Aggregate issue counts for `queries`, or the configured ones when None.

    Raises:
        MissingCredentialError: no token is available; no query is run.
        ConfigError: no query is configured.
    """

    selected = list(queries) if queries else config.github.get_queries()
    owned = client is None
    client = client or github_client(settings)
    try:
        return aggregate(
            selected,
            client=client,
            page_size=config.github.page_size,
            max_pages=config.github.max_pages,
            concurrency_limit=config.core.concurrency,
            cancel=cancel,
            timeout=config.github.timeout_seconds,
        )
    finally:
        if owned:
            client.close()


def resolve_path(name: str, config: MureConfig) -> Path:
    """Directory of a workspace repository given as ``name`` or ``owner/name``.

    Raises:
        NotFound: the name is not present or not a git repository.
    """

    path = paths.resolve_path(name, config.base_path)
    if not (path / ".git").exists():
        raise NotFound(path)
    return path
