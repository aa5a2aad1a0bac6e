"""Aggregate open issue and pull request counts across repository searches."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from mure.config import SearchQuery
from mure.errors import MissingCredentialError, MureError, PartialAggregationError
from mure.executor import run
from mure.github.client import LatestRelease, RepositoryNode, SearchPage

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
DEFAULT_MAX_PAGES = 100


class SearchClient(Protocol):
    def search_repositories(
        self, query: str, *, first: int = 100, cursor: str | None = None
    ) -> SearchPage: ...


@dataclass(frozen=True, slots=True)
class RepoIssueSummary:
    url: str
    name: str
    default_branch: str | None
    default_branch_oid: str | None
    latest_release: LatestRelease | None
    open_issues: int
    open_pull_requests: int
    label: str

    @classmethod
    def from_node(cls, node: RepositoryNode, label: str) -> RepoIssueSummary:
        return cls(
            url=node.url,
            name=node.name,
            default_branch=node.default_branch,
            default_branch_oid=node.default_branch_oid,
            latest_release=node.latest_release,
            open_issues=node.open_issues,
            open_pull_requests=node.open_pull_requests,
            label=label,
        )


@dataclass(frozen=True, slots=True)
class QueryError:
    query: SearchQuery
    error: BaseException


@dataclass(frozen=True, slots=True)
class AggregationResult:
    summaries: list[RepoIssueSummary] = field(default_factory=list)
    errors: list[QueryError] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.errors)

    def raise_for_errors(self) -> None:
        """Raise `PartialAggregationError` if any query failed."""

        if self.errors:
            raise PartialAggregationError(self.errors, self.summaries)


class IssueAggregator:
    """Run repository searches concurrently and merge their results.

    Pages of one query are fetched strictly in order, each using the cursor
    of the page before it. Independent queries are paginated concurrently.
    """

    def __init__(
        self,
        client: SearchClient | None,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
        concurrency_limit: int = 8,
    ) -> None:
        if client is None:
            raise MissingCredentialError("GH_TOKEN is required to search repositories")
        if not 0 < page_size <= 100:
            raise ValueError("page_size must be between 1 and 100")
        if max_pages < 1:
            raise ValueError("max_pages must be at least 1")
        self._client = client
        self._page_size = page_size
        self._max_pages = max_pages
        self._concurrency_limit = concurrency_limit

    def fetch_query(
        self, query: SearchQuery, cancel: threading.Event | None = None
    ) -> list[RepositoryNode]:
        """All repositories matching one query, in page order.

        Raises:
            APIError: a page could not be fetched; nothing from this query is kept.
            MureError: the run was cancelled before the query finished.
        """

        nodes: list[RepositoryNode] = []
        cursor: str | None = None
        for page_number in range(1, self._max_pages + 1):
            if cancel is not None and cancel.is_set():
                raise MureError(f"search {query.label!r} cancelled after {page_number - 1} pages")
            page = self._client.search_repositories(
                query.query, first=self._page_size, cursor=cursor
            )
            logger.debug(
                "Fetched search page",
                extra={
                    "label": query.label,
                    "page": page_number,
                    "count": len(page.repositories),
                },
            )
            nodes.extend(page.repositories)
            if not page.has_next_page or not page.repositories:
                break
            cursor = page.end_cursor
        else:
            logger.warning(
                "Stopped paginating at the page limit",
                extra={"label": query.label, "max_pages": self._max_pages},
            )
        return nodes

    def aggregate(
        self,
        queries: Sequence[SearchQuery],
        *,
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> AggregationResult:
        results = run(
            queries,
            self.fetch_query,
            concurrency_limit=self._concurrency_limit,
            timeout=timeout,
            cancel=cancel,
        )

        # First seen wins: query order, then page order.
        seen: set[str] = set()
        summaries: list[RepoIssueSummary] = []
        errors: list[QueryError] = []
        for result in results:
            if result.cancelled:
                errors.append(
                    QueryError(query=result.unit, error=MureError("search was cancelled"))
                )
                continue
            if result.error is not None:
                errors.append(QueryError(query=result.unit, error=result.error))
                continue
            for node in result.value or []:
                if node.url in seen:
                    continue
                seen.add(node.url)
                summaries.append(RepoIssueSummary.from_node(node, result.unit.label))

        if errors:
            logger.warning(
                "Issue aggregation is partial",
                extra={"failed": [e.query.label for e in errors], "collected": len(summaries)},
            )
        return AggregationResult(summaries=summaries, errors=errors)


def aggregate(
    queries: Sequence[SearchQuery],
    *,
    client: SearchClient | None,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_pages: int = DEFAULT_MAX_PAGES,
    concurrency_limit: int = 8,
    cancel: threading.Event | None = None,
    timeout: float | None = None,
) -> AggregationResult:
    """Search every query and merge the repositories found, first seen wins.

    Raises:
        MissingCredentialError: no authenticated client is available.
    """

    aggregator = IssueAggregator(
        client, page_size=page_size, max_pages=max_pages, concurrency_limit=concurrency_limit
    )
    return aggregator.aggregate(queries, cancel=cancel, timeout=timeout)
