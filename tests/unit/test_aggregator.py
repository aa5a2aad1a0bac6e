"""Unit tests for issue aggregation across search queries (mocked client)."""

from __future__ import annotations

import threading
from unittest.mock import Mock

import pytest

from mure.config import SearchQuery
from mure.errors import APIError, MissingCredentialError, PartialAggregationError
from mure.github.client import GitHubClient, RepositoryNode, SearchPage
from mure.issues.aggregator import IssueAggregator, aggregate


def _node(url: str, issues: int = 0) -> RepositoryNode:
    return RepositoryNode(
        url=url,
        name=url.rsplit("/", 1)[-1],
        default_branch="main",
        default_branch_oid=None,
        latest_release=None,
        open_issues=issues,
        open_pull_requests=0,
    )


class FakeSearch:
    """Serves pre-built pages keyed by (query, cursor) and records every call."""

    def __init__(self, pages: dict[tuple[str, str | None], SearchPage | Exception]) -> None:
        self._pages = pages
        self._lock = threading.Lock()
        self.calls: list[tuple[str, str | None]] = []

    def search_repositories(
        self, query: str, *, first: int = 100, cursor: str | None = None
    ) -> SearchPage:
        with self._lock:
            self.calls.append((query, cursor))
        page = self._pages[(query, cursor)]
        if isinstance(page, Exception):
            raise page
        return page


def _three_pages(query: str, prefix: str) -> dict[tuple[str, str | None], SearchPage]:
    return {
        (query, None): SearchPage([_node(f"{prefix}/a")], end_cursor="c1", has_next_page=True),
        (query, "c1"): SearchPage([_node(f"{prefix}/b")], end_cursor="c2", has_next_page=True),
        (query, "c2"): SearchPage([_node(f"{prefix}/c")], end_cursor="c3", has_next_page=False),
    }


def test_pagination_stops_after_last_page() -> None:
    client = FakeSearch(_three_pages("user:a", "https://github.com/a"))

    result = aggregate([SearchQuery(query="user:a")], client=client)

    assert client.calls == [("user:a", None), ("user:a", "c1"), ("user:a", "c2")]
    assert [s.url for s in result.summaries] == [
        "https://github.com/a/a",
        "https://github.com/a/b",
        "https://github.com/a/c",
    ]
    assert not result.partial


def test_pagination_stops_on_empty_page() -> None:
    client = FakeSearch(
        {
            ("q", None): SearchPage([_node("https://x/o/a")], end_cursor="c1", has_next_page=True),
            ("q", "c1"): SearchPage([], end_cursor="c2", has_next_page=True),
        }
    )

    result = aggregate([SearchQuery(query="q")], client=client)

    assert len(client.calls) == 2
    assert len(result.summaries) == 1


def test_pagination_respects_max_pages() -> None:
    client = FakeSearch(_three_pages("user:a", "https://github.com/a"))

    result = aggregate([SearchQuery(query="user:a")], client=client, max_pages=2)

    assert len(client.calls) == 2
    assert len(result.summaries) == 2


def test_duplicates_first_seen_wins() -> None:
    shared = "https://github.com/acme/shared"
    client = FakeSearch(
        {
            ("org:acme", None): SearchPage(
                [_node(shared, issues=1), _node("https://github.com/acme/one")],
                end_cursor=None,
                has_next_page=False,
            ),
            ("user:me", None): SearchPage(
                [_node(shared, issues=99)], end_cursor=None, has_next_page=False
            ),
        }
    )

    result = aggregate(
        [SearchQuery(query="org:acme", label="acme"), SearchQuery(query="user:me", label="me")],
        client=client,
    )

    assert [s.url for s in result.summaries] == [shared, "https://github.com/acme/one"]
    assert result.summaries[0].open_issues == 1
    assert result.summaries[0].label == "acme"


def test_failed_query_discards_its_pages_and_keeps_others() -> None:
    pages: dict[tuple[str, str | None], SearchPage | Exception] = {
        **_three_pages("good", "https://github.com/good"),
        ("bad", None): SearchPage([_node("https://github.com/bad/a")], "c1", True),
        ("bad", "c1"): APIError("GitHub server error: status 502", status_code=502),
    }
    client = FakeSearch(pages)
    good, bad = SearchQuery(query="good"), SearchQuery(query="bad")

    result = aggregate([good, bad], client=client)

    assert result.partial
    assert [e.query for e in result.errors] == [bad]
    assert isinstance(result.errors[0].error, APIError)
    assert all("/good/" in s.url for s in result.summaries)
    assert len(result.summaries) == 3

    with pytest.raises(PartialAggregationError) as excinfo:
        result.raise_for_errors()
    assert excinfo.value.summaries == result.summaries


def test_missing_client_is_fatal_before_any_query() -> None:
    with pytest.raises(MissingCredentialError):
        aggregate([SearchQuery(query="user:a")], client=None)


def test_cancelled_run_reports_every_query() -> None:
    client = Mock(spec=GitHubClient)
    cancel = threading.Event()
    cancel.set()

    result = IssueAggregator(client).aggregate([SearchQuery(query="user:a")], cancel=cancel)

    assert result.partial
    assert result.summaries == []
    client.search_repositories.assert_not_called()


def test_page_size_is_forwarded() -> None:
    client = Mock(spec=GitHubClient)
    client.search_repositories.return_value = SearchPage([], end_cursor=None, has_next_page=False)

    aggregate([SearchQuery(query="user:a")], client=client, page_size=25)

    client.search_repositories.assert_called_once_with("user:a", first=25, cursor=None)


def test_invalid_page_size() -> None:
    with pytest.raises(ValueError):
        IssueAggregator(Mock(spec=GitHubClient), page_size=101)
