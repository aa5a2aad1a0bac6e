"""GitHub API client used by issue aggregation and refresh.

GraphQL repository search goes through a shared `requests.Session`; the one
REST lookup (a repository's default branch) goes through PyGithub. The client
is safe to share between worker threads: every call is an independent
request and retries keep their state per call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse, urlunparse

import requests
from github import Auth, Github, GithubException
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from mure.errors import APIError, RateLimitedError

logger = logging.getLogger(__name__)

# 10 seconds is the upper limit GitHub documents for REST requests.
REQUEST_TIMEOUT_SECONDS = 10

SEARCH_REPOSITORIES_QUERY = """
query SearchRepositories($query: String!, $first: Int!, $cursor: String) {
  search(query: $query, type: REPOSITORY, first: $first, after: $cursor) {
    repositoryCount
    pageInfo {
      hasNextPage
      endCursor
    }
    edges {
      node {
        ... on Repository {
          name
          url
          defaultBranchRef {
            name
            target {
              oid
            }
          }
          latestRelease {
            name
            createdAt
          }
          issues(states: OPEN) {
            totalCount
          }
          pullRequests(states: OPEN) {
            totalCount
          }
        }
      }
    }
  }
  rateLimit {
    remaining
    resetAt
  }
}
"""


@dataclass(frozen=True, slots=True)
class LatestRelease:
    name: str | None
    created_at: str | None


@dataclass(frozen=True, slots=True)
class RepositoryNode:
    """One repository as returned by the search endpoint."""

    url: str
    name: str
    default_branch: str | None
    default_branch_oid: str | None
    latest_release: LatestRelease | None
    open_issues: int
    open_pull_requests: int


@dataclass(frozen=True, slots=True)
class SearchPage:
    repositories: list[RepositoryNode]
    end_cursor: str | None
    has_next_page: bool


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, APIError) and exc.retryable


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Retrying GitHub request",
        extra={"attempt": retry_state.attempt_number, "error": str(exc)},
    )


class GitHubClient:
    """Thin wrapper around the GitHub GraphQL and REST APIs."""

    def __init__(
        self,
        *,
        token: str,
        base_url: str = "https://api.github.com",
        graphql_url: str | None = None,
        session: requests.Session | None = None,
        github_api: Github | None = None,
        max_attempts: int = 5,
        retry_wait: wait_base | None = None,
    ) -> None:
        if not token:
            raise ValueError("GitHub token is required")

        self._token = token
        self._rest_base_url = base_url.rstrip("/")
        self._graphql_endpoint = (graphql_url or self.graphql_url_for(base_url)).rstrip("/")
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
                "User-Agent": "mure",
            }
        )
        self._github = github_api
        self._retrying = Retrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(max_attempts),
            wait=retry_wait or wait_exponential(multiplier=1, min=1, max=60),
            before_sleep=_log_retry,
            reraise=True,
        )

    @staticmethod
    def graphql_url_for(rest_base_url: str) -> str:
        """Derive the GraphQL endpoint from a REST base URL.

        GitHub.com:
            REST: https://api.github.com
            GQL:  https://api.github.com/graphql

        GitHub Enterprise typically exposes REST as:
            https://github.example.com/api/v3
        and GraphQL as:
            https://github.example.com/api/graphql
        """

        parsed = urlparse(rest_base_url.rstrip("/"))
        path = parsed.path.rstrip("/")
        if path.endswith("/api/v3"):
            path = path[: -len("/api/v3")] + "/api/graphql"
        elif path.endswith("/api"):
            path = path + "/graphql"
        elif path == "":
            path = "/graphql"
        else:
            path = path + "/graphql"
        return urlunparse(parsed._replace(path=path))

    def _post_graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = self._session.post(
                self._graphql_endpoint,
                json={"query": query, "variables": variables},
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise APIError(f"GitHub request failed: {e}", retryable=True) from e
        except requests.RequestException as e:
            raise APIError(f"GitHub request failed: {e}") from e

        if resp.status_code == 429 or (
            resp.status_code == 403
            and (
                resp.headers.get("x-ratelimit-remaining") == "0"
                or "rate limit" in resp.text.lower()
            )
        ):
            raise RateLimitedError(
                f"GitHub rate limit exceeded (status {resp.status_code})",
                status_code=resp.status_code,
            )
        if resp.status_code == 401:
            raise APIError("GitHub rejected the token (401 Bad credentials)", status_code=401)
        if resp.status_code >= 500:
            raise APIError(
                f"GitHub server error: status {resp.status_code}",
                status_code=resp.status_code,
                retryable=True,
            )
        if not resp.ok:
            raise APIError(
                f"GitHub request failed: status {resp.status_code}, text: {resp.text[:200]}",
                status_code=resp.status_code,
            )

        try:
            payload: dict[str, Any] = resp.json()
        except ValueError as e:
            raise APIError(
                "GitHub returned a non-JSON response", status_code=resp.status_code
            ) from e

        errors = payload.get("errors")
        if errors:
            # Avoid dumping the entire response; keep logs small and actionable.
            messages: list[str] = []
            rate_limited = False
            if isinstance(errors, list):
                for item in errors:
                    if isinstance(item, dict):
                        if item.get("type") == "RATE_LIMITED":
                            rate_limited = True
                        msg = item.get("message")
                        if isinstance(msg, str):
                            messages.append(msg)
            message = "; ".join(messages) if messages else "Unknown GraphQL error"
            if rate_limited:
                raise RateLimitedError(f"GitHub GraphQL rate limit: {message}")
            raise APIError(f"GitHub GraphQL error: {message}")

        data = payload.get("data")
        if not isinstance(data, dict):
            raise APIError("No data found")
        return data

    def graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Run a GraphQL query, retrying rate limits and transient failures."""

        return self._retrying.copy()(self._post_graphql, query, variables)

    def search_repositories(
        self, query: str, *, first: int = 100, cursor: str | None = None
    ) -> SearchPage:
        """Fetch one page of a repository search."""

        data = self.graphql(
            SEARCH_REPOSITORIES_QUERY, {"query": query, "first": first, "cursor": cursor}
        )
        rate_limit = data.get("rateLimit")
        if isinstance(rate_limit, dict):
            logger.debug(
                "GitHub rate limit",
                extra={
                    "remaining": rate_limit.get("remaining"),
                    "reset_at": rate_limit.get("resetAt"),
                },
            )
        return self._parse_search(data)

    @staticmethod
    def _parse_search(data: dict[str, Any]) -> SearchPage:
        search = data.get("search")
        if not isinstance(search, dict):
            raise APIError("Unexpected search response: missing search")

        page_info = search.get("pageInfo")
        if not isinstance(page_info, dict):
            page_info = {}
        end_cursor = page_info.get("endCursor")
        if not isinstance(end_cursor, str) or not end_cursor:
            end_cursor = None
        has_next_page = bool(page_info.get("hasNextPage")) and end_cursor is not None

        repositories: list[RepositoryNode] = []
        edges = search.get("edges")
        for edge in edges if isinstance(edges, list) else []:
            node = edge.get("node") if isinstance(edge, dict) else None
            # Non-repository nodes come back as empty objects.
            if not isinstance(node, dict) or not isinstance(node.get("url"), str):
                continue
            repositories.append(GitHubClient._parse_repository(node))

        return SearchPage(
            repositories=repositories, end_cursor=end_cursor, has_next_page=has_next_page
        )

    @staticmethod
    def _parse_repository(node: dict[str, Any]) -> RepositoryNode:
        def _count(value: object) -> int:
            if isinstance(value, dict):
                total = value.get("totalCount")
                if isinstance(total, int):
                    return total
            return 0

        default_branch = None
        default_branch_oid = None
        ref = node.get("defaultBranchRef")
        if isinstance(ref, dict):
            name = ref.get("name")
            default_branch = name if isinstance(name, str) and name else None
            target = ref.get("target")
            if isinstance(target, dict) and isinstance(target.get("oid"), str):
                default_branch_oid = target["oid"]

        latest_release = None
        release = node.get("latestRelease")
        if isinstance(release, dict):
            latest_release = LatestRelease(
                name=release.get("name") if isinstance(release.get("name"), str) else None,
                created_at=(
                    release.get("createdAt") if isinstance(release.get("createdAt"), str) else None
                ),
            )

        name = node.get("name")
        return RepositoryNode(
            url=node["url"],
            name=name if isinstance(name, str) else "",
            default_branch=default_branch,
            default_branch_oid=default_branch_oid,
            latest_release=latest_release,
            open_issues=_count(node.get("issues")),
            open_pull_requests=_count(node.get("pullRequests")),
        )

    def _rest_api(self) -> Github:
        if self._github is None:
            self._github = Github(auth=Auth.Token(self._token), base_url=self._rest_base_url)
        return self._github

    def get_default_branch(self, name_with_owner: str) -> str | None:
        """Default branch of a repository according to the REST API."""

        try:
            repo = self._rest_api().get_repo(name_with_owner)
        except GithubException as e:
            logger.warning(
                "Could not look up default branch",
                extra={"repo": name_with_owner, "status": e.status},
            )
            return None
        default_branch = repo.default_branch
        if not isinstance(default_branch, str) or not default_branch.strip():
            return None
        return default_branch

    def close(self) -> None:
        self._session.close()
        if self._github is not None:
            self._github.close()
        logger.debug("GitHub client closed")
