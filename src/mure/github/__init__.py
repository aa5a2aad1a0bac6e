"""GitHub API access."""

from mure.github.client import GitHubClient, LatestRelease, RepositoryNode, SearchPage

__all__ = ["GitHubClient", "LatestRelease", "RepositoryNode", "SearchPage"]
