"""Cross-repository issue and pull request aggregation."""

from mure.issues.aggregator import (
    AggregationResult,
    IssueAggregator,
    QueryError,
    RepoIssueSummary,
    aggregate,
)

__all__ = [
    "AggregationResult",
    "IssueAggregator",
    "QueryError",
    "RepoIssueSummary",
    "aggregate",
]
