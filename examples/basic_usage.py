#!/usr/bin/env python3
"""Programmatic usage example.

This demonstrates using the mure components directly instead of the CLI:

* load settings from the environment / `.env` and the TOML config file
* clone or refresh a few repositories concurrently
* aggregate open issue and pull request counts for the configured queries

`GH_TOKEN` must be set for the issue aggregation step.
"""

from __future__ import annotations

import argparse
from typing import Sequence

from mure.config import MureSettings, load_config
from mure.errors import MissingCredentialError
from mure.git.command import GitCommand
from mure.logging import configure_logging
from mure.orchestrator import aggregate_issues, sync_all
from mure.sync.outcome import describe


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sync repositories and count open issues.")
    parser.add_argument("urls", nargs="*", help="Remote URLs to clone or refresh")
    parser.add_argument("--timeout", type=float, default=None, help="Overall timeout in seconds")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = MureSettings()
    configure_logging(settings.log_level)
    config = load_config(settings.resolved_config_path)

    for outcome in sync_all(args.urls, config, git=GitCommand(), timeout=args.timeout):
        name = outcome.identity.name_with_owner if outcome.identity else "?"
        print(f"{name}: {describe(outcome)}")

    try:
        result = aggregate_issues(None, settings, config)
    except MissingCredentialError as exc:
        print(f"Skipping issue counts: {exc}")
        return 0

    for summary in result.summaries:
        print(f"{summary.open_issues:>4} issues {summary.open_pull_requests:>4} PRs  {summary.url}")
    for error in result.errors:
        print(f"query {error.query.label!r} failed: {error.error}")

    return 3 if result.partial else 0


if __name__ == "__main__":
    raise SystemExit(main())
