"""CLI entrypoint for mure.

Only this module prints; everything below it reports through return values,
exceptions and logging (which goes to stderr).
"""

from __future__ import annotations

import argparse
import logging
import os
import shlex
import subprocess
import sys
from collections.abc import Sequence
from pathlib import Path
from urllib.parse import urlparse

from pydantic import ValidationError

from mure import __version__
from mure.config import MureConfig, MureSettings, SearchQuery, init_config, load_config
from mure.errors import ConfigError, MissingCredentialError, MureError
from mure.git.command import GitCommand
from mure.issues.aggregator import AggregationResult
from mure.logging import configure_logging
from mure.orchestrator import aggregate_issues, github_client, resolve_path, sync_all
from mure.sync.outcome import Failed, SyncOutcome, describe, is_problem
from mure.sync.repo_sync import DefaultBranchResolver
from mure.workspace.paths import RemoteIdentity, WorkspaceEntry, discover, identity_from_path

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_PARTIAL = 3

ISSUES_HEADER = "Issues\tPRs\tBranch\tRelease\tURL"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mure",
        description="Manage many git repositories in one workspace",
    )
    parser.add_argument("--version", action="version", version=f"mure {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Write the default config file")

    clone = subparsers.add_parser("clone", help="Clone a repository into the workspace")
    clone.add_argument("url", help="Remote URL (https or ssh)")

    refresh = subparsers.add_parser(
        "refresh",
        help="Fast-forward clean repositories on their default branch",
    )
    refresh.add_argument(
        "repos",
        nargs="*",
        metavar="REPO",
        help="Workspace names ('name' or 'owner/name'); defaults to the current directory",
    )
    refresh.add_argument(
        "--all", action="store_true", help="Refresh every repository in the workspace"
    )

    issues = subparsers.add_parser(
        "issues", help="Show open issue and pull request counts per repository"
    )
    issues.add_argument(
        "--query",
        "-q",
        action="append",
        default=None,
        help="GitHub search query (repeatable); defaults to the configured queries",
    )

    list_cmd = subparsers.add_parser("list", help="List repositories in the workspace")
    list_cmd.add_argument("--path", action="store_true", help="Show canonical clone paths")
    list_cmd.add_argument("--full", action="store_true", help="Show host/owner/name")

    path = subparsers.add_parser("path", help="Print the directory of a repository")
    path.add_argument("name", help="Workspace name ('name' or 'owner/name')")

    subparsers.add_parser("shims", help="Print shell functions for your shell profile")

    edit = subparsers.add_parser("edit", help="Open a repository in your editor")
    edit.add_argument("name", help="Workspace name ('name' or 'owner/name')")

    return parser


def _default_branch_resolver(settings: MureSettings) -> DefaultBranchResolver | None:
    """Ask the REST API for default branches when a token is available."""

    try:
        client = github_client(settings)
    except MissingCredentialError:
        logger.debug("GH_TOKEN not set; default branch comes from git only")
        return None

    api_host = urlparse(settings.github_base_url).hostname or ""

    def resolve(identity: RemoteIdentity) -> str | None:
        if identity.host != "github.com" and identity.host not in api_host:
            return None
        return client.get_default_branch(identity.name_with_owner)

    return resolve


def _print_outcomes(outcomes: Sequence[SyncOutcome]) -> int:
    for outcome in outcomes:
        identity = outcome.identity
        name = identity.fully_qualified_name if identity is not None else "-"
        stream = sys.stderr if isinstance(outcome, Failed) else sys.stdout
        print(f"{name}\t{describe(outcome)}", file=stream)
    return EXIT_PARTIAL if any(is_problem(o) for o in outcomes) else EXIT_OK


def _refresh_targets(args: argparse.Namespace, config: MureConfig) -> list[RemoteIdentity]:
    base_dir = config.base_path
    if args.all:
        identities: list[RemoteIdentity] = []
        for entry in discover(base_dir):
            if isinstance(entry, WorkspaceEntry):
                identities.append(entry.identity)
            else:
                print(f"warning: {entry}", file=sys.stderr)
        return identities
    if args.repos:
        return [identity_from_path(resolve_path(name, config), base_dir) for name in args.repos]
    return [identity_from_path(Path.cwd(), base_dir)]


def _print_issues(result: AggregationResult) -> int:
    by_label: dict[str, list[str]] = {}
    for summary in result.summaries:
        release = summary.latest_release.name if summary.latest_release else None
        row = "\t".join(
            [
                str(summary.open_issues),
                str(summary.open_pull_requests),
                summary.default_branch or "-",
                release or "-",
                summary.url,
            ]
        )
        by_label.setdefault(summary.label, []).append(row)

    for label, rows in by_label.items():
        print(f"# {label}")
        print(ISSUES_HEADER)
        for row in rows:
            print(row)
    for error in result.errors:
        print(f"error: query {error.query.label!r} failed: {error.error}", file=sys.stderr)
    return EXIT_PARTIAL if result.partial else EXIT_OK


def _list(args: argparse.Namespace, config: MureConfig) -> int:
    status = EXIT_OK
    for entry in discover(config.base_path):
        if not isinstance(entry, WorkspaceEntry):
            print(f"error: {entry}", file=sys.stderr)
            status = EXIT_PARTIAL
            continue
        if args.path:
            print(entry.canonical_path)
        elif args.full:
            print(entry.identity.fully_qualified_name)
        else:
            print(entry.alias_path.relative_to(config.base_path).as_posix())
    return status


def _editor(config: MureConfig, git: GitCommand, repo_path: Path) -> list[str]:
    editor = (
        config.core.editor
        or git.config_value("core.editor", repo_path)
        or os.environ.get("EDITOR")
        or os.environ.get("VISUAL")
    )
    if not editor:
        raise ConfigError("no editor configured (set core.editor, git core.editor or $EDITOR)")
    return shlex.split(editor)


def shims(config: MureConfig) -> str:
    """Shell function that cds into a repository resolved by `mure path`."""

    return f'function {config.shell.cd_shims}() {{ local p=$(mure path "$1") && cd "$p" }}\n'


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = MureSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your environment or .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return EXIT_CONFIG

    configure_logging(settings.log_level)
    config_path = settings.resolved_config_path

    try:
        if args.command == "init":
            init_config(config_path)
            print(f"Wrote {config_path}")
            return EXIT_OK

        config = load_config(config_path)

        if args.command == "clone":
            outcomes = sync_all(
                [args.url],
                config,
                git=GitCommand(),
                default_branch_resolver=_default_branch_resolver(settings),
            )
            return _print_outcomes(outcomes)

        if args.command == "refresh":
            targets = _refresh_targets(args, config)
            if not targets:
                print("No repositories to refresh", file=sys.stderr)
                return EXIT_OK
            outcomes = sync_all(
                targets,
                config,
                git=GitCommand(),
                default_branch_resolver=_default_branch_resolver(settings),
            )
            return _print_outcomes(outcomes)

        if args.command == "issues":
            queries = [SearchQuery(query=q) for q in args.query] if args.query else None
            return _print_issues(aggregate_issues(queries, settings, config))

        if args.command == "list":
            return _list(args, config)

        if args.command == "path":
            print(resolve_path(args.name, config))
            return EXIT_OK

        if args.command == "shims":
            print(shims(config), end="")
            return EXIT_OK

        if args.command == "edit":
            repo_path = resolve_path(args.name, config)
            command = [*_editor(config, GitCommand(), repo_path), str(repo_path)]
            logger.info("Launching editor", extra={"command": command})
            return subprocess.run(command, check=False).returncode

        parser.error(f"Unknown command: {args.command}")
        return EXIT_CONFIG

    except (ConfigError, ValidationError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except MureError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except Exception:
        logger.exception("Command failed")
        return EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())
