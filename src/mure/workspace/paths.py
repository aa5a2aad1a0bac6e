"""Mapping between remote repository URLs and the on-disk workspace layout.

Layout under the configured base directory::

    <base_dir>/repo/<host>/<owner>/<name>   canonical clone (never edited by hand)
    <base_dir>/<owner>/<name>              workspace alias (alias style "owner")
    <base_dir>/<name>                      workspace alias (alias style "name")
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from mure.errors import MureError, NotFound, ParseError

logger = logging.getLogger(__name__)

AliasStyle = Literal["owner", "name"]

STORE_DIR_NAME = "repo"

# user@host:owner/name (scp-like syntax used by ssh remotes)
_SCP_LIKE = re.compile(r"^(?:[^@/\s]+@)?(?P<host>[^:/\s]+):(?P<path>[^\s]+)$")
# scheme://[user@]host[:port]/path
_WITH_SCHEME = re.compile(
    r"^(?P<scheme>[a-zA-Z][a-zA-Z0-9+.-]*)://"
    r"(?:[^@/\s]+@)?(?P<host>[^:/\s]+)(?::\d+)?(?P<path>/[^\s]*)?$"
)


@dataclass(frozen=True, slots=True)
class RemoteIdentity:
    """A remote repository, independent of the URL spelling used to reach it."""

    host: str
    owner: str
    name: str

    @property
    def name_with_owner(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def fully_qualified_name(self) -> str:
        return f"{self.host}/{self.owner}/{self.name}"

    @property
    def https_url(self) -> str:
        """Clone URL used when no explicit URL was given."""

        return f"https://{self.host}/{self.owner}/{self.name}.git"


def _is_safe_segment(segment: str) -> bool:
    return segment not in {"", ".", ".."} and "\0" not in segment and "\\" not in segment


def resolve(url: str) -> RemoteIdentity:
    """Parse an HTTPS or SSH remote URL into a `RemoteIdentity`.

    Raises:
        ParseError: the host cannot be determined, a path segment would leave
            the repository store (`.`, `..`), or fewer than two path segments
            follow the host.
    """

    text = url.strip()
    match = _WITH_SCHEME.match(text)
    if match is not None:
        if match.group("scheme").lower() not in {"http", "https", "ssh", "git", "git+ssh"}:
            raise ParseError(url, f"unsupported scheme {match.group('scheme')!r}")
        host = match.group("host")
        path = match.group("path") or ""
    elif "://" not in text and (scp := _SCP_LIKE.match(text)) is not None:
        host = scp.group("host")
        path = scp.group("path")
    else:
        raise ParseError(url, "cannot determine host")

    host = host.lower()
    if not _is_safe_segment(host):
        raise ParseError(url, "cannot determine host")

    segments = [s for s in path.split("/") if s]
    if segments and segments[-1].endswith(".git"):
        segments[-1] = segments[-1][: -len(".git")]
    # Segments become directories below the store and must stay inside it.
    if any(not _is_safe_segment(s) for s in segments):
        raise ParseError(url, "invalid path segment")
    if len(segments) < 2:
        raise ParseError(url, "expected <owner>/<name> after the host")

    # GitLab-style subgroups: everything before the last segment is the owner.
    owner = "/".join(segments[:-1])
    return RemoteIdentity(host=host, owner=owner, name=segments[-1])


def store_root(base_dir: Path) -> Path:
    return base_dir / STORE_DIR_NAME


def layout(identity: RemoteIdentity, base_dir: Path) -> Path:
    """Canonical storage path of a repository."""

    return store_root(base_dir) / identity.host / identity.owner / identity.name


def alias(identity: RemoteIdentity, base_dir: Path, style: AliasStyle = "owner") -> Path:
    """Workspace alias path pointing at the canonical storage path."""

    if style == "name":
        return base_dir / identity.name
    return base_dir / identity.owner / identity.name


def resolve_path(name: str, base_dir: Path) -> Path:
    """Resolve a workspace name (``name`` or ``owner/name``) to its directory.

    Raises:
        NotFound: nothing below the base directory matches.
    """

    candidate = base_dir / name.strip().strip("/")
    if candidate.is_dir():
        return candidate
    raise NotFound(candidate)


@dataclass(frozen=True, slots=True)
class WorkspaceEntry:
    """A workspace alias discovered on disk."""

    alias_path: Path
    canonical_path: Path
    identity: RemoteIdentity


def identity_from_path(path: Path, base_dir: Path) -> RemoteIdentity:
    """Map a clone inside the repository store (or a link to one) back to its identity.

    Raises:
        MureError: the path is not a clone inside the store.
    """

    store = store_root(base_dir).resolve()
    canonical = path.resolve()
    try:
        parts = canonical.relative_to(store).parts
    except ValueError as e:
        raise MureError(f"{canonical} is outside the repository store {store}") from e
    if len(parts) < 3:
        raise MureError(f"{canonical} does not follow <host>/<owner>/<name>")
    return RemoteIdentity(host=parts[0], owner="/".join(parts[1:-1]), name=parts[-1])


def _read_alias(base_dir: Path, link: Path) -> WorkspaceEntry | MureError:
    try:
        canonical = link.resolve(strict=True)
    except (OSError, RuntimeError):
        return MureError(f"{link} is a broken link")
    try:
        identity = identity_from_path(canonical, base_dir)
    except MureError as e:
        return e
    return WorkspaceEntry(alias_path=link, canonical_path=canonical, identity=identity)


def discover(base_dir: Path) -> list[WorkspaceEntry | MureError]:
    """Find workspace aliases one and two levels below the base directory.

    Symlinks that do not point into the repository store are reported as
    errors rather than dropped so that listings stay complete.
    """

    if not base_dir.is_dir():
        return [MureError(f"failed to read {base_dir}")]

    found: list[WorkspaceEntry | MureError] = []
    for entry in sorted(base_dir.iterdir()):
        if entry.name == STORE_DIR_NAME and not entry.is_symlink():
            continue
        if entry.is_symlink():
            found.append(_read_alias(base_dir, entry))
            continue
        if entry.is_dir():
            for child in sorted(entry.iterdir()):
                if child.is_symlink():
                    found.append(_read_alias(base_dir, child))

    logger.debug(
        "Discovered workspace aliases", extra={"base_dir": os.fspath(base_dir), "count": len(found)}
    )
    return found
