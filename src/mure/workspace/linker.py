"""Create and check the workspace alias symlinks."""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path

from mure.errors import LinkConflict, WorkspaceIOError

logger = logging.getLogger(__name__)


class LinkStatus(str, Enum):
    CREATED = "created"
    EXISTS = "exists"


def _points_to(alias_path: Path, target_path: Path) -> bool:
    try:
        return alias_path.resolve(strict=True) == target_path.resolve(strict=True)
    except (OSError, RuntimeError):
        return False


def ensure_link(alias_path: Path, target_path: Path) -> LinkStatus:
    """Make `alias_path` a symlink to `target_path`.

    Idempotent: an existing link that already resolves to the target is left
    alone. Anything else occupying the alias path is reported, never replaced.

    Raises:
        LinkConflict: the alias exists and is not a link to the target.
        WorkspaceIOError: the link or its parent directories cannot be created.
    """

    if alias_path.is_symlink():
        if _points_to(alias_path, target_path):
            return LinkStatus.EXISTS
        raise LinkConflict(alias_path, target_path, found=f"link to {os.readlink(alias_path)}")

    if alias_path.exists():
        kind = "directory" if alias_path.is_dir() else "file"
        raise LinkConflict(alias_path, target_path, found=kind)

    try:
        alias_path.parent.mkdir(parents=True, exist_ok=True)
        alias_path.symlink_to(target_path, target_is_directory=True)
    except FileExistsError as e:
        # Lost a race with another process creating the same alias.
        if alias_path.is_symlink() and _points_to(alias_path, target_path):
            return LinkStatus.EXISTS
        raise LinkConflict(alias_path, target_path, found="created concurrently") from e
    except OSError as e:
        raise WorkspaceIOError(f"failed to create link {alias_path} -> {target_path}: {e}") from e

    logger.info(
        "Created workspace link", extra={"alias": str(alias_path), "target": str(target_path)}
    )
    return LinkStatus.CREATED
