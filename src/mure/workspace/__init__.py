"""Workspace layout: canonical clone paths and their friendly aliases."""

from mure.workspace.linker import LinkStatus, ensure_link
from mure.workspace.paths import (
    RemoteIdentity,
    WorkspaceEntry,
    alias,
    discover,
    identity_from_path,
    layout,
    resolve,
    resolve_path,
)

__all__ = [
    "LinkStatus",
    "RemoteIdentity",
    "WorkspaceEntry",
    "alias",
    "discover",
    "identity_from_path",
    "ensure_link",
    "layout",
    "resolve",
    "resolve_path",
]
