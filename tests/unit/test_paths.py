"""Unit tests for URL normalization and the workspace layout."""

from __future__ import annotations

from pathlib import Path

import pytest

from mure.errors import MureError, NotFound, ParseError
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


@pytest.mark.parametrize(
    "url",
    [
        "https://github.com/kitsuyui/mure",
        "https://github.com/kitsuyui/mure.git",
        "https://github.com/kitsuyui/mure/",
        "HTTPS://GitHub.com/kitsuyui/mure.git",
        "git@github.com:kitsuyui/mure.git",
        "git@github.com:kitsuyui/mure",
        "ssh://git@github.com/kitsuyui/mure.git",
        "ssh://git@github.com:22/kitsuyui/mure.git",
    ],
)
def test_resolve_equivalent_spellings(url: str) -> None:
    assert resolve(url) == RemoteIdentity(host="github.com", owner="kitsuyui", name="mure")


def test_resolve_is_idempotent_through_https_url() -> None:
    identity = resolve("git@gitlab.example.com:team/sub/tool.git")
    assert resolve(identity.https_url) == identity


def test_resolve_keeps_subgroups_in_owner() -> None:
    identity = resolve("https://gitlab.com/group/subgroup/project.git")
    assert identity.owner == "group/subgroup"
    assert identity.name == "project"
    assert identity.name_with_owner == "group/subgroup/project"


@pytest.mark.parametrize(
    "url",
    [
        "",
        "not a url",
        "https://github.com/",
        "https://github.com/onlyowner",
        "git@github.com:onlyowner.git",
        "ftp://example.com/owner/name",
        "git@github.com:../../../evil/name",
        "https://github.com/owner/..",
        "https://github.com/./name",
        "https://github.com/owner/.git",
        "ssh://git@../owner/name",
        "git@github.com:owner\\..\\name/repo",
    ],
)
def test_resolve_rejects_invalid_urls(url: str) -> None:
    with pytest.raises(ParseError):
        resolve(url)


def test_layout_and_alias_are_pure(tmp_path: Path) -> None:
    base = tmp_path / "dev"
    identity = RemoteIdentity(host="github.com", owner="kitsuyui", name="mure")

    assert layout(identity, base) == base / "repo" / "github.com" / "kitsuyui" / "mure"
    assert layout(identity, base) == layout(identity, base)
    assert alias(identity, base) == base / "kitsuyui" / "mure"
    assert alias(identity, base, "name") == base / "mure"
    assert not base.exists()


def test_resolve_path_finds_alias(base_dir: Path) -> None:
    (base_dir / "acme" / "widget").mkdir(parents=True)

    assert resolve_path("acme/widget", base_dir) == base_dir / "acme" / "widget"
    assert resolve_path("acme/widget/", base_dir) == base_dir / "acme" / "widget"


def test_resolve_path_reports_missing_name(base_dir: Path) -> None:
    with pytest.raises(NotFound, match="is not a git repository"):
        resolve_path("nothing-here", base_dir)


def test_identity_from_path_follows_links(base_dir: Path) -> None:
    identity = RemoteIdentity(host="example.com", owner="acme", name="widget")
    canonical = layout(identity, base_dir)
    canonical.mkdir(parents=True)
    link = alias(identity, base_dir)
    link.parent.mkdir(parents=True)
    link.symlink_to(canonical, target_is_directory=True)

    assert identity_from_path(link, base_dir) == identity


def test_identity_from_path_rejects_paths_outside_store(base_dir: Path) -> None:
    outside = base_dir / "scratch"
    outside.mkdir()
    with pytest.raises(MureError):
        identity_from_path(outside, base_dir)


def test_discover_lists_aliases_and_reports_broken_links(base_dir: Path) -> None:
    first = RemoteIdentity(host="example.com", owner="acme", name="widget")
    second = RemoteIdentity(host="example.com", owner="zeta", name="gadget")
    for identity, link in ((first, alias(first, base_dir)), (second, base_dir / "gadget")):
        canonical = layout(identity, base_dir)
        canonical.mkdir(parents=True)
        link.parent.mkdir(parents=True, exist_ok=True)
        link.symlink_to(canonical, target_is_directory=True)
    (base_dir / "broken").symlink_to(base_dir / "does-not-exist", target_is_directory=True)

    found = discover(base_dir)

    entries = [e for e in found if isinstance(e, WorkspaceEntry)]
    errors = [e for e in found if isinstance(e, MureError)]
    assert {e.identity for e in entries} == {first, second}
    assert len(errors) == 1
    assert "broken" in str(errors[0])


def test_discover_missing_base_dir(tmp_path: Path) -> None:
    found = discover(tmp_path / "missing")
    assert len(found) == 1
    assert isinstance(found[0], MureError)
