"""Unit tests for workspace alias links."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

import pytest

from mure.errors import LinkConflict
from mure.workspace.linker import LinkStatus, ensure_link


@pytest.fixture
def target(base_dir: Path) -> Path:
    path = base_dir / "repo" / "example.com" / "acme" / "widget"
    path.mkdir(parents=True)
    return path


def test_ensure_link_creates_parents_and_link(base_dir: Path, target: Path) -> None:
    alias_path = base_dir / "acme" / "widget"

    assert ensure_link(alias_path, target) == LinkStatus.CREATED
    assert alias_path.is_symlink()
    assert alias_path.resolve() == target.resolve()


def test_ensure_link_is_idempotent(base_dir: Path, target: Path) -> None:
    alias_path = base_dir / "acme" / "widget"
    ensure_link(alias_path, target)
    before = os.readlink(alias_path)

    assert ensure_link(alias_path, target) == LinkStatus.EXISTS
    assert os.readlink(alias_path) == before


def test_ensure_link_never_overwrites_a_file(base_dir: Path, target: Path) -> None:
    alias_path = base_dir / "widget"
    alias_path.write_bytes(b"precious notes\n")
    digest = hashlib.sha256(alias_path.read_bytes()).hexdigest()

    with pytest.raises(LinkConflict) as excinfo:
        ensure_link(alias_path, target)

    assert excinfo.value.found == "file"
    assert not alias_path.is_symlink()
    assert hashlib.sha256(alias_path.read_bytes()).hexdigest() == digest


def test_ensure_link_never_overwrites_a_directory(base_dir: Path, target: Path) -> None:
    alias_path = base_dir / "widget"
    alias_path.mkdir()
    (alias_path / "keep.txt").write_text("keep", encoding="utf-8")

    with pytest.raises(LinkConflict):
        ensure_link(alias_path, target)

    assert (alias_path / "keep.txt").read_text(encoding="utf-8") == "keep"


def test_ensure_link_reports_link_to_elsewhere(base_dir: Path, target: Path) -> None:
    elsewhere = base_dir / "elsewhere"
    elsewhere.mkdir()
    alias_path = base_dir / "widget"
    alias_path.symlink_to(elsewhere, target_is_directory=True)

    with pytest.raises(LinkConflict, match="elsewhere"):
        ensure_link(alias_path, target)

    assert alias_path.resolve() == elsewhere.resolve()


def test_ensure_link_reports_dangling_link(base_dir: Path, target: Path) -> None:
    alias_path = base_dir / "widget"
    alias_path.symlink_to(base_dir / "gone", target_is_directory=True)

    with pytest.raises(LinkConflict):
        ensure_link(alias_path, target)

    assert os.readlink(alias_path) == str(base_dir / "gone")
