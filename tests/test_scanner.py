from __future__ import annotations

import os
from pathlib import Path, PurePosixPath

import pytest

from dofi.errors import NotFoundError
from dofi.models import EntryKind, ScanIssue, ScanIssueKind
from dofi.scanner import TreeScanner


def _paths(result) -> list[str]:  # noqa: ANN001
    return [entry.relative_path.as_posix() for entry in result.entries]


def test_scan_includes_dotfiles_and_sorts(dotfiles: Path, tree) -> None:  # noqa: ANN001
    tree(
        dotfiles,
        {
            ".zshrc": "export A=1\n",
            ".bashrc": "alias ll='ls -al'\n",
            ".config/app/settings": "x = 1\n",
            ".config/empty": None,
        },
    )

    result = TreeScanner(dotfiles).scan()

    assert _paths(result) == [
        ".bashrc",
        ".config",
        ".config/app",
        ".config/app/settings",
        ".config/empty",
        ".zshrc",
    ]
    kinds = {entry.relative_path.as_posix(): entry.kind for entry in result.entries}
    assert kinds[".config"] is EntryKind.DIRECTORY
    assert kinds[".bashrc"] is EntryKind.FILE
    assert result.issues == ()
    assert all(entry.source == dotfiles / entry.relative_path for entry in result.entries)


def test_scan_is_restartable(dotfiles: Path, tree) -> None:  # noqa: ANN001
    tree(dotfiles, {".a": "1", "dir/.b": "2"})
    scanner = TreeScanner(dotfiles)

    assert scanner.scan() == scanner.scan()
    assert list(scanner.iter_scan()) == list(scanner.iter_scan())


def test_symlinks_are_entries_and_not_traversed(dotfiles: Path, tree, tmp_path: Path) -> None:  # noqa: ANN001
    outside = tree(tmp_path / "outside", {"inner": "secret"})
    (dotfiles / ".shared").symlink_to(outside)
    (dotfiles / ".dangling").symlink_to(dotfiles / "missing")

    result = TreeScanner(dotfiles).scan()

    assert _paths(result) == [".dangling", ".shared"]
    assert all(entry.kind is EntryKind.SYMLINK for entry in result.entries)


def test_symlink_cycle_is_reported_on_the_entry(dotfiles: Path, tree) -> None:  # noqa: ANN001
    tree(dotfiles, {".profile": "x"})
    os.symlink(".loop-b", dotfiles / ".loop-a")
    os.symlink(".loop-a", dotfiles / ".loop-b")
    os.symlink(".self", dotfiles / ".self")

    result = TreeScanner(dotfiles).scan()

    assert _paths(result) == [".profile"]
    assert {issue.relative_path.as_posix() for issue in result.issues} == {".loop-a", ".loop-b", ".self"}
    assert all(issue.kind is ScanIssueKind.SYMLINK_LOOP for issue in result.issues)


def test_max_depth_bounds_traversal(dotfiles: Path, tree) -> None:  # noqa: ANN001
    tree(dotfiles, {"a/b/c/file": "x"})

    result = TreeScanner(dotfiles, max_depth=2).scan()

    assert _paths(result) == ["a", "a/b"]
    assert [(issue.relative_path.as_posix(), issue.kind) for issue in result.issues] == [
        ("a/b/c", ScanIssueKind.TOO_DEEP)
    ]


def test_unreadable_directory_is_collected(dotfiles: Path, tree, monkeypatch: pytest.MonkeyPatch) -> None:  # noqa: ANN001
    tree(dotfiles, {".bashrc": "x", "private/key": "secret"})
    real_scandir = os.scandir

    def guarded_scandir(path):  # noqa: ANN001, ANN202
        if Path(path).name == "private":
            raise PermissionError(13, "Permission denied", os.fspath(path))
        return real_scandir(path)

    monkeypatch.setattr("dofi.scanner.os.scandir", guarded_scandir)

    result = TreeScanner(dotfiles).scan()

    assert _paths(result) == [".bashrc", "private"]
    assert result.issues == (
        ScanIssue(PurePosixPath("private"), ScanIssueKind.ACCESS_DENIED, result.issues[0].message),
    )


def test_missing_root_raises(tmp_path: Path) -> None:
    with pytest.raises(NotFoundError):
        TreeScanner(tmp_path / "missing").scan()
