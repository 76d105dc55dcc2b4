"""Filesystem helpers for dofi."""

from __future__ import annotations

import os
import shutil
import stat
from pathlib import Path


def ensure_parent(path: Path) -> None:
    """Ensure the parent directory exists."""

    path.parent.mkdir(parents=True, exist_ok=True)


def lexists(path: Path) -> bool:
    """``True`` for anything at ``path``, dangling symlinks included."""

    return path.exists() or path.is_symlink()


def create_symlink(link: Path, value: str) -> None:
    """Create ``link`` holding ``value``; never replaces an existing entry."""

    os.symlink(value, link)


def remove_symlink(link: Path) -> str:
    """Remove the symlink ``link`` and return the value it held.

    Raises ``OSError`` when ``link`` is not a symlink, so a real file can
    never be removed through this helper.
    """

    mode = os.lstat(link).st_mode
    if not stat.S_ISLNK(mode):
        raise OSError(f"'{link}' is not a symbolic link")
    value = os.readlink(link)
    link.unlink()
    return value


def make_directory(path: Path) -> bool:
    """Create a single directory level.

    Returns ``True`` if a directory was created and ``False`` if a real
    directory was already there.
    """

    try:
        path.mkdir()
    except FileExistsError:
        if path.is_dir() and not path.is_symlink():
            return False
        raise
    return True


def remove_empty_directory(path: Path) -> None:
    """Remove ``path`` if it is an empty directory; ``OSError`` otherwise."""

    path.rmdir()


def move_entry(source: Path, destination: Path) -> None:
    """Move ``source`` to ``destination``, refusing to overwrite."""

    if lexists(destination):
        raise FileExistsError(f"'{destination}' already exists")
    ensure_parent(destination)
    shutil.move(os.fspath(source), os.fspath(destination))
