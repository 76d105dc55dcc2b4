"""Path model: relative path validation, ordering and link resolution."""

from __future__ import annotations

import os
from pathlib import Path, PurePosixPath

from .errors import PathEscapeError


def to_relative(path: str | os.PathLike[str] | PurePosixPath) -> PurePosixPath:
    """Return ``path`` as a validated POSIX relative path.

    Raises ``PathEscapeError`` for absolute paths, empty paths and anything
    containing a ``..`` segment.
    """

    text = os.fspath(path)
    candidate = PurePosixPath(Path(text).as_posix())
    if candidate.is_absolute():
        raise PathEscapeError(f"'{text}' must be relative")
    if ".." in candidate.parts:
        raise PathEscapeError(f"'{text}' must not contain '..'")
    if not candidate.parts:
        raise PathEscapeError("Relative path must not be empty")
    return candidate


def sort_key(path: PurePosixPath) -> tuple[str, ...]:
    """Component-wise ordering: a directory always sorts before its contents."""

    return path.parts


def depth(path: PurePosixPath) -> int:
    return len(path.parts)


def ancestors(path: PurePosixPath) -> list[PurePosixPath]:
    """Proper ancestors of ``path``, shallowest first, excluding ``.``."""

    return [parent for parent in reversed(path.parents) if parent.parts]


def is_within(path: Path, root: Path) -> bool:
    """Return ``True`` if ``path`` equals ``root`` or lies below it (lexically)."""

    try:
        Path(os.path.normpath(path)).relative_to(Path(os.path.normpath(root)))
    except ValueError:
        return False
    return True


def target_path(root: Path, relative: PurePosixPath, *, resolve_parent: bool = False) -> Path:
    """Join ``relative`` onto ``root`` and prove the result stays inside it.

    With ``resolve_parent`` the parent directory is canonicalised first so a
    symlinked ancestor cannot redirect a write outside of ``root``.
    """

    relative = to_relative(relative)
    candidate = root / Path(*relative.parts)
    if not is_within(candidate, root):
        raise PathEscapeError(f"'{relative}' escapes '{root}'")
    if resolve_parent:
        real_root = root.resolve(strict=False)
        real_parent = candidate.parent.resolve(strict=False)
        if not is_within(real_parent, real_root):
            raise PathEscapeError(f"'{relative}' resolves to '{real_parent}', outside of '{real_root}'")
    return candidate


def link_value(source: Path, link: Path, *, relative: bool = True) -> str:
    """Return the text to store in ``link`` so that it points at ``source``."""

    if not relative:
        return str(source)
    try:
        return os.path.relpath(source, start=link.parent.resolve(strict=False))
    except ValueError:
        return str(source)


def link_destination(link: Path) -> Path:
    """Return the absolute location the symlink ``link`` refers to.

    Only the link's parent directory is canonicalised; the final component
    is left alone so a link to a symlink is not confused with a link to that
    symlink's own target.
    """

    value = os.readlink(link)
    parent = link.parent.resolve(strict=False)
    return Path(os.path.normpath(parent / value))


def canonical(path: Path) -> Path:
    """Canonicalise the parent of ``path`` and keep the final component as is."""

    return Path(os.path.normpath(path.parent.resolve(strict=False) / path.name))


def points_to(link: Path, expected: Path) -> bool:
    """Return ``True`` if ``link`` is a symlink whose value resolves to ``expected``."""

    if not link.is_symlink():
        return False
    return link_destination(link) == canonical(expected)
