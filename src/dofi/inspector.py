"""Classify target-tree locations against the dotfiles manifest."""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path, PurePosixPath
from typing import Iterable

from .models import EntryKind, ObservedKind, SourceEntry, TargetClass, TargetState
from .paths import ancestors, canonical, is_within, link_destination, sort_key, to_relative
from .scanner import DEFAULT_MAX_DEPTH

logger = logging.getLogger(__name__)


def classify(observed: ObservedKind) -> TargetClass:
    """Map an observation onto its classification.

    ``observed`` already encodes whether a symlink resolves to the expected
    source, so the decision is a pure lookup.
    """

    if observed is ObservedKind.ABSENT:
        return TargetClass.ABSENT
    if observed is ObservedKind.SYMLINK_TO_SOURCE:
        return TargetClass.LINKED_CORRECT
    if observed is ObservedKind.SYMLINK_TO_OTHER:
        return TargetClass.LINKED_WRONG
    return TargetClass.FOREIGN


def observe(path: Path, expected: Path | None) -> tuple[ObservedKind, str | None]:
    """Look at ``path`` without following it and never raise for missing files."""

    try:
        mode = os.lstat(path).st_mode
    except FileNotFoundError:
        return ObservedKind.ABSENT, None
    except NotADirectoryError:
        # an ancestor is a regular file, so nothing can be placed here
        return ObservedKind.REGULAR_FILE, None
    except PermissionError as exc:
        # unreadable locations are left alone like any other foreign entry
        logger.warning("Cannot inspect %s: %s", path, exc)
        return ObservedKind.REGULAR_FILE, None

    if stat.S_ISLNK(mode):
        value = os.readlink(path)
        if expected is not None and link_destination(path) == canonical(expected):
            return ObservedKind.SYMLINK_TO_SOURCE, value
        return ObservedKind.SYMLINK_TO_OTHER, value
    if stat.S_ISDIR(mode):
        return ObservedKind.DIRECTORY, None
    return ObservedKind.REGULAR_FILE, None


class StateInspector:
    """Read-only inspector for the target tree."""

    def __init__(self, target_root: Path, source_root: Path, *, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self.target_root = target_root
        self.source_root = source_root
        self.max_depth = max_depth

    def inspect(self, entries: Iterable[SourceEntry]) -> tuple[TargetState, ...]:
        """Return one ``TargetState`` per entry, sorted by relative path."""

        ordered = sorted(entries, key=lambda entry: sort_key(entry.relative_path))
        folded: set[PurePosixPath] = set()
        states: list[TargetState] = []

        for entry in ordered:
            relative = entry.relative_path
            if any(parent in folded for parent in ancestors(relative)):
                # reached through a directory symlink that already points into the dotfiles
                states.append(
                    TargetState(
                        relative_path=relative,
                        observed=ObservedKind.SYMLINK_TO_SOURCE,
                        classification=TargetClass.LINKED_CORRECT,
                        expected=entry.source,
                    )
                )
                continue

            location = self.target_root / Path(*relative.parts)
            observed, value = observe(location, entry.source)
            state = TargetState(
                relative_path=relative,
                observed=observed,
                classification=classify(observed),
                link_value=value,
                expected=entry.source,
            )
            if entry.kind is EntryKind.DIRECTORY and state.classification is TargetClass.LINKED_CORRECT:
                folded.add(relative)
            states.append(state)

        return tuple(states)

    def find_orphans(self, known: Iterable[PurePosixPath]) -> tuple[TargetState, ...]:
        """Find stale links anywhere below the target root.

        A symlink qualifies when it is not in ``known``, points into the
        dotfiles tree, and its destination no longer exists. Directories whose
        source counterpart was deleted are still descended into, so links left
        behind by a removed directory are found as well. The walk never
        follows directory symlinks, skips the dotfiles tree when it lives
        inside the target root, and stops ``max_depth`` levels down.
        """

        known_paths = set(known)
        orphans: list[TargetState] = []

        for dirpath, dirnames, filenames in os.walk(self.target_root, onerror=_log_walk_error):
            directory = Path(dirpath)
            relative_dir = PurePosixPath(directory.relative_to(self.target_root).as_posix())

            descend: list[str] = []
            for name in sorted(dirnames):
                child = directory / name
                if child.is_symlink():
                    # symlinked directories are candidates, never walked into
                    filenames.append(name)
                elif len(relative_dir.parts) + 1 > self.max_depth:
                    continue
                elif is_within(Path(os.path.realpath(child)), self.source_root):
                    continue
                else:
                    descend.append(name)
            dirnames[:] = descend

            for name in filenames:
                relative = to_relative(relative_dir / name)
                if relative in known_paths:
                    continue
                link = directory / name
                if not link.is_symlink():
                    continue
                destination = link_destination(link)
                if not is_within(destination, self.source_root) or not _is_gone(destination):
                    continue
                orphans.append(
                    TargetState(
                        relative_path=relative,
                        observed=ObservedKind.SYMLINK_TO_OTHER,
                        classification=TargetClass.LINKED_WRONG,
                        link_value=os.readlink(link),
                        orphan=True,
                    )
                )

        orphans.sort(key=lambda state: sort_key(state.relative_path))
        logger.debug("Found %d stale links below %s", len(orphans), self.target_root)
        return tuple(orphans)


def _is_gone(path: Path) -> bool:
    # an unreadable destination may still exist
    try:
        os.lstat(path)
    except (FileNotFoundError, NotADirectoryError):
        return True
    except OSError:
        return False
    return False


def _log_walk_error(exc: OSError) -> None:
    logger.debug("Skipping stale link search in %s: %s", exc.filename, exc)
