"""Walk the dotfiles tree and produce a sorted manifest."""

from __future__ import annotations

import errno
import logging
import os
from pathlib import Path, PurePosixPath
from typing import Iterator

from .errors import AccessDeniedError, NotFoundError
from .models import EntryKind, ScanIssue, ScanIssueKind, ScanResult, SourceEntry
from .paths import sort_key

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 32


class TreeScanner:
    """Read-only traversal of a dotfiles tree.

    Every entry is reported regardless of its name. Symlinks are reported as
    entries of their own and never descended into. Problems below the root
    are collected as ``ScanIssue`` values so one unreadable directory does
    not abort the whole scan.
    """

    def __init__(self, root: Path, *, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self.root = root
        self.max_depth = max_depth

    def scan(self) -> ScanResult:
        entries: list[SourceEntry] = []
        issues: list[ScanIssue] = []
        for item in self.iter_scan():
            if isinstance(item, ScanIssue):
                issues.append(item)
            else:
                entries.append(item)
        entries.sort(key=lambda entry: sort_key(entry.relative_path))
        issues.sort(key=lambda issue: sort_key(issue.relative_path))
        logger.debug("Scanned %s: %d entries, %d issues", self.root, len(entries), len(issues))
        return ScanResult(root=self.root, entries=tuple(entries), issues=tuple(issues))

    def iter_scan(self) -> Iterator[SourceEntry | ScanIssue]:
        """Lazily yield entries and issues; each call starts a fresh walk."""

        self._check_root()
        visited = {os.path.realpath(self.root)}
        yield from self._walk(self.root, PurePosixPath(), visited)

    def _check_root(self) -> None:
        if not self.root.exists():
            raise NotFoundError(self.root, "Dotfiles directory")
        if not self.root.is_dir():
            raise NotFoundError(self.root, "Dotfiles directory")
        if not os.access(self.root, os.R_OK | os.X_OK):
            raise AccessDeniedError(self.root, "Dotfiles directory")

    def _walk(
        self,
        directory: Path,
        relative: PurePosixPath,
        visited: set[str],
    ) -> Iterator[SourceEntry | ScanIssue]:
        try:
            with os.scandir(directory) as iterator:
                children = sorted(iterator, key=lambda child: child.name)
        except PermissionError as exc:
            yield ScanIssue(relative, ScanIssueKind.ACCESS_DENIED, str(exc))
            return
        except FileNotFoundError as exc:
            yield ScanIssue(relative, ScanIssueKind.NOT_FOUND, str(exc))
            return

        for child in children:
            child_relative = relative / child.name
            child_path = Path(child.path)

            try:
                is_link = child.is_symlink()
                is_dir = not is_link and child.is_dir(follow_symlinks=False)
            except OSError as exc:
                yield ScanIssue(child_relative, ScanIssueKind.NOT_FOUND, str(exc))
                continue

            if is_link:
                loop = self._symlink_loop(child_path)
                if loop is not None:
                    yield ScanIssue(child_relative, ScanIssueKind.SYMLINK_LOOP, loop)
                    continue
                yield SourceEntry(child_relative, EntryKind.SYMLINK, child_path)
                continue

            if not is_dir:
                yield SourceEntry(child_relative, EntryKind.FILE, child_path)
                continue

            canonical = os.path.realpath(child_path)
            if canonical in visited:
                yield ScanIssue(
                    child_relative,
                    ScanIssueKind.SYMLINK_LOOP,
                    f"Directory '{child_path}' was already visited as '{canonical}'",
                )
                continue
            if len(child_relative.parts) > self.max_depth:
                yield ScanIssue(
                    child_relative,
                    ScanIssueKind.TOO_DEEP,
                    f"Directory '{child_path}' is deeper than the limit of {self.max_depth} levels",
                )
                continue

            yield SourceEntry(child_relative, EntryKind.DIRECTORY, child_path)
            visited.add(canonical)
            yield from self._walk(child_path, child_relative, visited)

    @staticmethod
    def _symlink_loop(path: Path) -> str | None:
        try:
            os.stat(path)
        except OSError as exc:
            if exc.errno == errno.ELOOP:
                return f"Symlink '{path}' is part of a cycle"
            # dangling links are still linkable entries
            return None
        return None
