"""High level orchestration for dofi operations."""

from __future__ import annotations

import fnmatch
import logging
import threading
from pathlib import Path, PurePosixPath
from typing import Iterable

from .config import Config, ConfigError
from .errors import DofiError, NotFoundError
from .executor import Executor
from .filesystem import create_symlink, lexists, move_entry, remove_symlink
from .inspector import StateInspector
from .models import (
    ObservedKind,
    Plan,
    RunResult,
    ScanResult,
    SourceEntry,
    StatusEntry,
    StatusReport,
    Strictness,
    TargetClass,
    TargetState,
)
from .paths import ancestors, is_within, link_destination, link_value, points_to, sort_key, to_relative
from .planner import build_plan, build_unlink_plan
from .scanner import TreeScanner

logger = logging.getLogger(__name__)

_STATE_DETAILS = {
    TargetClass.ABSENT: "Not linked yet",
    TargetClass.LINKED_WRONG: "Symlink points somewhere else",
    TargetClass.FOREIGN: "A file not managed by dofi is in the way",
}


class DofiManager:
    """Coordinates scanning, planning and execution for one configuration."""

    def __init__(self, config: Config) -> None:
        self.config = config
        settings = config.settings
        if settings.dotfiles is None:
            raise ConfigError("No dotfiles directory configured. Pass --dotfiles or set DOFI_DIR.")

        self.source_root = _canonical_dir(settings.dotfiles, "Dotfiles directory")
        self.target_root = _canonical_dir(settings.base, "Base directory")
        if is_within(self.target_root, self.source_root):
            raise ConfigError(
                f"Base directory '{self.target_root}' must not be inside the dotfiles directory '{self.source_root}'"
            )

        self.scanner = TreeScanner(self.source_root, max_depth=settings.max_depth)
        self.inspector = StateInspector(self.target_root, self.source_root, max_depth=settings.max_depth)

    def scan(self) -> ScanResult:
        """Scan the dotfiles tree and drop everything matching the ignore patterns."""

        result = self.scanner.scan()
        patterns = self.config.settings.ignore
        if not patterns:
            return result

        ignored: set[PurePosixPath] = set()
        entries: list[SourceEntry] = []
        for entry in result.entries:
            relative = entry.relative_path
            if any(parent in ignored for parent in ancestors(relative)) or _is_ignored(relative, patterns):
                ignored.add(relative)
                continue
            entries.append(entry)

        issues = tuple(issue for issue in result.issues if not _is_ignored(issue.relative_path, patterns))
        logger.debug("Ignored %d entries", len(ignored))
        return ScanResult(root=result.root, entries=tuple(entries), issues=issues)

    def list_entries(self) -> list[SourceEntry]:
        return [entry for entry in self.scan().entries if not entry.is_directory]

    def status(self) -> StatusReport:
        scan = self.scan()
        states = self.inspector.inspect(scan.entries)
        entries: list[StatusEntry] = []

        for entry, state in zip(scan.entries, states):
            if entry.is_directory and not _blocks_directory(state):
                continue
            entries.append(
                StatusEntry(
                    relative_path=entry.relative_path,
                    kind=entry.kind,
                    state=state.classification,
                    observed=state.observed,
                    details=_STATE_DETAILS.get(state.classification),
                )
            )

        return StatusReport(entries=tuple(entries), issues=scan.issues)

    def plan(self, *, prune: bool | None = None) -> tuple[Plan, ScanResult]:
        """Build the link plan without touching the filesystem."""

        prune = self.config.settings.prune if prune is None else prune
        scan = self.scan()
        states: list[TargetState] = list(self.inspector.inspect(scan.entries))
        if prune:
            known = [entry.relative_path for entry in scan.entries]
            states.extend(self.inspector.find_orphans(known))
            states.sort(key=lambda state: sort_key(state.relative_path))

        plan = build_plan(scan.entries, states, target_root=self.target_root, prune=prune)
        return plan, scan

    def plan_unlink(self) -> tuple[Plan, ScanResult]:
        scan = self.scan()
        states = self.inspector.inspect(scan.entries)
        return build_unlink_plan(scan.entries, states, target_root=self.target_root), scan

    def link(
        self,
        *,
        mode: Strictness | None = None,
        prune: bool | None = None,
        dry_run: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> RunResult:
        plan, scan = self.plan(prune=prune)
        report = self._executor(mode, dry_run, cancel_event).execute(plan)
        return RunResult(plan=plan, report=report, issues=scan.issues)

    def unlink(
        self,
        *,
        mode: Strictness | None = None,
        dry_run: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> RunResult:
        plan, scan = self.plan_unlink()
        report = self._executor(mode, dry_run, cancel_event).execute(plan)
        return RunResult(plan=plan, report=report, issues=scan.issues)

    def add(self, file: Path) -> Path:
        """Move ``file`` from the base directory into the dotfiles and link it back.

        Returns the new location inside the dotfiles directory.
        """

        path = _absolute(file)
        if path.is_symlink() or not path.is_file():
            raise DofiError(f"'{file}' is not a regular file")

        resolved = path.resolve(strict=True)
        if not is_within(resolved, self.target_root) or resolved == self.target_root:
            raise DofiError(f"Base '{self.target_root}' is not a prefix of '{resolved}'")
        if is_within(resolved, self.source_root):
            raise DofiError(f"'{resolved}' already lives in the dotfiles directory")

        relative = to_relative(resolved.relative_to(self.target_root).as_posix())
        destination = self.source_root / Path(*relative.parts)
        if lexists(destination):
            raise DofiError(f"'{destination}' already exists in the dotfiles directory")

        move_entry(resolved, destination)
        value = link_value(destination, resolved, relative=self.config.settings.relative_links)
        try:
            create_symlink(resolved, value)
        except OSError:
            move_entry(destination, resolved)
            raise
        logger.info("Added %s as %s", resolved, destination)
        return destination

    def remove(self, file: Path) -> Path:
        """Stop managing ``file`` and move it back into the base directory.

        ``file`` may be the symlink in the base directory or the original in
        the dotfiles directory. Returns the restored location.
        """

        path = _absolute(file)
        if path.is_symlink() and is_within(path.parent.resolve(strict=False), self.target_root):
            source = link_destination(path)
            if not is_within(source, self.source_root):
                raise DofiError(f"'{file}' does not point into the dotfiles directory")
        elif lexists(path):
            source = path.parent.resolve(strict=True) / path.name
        else:
            raise NotFoundError(path)

        if not is_within(source, self.source_root) or source == self.source_root:
            raise DofiError(f"'{file}' is neither a dotfile nor a link to one")
        if source.is_symlink() or not source.is_file():
            raise DofiError(f"'{source}' is not a regular file")

        relative = to_relative(source.relative_to(self.source_root).as_posix())
        home_location = self.target_root / Path(*relative.parts)

        previous: str | None = None
        if lexists(home_location):
            if not points_to(home_location, source):
                raise DofiError(f"'{home_location}' exists and is not a link to '{source}'")
            previous = remove_symlink(home_location)

        try:
            move_entry(source, home_location)
        except OSError:
            if previous is not None:
                create_symlink(home_location, previous)
            raise
        logger.info("Removed %s, restored to %s", source, home_location)
        return home_location

    # ------------------------------------------------------------------
    # Internal helpers

    def _executor(
        self,
        mode: Strictness | None,
        dry_run: bool,
        cancel_event: threading.Event | None,
    ) -> Executor:
        settings = self.config.settings
        return Executor(
            strictness=mode or settings.mode,
            dry_run=dry_run,
            relative_links=settings.relative_links,
            cancel_event=cancel_event,
        )


def _canonical_dir(path: Path, what: str) -> Path:
    try:
        resolved = path.expanduser().resolve(strict=True)
    except FileNotFoundError as exc:
        raise NotFoundError(path, what) from exc
    if not resolved.is_dir():
        raise DofiError(f"{what} '{path}' is not a directory")
    return resolved


def _absolute(file: Path) -> Path:
    path = Path(file).expanduser()
    return path if path.is_absolute() else Path.cwd() / path


def _blocks_directory(state: TargetState) -> bool:
    if state.classification is TargetClass.LINKED_WRONG:
        return True
    return state.classification is TargetClass.FOREIGN and state.observed is ObservedKind.REGULAR_FILE


def _is_ignored(relative: PurePosixPath, patterns: Iterable[str]) -> bool:
    """Match ``relative`` against gitignore-style patterns.

    A pattern starting with ``/`` is anchored to the top of the dotfiles
    tree; any other pattern matches the name at every depth or the full
    relative path.
    """

    name = relative.name
    text = relative.as_posix()
    for pattern in patterns:
        if pattern.startswith("/"):
            if fnmatch.fnmatchcase(text, pattern[1:]):
                return True
        elif fnmatch.fnmatchcase(name, pattern) or fnmatch.fnmatchcase(text, pattern):
            return True
    return False
