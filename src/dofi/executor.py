"""Apply a plan to the filesystem.

Operations run strictly in plan order. In best-effort mode a failure is
recorded and execution continues; in atomic mode the first failure rolls
back everything applied so far, in reverse order.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path

from .errors import ExecutionFailure, PathEscapeError
from .filesystem import create_symlink, make_directory, remove_empty_directory, remove_symlink
from .models import (
    CreateDir,
    CreateLink,
    ExecutionReport,
    Operation,
    OperationOutcome,
    OperationStatus,
    Plan,
    RemoveLink,
    SkipConflict,
    Strictness,
    UndoFailure,
)
from .paths import link_value, target_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _UndoStep:
    """What is needed to revert one applied operation."""

    index: int
    operation: Operation
    path: Path
    link_value: str | None = None
    created: bool = True


class Executor:
    """Runs plans against the real filesystem.

    Attributes:
        strictness: Best-effort or all-or-nothing execution.
        dry_run: Report what would happen without touching anything.
        relative_links: Store link values relative to the link's directory.
        cancel_event: Checked between operations; once set, the remaining
            operations are left pending.
    """

    def __init__(
        self,
        *,
        strictness: Strictness = Strictness.BEST_EFFORT,
        dry_run: bool = False,
        relative_links: bool = True,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.strictness = strictness
        self.dry_run = dry_run
        self.relative_links = relative_links
        self.cancel_event = cancel_event

    def execute(self, plan: Plan) -> ExecutionReport:
        outcomes = [OperationOutcome(operation=operation) for operation in plan.operations]
        journal: list[_UndoStep] = []
        undo_failures: list[UndoFailure] = []
        cancelled = False

        for index, outcome in enumerate(outcomes):
            if self.cancel_event is not None and self.cancel_event.is_set():
                logger.info("Cancellation requested; %d operations left pending", len(outcomes) - index)
                cancelled = True
                break

            operation = outcome.operation
            if isinstance(operation, SkipConflict):
                outcome.status = OperationStatus.SKIPPED
                continue

            if self.dry_run:
                logger.info("Dry-run: would %s", operation.describe())
                outcome.status = OperationStatus.APPLIED
                outcome.dry_run = True
                continue

            try:
                step = self._apply(plan.target_root, index, operation)
            except (OSError, PathEscapeError) as exc:
                failure = ExecutionFailure(operation, exc)
                logger.warning("%s", failure)
                outcome.status = OperationStatus.FAILED
                outcome.error = failure
                if self.strictness is Strictness.ATOMIC:
                    undo_failures = self._rollback(journal, outcomes)
                    break
                continue

            outcome.status = OperationStatus.APPLIED
            journal.append(step)

        return ExecutionReport(
            strictness=self.strictness,
            outcomes=tuple(outcomes),
            undo_failures=tuple(undo_failures),
            cancelled=cancelled,
            dry_run=self.dry_run,
        )

    # ------------------------------------------------------------------
    # Internal helpers

    def _apply(self, root: Path, index: int, operation: Operation) -> _UndoStep:
        path = target_path(root, operation.target, resolve_parent=True)

        if isinstance(operation, CreateDir):
            logger.debug("Creating directory %s", path)
            return _UndoStep(index, operation, path, created=make_directory(path))

        if isinstance(operation, CreateLink):
            value = link_value(operation.source, path, relative=self.relative_links)
            logger.debug("Linking %s -> %s", path, value)
            create_symlink(path, value)
            return _UndoStep(index, operation, path)

        if isinstance(operation, RemoveLink):
            logger.debug("Removing link %s", path)
            previous = remove_symlink(path)
            return _UndoStep(index, operation, path, link_value=previous)

        raise TypeError(f"Unsupported operation {operation!r}")

    def _rollback(self, journal: list[_UndoStep], outcomes: list[OperationOutcome]) -> list[UndoFailure]:
        failures: list[UndoFailure] = []
        for step in reversed(journal):
            try:
                self._undo(step)
            except OSError as exc:
                logger.error("Could not undo %s: %s", step.operation.describe(), exc)
                failures.append(UndoFailure(step.operation, ExecutionFailure(step.operation, exc)))
                continue
            outcomes[step.index].status = OperationStatus.ROLLED_BACK
        logger.info("Rolled back %d of %d operations", len(journal) - len(failures), len(journal))
        return failures

    @staticmethod
    def _undo(step: _UndoStep) -> None:
        operation = step.operation
        if isinstance(operation, CreateLink):
            remove_symlink(step.path)
        elif isinstance(operation, RemoveLink):
            assert step.link_value is not None
            create_symlink(step.path, step.link_value)
        elif isinstance(operation, CreateDir) and step.created:
            remove_empty_directory(step.path)
