"""Shared models and enums for dofi."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Union


class EntryKind(str, Enum):
    """Kinds of entries found in the dotfiles tree."""

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


@dataclass(frozen=True, slots=True)
class SourceEntry:
    """A path discovered in the dotfiles tree."""

    relative_path: PurePosixPath
    kind: EntryKind
    source: Path

    @property
    def is_directory(self) -> bool:
        return self.kind is EntryKind.DIRECTORY


class ScanIssueKind(str, Enum):
    """Per-entry problems collected while scanning."""

    NOT_FOUND = "not_found"
    ACCESS_DENIED = "access_denied"
    SYMLINK_LOOP = "symlink_loop"
    TOO_DEEP = "too_deep"


@dataclass(frozen=True, slots=True)
class ScanIssue:
    """An entry the scanner could not process."""

    relative_path: PurePosixPath
    kind: ScanIssueKind
    message: str


@dataclass(frozen=True, slots=True)
class ScanResult:
    """Sorted manifest produced by one scan pass."""

    root: Path
    entries: tuple[SourceEntry, ...]
    issues: tuple[ScanIssue, ...] = ()


class ObservedKind(str, Enum):
    """What was found at a target location."""

    ABSENT = "absent"
    SYMLINK_TO_SOURCE = "symlink_to_source"
    SYMLINK_TO_OTHER = "symlink_to_other"
    REGULAR_FILE = "regular_file"
    DIRECTORY = "directory"


class TargetClass(str, Enum):
    """Classification of a target location against its expected source."""

    ABSENT = "absent"
    LINKED_CORRECT = "linked_correct"
    LINKED_WRONG = "linked_wrong"
    FOREIGN = "foreign"


@dataclass(frozen=True, slots=True)
class TargetState:
    """Observed state of one path in the target tree."""

    relative_path: PurePosixPath
    observed: ObservedKind
    classification: TargetClass
    link_value: str | None = None
    expected: Path | None = None
    orphan: bool = False


class ConflictReason(str, Enum):
    """Why an entry was left alone."""

    FOREIGN_FILE = "foreign_file"
    FOREIGN_LINK = "foreign_link"
    PARENT_CONFLICT = "parent_conflict"


# Operations form a closed union; the executor dispatches on the concrete type.


@dataclass(frozen=True, slots=True)
class CreateLink:
    target: PurePosixPath
    source: Path
    op: str = field(default="create_link", init=False)

    def describe(self) -> str:
        return f"link {self.target} -> {self.source}"


@dataclass(frozen=True, slots=True)
class RemoveLink:
    target: PurePosixPath
    link_value: str | None = None
    op: str = field(default="remove_link", init=False)

    def describe(self) -> str:
        return f"unlink {self.target}"


@dataclass(frozen=True, slots=True)
class CreateDir:
    target: PurePosixPath
    op: str = field(default="create_dir", init=False)

    def describe(self) -> str:
        return f"mkdir {self.target}"


@dataclass(frozen=True, slots=True)
class SkipConflict:
    target: PurePosixPath
    reason: ConflictReason
    op: str = field(default="skip_conflict", init=False)

    def describe(self) -> str:
        return f"skip {self.target} ({self.reason.value})"


Operation = Union[CreateLink, RemoveLink, CreateDir, SkipConflict]


@dataclass(frozen=True, slots=True)
class Plan:
    """Ordered operations against a single target root."""

    target_root: Path
    operations: tuple[Operation, ...] = ()

    def __len__(self) -> int:
        return len(self.operations)

    def __iter__(self):
        return iter(self.operations)

    @property
    def is_empty(self) -> bool:
        return not self.operations

    @property
    def conflicts(self) -> tuple[SkipConflict, ...]:
        return tuple(op for op in self.operations if isinstance(op, SkipConflict))


class Strictness(str, Enum):
    """How the executor reacts to a failed operation."""

    BEST_EFFORT = "best-effort"
    ATOMIC = "atomic"


class OperationStatus(str, Enum):
    """Lifecycle of an operation during execution."""

    PENDING = "pending"
    APPLIED = "applied"
    FAILED = "failed"
    SKIPPED = "skipped"
    ROLLED_BACK = "rolled_back"


@dataclass(slots=True)
class OperationOutcome:
    """Execution record for a single operation."""

    operation: Operation
    status: OperationStatus = OperationStatus.PENDING
    error: Exception | None = None
    dry_run: bool = False


@dataclass(frozen=True, slots=True)
class UndoFailure:
    """A rollback step that could not be completed."""

    operation: Operation
    error: Exception


@dataclass(frozen=True, slots=True)
class ExecutionSummary:
    """Counts reported at the end of every run."""

    linked: int = 0
    removed: int = 0
    directories: int = 0
    skipped: int = 0
    failed: int = 0
    rolled_back: int = 0


@dataclass(frozen=True, slots=True)
class ExecutionReport:
    """Aggregate result of executing a plan."""

    strictness: Strictness
    outcomes: tuple[OperationOutcome, ...]
    undo_failures: tuple[UndoFailure, ...] = ()
    cancelled: bool = False
    dry_run: bool = False

    def with_status(self, status: OperationStatus) -> tuple[OperationOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes if outcome.status is status)

    @property
    def succeeded(self) -> tuple[OperationOutcome, ...]:
        return self.with_status(OperationStatus.APPLIED)

    @property
    def failed(self) -> tuple[OperationOutcome, ...]:
        return self.with_status(OperationStatus.FAILED)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed) or bool(self.undo_failures)

    def summary(self) -> ExecutionSummary:
        applied = self.succeeded
        return ExecutionSummary(
            linked=sum(isinstance(o.operation, CreateLink) for o in applied),
            removed=sum(isinstance(o.operation, RemoveLink) for o in applied),
            directories=sum(isinstance(o.operation, CreateDir) for o in applied),
            skipped=len(self.with_status(OperationStatus.SKIPPED)),
            failed=len(self.failed),
            rolled_back=len(self.with_status(OperationStatus.ROLLED_BACK)),
        )


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """Status information for one dotfile."""

    relative_path: PurePosixPath
    kind: EntryKind
    state: TargetClass
    observed: ObservedKind
    details: str | None = None


@dataclass(frozen=True, slots=True)
class StatusReport:
    """Collection of status results for a manager run."""

    entries: tuple[StatusEntry, ...]
    issues: tuple[ScanIssue, ...] = ()

    @property
    def in_sync(self) -> bool:
        return not self.issues and all(entry.state is TargetClass.LINKED_CORRECT for entry in self.entries)


@dataclass(frozen=True, slots=True)
class RunResult:
    """Plan, execution report and scan issues of a link or unlink run."""

    plan: Plan
    report: ExecutionReport
    issues: tuple[ScanIssue, ...] = ()
