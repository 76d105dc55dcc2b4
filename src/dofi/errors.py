"""Error kinds raised by dofi."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Operation


class DofiError(RuntimeError):
    """Raised when dofi encounters an unrecoverable state."""


class NotFoundError(DofiError):
    """A required path does not exist."""

    def __init__(self, path: Path, what: str = "Path") -> None:
        super().__init__(f"{what} '{path}' does not exist")
        self.path = path


class AccessDeniedError(DofiError):
    """A directory could not be read."""

    def __init__(self, path: Path, what: str = "Path") -> None:
        super().__init__(f"{what} '{path}' cannot be read")
        self.path = path


class PathEscapeError(DofiError):
    """A path would leave the root it is supposed to live under."""


class PlanConflictError(DofiError):
    """The plan builder found contradicting operations for one path."""


class ExecutionFailure(DofiError):
    """Wraps a filesystem error together with the operation that produced it."""

    def __init__(self, operation: "Operation", cause: BaseException) -> None:
        super().__init__(f"{operation.describe()} failed: {cause}")
        self.operation = operation
        self.cause = cause
