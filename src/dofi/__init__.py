"""Core package for the dofi project."""

__version__ = "0.1.0"

from .config import Config, ConfigError, Settings, load_config
from .errors import (
    AccessDeniedError,
    DofiError,
    ExecutionFailure,
    NotFoundError,
    PathEscapeError,
    PlanConflictError,
)
from .executor import Executor
from .inspector import StateInspector
from .manager import DofiManager
from .models import (
    ConflictReason,
    CreateDir,
    CreateLink,
    EntryKind,
    ExecutionReport,
    Operation,
    OperationStatus,
    Plan,
    RemoveLink,
    SkipConflict,
    SourceEntry,
    Strictness,
    TargetClass,
    TargetState,
)
from .planner import build_plan, build_unlink_plan
from .scanner import TreeScanner

__all__ = [
    "Config",
    "ConfigError",
    "Settings",
    "load_config",
    "DofiError",
    "AccessDeniedError",
    "ExecutionFailure",
    "NotFoundError",
    "PathEscapeError",
    "PlanConflictError",
    "DofiManager",
    "Executor",
    "StateInspector",
    "TreeScanner",
    "build_plan",
    "build_unlink_plan",
    "ConflictReason",
    "CreateDir",
    "CreateLink",
    "EntryKind",
    "ExecutionReport",
    "Operation",
    "OperationStatus",
    "Plan",
    "RemoveLink",
    "SkipConflict",
    "SourceEntry",
    "Strictness",
    "TargetClass",
    "TargetState",
]
