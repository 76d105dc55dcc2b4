"""Turn a scanned manifest and the observed target state into a plan.

Both inputs are sorted component-wise by relative path and merged with two
pointers. The resulting plan lists every ``CreateDir`` first, shallowest
first, followed by the remaining operations in path order, so parents are
always created before anything is placed inside them.
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import Sequence

from .errors import PlanConflictError
from .models import (
    ConflictReason,
    CreateDir,
    CreateLink,
    ObservedKind,
    Operation,
    Plan,
    RemoveLink,
    SkipConflict,
    SourceEntry,
    TargetClass,
    TargetState,
)
from .paths import ancestors, depth, sort_key, to_relative

logger = logging.getLogger(__name__)

# operation combinations a single path may legitimately receive, in order
_ALLOWED_SEQUENCES = {
    (CreateDir,),
    (CreateLink,),
    (RemoveLink,),
    (RemoveLink, CreateLink),
    (SkipConflict,),
}


def build_plan(
    entries: Sequence[SourceEntry],
    states: Sequence[TargetState],
    *,
    target_root: Path,
    prune: bool = False,
) -> Plan:
    """Return the plan that links ``entries`` into ``target_root``.

    ``states`` must hold one state per entry (as produced by
    ``StateInspector.inspect``) and may additionally contain orphan states
    from ``StateInspector.find_orphans``; orphans are only acted upon when
    ``prune`` is set.
    """

    _require_sorted(entries, "source entries")
    _require_sorted(states, "target states")

    directories: list[CreateDir] = []
    others: list[Operation] = []
    blocked: set[PurePosixPath] = set()

    i = j = 0
    while i < len(entries) or j < len(states):
        entry = entries[i] if i < len(entries) else None
        state = states[j] if j < len(states) else None

        if entry is not None and state is not None:
            entry_key = sort_key(entry.relative_path)
            state_key = sort_key(state.relative_path)
        else:
            entry_key = state_key = ()

        if state is None or (entry is not None and entry_key < state_key):
            raise PlanConflictError(f"No target state was observed for '{entry.relative_path}'")

        if entry is None or state_key < entry_key:
            if not state.orphan:
                raise PlanConflictError(f"Target state '{state.relative_path}' has no matching source entry")
            if prune and state.classification is TargetClass.LINKED_WRONG:
                others.append(RemoveLink(to_relative(state.relative_path), state.link_value))
            j += 1
            continue

        i += 1
        j += 1
        target = to_relative(entry.relative_path)

        if any(parent in blocked for parent in ancestors(target)):
            if entry.is_directory:
                blocked.add(target)
            else:
                others.append(SkipConflict(target, ConflictReason.PARENT_CONFLICT))
            continue

        if entry.is_directory:
            _plan_directory(target, state, directories, others, blocked)
        else:
            _plan_link(target, entry, state, others)

    directories.sort(key=lambda op: (depth(op.target), sort_key(op.target)))
    operations: tuple[Operation, ...] = (*directories, *others)
    _check_conflicts(operations)
    logger.debug("Planned %d operations for %s", len(operations), target_root)
    return Plan(target_root=target_root, operations=operations)


def build_unlink_plan(
    entries: Sequence[SourceEntry],
    states: Sequence[TargetState],
    *,
    target_root: Path,
) -> Plan:
    """Return a plan removing every link that currently points into the dotfiles."""

    by_path = {state.relative_path: state for state in states if not state.orphan}
    operations: list[Operation] = []
    for entry in sorted(entries, key=lambda item: sort_key(item.relative_path)):
        state = by_path.get(entry.relative_path)
        if state is None or entry.is_directory:
            continue
        # links reached through a folded directory have no symlink of their own
        if state.classification is TargetClass.LINKED_CORRECT and state.link_value is not None:
            operations.append(RemoveLink(to_relative(entry.relative_path), state.link_value))

    plan_operations = tuple(operations)
    _check_conflicts(plan_operations)
    return Plan(target_root=target_root, operations=plan_operations)


def _plan_directory(
    target: PurePosixPath,
    state: TargetState,
    directories: list[CreateDir],
    others: list[Operation],
    blocked: set[PurePosixPath],
) -> None:
    classification = state.classification
    if classification is TargetClass.ABSENT:
        directories.append(CreateDir(target))
    elif classification is TargetClass.LINKED_CORRECT:
        return
    elif classification is TargetClass.FOREIGN and state.observed is ObservedKind.DIRECTORY:
        return
    elif classification is TargetClass.LINKED_WRONG:
        others.append(SkipConflict(target, ConflictReason.FOREIGN_LINK))
        blocked.add(target)
    else:
        others.append(SkipConflict(target, ConflictReason.FOREIGN_FILE))
        blocked.add(target)


def _plan_link(
    target: PurePosixPath,
    entry: SourceEntry,
    state: TargetState,
    others: list[Operation],
) -> None:
    classification = state.classification
    if classification is TargetClass.ABSENT:
        others.append(CreateLink(target, entry.source))
    elif classification is TargetClass.LINKED_CORRECT:
        return
    elif classification is TargetClass.LINKED_WRONG:
        others.append(RemoveLink(target, state.link_value))
        others.append(CreateLink(target, entry.source))
    else:
        others.append(SkipConflict(target, ConflictReason.FOREIGN_FILE))


def _require_sorted(items: Sequence[SourceEntry] | Sequence[TargetState], label: str) -> None:
    previous: tuple[str, ...] | None = None
    for item in items:
        key = sort_key(item.relative_path)
        if previous is not None and key <= previous:
            raise PlanConflictError(f"{label.capitalize()} are not sorted or contain duplicates at '{item.relative_path}'")
        previous = key


def _check_conflicts(operations: Sequence[Operation]) -> None:
    per_path: dict[PurePosixPath, list[type]] = {}
    for operation in operations:
        per_path.setdefault(operation.target, []).append(type(operation))
    for path, kinds in per_path.items():
        if tuple(kinds) not in _ALLOWED_SEQUENCES:
            names = ", ".join(kind.__name__ for kind in kinds)
            raise PlanConflictError(f"Conflicting operations planned for '{path}': {names}")
