from __future__ import annotations

import os
import threading
from pathlib import Path, PurePosixPath

import pytest

from dofi.errors import ExecutionFailure
from dofi.executor import Executor
from dofi.models import (
    ConflictReason,
    CreateDir,
    CreateLink,
    OperationStatus,
    Plan,
    RemoveLink,
    SkipConflict,
    Strictness,
)


def _snapshot(root: Path) -> dict[str, str]:
    """Map every path below ``root`` to its kind and content or link value."""

    result: dict[str, str] = {}
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            path = Path(dirpath) / name
            relative = path.relative_to(root).as_posix()
            if path.is_symlink():
                result[relative] = f"link:{os.readlink(path)}"
            elif path.is_dir():
                result[relative] = "dir"
            else:
                result[relative] = f"file:{path.read_text()}"
    return result


def _statuses(report) -> list[OperationStatus]:  # noqa: ANN001
    return [outcome.status for outcome in report.outcomes]


@pytest.fixture
def source(dotfiles: Path, tree) -> Path:  # noqa: ANN001
    return tree(dotfiles, {".a": "a\n", ".b": "b\n", ".c": "c\n", ".config/x": "x\n"})


def test_best_effort_applies_plan(source: Path, fake_home: Path) -> None:
    plan = Plan(
        fake_home,
        (
            CreateDir(PurePosixPath(".config")),
            CreateLink(PurePosixPath(".a"), source / ".a"),
            CreateLink(PurePosixPath(".config/x"), source / ".config/x"),
            SkipConflict(PurePosixPath(".b"), ConflictReason.FOREIGN_FILE),
        ),
    )

    report = Executor().execute(plan)

    assert _statuses(report) == [
        OperationStatus.APPLIED,
        OperationStatus.APPLIED,
        OperationStatus.APPLIED,
        OperationStatus.SKIPPED,
    ]
    assert (fake_home / ".a").read_text() == "a\n"
    assert os.readlink(fake_home / ".a") == os.path.relpath(source / ".a", fake_home)
    assert (fake_home / ".config" / "x").read_text() == "x\n"
    summary = report.summary()
    assert (summary.linked, summary.directories, summary.skipped, summary.failed) == (2, 1, 1, 0)
    assert not report.has_failures


def test_absolute_links_when_requested(source: Path, fake_home: Path) -> None:
    plan = Plan(fake_home, (CreateLink(PurePosixPath(".a"), source / ".a"),))

    Executor(relative_links=False).execute(plan)

    assert os.readlink(fake_home / ".a") == str(source / ".a")


def test_best_effort_continues_after_failure(source: Path, fake_home: Path) -> None:
    (fake_home / ".b").write_text("appeared after planning\n")
    plan = Plan(
        fake_home,
        (
            CreateLink(PurePosixPath(".a"), source / ".a"),
            CreateLink(PurePosixPath(".b"), source / ".b"),
            CreateLink(PurePosixPath(".c"), source / ".c"),
        ),
    )

    report = Executor(strictness=Strictness.BEST_EFFORT).execute(plan)

    assert _statuses(report) == [OperationStatus.APPLIED, OperationStatus.FAILED, OperationStatus.APPLIED]
    failure = report.failed[0].error
    assert isinstance(failure, ExecutionFailure)
    assert failure.operation == plan.operations[1]
    assert isinstance(failure.cause, FileExistsError)
    assert (fake_home / ".b").read_text() == "appeared after planning\n"
    assert (fake_home / ".c").is_symlink()


def test_atomic_rolls_back_to_the_pre_run_state(source: Path, fake_home: Path) -> None:
    (fake_home / ".b").write_text("appeared after planning\n")
    before = _snapshot(fake_home)
    plan = Plan(
        fake_home,
        (
            CreateDir(PurePosixPath(".config")),
            CreateLink(PurePosixPath(".a"), source / ".a"),
            CreateLink(PurePosixPath(".b"), source / ".b"),
            CreateLink(PurePosixPath(".c"), source / ".c"),
            CreateLink(PurePosixPath(".config/x"), source / ".config/x"),
        ),
    )

    report = Executor(strictness=Strictness.ATOMIC).execute(plan)

    assert _statuses(report) == [
        OperationStatus.ROLLED_BACK,
        OperationStatus.ROLLED_BACK,
        OperationStatus.FAILED,
        OperationStatus.PENDING,
        OperationStatus.PENDING,
    ]
    assert report.undo_failures == ()
    assert report.has_failures
    assert report.summary().rolled_back == 2
    assert _snapshot(fake_home) == before


def test_atomic_restores_removed_links(source: Path, fake_home: Path) -> None:
    (fake_home / ".old").symlink_to("somewhere/else")
    (fake_home / ".c").write_text("in the way\n")
    before = _snapshot(fake_home)
    plan = Plan(
        fake_home,
        (
            RemoveLink(PurePosixPath(".old"), "somewhere/else"),
            CreateLink(PurePosixPath(".c"), source / ".c"),
        ),
    )

    report = Executor(strictness=Strictness.ATOMIC).execute(plan)

    assert _statuses(report) == [OperationStatus.ROLLED_BACK, OperationStatus.FAILED]
    assert _snapshot(fake_home) == before


def test_undo_failures_are_reported(source: Path, fake_home: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def refuse(_path: Path) -> None:
        raise OSError("directory busy")

    monkeypatch.setattr("dofi.executor.remove_empty_directory", refuse)
    (fake_home / ".a").write_text("in the way\n")
    plan = Plan(
        fake_home,
        (
            CreateDir(PurePosixPath(".config")),
            CreateLink(PurePosixPath(".a"), source / ".a"),
        ),
    )

    report = Executor(strictness=Strictness.ATOMIC).execute(plan)

    assert _statuses(report) == [OperationStatus.APPLIED, OperationStatus.FAILED]
    assert len(report.undo_failures) == 1
    assert report.undo_failures[0].operation == CreateDir(PurePosixPath(".config"))
    assert "directory busy" in str(report.undo_failures[0].error)


def test_remove_link_refuses_regular_files(fake_home: Path) -> None:
    (fake_home / ".bashrc").write_text("precious\n")
    plan = Plan(fake_home, (RemoveLink(PurePosixPath(".bashrc")),))

    report = Executor().execute(plan)

    assert _statuses(report) == [OperationStatus.FAILED]
    assert (fake_home / ".bashrc").read_text() == "precious\n"


def test_symlinked_parent_outside_root_is_refused(source: Path, fake_home: Path, tmp_path: Path) -> None:
    outside = tmp_path / "outside"
    outside.mkdir()
    (fake_home / ".config").symlink_to(outside)
    plan = Plan(fake_home, (CreateLink(PurePosixPath(".config/x"), source / ".config/x"),))

    report = Executor().execute(plan)

    assert _statuses(report) == [OperationStatus.FAILED]
    assert list(outside.iterdir()) == []


def test_dry_run_touches_nothing(source: Path, fake_home: Path) -> None:
    plan = Plan(
        fake_home,
        (
            CreateDir(PurePosixPath(".config")),
            CreateLink(PurePosixPath(".config/x"), source / ".config/x"),
        ),
    )

    report = Executor(dry_run=True).execute(plan)

    assert _statuses(report) == [OperationStatus.APPLIED, OperationStatus.APPLIED]
    assert all(outcome.dry_run for outcome in report.outcomes)
    assert report.dry_run
    assert list(fake_home.iterdir()) == []


class _CancelAfter(threading.Event):
    def __init__(self, checks: int) -> None:
        super().__init__()
        self._checks = checks

    def is_set(self) -> bool:
        self._checks -= 1
        return self._checks < 0


def test_cancellation_is_honoured_between_operations(source: Path, fake_home: Path) -> None:
    plan = Plan(
        fake_home,
        (
            CreateLink(PurePosixPath(".a"), source / ".a"),
            CreateLink(PurePosixPath(".b"), source / ".b"),
            CreateLink(PurePosixPath(".c"), source / ".c"),
        ),
    )

    report = Executor(cancel_event=_CancelAfter(1)).execute(plan)

    assert report.cancelled
    assert _statuses(report) == [OperationStatus.APPLIED, OperationStatus.PENDING, OperationStatus.PENDING]
    assert (fake_home / ".a").is_symlink()
    assert not (fake_home / ".b").exists()
