from __future__ import annotations

from pathlib import Path
from typing import Callable, Mapping

import pytest

TreeBuilder = Callable[[Path, Mapping[str, str | None]], Path]


def write_tree(root: Path, files: Mapping[str, str | None]) -> Path:
    """Create ``files`` under ``root``; a ``None`` value creates a directory."""

    root.mkdir(parents=True, exist_ok=True)
    for relative, content in files.items():
        path = root / relative
        if content is None:
            path.mkdir(parents=True, exist_ok=True)
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config-dofi"))
    monkeypatch.delenv("DOFI_DIR", raising=False)
    return home.resolve()


@pytest.fixture
def dotfiles(tmp_path: Path) -> Path:
    root = tmp_path / "dotfiles"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def tree() -> TreeBuilder:
    return write_tree
