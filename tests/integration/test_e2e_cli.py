from __future__ import annotations

import os
from pathlib import Path

from typer.testing import CliRunner

from dofi.cli import app

runner = CliRunner()


def _write_minimal_config(config_dir: Path, dotfiles: Path, base: Path) -> Path:
    config_dir.mkdir(parents=True, exist_ok=True)
    config_path = config_dir / "dofi.toml"
    config_path.write_text(
        f"""
[settings]
dotfiles = "{dotfiles}"
base = "{base}"
prune = true
"""
    )
    return config_path


def test_cli_full_cycle(tmp_path: Path, fake_home: Path) -> None:
    project = tmp_path / "project"
    dotfiles = project / "dotfiles"
    (dotfiles / ".config" / "nvim").mkdir(parents=True)
    (dotfiles / ".config" / "nvim" / "init.lua").write_text("vim.o.number = true\n")
    (dotfiles / ".zshrc").write_text("export EDITOR=nvim\n")
    config_path = _write_minimal_config(project, dotfiles, fake_home)
    args = ["--config", str(config_path)]

    link_result = runner.invoke(app, [*args, "link"])
    assert link_result.exit_code == 0
    assert (fake_home / ".config" / "nvim" / "init.lua").read_text() == "vim.o.number = true\n"
    assert not (fake_home / ".config").is_symlink()

    status_result = runner.invoke(app, [*args, "status"])
    assert status_result.exit_code == 0
    assert "not linked" not in status_result.stdout

    # Deleting a dotfile leaves a stale link that the configured prune removes.
    (dotfiles / ".zshrc").unlink()
    assert os.path.lexists(fake_home / ".zshrc")
    relink_result = runner.invoke(app, [*args, "link"])
    assert relink_result.exit_code == 0
    assert "removed: 1" in relink_result.stdout
    assert not os.path.lexists(fake_home / ".zshrc")

    unlink_result = runner.invoke(app, [*args, "unlink"])
    assert unlink_result.exit_code == 0
    assert not os.path.lexists(fake_home / ".config" / "nvim" / "init.lua")
    assert (dotfiles / ".config" / "nvim" / "init.lua").is_file()


def test_cli_detects_drift_and_relinks(tmp_path: Path, fake_home: Path) -> None:
    project = tmp_path / "project"
    dotfiles = project / "dotfiles"
    dotfiles.mkdir(parents=True)
    (dotfiles / ".vimrc").write_text("set nu\n")
    elsewhere = project / "elsewhere"
    elsewhere.write_text("stale\n")
    config_path = _write_minimal_config(project, dotfiles, fake_home)
    args = ["--config", str(config_path)]

    runner.invoke(app, [*args, "link"])

    # Point the link somewhere else to simulate drift.
    (fake_home / ".vimrc").unlink()
    (fake_home / ".vimrc").symlink_to(elsewhere)

    status_result = runner.invoke(app, [*args, "status"])
    assert status_result.exit_code == 2
    assert "linked_wrong" in status_result.stdout

    relink_result = runner.invoke(app, [*args, "link", "--mode", "atomic"])
    assert relink_result.exit_code == 0
    assert (fake_home / ".vimrc").read_text() == "set nu\n"
    assert elsewhere.read_text() == "stale\n"
