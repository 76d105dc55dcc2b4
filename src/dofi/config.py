"""TOML configuration loading for dofi."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .models import Strictness
from .scanner import DEFAULT_MAX_DEPTH

DEFAULT_CONFIG_FILENAME = "dofi.toml"
DEFAULT_IGNORE = (".git", ".gitignore", ".gitmodules", "/README*", "/LICENSE*", f"/{DEFAULT_CONFIG_FILENAME}")


class ConfigError(RuntimeError):
    """Raised when a configuration file cannot be parsed or validated."""


def _expand_path(raw: str | os.PathLike[str] | Path, *, base_dir: Path) -> Path:
    """Return an absolute ``Path`` by expanding env vars and user segments."""

    text = str(raw)
    expanded = Path(os.path.expandvars(text)).expanduser()
    if expanded.is_absolute():
        return expanded.resolve(strict=False)
    return (base_dir / expanded).resolve(strict=False)


def default_config_path() -> Path:
    """Return ``$XDG_CONFIG_HOME/dofi/dofi.toml`` (``~/.config`` when unset)."""

    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".config"
    return base / "dofi" / DEFAULT_CONFIG_FILENAME


class Settings(BaseModel):
    """Options that drive a reconciliation run."""

    model_config = ConfigDict(frozen=True)

    dotfiles: Path | None = None
    base: Path = Field(default_factory=Path.home)
    mode: Strictness = Strictness.BEST_EFFORT
    prune: bool = False
    relative_links: bool = True
    ignore: tuple[str, ...] = DEFAULT_IGNORE
    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=1)

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path) -> "Settings":
        values: dict[str, Any] = dict(raw)
        for key in ("dotfiles", "base"):
            if values.get(key) is not None:
                values[key] = _expand_path(values[key], base_dir=base_dir)
        if "ignore" in values:
            values["ignore"] = tuple(str(pattern) for pattern in values["ignore"])

        unknown = sorted(set(values) - set(cls.model_fields))
        if unknown:
            raise ConfigError(f"Unknown setting(s): {', '.join(unknown)}")

        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigError(f"Invalid [settings]: {exc}") from exc


class Config(BaseModel):
    """Fully parsed configuration."""

    model_config = ConfigDict(frozen=True)

    config_path: Path | None = None
    settings: Settings = Field(default_factory=Settings)

    def with_overrides(self, **overrides: Any) -> "Config":
        """Return a copy with every non-``None`` override applied to the settings."""

        updates = {key: value for key, value in overrides.items() if value is not None}
        for key in ("dotfiles", "base"):
            if key in updates:
                updates[key] = _expand_path(updates[key], base_dir=Path.cwd())
        if not updates:
            return self
        try:
            settings = Settings(**{**self.settings.model_dump(), **updates})
        except ValidationError as exc:
            raise ConfigError(f"Invalid option: {exc}") from exc
        return self.model_copy(update={"settings": settings})


def load_config(path: Path | None = None) -> Config:
    """Load and validate a configuration file.

    Args:
        path: Optional path to the TOML file or the directory holding it.
            Defaults to ``$XDG_CONFIG_HOME/dofi/dofi.toml``; when that file
            does not exist the built-in defaults are used.
    """

    config_path = _resolve_config_path(path)
    if config_path is None:
        return Config()

    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Configuration file '{config_path}' is not valid TOML: {exc}") from exc

    settings_section = data.get("settings") or {}
    if not isinstance(settings_section, Mapping):
        raise ConfigError("[settings] must be a table")

    settings = Settings.from_raw(settings_section, base_dir=config_path.parent)
    return Config(config_path=config_path, settings=settings)


def _resolve_config_path(path: Path | None) -> Path | None:
    if path is None:
        candidate = default_config_path()
        return candidate.resolve(strict=False) if candidate.is_file() else None

    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' does not exist")
    if path.is_dir():
        candidate = path / DEFAULT_CONFIG_FILENAME
        if not candidate.exists():
            raise ConfigError(f"Expected to find '{DEFAULT_CONFIG_FILENAME}' inside '{path}', but none was located")
        path = candidate

    return path.resolve(strict=False)
