"""Pydantic-validated config with SIGHUP-triggered hot-reload.

TOML loading uses ``tomllib`` (3.11+) with ``tomli`` fallback.
"""

from __future__ import annotations

import logging
import signal
import sys
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from wumon.source.base import ConfigError, default_state_path

if sys.version_info >= (3, 11):
    import tomllib  # type: ignore[import-not-found]
else:
    try:
        import tomllib  # type: ignore[import-not-found]
    except ModuleNotFoundError:
        import tomli as tomllib

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

_CONFIG_DIR = Path("~/.config/wumon").expanduser()
_DEFAULT_CONFIG_PATH = _CONFIG_DIR / "config.toml"


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class SourceConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: Path | None = None

    def resolved_path(self) -> Path:
        """Configured state file, or the agent's default location."""
        return self.path if self.path is not None else default_state_path()


class WatcherConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    poll_interval: float = 2.0
    stability_window: float = 0.1
    use_notifier: bool = True

    @field_validator("poll_interval")
    @classmethod
    def _check_poll_interval(cls, v: float) -> float:
        if v < 0.1 or v > 60:
            msg = "poll_interval must be between 0.1 and 60"
            raise ValueError(msg)
        return v

    @field_validator("stability_window")
    @classmethod
    def _check_stability_window(cls, v: float) -> float:
        if v < 0:
            msg = "stability_window must not be negative"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def _check_window_below_interval(self) -> WatcherConfig:
        if self.stability_window >= self.poll_interval:
            msg = "stability_window must be shorter than poll_interval"
            raise ValueError(msg)
        return self


class DetectorConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    history_size: int = 10

    @field_validator("history_size")
    @classmethod
    def _check_history_size(cls, v: int) -> int:
        if v < 1:
            msg = "history_size must be at least 1"
            raise ValueError(msg)
        return v


class DisplayConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    refresh_rate: float = 1.0
    sparkline_length: int = 60
    accessible: bool = False

    @field_validator("refresh_rate")
    @classmethod
    def _check_refresh_rate(cls, v: float) -> float:
        if v < 0.25 or v > 10:
            msg = "refresh_rate must be between 0.25 and 10"
            raise ValueError(msg)
        return v


class WumonConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    source: SourceConfig = SourceConfig()
    watcher: WatcherConfig = WatcherConfig()
    detector: DetectorConfig = DetectorConfig()
    display: DisplayConfig = DisplayConfig()


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_config(path: Path | None = None) -> WumonConfig:
    """Load config from *path*, default locations, or built-in defaults.

    Resolution order:
    1. Explicit *path* (error if missing or invalid).
    2. ``~/.config/wumon/config.toml`` (skip silently if absent).
    3. Built-in defaults.

    Raises :class:`ConfigError` on parse/validation failure.
    """
    if path is not None:
        return _load_from_path(path)

    if _DEFAULT_CONFIG_PATH.is_file():
        return _load_from_path(_DEFAULT_CONFIG_PATH)

    return WumonConfig()


def _load_from_path(path: Path) -> WumonConfig:
    """Parse a TOML file and return a validated config."""
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc

    try:
        data = tomllib.loads(raw.decode())
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc

    try:
        return WumonConfig(**data)
    except Exception as exc:
        raise ConfigError(f"Config validation error in {path}: {exc}") from exc


def apply_overrides(
    config: WumonConfig, overrides: Mapping[str, Mapping[str, Any]]
) -> WumonConfig:
    """Return *config* with per-section *overrides* applied and re-validated.

    ``{"watcher": {"poll_interval": 5.0}}`` replaces one field and keeps the
    rest of the section.  Raises :class:`ConfigError` if the result is invalid.
    """
    if not overrides:
        return config
    data = config.model_dump()
    for section, values in overrides.items():
        if section not in data:
            raise ConfigError(f"Unknown config section {section!r}")
        data[section].update(values)
    try:
        return WumonConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid setting: {exc}") from exc


# ---------------------------------------------------------------------------
# ConfigHolder: runtime config with SIGHUP reload
# ---------------------------------------------------------------------------


class ConfigHolder:
    """Thread-safe config container with signal-triggered reload.

    Usage::

        holder = ConfigHolder(path, overrides={"watcher": {"poll_interval": 1.0}})
        holder.install_signal_handler()

        # In event loop:
        if holder.check_reload():
            cfg = holder.config
    """

    def __init__(
        self,
        path: Path | None = None,
        overrides: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> None:
        self._path = path
        self._overrides = dict(overrides or {})
        self._config = self._load()
        self._reload_flag = threading.Event()

    @property
    def config(self) -> WumonConfig:
        return self._config

    def reload(self) -> bool:
        """Reload config from disk and re-apply overrides.  On failure, keep the old config."""
        try:
            self._config = self._load()
        except ConfigError:
            logger.warning("Config reload failed; keeping previous config", exc_info=True)
            return False
        logger.info("Config reloaded successfully")
        return True

    def install_signal_handler(self) -> None:
        """Register SIGHUP to set the reload flag (Unix only)."""
        if not hasattr(signal, "SIGHUP"):
            return
        signal.signal(signal.SIGHUP, self._on_sighup)

    def check_reload(self) -> bool:
        """Poll the reload flag; returns True if a new config was loaded."""
        if self._reload_flag.is_set():
            self._reload_flag.clear()
            return self.reload()
        return False

    # ------------------------------------------------------------------

    def _load(self) -> WumonConfig:
        """File (or defaults) with the command-line overrides on top."""
        return apply_overrides(load_config(self._path), self._overrides)

    def _on_sighup(self, signum: int, frame: object) -> None:
        self._reload_flag.set()
