"""Core data types and exception hierarchy for the live state source."""

from __future__ import annotations

import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

STATE_DIR_NAME = "WinUpdateMonState"
STATE_FILE_NAME = "live.json"

# --- Exceptions ---


class WumonError(Exception):
    """Base exception for all wumon errors."""


class ConfigError(WumonError):
    """Configuration loading or validation failure."""


class WatcherInitError(WumonError):
    """Filesystem notifier could not be started (poll-only mode)."""


class HistoryError(WumonError):
    """Historical CSV could not be read."""


# --- Enums ---


class Severity(Enum):
    INFO = "Info"
    WARN = "Warn"
    CRITICAL = "Critical"

    @classmethod
    def parse(cls, raw: object) -> Severity:
        """Case-insensitive lookup; anything unrecognised is INFO."""
        if isinstance(raw, str):
            wanted = raw.strip().lower()
            for member in cls:
                if member.value.lower() == wanted:
                    return member
            if wanted in ("warning", "warn"):
                return cls.WARN
        return cls.INFO


class ParseErrorKind(Enum):
    FILE_MISSING = "FileMissing"
    READ_ERROR = "ReadError"
    DECODE_ERROR = "DecodeError"


# --- Data Types (frozen, slotted) ---


@dataclass(frozen=True, slots=True)
class Anomaly:
    """A single anomaly reported by the monitoring agent."""

    metric: str
    severity: Severity
    message: str


@dataclass(frozen=True, slots=True)
class VpnStatus:
    """VPN adapter state as seen by the agent."""

    active: bool
    adapters: str | None = None
    warning: str | None = None


@dataclass(frozen=True, slots=True)
class MetricsSample:
    """Normalized snapshot of one ``live.json`` document.

    Numeric fields are always clamped: ``cpu`` and ``mem`` in [0, 100],
    ``disk_q`` and ``net_total`` >= 0.
    """

    timestamp: datetime
    cpu: float = 0.0
    mem: float = 0.0
    disk_q: float = 0.0
    net_total: float = 0.0  # MB/s
    phase_hint: str | None = None
    anomalies: Sequence[Anomaly] = field(default_factory=tuple)
    vpn: VpnStatus | None = None

    @classmethod
    def zero(cls, timestamp: datetime | None = None) -> MetricsSample:
        """All-zero sample used before any good document has been read."""
        return cls(timestamp=timestamp or datetime.now(timezone.utc))


@dataclass(frozen=True, slots=True)
class ParseError:
    """Returned by the parser instead of a sample when ingestion fails."""

    kind: ParseErrorKind
    detail: str = ""


def default_state_path() -> Path:
    """``<tempdir>/WinUpdateMonState/live.json`` for the current platform."""
    return Path(tempfile.gettempdir()) / STATE_DIR_NAME / STATE_FILE_NAME
