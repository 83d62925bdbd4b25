"""Live state source: data types, parser and file watcher."""

from __future__ import annotations

from wumon.source.base import (
    Anomaly,
    ConfigError,
    HistoryError,
    MetricsSample,
    ParseError,
    ParseErrorKind,
    Severity,
    VpnStatus,
    WatcherInitError,
    WumonError,
    default_state_path,
)
from wumon.source.parser import read_and_parse
from wumon.source.watcher import Trigger, Watcher

__all__ = [
    "Anomaly",
    "ConfigError",
    "HistoryError",
    "MetricsSample",
    "ParseError",
    "ParseErrorKind",
    "Severity",
    "Trigger",
    "VpnStatus",
    "Watcher",
    "WatcherInitError",
    "WumonError",
    "default_state_path",
    "read_and_parse",
]
