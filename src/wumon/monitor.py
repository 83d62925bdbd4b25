"""Live pipeline: watcher -> parser -> phase detector -> subscribers."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from wumon.analysis.phase_detector import DEFAULT_HISTORY_SIZE, PhaseDetector, PhaseEvent
from wumon.source.base import MetricsSample, ParseError, ParseErrorKind, default_state_path
from wumon.source.parser import read_and_parse
from wumon.source.watcher import Trigger, Watcher

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from wumon.config import WumonConfig

logger = logging.getLogger(__name__)


class LiveMonitor:
    """Feeds every watcher notification through the parser and detector.

    Each notification produces exactly one :class:`PhaseEvent`.  When the
    state file is missing or unreadable the detector is fed the last good
    sample (an all-zero sample before the first one), so the event stream
    stays continuous and durations keep advancing.

    Ingestion is serialized by a lock; subscribers run synchronously on the
    ingesting thread (the watcher thread once started).
    """

    def __init__(
        self,
        path: Path | None = None,
        *,
        poll_interval: float = 2.0,
        stability_window: float = 0.1,
        use_notifier: bool = True,
        history_size: int = DEFAULT_HISTORY_SIZE,
        detector: PhaseDetector | None = None,
        watcher: Watcher | None = None,
    ) -> None:
        self.path = path if path is not None else default_state_path()
        self._detector = detector or PhaseDetector(history_size=history_size)
        self._watcher = watcher or Watcher(
            poll_interval=poll_interval,
            stability_window=stability_window,
            use_notifier=use_notifier,
        )
        self._ingest_lock = threading.Lock()
        self._last_good: MetricsSample | None = None
        self._latest_event: PhaseEvent | None = None
        self._last_error: ParseError | None = None

    @classmethod
    def from_config(cls, config: WumonConfig) -> LiveMonitor:
        return cls(
            config.source.resolved_path(),
            poll_interval=config.watcher.poll_interval,
            stability_window=config.watcher.stability_window,
            use_notifier=config.watcher.use_notifier,
            history_size=config.detector.history_size,
        )

    @property
    def detector(self) -> PhaseDetector:
        return self._detector

    @property
    def last_error(self) -> ParseError | None:
        """Error from the most recent tick, None if it parsed cleanly."""
        return self._last_error

    # -- lifecycle --

    def start(self) -> None:
        logger.info("Monitoring live data at %s", self.path)
        self._watcher.start(self.path, self._on_notification)

    def stop(self) -> None:
        self._watcher.stop()

    def reconfigure(self, config: WumonConfig) -> bool:
        """Apply changed source, watcher and detector settings.

        A running watch is restarted on the new settings; phase state and
        the last good sample are kept.  Returns False when nothing changed.
        """
        path = config.source.resolved_path()
        wanted = (
            path,
            config.watcher.poll_interval,
            config.watcher.stability_window,
            config.watcher.use_notifier,
            config.detector.history_size,
        )
        current = (
            self.path,
            self._watcher.poll_interval,
            self._watcher.stability_window,
            self._watcher.use_notifier,
            self._detector.history_size,
        )
        if wanted == current:
            return False

        was_running = self._watcher.running
        self._watcher.stop()
        with self._ingest_lock:
            if path != self.path:
                self._last_error = None
            self.path = path
            self._watcher.poll_interval = config.watcher.poll_interval
            self._watcher.stability_window = config.watcher.stability_window
            self._watcher.use_notifier = config.watcher.use_notifier
            if config.detector.history_size != self._detector.history_size:
                self._detector.resize_history(config.detector.history_size)
        logger.info("Live settings changed; watching %s", path)
        if was_running:
            self._watcher.start(self.path, self._on_notification)
        return True

    def __enter__(self) -> LiveMonitor:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()

    # -- pipeline --

    def ingest(self) -> PhaseEvent:
        """Read the state file once and run the detector on the result."""
        with self._ingest_lock:
            result = read_and_parse(self.path)
            if isinstance(result, ParseError):
                self._note_failure(result)
                sample = self._last_good or MetricsSample.zero()
            else:
                if self._last_error is not None:
                    logger.info("State file readable again: %s", self.path)
                self._last_error = None
                self._last_good = result
                sample = result

            event = self._detector.detect(sample)
            self._latest_event = event
            return event

    def reset(self) -> None:
        """Reset phase tracking; the last good sample is kept."""
        with self._ingest_lock:
            self._detector.reset()
            self._latest_event = None

    def most_recent(self) -> MetricsSample | None:
        """Last successfully parsed sample, if any."""
        return self._last_good

    def latest_event(self) -> PhaseEvent | None:
        return self._latest_event

    # -- subscribers --

    def subscribe(self, callback: Callable[[PhaseEvent], None]) -> int:
        return self._detector.subscribe(callback)

    def unsubscribe(self, handle: int) -> None:
        self._detector.unsubscribe(handle)

    # ------------------------------------------------------------------

    def _on_notification(self, trigger: Trigger) -> None:
        event = self.ingest()
        logger.debug(
            "%s tick: %s (%.0f%%, %ds)",
            trigger.value, event.phase.value, event.confidence * 100, event.current_duration_s,
        )

    def _note_failure(self, error: ParseError) -> None:
        """Log the first failure of a consecutive run only."""
        if self._last_error is None:
            if error.kind is ParseErrorKind.FILE_MISSING:
                logger.info("No live data yet at %s; waiting for the agent", self.path)
            else:
                logger.warning(
                    "Cannot use live data (%s): %s", error.kind.value, error.detail
                )
        self._last_error = error
