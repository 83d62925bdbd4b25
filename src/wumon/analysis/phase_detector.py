"""Rule-based phase detector for Windows Update activity."""

from __future__ import annotations

import itertools
import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from wumon.source.base import MetricsSample

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 10


class Phase(Enum):
    IDLE = "Idle"
    DOWNLOADING = "Downloading"
    INSTALLING = "Installing"
    CONFIGURING = "Configuring"
    PROCESSING = "Processing"


@dataclass(frozen=True, slots=True)
class PastPhase:
    """A completed phase."""

    phase: Phase
    duration_s: int
    ended_at: float  # time.time()


@dataclass(frozen=True, slots=True)
class PhaseEvent:
    """Emitted for every sample fed to :meth:`PhaseDetector.detect`."""

    phase: Phase
    confidence: float  # fixed per rule, not a probability
    current_duration_s: int
    history: tuple[PastPhase, ...] = ()


def classify(sample: MetricsSample) -> tuple[Phase, float]:
    """Map one sample to ``(phase, confidence)``.

    Rules are evaluated top to bottom and the first match wins.  All
    comparisons are strict, so a value sitting exactly on a threshold
    falls through to the next rule.
    """
    cpu, disk_q, net = sample.cpu, sample.disk_q, sample.net_total

    if net > 5 and cpu < 30:
        return Phase.DOWNLOADING, 0.90
    if cpu > 40 and disk_q > 3:
        return Phase.INSTALLING, 0.85
    if disk_q > 5 and cpu > 30 and net < 1:
        return Phase.CONFIGURING, 0.80
    if cpu > 20 and net < 1:
        return Phase.PROCESSING, 0.70
    if cpu < 10 and net < 1 and disk_q < 2:
        return Phase.IDLE, 0.95
    return Phase.IDLE, 0.50


def _round_seconds(seconds: float) -> int:
    """Round half up, never negative."""
    return max(0, math.floor(seconds + 0.5))


class PhaseDetector:
    """Turns a stream of samples into a stream of :class:`PhaseEvent`.

    Algorithm:
    1. Classify each sample with the fixed rule table (:func:`classify`).
    2. Same phase as before -> report the time spent in it so far.
    3. Different phase -> close the current one into ``history`` (bounded
       to *history_size*, newest last), start the new one at duration 0.

    There is no hysteresis: a single sample is enough to switch phase.
    Durations come from *clock* (monotonic); ``ended_at`` stamps come from
    *wall_clock* and never go backwards.

    ``detect`` and ``reset`` must be called from one thread at a time;
    ``subscribe``/``unsubscribe`` may be called from anywhere.
    """

    def __init__(
        self,
        history_size: int = DEFAULT_HISTORY_SIZE,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        if history_size < 1:
            msg = "history_size must be at least 1"
            raise ValueError(msg)
        self.history_size = history_size
        self._clock = clock
        self._wall_clock = wall_clock

        self._sub_lock = threading.Lock()
        self._subscribers: dict[int, Callable[[PhaseEvent], None]] = {}
        self._handles = itertools.count(1)

        self._current_phase = Phase.IDLE
        self._phase_start = self._clock()
        self._last_duration = 0
        self._history: deque[PastPhase] = deque(maxlen=history_size)

    @property
    def current_phase(self) -> Phase:
        return self._current_phase

    @property
    def history(self) -> tuple[PastPhase, ...]:
        return tuple(self._history)

    def detect(self, sample: MetricsSample) -> PhaseEvent:
        """Classify *sample*, update phase state and notify subscribers."""
        now = self._clock()
        phase, confidence = classify(sample)

        if phase != self._current_phase:
            ended_at = self._wall_clock()
            if self._history:
                ended_at = max(ended_at, self._history[-1].ended_at)
            self._history.append(
                PastPhase(
                    phase=self._current_phase,
                    duration_s=_round_seconds(now - self._phase_start),
                    ended_at=ended_at,
                )
            )
            logger.debug(
                "Phase %s -> %s after %.1fs",
                self._current_phase.value, phase.value, now - self._phase_start,
            )
            self._current_phase = phase
            self._phase_start = now
            self._last_duration = 0
        else:
            self._last_duration = max(
                self._last_duration, _round_seconds(now - self._phase_start)
            )

        event = PhaseEvent(
            phase=phase,
            confidence=confidence,
            current_duration_s=self._last_duration,
            history=tuple(self._history),
        )
        self._dispatch(event)
        return event

    def reset(self) -> None:
        """Return to ``IDLE`` starting now, with empty history.

        Subscribers are kept.
        """
        self._current_phase = Phase.IDLE
        self._phase_start = self._clock()
        self._last_duration = 0
        self._history.clear()

    def resize_history(self, history_size: int) -> None:
        """Change the history bound, keeping the newest entries."""
        if history_size < 1:
            msg = "history_size must be at least 1"
            raise ValueError(msg)
        self.history_size = history_size
        self._history = deque(self._history, maxlen=history_size)

    # -- subscribers --

    def subscribe(self, callback: Callable[[PhaseEvent], None]) -> int:
        """Register *callback* for every future event; returns a handle."""
        with self._sub_lock:
            handle = next(self._handles)
            self._subscribers[handle] = callback
        return handle

    def unsubscribe(self, handle: int) -> None:
        """Remove a subscriber.  Unknown handles are ignored."""
        with self._sub_lock:
            self._subscribers.pop(handle, None)

    def _dispatch(self, event: PhaseEvent) -> None:
        with self._sub_lock:
            callbacks = list(self._subscribers.values())
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.warning("Phase subscriber %r failed", callback, exc_info=True)
