"""File watcher for the live state document.

Combines ``watchdog`` filesystem notifications (debounced until the file
stops changing) with an unconditional periodic poll, so a lost or coalesced
filesystem event can delay a notification by at most one poll interval.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from wumon.source.base import WatcherInitError

if TYPE_CHECKING:
    from collections.abc import Callable

    from watchdog.observers.api import BaseObserver

logger = logging.getLogger(__name__)

# Our own reads produce "opened"/"closed_no_write" events on inotify; only
# these indicate the agent touched the file.
_WRITE_EVENTS = frozenset({"created", "modified", "moved", "deleted", "closed"})

_OBSERVER_JOIN_TIMEOUT = 2.0


class Trigger(Enum):
    """Why a notification was delivered."""

    INITIAL = "initial"
    CHANGE = "change"
    POLL = "poll"


def _file_signature(path: Path) -> tuple[int, int] | None:
    """(size, mtime_ns) of *path*, or None if it cannot be stat'ed."""
    try:
        st = path.stat()
    except OSError:
        return None
    return st.st_size, st.st_mtime_ns


def _normalize(path: str | bytes) -> str:
    return os.path.normcase(os.path.abspath(os.fsdecode(path)))


class _StateFileHandler(FileSystemEventHandler):
    """Forwards write events for one file name to a wake-up callback."""

    def __init__(self, target: Path, wake: Callable[[], None]) -> None:
        super().__init__()
        self._target = _normalize(str(target))
        self._wake = wake

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _WRITE_EVENTS:
            return
        candidates = [event.src_path, getattr(event, "dest_path", "")]
        if any(p and _normalize(p) == self._target for p in candidates):
            self._wake()


class Watcher:
    """Delivers notifications whenever the state file may have changed.

    Usage::

        watcher = Watcher()
        watcher.start(path, sink)   # sink(trigger) runs on the watcher thread
        ...
        watcher.stop()

    One immediate ``INITIAL`` notification is delivered on start, ``CHANGE``
    after a filesystem event once size and mtime have been stable for
    *stability_window*, and ``POLL`` every *poll_interval* regardless.
    """

    def __init__(
        self,
        poll_interval: float = 2.0,
        stability_window: float = 0.1,
        use_notifier: bool = True,
        observer_factory: Callable[[], BaseObserver] = Observer,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if poll_interval <= 0:
            msg = "poll_interval must be positive"
            raise ValueError(msg)
        self.poll_interval = poll_interval
        self.stability_window = stability_window
        self.use_notifier = use_notifier
        self._observer_factory = observer_factory
        self._clock = clock

        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._observer: BaseObserver | None = None
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._notifier_warned = False

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    @property
    def notifier_active(self) -> bool:
        """False when running poll-only."""
        return self._observer is not None

    # -- lifecycle --

    def start(self, path: Path, sink: Callable[[Trigger], None]) -> None:
        """Start watching *path*; an already running watch is stopped first."""
        self.stop()

        stop_event = threading.Event()
        wake_event = threading.Event()

        observer: BaseObserver | None = None
        if self.use_notifier:
            try:
                observer = self._start_notifier(path, wake_event.set)
            except WatcherInitError as exc:
                if not self._notifier_warned:
                    logger.warning("%s; continuing in poll-only mode", exc)
                    self._notifier_warned = True

        thread = threading.Thread(
            target=self._run,
            args=(path, sink, stop_event, wake_event),
            daemon=True,
            name="wumon-watcher",
        )
        with self._lock:
            self._stop_event = stop_event
            self._wake_event = wake_event
            self._observer = observer
            self._thread = thread
        thread.start()
        logger.debug(
            "Watching %s (poll=%.2fs, stability=%.3fs, notifier=%s)",
            path, self.poll_interval, self.stability_window, observer is not None,
        )

    def stop(self) -> None:
        """Stop notifications and release the observer before returning.

        When called from inside the sink the current notification finishes
        but no further one is delivered.
        """
        with self._lock:
            thread, observer = self._thread, self._observer
            self._thread = None
            self._observer = None
            self._stop_event.set()
            self._wake_event.set()

        if observer is not None:
            observer.stop()
            if threading.current_thread() is not observer:
                observer.join(timeout=_OBSERVER_JOIN_TIMEOUT)
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    # ------------------------------------------------------------------

    def _start_notifier(self, path: Path, wake: Callable[[], None]) -> BaseObserver:
        try:
            observer = self._observer_factory()
            observer.schedule(
                _StateFileHandler(path, wake), str(path.parent), recursive=False
            )
            observer.start()
        except Exception as exc:
            raise WatcherInitError(
                f"Filesystem notifier unavailable for {path.parent}: {exc}"
            ) from exc
        return observer

    def _retry_notifier(self, path: Path, stop: threading.Event, wake: threading.Event) -> None:
        """Attach the notifier once the state directory exists.

        The agent creates the directory on its first write, usually after
        we started, so poll-only mode is not permanent.
        """
        if not path.parent.is_dir():
            return
        try:
            observer = self._start_notifier(path, wake.set)
        except WatcherInitError as exc:
            logger.debug("%s; still poll-only", exc)
            return
        with self._lock:
            if stop.is_set():
                stale: BaseObserver | None = observer
            else:
                stale = None
                self._observer = observer
        if stale is not None:
            stale.stop()
            stale.join(timeout=_OBSERVER_JOIN_TIMEOUT)
            return
        logger.info("Filesystem notifier attached to %s", path.parent)

    def _run(
        self,
        path: Path,
        sink: Callable[[Trigger], None],
        stop: threading.Event,
        wake: threading.Event,
    ) -> None:
        self._emit(sink, Trigger.INITIAL, stop)
        next_poll = self._clock() + self.poll_interval

        while not stop.is_set():
            timeout = max(0.0, next_poll - self._clock())
            if wake.wait(timeout) and not stop.is_set():
                wake.clear()
                if self._settle(path, stop, wake):
                    self._emit(sink, Trigger.CHANGE, stop)

            now = self._clock()
            if now >= next_poll and not stop.is_set():
                self._emit(sink, Trigger.POLL, stop)
                if self.use_notifier and self._observer is None:
                    self._retry_notifier(path, stop, wake)
                next_poll += self.poll_interval
                if next_poll <= now:
                    # A slow sink put us more than a full interval behind
                    next_poll = now + self.poll_interval

    def _settle(self, path: Path, stop: threading.Event, wake: threading.Event) -> bool:
        """Wait until size and mtime stop changing; False if stopped meanwhile.

        Bounded by one poll interval so a file that never settles is still
        reported.
        """
        deadline = self._clock() + self.poll_interval
        previous = _file_signature(path)
        while not stop.wait(self.stability_window):
            wake.clear()
            current = _file_signature(path)
            if current == previous or self._clock() >= deadline:
                return True
            previous = current
        return False

    def _emit(
        self, sink: Callable[[Trigger], None], trigger: Trigger, stop: threading.Event
    ) -> None:
        if stop.is_set():
            return
        try:
            sink(trigger)
        except Exception:
            logger.warning("Watcher sink failed on %s notification", trigger.value, exc_info=True)
