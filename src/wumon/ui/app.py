"""Main Textual application for wumon."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import VerticalScroll
from textual.widgets import Footer, Header, Static

from wumon.config import ConfigHolder, WumonConfig
from wumon.monitor import LiveMonitor
from wumon.speedup import SpeedupResult, speed_up_updates
from wumon.ui.widgets.alerts import AnomalyList, VpnWarning
from wumon.ui.widgets.metric_bar import MetricBar
from wumon.ui.widgets.phase_badge import PhaseBadge
from wumon.ui.widgets.phase_history import PhaseHistory
from wumon.ui.widgets.timeline import Timeline

if TYPE_CHECKING:
    from collections.abc import Callable

    from textual.timer import Timer

    from wumon.source.base import MetricsSample

logger = logging.getLogger(__name__)

# (sample attribute, label, bar maximum, unit, sparkline color)
_METRICS: tuple[tuple[str, str, float, str, str], ...] = (
    ("cpu", "CPU", 100.0, "%", "#48bb78"),
    ("mem", "Memory", 100.0, "%", "#4299e1"),
    ("disk_q", "Disk Q", 10.0, "", "#9f7aea"),
    ("net_total", "Network", 100.0, "MB/s", "#ed8936"),
)


def format_uptime(seconds: float) -> str:
    """Format elapsed seconds as ``HH:MM:SS``."""
    total = int(seconds)
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class WumonApp(App[None]):
    """Live dashboard for Windows Update activity."""

    CSS = """
    #dashboard {
        padding: 0 1;
    }
    .section-title {
        text-style: bold;
        margin: 1 0 0 0;
    }
    #clock {
        color: $text-muted;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("r", "reset_phase", "Reset phase", show=True),
        Binding("u", "speed_up", "Speed up updates", show=True),
        Binding("question_mark", "show_help", "Help", show=True),
    ]

    def __init__(
        self,
        monitor: LiveMonitor | None = None,
        config_holder: ConfigHolder | None = None,
        accessible: bool | None = None,
        speedup: Callable[[], SpeedupResult] = speed_up_updates,
    ) -> None:
        super().__init__()
        self._config_holder = config_holder or ConfigHolder()
        self._monitor = monitor or LiveMonitor.from_config(self.config)
        self._accessible = (
            accessible if accessible is not None else self.config.display.accessible
        )
        self._speedup = speedup
        self._speedup_running = False
        self._session_start = time.monotonic()
        self._last_sample: MetricsSample | None = None
        self._refresh_timer: Timer | None = None

    @property
    def config(self) -> WumonConfig:
        return self._config_holder.config

    @property
    def monitor(self) -> LiveMonitor:
        return self._monitor

    @property
    def accessible(self) -> bool:
        return self._accessible

    def compose(self) -> ComposeResult:
        yield Header()
        spark_len = self.config.display.sparkline_length
        with VerticalScroll(id="dashboard"):
            yield Static("Current phase", classes="section-title")
            yield PhaseBadge(id="phase")
            yield Static("", id="clock")
            yield Static("Live metrics", classes="section-title")
            for key, label, max_value, unit, color in _METRICS:
                yield MetricBar(label, max_value, unit, id=f"bar-{key}")
                yield Timeline(max_value, color, maxlen=spark_len, id=f"spark-{key}")
            yield Static("Anomalies", classes="section-title")
            yield AnomalyList(id="anomalies")
            yield VpnWarning(id="vpn")
            yield Static("Phase history", classes="section-title")
            yield PhaseHistory(id="history")
        yield Footer()

    async def on_mount(self) -> None:
        """Start the live monitor and the refresh timer."""
        self.title = "wumon"
        self.sub_title = "Windows Update Monitor"
        self.query_one(VpnWarning).display = False

        await asyncio.to_thread(self._monitor.start)
        self._refresh_view()
        self._start_timer()

    def _start_timer(self) -> None:
        if self._refresh_timer is not None:
            self._refresh_timer.stop()
        self._refresh_timer = self.set_interval(
            self.config.display.refresh_rate, self._refresh_view
        )

    def _refresh_view(self) -> None:
        """Render the latest event and sample held by the monitor."""
        if self._config_holder.check_reload():
            self._start_timer()
            self.run_worker(
                asyncio.to_thread(self._monitor.reconfigure, self.config),
                group="reconfigure",
                exclusive=True,
            )

        uptime = format_uptime(time.monotonic() - self._session_start)
        self.query_one("#clock", Static).update(
            f"{time.strftime('%H:%M:%S')}  session {uptime}"
        )

        event = self._monitor.latest_event()
        if event is not None:
            self.query_one(PhaseBadge).update_event(event, accessible=self._accessible)
            self.query_one(PhaseHistory).update_history(event.history)

        sample = self._monitor.most_recent()
        if sample is None or sample is self._last_sample:
            return
        self._last_sample = sample
        for key, *_ in _METRICS:
            value = float(getattr(sample, key))
            self.query_one(f"#bar-{key}", MetricBar).update_value(value)
            self.query_one(f"#spark-{key}", Timeline).add_value(value)
        self.query_one(AnomalyList).update_anomalies(sample.anomalies)
        self.query_one(VpnWarning).update_vpn(sample.vpn)

    def action_reset_phase(self) -> None:
        """Forget phase history and restart from Idle."""
        self._monitor.reset()
        self.query_one(PhaseHistory).update_history(())
        self.sub_title = "Phase tracking reset"

    async def action_speed_up(self) -> None:
        """Launch the elevated update service restart."""
        if self._speedup_running:
            return
        self._speedup_running = True
        self.sub_title = "Running Windows Update optimization commands..."
        try:
            result = await asyncio.to_thread(self._speedup)
        finally:
            self._speedup_running = False
        if result.success:
            self.sub_title = f"✓ {result.message}"
            self.notify(result.message, title="Speed up updates")
        else:
            self.sub_title = f"✗ {result.message}"
            self.notify(result.message, title="Speed up updates", severity="error")

    def action_show_help(self) -> None:
        """Show help info in the subtitle."""
        self.sub_title = "[q]Quit [r]Reset phase [u]Speed up updates [?]Help"

    async def on_unmount(self) -> None:
        """Stop the watcher thread."""
        try:
            await asyncio.to_thread(self._monitor.stop)
        except Exception:
            logger.debug("Monitor shutdown error", exc_info=True)
