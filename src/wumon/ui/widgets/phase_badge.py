"""Phase badge widget showing the detected update phase."""

from __future__ import annotations

import os

from rich.markup import escape
from textual.widgets import Static

from wumon.analysis.phase_detector import Phase, PhaseEvent

_PHASE_SYMBOLS: dict[Phase, str] = {
    Phase.IDLE: "○ IDLE",
    Phase.DOWNLOADING: "↓ DOWNLOADING",
    Phase.INSTALLING: "⚙ INSTALLING",
    Phase.CONFIGURING: "⚒ CONFIGURING",
    Phase.PROCESSING: "◔ PROCESSING",
}

_PHASE_ACCESSIBLE: dict[Phase, str] = {
    Phase.IDLE: "[IDLE] - No update activity",
    Phase.DOWNLOADING: "[DOWNLOADING] - Update payloads are being downloaded",
    Phase.INSTALLING: "[INSTALLING] - Updates are being installed",
    Phase.CONFIGURING: "[CONFIGURING] - Heavy disk activity configuring updates",
    Phase.PROCESSING: "[PROCESSING] - CPU-bound update processing",
}

PHASE_COLORS: dict[Phase, str] = {
    Phase.IDLE: "#718096",
    Phase.DOWNLOADING: "#4299e1",
    Phase.INSTALLING: "#ed8936",
    Phase.CONFIGURING: "#9f7aea",
    Phase.PROCESSING: "#48bb78",
}


def format_duration(seconds: int) -> str:
    """``75`` -> ``'1m 15s'``, ``3700`` -> ``'1h 01m'``."""
    if seconds < 60:
        return f"{seconds}s"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {secs:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes:02d}m"


class PhaseBadge(Static):
    """Displays the current phase with duration and confidence."""

    DEFAULT_CSS = """
    PhaseBadge {
        height: 1;
    }
    """

    def __init__(
        self,
        *,
        name: str | None = None,
        id: str | None = None,
        classes: str | None = None,
        disabled: bool = False,
    ) -> None:
        super().__init__("Waiting for data...", name=name, id=id, classes=classes, disabled=disabled)
        self._phase: Phase | None = None

    @property
    def phase(self) -> Phase | None:
        return self._phase

    def update_event(self, event: PhaseEvent, *, accessible: bool = False) -> None:
        """Update the badge with the latest phase event."""
        no_color = os.environ.get("NO_COLOR") is not None
        phase = event.phase
        self._phase = phase
        suffix = (
            f" ({format_duration(event.current_duration_s)})"
            f"  confidence {event.confidence * 100:.0f}%"
        )

        if accessible:
            text = escape(_PHASE_ACCESSIBLE[phase] + suffix)
        elif no_color:
            text = escape(f"[{phase.value.upper()}]{suffix}")
        else:
            color = PHASE_COLORS[phase]
            text = f"[bold {color}]{_PHASE_SYMBOLS[phase]}[/]{suffix}"

        self.update(text)
