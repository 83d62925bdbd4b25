"""Completed-phase history widget."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from textual.widgets import Static

from wumon.ui.widgets.phase_badge import PHASE_COLORS, format_duration

if TYPE_CHECKING:
    from collections.abc import Sequence

    from wumon.analysis.phase_detector import PastPhase


class PhaseHistory(Static):
    """Completed phases, newest first."""

    DEFAULT_CSS = """
    PhaseHistory {
        height: auto;
    }
    """

    def update_history(self, history: Sequence[PastPhase]) -> None:
        if not history:
            self.update("[dim]No completed phases yet[/dim]")
            return
        lines = []
        for past in reversed(history):
            ended = time.strftime("%H:%M:%S", time.localtime(past.ended_at))
            color = PHASE_COLORS[past.phase]
            lines.append(
                f"{ended}  [{color}]{past.phase.value:<12}[/{color}] "
                f"{format_duration(past.duration_s)}"
            )
        self.update("\n".join(lines))
