"""Sparkline widget for recent metric values."""

from __future__ import annotations

from collections import deque

from textual.widgets import Static

_SPARK_CHARS = "▁▂▃▄▅▆▇█"


class Timeline(Static):
    """Horizontal sparkline in a single color, normalized to *max_value*.

    Values above *max_value* are drawn as full blocks.
    """

    DEFAULT_CSS = """
    Timeline {
        height: 1;
    }
    """

    def __init__(
        self,
        max_value: float,
        color: str = "white",
        maxlen: int = 60,
        *,
        name: str | None = None,
        id: str | None = None,
        classes: str | None = None,
        disabled: bool = False,
    ) -> None:
        super().__init__("", name=name, id=id, classes=classes, disabled=disabled)
        self._max_value = max_value if max_value > 0 else 1.0
        self._color = color
        self._history: deque[float] = deque(maxlen=maxlen)

    def add_value(self, value: float) -> None:
        """Add a data point and re-render the sparkline."""
        self._history.append(value)
        self._render_sparkline()

    def _render_sparkline(self) -> None:
        num_chars = len(_SPARK_CHARS)
        chars = []
        for val in self._history:
            ratio = max(0.0, min(1.0, val / self._max_value))
            chars.append(_SPARK_CHARS[int(ratio * (num_chars - 1))])
        self.update(f"[{self._color}]{''.join(chars)}[/{self._color}]" if chars else "")

    @property
    def history(self) -> list[float]:
        """Return a copy of the history values."""
        return list(self._history)
