"""Horizontal bar widget for one live metric."""

from __future__ import annotations

from textual.widgets import Static

_GREEN = "#48bb78"
_ORANGE = "#ed8936"
_RED = "#f56565"

_BAR_WIDTH = 30


def bar_color(pct: float) -> str:
    """Green up to 60%, orange up to 80%, red above."""
    if pct > 80:
        return _RED
    if pct > 60:
        return _ORANGE
    return _GREEN


class MetricBar(Static):
    """Label, value and a fill bar scaled against *max_value*.

    *unit* selects formatting: ``"%"`` -> ``42.0%``, ``"MB/s"`` ->
    ``3.25 MB/s``, ``""`` -> ``1.5``.
    """

    DEFAULT_CSS = """
    MetricBar {
        height: 1;
    }
    """

    def __init__(
        self,
        label: str,
        max_value: float,
        unit: str = "%",
        *,
        name: str | None = None,
        id: str | None = None,
        classes: str | None = None,
        disabled: bool = False,
    ) -> None:
        super().__init__("", name=name, id=id, classes=classes, disabled=disabled)
        self.label = label
        self.max_value = max(max_value, 1e-9)
        self.unit = unit
        self._value = 0.0

    @property
    def value(self) -> float:
        return self._value

    def format_value(self, value: float) -> str:
        if self.unit == "MB/s":
            return f"{value:.2f} MB/s"
        if self.unit == "%":
            return f"{value:.1f}%"
        return f"{value:.1f}"

    def update_value(self, value: float) -> None:
        self._value = value
        pct = min(value / self.max_value * 100, 100.0)
        color = bar_color(pct)
        filled = int(_BAR_WIDTH * pct / 100)
        bar = f"[{color}]{'━' * filled}[/{color}][dim]{'─' * (_BAR_WIDTH - filled)}[/dim]"
        self.update(f"{self.label:<8}├{bar}┤ {self.format_value(value)}")
