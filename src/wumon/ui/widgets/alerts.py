"""Anomaly list and VPN warning widgets."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.markup import escape
from textual.widgets import Static

from wumon.source.base import Severity

if TYPE_CHECKING:
    from collections.abc import Sequence

    from wumon.source.base import Anomaly, VpnStatus

_SEVERITY_STYLE: dict[Severity, str] = {
    Severity.INFO: "cyan",
    Severity.WARN: "bold yellow",
    Severity.CRITICAL: "bold red",
}


class AnomalyList(Static):
    """Lists the anomalies reported in the latest sample."""

    DEFAULT_CSS = """
    AnomalyList {
        height: auto;
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
        super().__init__("", name=name, id=id, classes=classes, disabled=disabled)
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def update_anomalies(self, anomalies: Sequence[Anomaly]) -> None:
        self._count = len(anomalies)
        if not anomalies:
            self.update("[dim]No anomalies detected[/dim]")
            return
        lines = []
        for a in anomalies:
            style = _SEVERITY_STYLE[a.severity]
            lines.append(
                f"[{style}]{escape(a.metric)} anomaly ({a.severity.value}):[/{style}] "
                f"{escape(a.message)}"
            )
        self.update("\n".join(lines))


class VpnWarning(Static):
    """Shown only while the agent reports an active VPN."""

    DEFAULT_CSS = """
    VpnWarning {
        height: auto;
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
        super().__init__("", name=name, id=id, classes=classes, disabled=disabled)
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def update_vpn(self, vpn: VpnStatus | None) -> None:
        if vpn is None or not vpn.active:
            self._active = False
            self.display = False
            self.update("")
            return
        self._active = True
        self.display = True
        adapters = escape(vpn.adapters or "Unknown")
        message = escape(vpn.warning or "VPN connection detected")
        self.update(f"[bold yellow]! VPN active[/bold yellow] ({adapters}): {message}")
