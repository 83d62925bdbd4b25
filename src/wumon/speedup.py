"""Privileged "speed up updates" action.

Launches an elevated PowerShell that restarts the Windows Update related
services and asks the update agent to scan.  Fire-and-forget: we only
report whether the launch succeeded, not what the elevated shell did.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_SERVICES = ("wuauserv", "bits", "cryptsvc")

_LAUNCH_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True, slots=True)
class SpeedupResult:
    success: bool
    message: str


def build_elevated_command() -> list[str]:
    """PowerShell command line that elevates and runs the service restarts."""
    inner = "; ".join(
        [*(f"Restart-Service -Name {svc} -Force" for svc in _SERVICES), "UsoClient StartScan"]
    )
    return [
        "powershell.exe",
        "-NoProfile",
        "-NonInteractive",
        "-Command",
        (
            "Start-Process powershell.exe -Verb RunAs -WindowStyle Hidden "
            f"-ArgumentList '-NoProfile','-Command','{inner}'"
        ),
    ]


def speed_up_updates(platform: str = sys.platform) -> SpeedupResult:
    """Launch the elevated restart; never raises."""
    if platform != "win32":
        return SpeedupResult(False, "Speeding up updates is only supported on Windows")

    cmd = build_elevated_command()
    logger.info("Launching elevated update service restart")
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=_LAUNCH_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.warning("Elevated launch failed: %s", exc)
        return SpeedupResult(False, f"Could not launch PowerShell: {exc}")

    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip().splitlines()
        reason = detail[-1] if detail else f"exit code {result.returncode}"
        return SpeedupResult(False, f"Elevation was refused or failed: {reason}")

    return SpeedupResult(
        True, "Restarted update services (" + ", ".join(_SERVICES) + ") and triggered a scan"
    )
