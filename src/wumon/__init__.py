"""wumon: live phase tracking for Windows Update activity."""

from __future__ import annotations

__version__ = "0.1.0"
