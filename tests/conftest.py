"""Shared test fixtures for wumon tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest

from tests.fixtures.samples import FakeClock, write_state


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def wall_clock() -> FakeClock:
    return FakeClock(start=1_700_000_000.0)


@pytest.fixture()
def state_path(tmp_path: Path) -> Path:
    """Location of live.json inside a per-test state directory (not created)."""
    return tmp_path / "WinUpdateMonState" / "live.json"


@pytest.fixture()
def write_live(state_path: Path) -> Callable[..., Path]:
    """Write a live.json document (dict or raw text) to ``state_path``."""

    def _write(doc: dict[str, Any] | str) -> Path:
        return write_state(state_path, doc)

    return _write
