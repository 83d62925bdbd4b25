"""Historical CSV reader for logs written by the monitoring agent."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path

from wumon.source.base import HistoryError

logger = logging.getLogger(__name__)

_MAX_BYTES = 50 * 1024 * 1024


@dataclass(frozen=True, slots=True)
class HistoryResult:
    """Rows keyed by header name; *error* is set when nothing could be read."""

    rows: tuple[dict[str, str], ...] = field(default_factory=tuple)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def read_historical_csv(directory: Path, file_name: str) -> HistoryResult:
    """Read ``directory / file_name`` and return its rows.

    Never raises; failures come back as ``HistoryResult(error=...)``.  A
    file with only a header (or nothing) yields no rows and no error.
    """
    try:
        text = _read_text(directory, file_name)
    except HistoryError as exc:
        logger.debug("Historical read failed: %s", exc)
        return HistoryResult(error=str(exc))

    return HistoryResult(rows=parse_csv(text))


def parse_csv(text: str) -> tuple[dict[str, str], ...]:
    """Parse CSV text into header-keyed rows with trimmed values.

    Cells missing at the end of a short row become empty strings; extra
    cells beyond the header are dropped.
    """
    lines = text.strip().splitlines()
    if len(lines) < 2:
        return ()

    reader = csv.reader(lines)
    headers = [h.strip() for h in next(reader)]
    rows: list[dict[str, str]] = []
    for values in reader:
        if not values:
            continue
        rows.append(
            {
                header: values[i].strip() if i < len(values) else ""
                for i, header in enumerate(headers)
            }
        )
    return tuple(rows)


def _read_text(directory: Path, file_name: str) -> str:
    if not file_name or Path(file_name).name != file_name:
        raise HistoryError(f"Invalid file name {file_name!r}")

    path = Path(directory) / file_name
    try:
        size = path.stat().st_size
        if size > _MAX_BYTES:
            raise HistoryError(f"{path} is too large ({size} bytes)")
        return path.read_text(encoding="utf-8-sig")
    except FileNotFoundError as exc:
        raise HistoryError(f"{path} not found") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise HistoryError(f"Cannot read {path}: {exc}") from exc
