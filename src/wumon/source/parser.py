"""Parser/normalizer for the agent's ``live.json`` state document."""

from __future__ import annotations

import json
import logging
import math
import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from wumon.sanitize import (
    ADAPTERS_MAX_LENGTH,
    MESSAGE_MAX_LENGTH,
    METRIC_MAX_LENGTH,
    PHASE_MAX_LENGTH,
    sanitize_text,
)
from wumon.source.base import (
    Anomaly,
    MetricsSample,
    ParseError,
    ParseErrorKind,
    Severity,
    VpnStatus,
)

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_MAX_READ_BYTES = 1024 * 1024  # live.json is a few hundred bytes; cap pathological files

# PowerShell emits 7 fractional digits; before 3.11 fromisoformat takes exactly 3 or 6
_FRACTION_RE = re.compile(r"(:\d{2})\.(\d+)")


def read_and_parse(path: Path) -> MetricsSample | ParseError:
    """Read *path* and return a normalized sample, or a :class:`ParseError`.

    Never raises for I/O or format problems.
    """
    try:
        with path.open("rb") as f:
            raw = f.read(_MAX_READ_BYTES + 1)
    except FileNotFoundError:
        return ParseError(ParseErrorKind.FILE_MISSING, str(path))
    except OSError as exc:
        return ParseError(ParseErrorKind.READ_ERROR, f"{path}: {exc}")

    if len(raw) > _MAX_READ_BYTES:
        return ParseError(
            ParseErrorKind.READ_ERROR, f"{path} exceeds {_MAX_READ_BYTES} bytes"
        )

    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        return ParseError(ParseErrorKind.DECODE_ERROR, f"invalid UTF-8: {exc}")

    return parse_document(text)


def parse_document(text: str) -> MetricsSample | ParseError:
    """Decode a JSON document and normalize it into a sample."""
    try:
        d = json.loads(text)
    except (ValueError, TypeError, RecursionError) as exc:
        # ValueError also covers integer literals past the int/str digit limit
        return ParseError(ParseErrorKind.DECODE_ERROR, str(exc))

    if not isinstance(d, dict):
        return ParseError(
            ParseErrorKind.DECODE_ERROR,
            f"expected a JSON object, got {type(d).__name__}",
        )

    return from_document(d)


def from_document(d: dict[str, Any]) -> MetricsSample:
    """Map a decoded document onto a :class:`MetricsSample` with tolerant defaults."""
    phase = d.get("phase")
    return MetricsSample(
        timestamp=_parse_timestamp(d.get("timestamp")),
        cpu=_percent(d.get("cpu")),
        mem=_percent(d.get("mem")),
        disk_q=_non_negative(d.get("diskQ")),
        net_total=_non_negative(d.get("netTotal")),
        phase_hint=sanitize_text(phase, PHASE_MAX_LENGTH) if isinstance(phase, str) else None,
        anomalies=_parse_anomalies(d.get("anomalies")),
        vpn=_parse_vpn(d.get("vpn")),
    )


def to_document(sample: MetricsSample) -> dict[str, Any]:
    """Serialize *sample* back into the ``live.json`` schema."""
    d: dict[str, Any] = {
        "timestamp": sample.timestamp.isoformat(),
        "cpu": sample.cpu,
        "mem": sample.mem,
        "diskQ": sample.disk_q,
        "netTotal": sample.net_total,
        "anomalies": [
            {"Metric": a.metric, "Severity": a.severity.value, "Message": a.message}
            for a in sample.anomalies
        ],
    }
    if sample.phase_hint is not None:
        d["phase"] = sample.phase_hint
    if sample.vpn is not None:
        vpn: dict[str, Any] = {"Active": sample.vpn.active}
        if sample.vpn.adapters is not None:
            vpn["Adapters"] = sample.vpn.adapters
        if sample.vpn.warning is not None:
            vpn["Warning"] = sample.vpn.warning
        d["vpn"] = vpn
    return d


def to_json(sample: MetricsSample) -> str:
    """Serialize a sample to a single-line JSON string."""
    return json.dumps(to_document(sample), separators=(",", ":"))


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _number(raw: object) -> float:
    if isinstance(raw, bool) or raw is None:
        return 0.0
    try:
        value = float(raw)  # type: ignore[arg-type]
    except OverflowError:
        # JSON integers beyond float range saturate like infinity
        return math.inf if raw > 0 else 0.0  # type: ignore[operator]
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value) or value <= 0:
        return 0.0
    return value


def _percent(raw: object) -> float:
    return min(_number(raw), 100.0)


def _non_negative(raw: object) -> float:
    value = _number(raw)
    if math.isinf(value):
        return 0.0
    return value


def _six_digit_fraction(match: re.Match[str]) -> str:
    return f"{match[1]}.{match[2][:6].ljust(6, '0')}"


def _parse_timestamp(raw: object) -> datetime:
    """Parse an ISO-8601 instant; fall back to ingest time."""
    if isinstance(raw, str) and raw:
        text = raw.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        text = _FRACTION_RE.sub(_six_digit_fraction, text)
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            logger.debug("Unparseable timestamp %r, using ingest time", raw)
    return datetime.now(timezone.utc)


def _get(d: dict[str, Any], key: str) -> Any:
    """Fetch *key* as written by the agent (PascalCase) or in lower case."""
    if key in d:
        return d[key]
    return d.get(key.lower())


def _optional_text(raw: object, max_length: int = MESSAGE_MAX_LENGTH) -> str | None:
    if raw is None:
        return None
    return sanitize_text(str(raw), max_length)


def _parse_anomalies(raw: object) -> tuple[Anomaly, ...]:
    if not isinstance(raw, list):
        return ()
    result: list[Anomaly] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        result.append(
            Anomaly(
                metric=_optional_text(_get(item, "Metric"), METRIC_MAX_LENGTH) or "",
                severity=Severity.parse(_get(item, "Severity")),
                message=_optional_text(_get(item, "Message")) or "",
            )
        )
    return tuple(result)


def _parse_vpn(raw: object) -> VpnStatus | None:
    if not isinstance(raw, dict):
        return None
    return VpnStatus(
        active=_get(raw, "Active") is True,
        adapters=_optional_text(_get(raw, "Adapters"), ADAPTERS_MAX_LENGTH),
        warning=_optional_text(_get(raw, "Warning")),
    )
