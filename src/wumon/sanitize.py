"""Cleaning of strings written by the monitoring agent before display.

Every agent string ends up on one line of the dashboard (a badge, an
anomaly row, the VPN banner), so text is flattened to a single line and
capped per field.  Terminal escapes are removed in both 7-bit and 8-bit
forms, as are bidi override marks that could reorder a rendered row.
"""

from __future__ import annotations

import re

PHASE_MAX_LENGTH = 32
METRIC_MAX_LENGTH = 64
ADAPTERS_MAX_LENGTH = 128
MESSAGE_MAX_LENGTH = 256

_ELLIPSIS = "…"

# CSI (ESC [ or 0x9b) with parameter/intermediate/final bytes, OSC up to BEL
# or ST, then any remaining two-byte ESC sequence
_ESCAPE_RE = re.compile(
    r"(?:\x1b\[|\x9b)[0-?]*[ -/]*[@-~]"
    r"|(?:\x1b\]|\x9d).*?(?:\x07|\x1b\\|\x9c)"
    r"|\x1b[@-_]",
    re.DOTALL,
)

# C0 except whitespace, DEL, C1, and bidi embeddings/overrides/isolates
_CONTROL_RE = re.compile(r"[\x00-\x08\x0e-\x1f\x7f-\x9f\u202a-\u202e\u2066-\u2069]")

_WHITESPACE_RE = re.compile(r"\s+")


def sanitize_text(text: str, max_length: int = MESSAGE_MAX_LENGTH) -> str:
    """Strip escapes and control chars, flatten whitespace, cap the length.

    Text longer than *max_length* is cut and ends in an ellipsis.
    Idempotent for a given *max_length*.
    """
    if max_length < 1:
        msg = "max_length must be at least 1"
        raise ValueError(msg)
    result = _ESCAPE_RE.sub("", text)
    result = _CONTROL_RE.sub("", result)
    result = _WHITESPACE_RE.sub(" ", result).strip()
    if len(result) > max_length:
        result = result[: max_length - 1].rstrip() + _ELLIPSIS
    return result
