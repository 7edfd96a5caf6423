"""Timecode formatting and frame conversion.

Timecodes are rendered as ``HH:MM:SS.hh`` where ``hh`` is hundredths of a
second. Hours are not wrapped at 24. Fractions are truncated, never rounded,
so a value never displays as the next hundredth (or the next second) early.
"""

from __future__ import annotations

import math
import re

# Absorbs binary float noise such as 7199.99 * 100 == 719998.9999999999
_EPSILON = 1e-6

_TIMECODE_RE = re.compile(r"^(?:(?:(\d+):)?(\d{1,2}):)?(\d+(?:\.\d+)?)$")


def _truncate(value: float) -> int:
    return int(math.floor(value + _EPSILON))


def format_timecode(seconds: float) -> str:
    """Format seconds as ``HH:MM:SS.hh``, truncating hundredths."""
    if seconds < 0:
        raise ValueError(f"Timecode cannot be negative: {seconds!r}")
    total_hundredths = _truncate(seconds * 100)
    total_seconds, hundredths = divmod(total_hundredths, 100)
    minutes, secs = divmod(total_seconds, 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{hundredths:02d}"


def seconds_to_frame(seconds: float, frame_rate: int) -> int:
    """Frame number containing ``seconds`` at ``frame_rate``: floor(seconds * rate)."""
    if frame_rate <= 0:
        raise ValueError(f"frame_rate must be positive, got {frame_rate}")
    if seconds < 0:
        raise ValueError(f"Timestamp cannot be negative: {seconds!r}")
    return math.floor(seconds * frame_rate)


def parse_timecode(ts: str) -> float:
    """Parse ``HH:MM:SS.hh``, ``MM:SS`` or plain seconds into seconds.

    Raises ValueError on invalid input.
    """
    ts = ts.strip()
    if not ts:
        raise ValueError("Empty timecode")
    m = _TIMECODE_RE.match(ts)
    if not m:
        raise ValueError(f"Invalid timecode: {ts!r}")
    hours = int(m.group(1) or 0)
    minutes = int(m.group(2) or 0)
    secs = float(m.group(3))
    if m.group(2) is not None and (minutes > 59 or secs >= 60):
        raise ValueError(f"Invalid timecode: {ts!r}")
    return hours * 3600 + minutes * 60 + secs
