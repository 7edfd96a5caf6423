"""Duration parsing for bounded recordings (``record --max-duration``)."""

from __future__ import annotations

import re

from directordeck.timecode import parse_timecode

_UNIT_RE = re.compile(r"^(?:(\d+)h)?(?:(\d+)m)?(?:(\d+(?:\.\d+)?)s)?$", re.IGNORECASE)


def parse_duration(s: str) -> float:
    """Parse '45s', '5m', '1h30m', '90' or a timecode like '01:30:00' into seconds.

    Raises ValueError on invalid or non-positive input.
    """
    s = s.strip()
    if not s:
        raise ValueError("Empty duration string")

    m = _UNIT_RE.match(s)
    if m and any(m.groups()):
        total = int(m.group(1) or 0) * 3600 + int(m.group(2) or 0) * 60 + float(m.group(3) or 0)
    else:
        try:
            total = parse_timecode(s)
        except ValueError:
            raise ValueError(f"Invalid duration: {s!r}") from None

    if total <= 0:
        raise ValueError(f"Duration must be positive: {s!r}")
    return float(total)
