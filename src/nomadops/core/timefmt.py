"""Time and duration formatting helpers shared by the plan renderer and diagnostics."""

from __future__ import annotations

import re
from datetime import datetime, timezone

_NANOS_PER_SECOND = 1_000_000_000
_FRACTION_RE = re.compile(r"\.(\d+)")


def _fraction(whole: int, frac: int, width: int) -> str:
    """Render `whole.frac` with trailing zeros removed."""
    if not frac:
        return str(whole)
    return f"{whole}.{frac:0{width}d}".rstrip("0")


def format_duration(nanos: int) -> str:
    """
    Format a nanosecond duration the way Nomad prints durations.

    Examples: 0 -> "0s", 1_500_000 -> "1.5ms", 90 * 10**9 -> "1m30s",
    3600 * 10**9 -> "1h0m0s".
    """
    if nanos == 0:
        return "0s"
    sign = "-" if nanos < 0 else ""
    n = abs(int(nanos))

    if n < 1_000:
        return f"{sign}{n}ns"
    if n < 1_000_000:
        return f"{sign}{_fraction(*divmod(n, 1_000), 3)}µs"
    if n < _NANOS_PER_SECOND:
        return f"{sign}{_fraction(*divmod(n, 1_000_000), 6)}ms"

    hours, rem = divmod(n, 3600 * _NANOS_PER_SECOND)
    minutes, rem = divmod(rem, 60 * _NANOS_PER_SECOND)
    seconds = _fraction(*divmod(rem, _NANOS_PER_SECOND), 9)

    out = sign
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    return f"{out}{seconds}s"


def parse_timestamp(value: str | None) -> datetime | None:
    """
    Parse an RFC3339 timestamp as returned by the Nomad API.

    Nomad reports nanosecond precision and uses the Go zero time
    (year 1) for "unset"; both are handled. Returns None for empty or
    zero values.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    if parsed.timestamp() < 1:
        return None
    return parsed


def format_time(value: datetime | None) -> str:
    """Format a timestamp as `MM/DD/YY HH:MM:SS TZ`; unset times render empty."""
    if value is None or value.timestamp() < 1:
        return ""
    return value.strftime("%m/%d/%y %H:%M:%S %Z")


def format_time_difference(first: datetime, second: datetime) -> str:
    """Return `second - first` truncated to whole seconds, formatted as a duration."""
    delta = int(second.timestamp()) - int(first.timestamp())
    return format_duration(delta * _NANOS_PER_SECOND)
