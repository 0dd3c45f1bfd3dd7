"""Duration parsing and formatting.

Durations are plain float seconds everywhere in settle. Config files may
spell them as strings ("5m", "100ms", "1m30s"); error messages render them
the way Go's time.Duration does, so messages stay stable across tools that
share the same wording.
"""

from __future__ import annotations

import re
from typing import Final

# Duration units, in seconds
_DURATION_UNITS: Final[dict[str, float]] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_PART_PATTERN: Final[re.Pattern[str]] = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^(?:(?:\d+(?:\.\d*)?|\.\d+)(?:ns|us|µs|ms|s|m|h))+$"
)

_NS_PER_SECOND: Final = 1_000_000_000
_NS_PER_MINUTE: Final = 60 * _NS_PER_SECOND
_NS_PER_HOUR: Final = 60 * _NS_PER_MINUTE


def parse_duration(value: str | int | float) -> float:
    """Parse a duration to seconds.

    Args:
        value: Seconds as a number, or a string such as "90", "1.5s",
            "100ms" or "1h2m3s".

    Returns:
        Duration in seconds.

    Raises:
        ValueError: If the format is invalid or the duration is negative.

    Examples:
        >>> parse_duration("1m30s")
        90.0
        >>> parse_duration("250ms")
        0.25
        >>> parse_duration(5)
        5.0
    """
    match value:
        case bool():
            raise ValueError(f"Invalid duration: {value!r}")
        case int() | float():
            seconds = float(value)
        case str():
            text = value.strip().replace(" ", "")
            try:
                seconds = float(text)
            except ValueError:
                if not _DURATION_PATTERN.match(text):
                    raise ValueError(
                        f"Invalid duration: {value!r}. "
                        "Expected seconds or NUMBER UNIT pairs (e.g., '30s', '5m', '1m30s', '100ms')"
                    ) from None
                seconds = sum(
                    float(num) * _DURATION_UNITS[unit] for num, unit in _PART_PATTERN.findall(text)
                )
        case _:
            raise ValueError(f"Invalid duration: {value!r}")

    if seconds < 0:
        raise ValueError(f"Duration must not be negative: {value!r}")
    return seconds


def _fraction(value: int, unit: int) -> str:
    whole, rest = divmod(value, unit)
    if rest == 0:
        return str(whole)
    digits = len(str(unit)) - 1
    return f"{whole}.{rest:0{digits}d}".rstrip("0")


def format_duration(seconds: float) -> str:
    """Render seconds like Go's time.Duration.String().

    Examples:
        >>> format_duration(0.001)
        '1ms'
        >>> format_duration(1.5)
        '1.5s'
        >>> format_duration(300)
        '5m0s'
    """
    ns = round(seconds * _NS_PER_SECOND)
    if ns == 0:
        return "0s"

    sign = "-" if ns < 0 else ""
    ns = abs(ns)

    if ns < 1_000:
        return f"{sign}{ns}ns"
    if ns < 1_000_000:
        return f"{sign}{_fraction(ns, 1_000)}µs"
    if ns < _NS_PER_SECOND:
        return f"{sign}{_fraction(ns, 1_000_000)}ms"

    hours, ns = divmod(ns, _NS_PER_HOUR)
    minutes, ns = divmod(ns, _NS_PER_MINUTE)

    out = sign
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    return f"{out}{_fraction(ns, _NS_PER_SECOND)}s"
