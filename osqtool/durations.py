"""Duration literals such as "15s", "6h" or "1h30m"."""

import re
from typing import Union


UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
    "d": 86400.0,
}

_PART_RE = re.compile(r"(\d+(?:\.\d+)?|\.\d+)(ns|us|µs|ms|s|m|h|d)")
_DURATION_RE = re.compile(r"^(?:(?:\d+(?:\.\d+)?|\.\d+)(?:ns|us|µs|ms|s|m|h|d))+$")


def parse_duration(text: str) -> float:
    """Parse a duration literal into seconds.

    A bare number is not a duration: the unit is required.

    Raises:
        ValueError: If text is not a duration literal
    """
    value = text.strip().lower()
    if not _DURATION_RE.match(value):
        raise ValueError(f"invalid duration: {text!r}")
    return sum(float(num) * UNIT_SECONDS[unit] for num, unit in _PART_RE.findall(value))


def duration_seconds(value: Union[int, float, str, None]):
    """Convert a config or CLI value into seconds.

    Numbers and numeric strings are taken as seconds; anything else must be
    a duration literal. None passes through.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return value
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return parse_duration(text)
