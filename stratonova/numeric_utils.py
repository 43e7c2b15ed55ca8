from __future__ import annotations

import math
from typing import Any

from .exceptions import InvalidInput


def as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def as_int(value: Any) -> int | None:
    parsed = as_float(value)
    if parsed is None:
        return None
    return int(round(parsed))


def parse_activity_id(value: Any) -> int:
    """Return a positive integer activity id or raise ``InvalidInput``."""
    if isinstance(value, bool):
        raise InvalidInput(f"Invalid activity id: {value!r}")
    if isinstance(value, int):
        parsed = value
    else:
        text = str(value if value is not None else "").strip()
        if not (text.isascii() and text.isdigit()):
            raise InvalidInput(f"Invalid activity id: {value!r}")
        parsed = int(text)
    if parsed <= 0:
        raise InvalidInput(f"Invalid activity id: {value!r}")
    return parsed


def meters_to_kilometers(meters: float) -> float:
    """Kilometers rounded to the nearest tenth, halves rounded up."""
    if meters < 0:
        raise InvalidInput(f"Distance cannot be negative: {meters}")
    tenths = meters / 100.0
    return math.floor(tenths + 0.5) / 10.0


def humanize_duration(seconds: int) -> str:
    if seconds < 0:
        raise InvalidInput(f"Duration cannot be negative: {seconds}")
    seconds = int(seconds)
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
