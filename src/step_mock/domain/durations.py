from __future__ import annotations

import re
from collections.abc import Callable
from datetime import timedelta

from .errors import DurationParseError

# Unit table for human-readable durations ("500ms", "2s", "1h 30m").
_NS_PER_US = 1_000
_NS_PER_MS = 1_000_000
_NS_PER_S = 1_000_000_000

_UNITS: dict[str, int] = {
    "ns": 1,
    "nsec": 1,
    "us": _NS_PER_US,
    "µs": _NS_PER_US,
    "usec": _NS_PER_US,
    "ms": _NS_PER_MS,
    "msec": _NS_PER_MS,
    "millis": _NS_PER_MS,
    "s": _NS_PER_S,
    "sec": _NS_PER_S,
    "secs": _NS_PER_S,
    "second": _NS_PER_S,
    "seconds": _NS_PER_S,
    "m": 60 * _NS_PER_S,
    "min": 60 * _NS_PER_S,
    "mins": 60 * _NS_PER_S,
    "minute": 60 * _NS_PER_S,
    "minutes": 60 * _NS_PER_S,
    "h": 3600 * _NS_PER_S,
    "hr": 3600 * _NS_PER_S,
    "hrs": 3600 * _NS_PER_S,
    "hour": 3600 * _NS_PER_S,
    "hours": 3600 * _NS_PER_S,
    "d": 86400 * _NS_PER_S,
    "day": 86400 * _NS_PER_S,
    "days": 86400 * _NS_PER_S,
    "w": 604800 * _NS_PER_S,
    "week": 604800 * _NS_PER_S,
    "weeks": 604800 * _NS_PER_S,
}

_TOKEN_PATTERN = re.compile(r"\s*(\d+)\s*([a-zµ]+)")


def parse_duration(text: object) -> timedelta:
    if isinstance(text, timedelta):
        return text
    if not isinstance(text, str) or not text.strip():
        raise DurationParseError(text)

    total_ns = 0
    pos = 0
    source = text.strip()
    while pos < len(source):
        match = _TOKEN_PATTERN.match(source, pos)
        if match is None:
            raise DurationParseError(text)
        amount, unit = match.groups()
        scale = _UNITS.get(unit)
        if scale is None:
            raise DurationParseError(text)
        total_ns += int(amount) * scale
        pos = match.end()
    try:
        return timedelta(microseconds=total_ns / _NS_PER_US)
    except OverflowError as exc:
        raise DurationParseError(text) from exc


def format_duration(delta: timedelta) -> str:
    # Millisecond precision is enough for logs and traces.
    millis = int(delta.total_seconds() * 1000)
    if millis % 1000 == 0:
        return f"{millis // 1000}s"
    return f"{millis}ms"


def apply_jitter(duration: timedelta, jitter: float | None, draw: Callable[[], float]) -> timedelta:
    # Extra delay is drawn uniformly from [0, jitter * duration).
    if not jitter:
        return duration
    if jitter < 0:
        raise ValueError("jitter must be non-negative")
    return duration + duration * (draw() * jitter)
