from __future__ import annotations

from datetime import timedelta

import pytest

from step_mock.domain.durations import apply_jitter, format_duration, parse_duration
from step_mock.domain.errors import ConfigurationError, DurationParseError


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("500ms", timedelta(milliseconds=500)),
        ("2s", timedelta(seconds=2)),
        ("1h 30m", timedelta(minutes=90)),
        ("1h30m", timedelta(minutes=90)),
        ("1500us", timedelta(microseconds=1500)),
        ("2 days", timedelta(days=2)),
        ("1w", timedelta(weeks=1)),
    ],
)
def test_parse_duration_accepts_human_readable_units(text: str, expected: timedelta) -> None:
    # Units combine additively in one string.
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "   ", "5", "soon", "3 parsecs", "2s and more", 10])
def test_parse_duration_rejects_malformed_input(text: object) -> None:
    # Unit-less numbers, unknown units and non-strings are configuration errors.
    with pytest.raises(DurationParseError) as excinfo:
        parse_duration(text)
    assert isinstance(excinfo.value, ConfigurationError)


def test_parse_duration_passes_timedelta_through() -> None:
    # Already-parsed durations are accepted unchanged.
    assert parse_duration(timedelta(seconds=3)) == timedelta(seconds=3)


def test_format_duration_prefers_whole_seconds() -> None:
    assert format_duration(timedelta(seconds=2)) == "2s"
    assert format_duration(timedelta(milliseconds=1500)) == "1500ms"


def test_apply_jitter_scales_with_draw() -> None:
    # Extra delay is jitter * duration * draw.
    base = timedelta(seconds=10)
    assert apply_jitter(base, 0.5, lambda: 0.5) == timedelta(seconds=12.5)
    assert apply_jitter(base, 0.5, lambda: 0.0) == base


def test_apply_jitter_without_factor_never_draws() -> None:
    def _draw() -> float:
        raise AssertionError("draw must not be called")

    assert apply_jitter(timedelta(seconds=1), None, _draw) == timedelta(seconds=1)
    assert apply_jitter(timedelta(seconds=1), 0.0, _draw) == timedelta(seconds=1)


def test_apply_jitter_rejects_negative_factor() -> None:
    with pytest.raises(ValueError):
        apply_jitter(timedelta(seconds=1), -0.5, lambda: 0.5)


def test_parse_duration_rejects_out_of_range_values() -> None:
    # Literals beyond what timedelta can hold are configuration errors too.
    with pytest.raises(DurationParseError):
        parse_duration("9999999999d")
