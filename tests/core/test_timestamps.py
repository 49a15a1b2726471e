"""Tests for UTC timestamp helpers."""

from datetime import UTC, datetime, timedelta, timezone

from courier.core.timestamps import from_iso8601, to_iso8601, utc_now


def test_utc_now_is_aware():
    assert utc_now().tzinfo is UTC


def test_none_passes_through():
    assert to_iso8601(None) is None
    assert from_iso8601(None) is None


def test_naive_string_is_assumed_utc():
    parsed = from_iso8601("2026-03-01T12:00:00")
    assert parsed == datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def test_offset_is_preserved():
    parsed = from_iso8601("2026-03-01T14:00:00+02:00")
    assert parsed.utcoffset() == timedelta(hours=2)
    assert parsed == datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def test_to_iso8601_keeps_offset():
    dt = datetime(2026, 3, 1, 12, 0, tzinfo=timezone(timedelta(hours=-5)))
    assert to_iso8601(dt) == "2026-03-01T12:00:00-05:00"
