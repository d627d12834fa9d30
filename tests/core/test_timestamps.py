"""Tests for logsync.core.timestamps module."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from logsync.core.timestamps import (
    EPOCH,
    at_or_before,
    format_timestamp,
    generate_run_id,
    lookback,
    parse_timestamp,
    utc_now,
)


class TestFormatParse:
    def test_format_uses_milliseconds_and_z(self):
        dt = datetime(2026, 1, 2, 3, 4, 5, 678901, tzinfo=UTC)
        assert format_timestamp(dt) == "2026-01-02T03:04:05.678Z"

    def test_format_naive_is_utc(self):
        assert format_timestamp(datetime(2026, 1, 1)) == "2026-01-01T00:00:00.000Z"

    def test_format_converts_offsets(self):
        dt = datetime(2026, 1, 1, 9, 0, tzinfo=timezone(timedelta(hours=9)))
        assert format_timestamp(dt) == "2026-01-01T00:00:00.000Z"

    def test_parse_z_suffix(self):
        assert parse_timestamp("2026-01-01T00:00:00Z") == datetime(2026, 1, 1, tzinfo=UTC)

    def test_parse_equal_precisions(self):
        assert parse_timestamp("2026-01-01T00:00:00Z") == parse_timestamp("2026-01-01T00:00:00.000Z")

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")

    def test_epoch(self):
        assert parse_timestamp(EPOCH) == datetime(1970, 1, 1, tzinfo=UTC)


class TestHelpers:
    def test_utc_now_is_aware(self):
        assert utc_now().tzinfo is not None

    def test_lookback(self):
        now = datetime(2026, 1, 1, 0, 10, tzinfo=UTC)
        assert lookback(10, now=now) == "2026-01-01T00:00:00.000Z"

    def test_at_or_before(self):
        assert at_or_before("2026-01-01T00:00:00.000Z", "2026-01-01T00:00:00Z")
        assert at_or_before("2025-12-31T23:59:59Z", "2026-01-01T00:00:00Z")
        assert not at_or_before("2026-01-01T00:00:01Z", "2026-01-01T00:00:00Z")

    def test_run_id_shape(self):
        run_id = generate_run_id()
        assert len(run_id) == 26
        assert run_id != generate_run_id()
