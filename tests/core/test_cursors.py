"""
Tests for logsync.core.cursors.

Tests cover:
- Cursor JSON format (wire compatible with the Worker's ``forward`` key)
- ForwardState load/save, including the write-once oldest marker
- BackfillState load/save and stop boundary precedence
"""

import json

import pytest

from logsync.core.cursors import (
    FORWARD_KEY,
    OLDEST_KEY,
    STOP_AT_KEY,
    BackfillState,
    Cursor,
    CursorStore,
    ForwardState,
)
from logsync.core.errors import StorageError
from logsync.core.kv import InMemoryKeyValueStore
from logsync.core.timestamps import EPOCH


class TestCursor:
    def test_json_round_trip_format(self):
        cursor = Cursor(timestamp="2026-01-01T00:00:10.000Z", id="abc")
        assert json.loads(cursor.to_json()) == {"ts": "2026-01-01T00:00:10.000Z", "id": "abc"}

    def test_from_json_tolerates_missing_id(self):
        assert Cursor.from_json('{"ts": "2026-01-01T00:00:00Z"}') == Cursor("2026-01-01T00:00:00Z", "")

    def test_from_json_malformed(self):
        with pytest.raises(StorageError):
            Cursor.from_json("not json")

    def test_frozen(self):
        with pytest.raises(AttributeError):
            Cursor("t", "i").id = "j"  # type: ignore[misc]


class TestForwardState:
    def setup_method(self):
        self.kv = InMemoryKeyValueStore()
        self.store = CursorStore(self.kv)

    def test_load_empty(self):
        assert self.store.load_forward() == ForwardState(cursor=None, oldest=None)

    def test_load_existing_worker_state(self):
        self.kv.put(FORWARD_KEY, '{"ts":"2026-01-01T00:00:20.000Z","id":"3"}')
        self.kv.put(OLDEST_KEY, "2026-01-01T00:00:10.000Z")
        state = self.store.load_forward()
        assert state.cursor == Cursor("2026-01-01T00:00:20.000Z", "3")
        assert state.oldest == "2026-01-01T00:00:10.000Z"

    def test_save_writes_cursor_and_first_oldest(self):
        self.store.save_forward(ForwardState(cursor=Cursor("t2", "2"), oldest="t1"))
        assert json.loads(self.kv.get(FORWARD_KEY)) == {"ts": "t2", "id": "2"}
        assert self.kv.get(OLDEST_KEY) == "t1"

    def test_save_never_moves_existing_oldest(self):
        self.kv.put(OLDEST_KEY, "backfilled-older")
        self.store.save_forward(ForwardState(cursor=Cursor("t2", "2"), oldest="t1"))
        assert self.kv.get(OLDEST_KEY) == "backfilled-older"

    def test_save_without_cursor_leaves_forward_key(self):
        self.store.save_forward(ForwardState(cursor=None, oldest=None))
        assert self.kv.get(FORWARD_KEY) is None
        assert self.kv.get(OLDEST_KEY) is None


class TestBackfillState:
    def setup_method(self):
        self.kv = InMemoryKeyValueStore()

    def test_defaults_to_epoch(self):
        state = CursorStore(self.kv).load_backfill()
        assert state == BackfillState(oldest=None, stop_at=EPOCH)

    def test_configured_default_stop(self):
        state = CursorStore(self.kv, default_stop_at="2025-06-01T00:00:00Z").load_backfill()
        assert state.stop_at == "2025-06-01T00:00:00Z"

    def test_persisted_stop_wins_over_configured(self):
        self.kv.put(STOP_AT_KEY, "2025-09-01T00:00:00Z")
        state = CursorStore(self.kv, default_stop_at="2025-06-01T00:00:00Z").load_backfill()
        assert state.stop_at == "2025-09-01T00:00:00Z"

    def test_invalid_configured_stop_rejected(self):
        with pytest.raises(ValueError):
            CursorStore(self.kv, default_stop_at="last tuesday")

    @pytest.mark.parametrize("key", [OLDEST_KEY, STOP_AT_KEY])
    def test_malformed_stored_timestamp(self, key):
        self.kv.put(key, "not-a-time")
        with pytest.raises(StorageError, match=key) as exc_info:
            CursorStore(self.kv).load_backfill()
        assert isinstance(exc_info.value.cause, ValueError)

    def test_save_moves_marker(self):
        store = CursorStore(self.kv)
        store.save_backfill(BackfillState(oldest="2025-12-01T00:00:00Z"))
        assert self.kv.get(OLDEST_KEY) == "2025-12-01T00:00:00Z"

    def test_save_none_deletes_marker(self):
        self.kv.put(OLDEST_KEY, "x")
        CursorStore(self.kv).save_backfill(BackfillState(oldest=None))
        assert self.kv.get(OLDEST_KEY) is None


class TestMaintenance:
    def setup_method(self):
        self.kv = InMemoryKeyValueStore()
        self.store = CursorStore(self.kv)

    def test_set_stop_boundary_validates(self):
        with pytest.raises(ValueError):
            self.store.set_stop_boundary("soon")
        self.store.set_stop_boundary("2025-01-01T00:00:00Z")
        assert self.kv.get(STOP_AT_KEY) == "2025-01-01T00:00:00Z"

    def test_clear_stop_boundary(self):
        self.store.set_stop_boundary("2025-01-01T00:00:00Z")
        self.store.clear_stop_boundary()
        assert self.kv.get(STOP_AT_KEY) is None

    def test_clear_oldest(self):
        self.kv.put(OLDEST_KEY, "x")
        self.store.clear_oldest()
        assert self.kv.get(OLDEST_KEY) is None

    def test_snapshot(self):
        self.kv.put(OLDEST_KEY, "x")
        assert self.store.snapshot() == {FORWARD_KEY: None, OLDEST_KEY: "x", STOP_AT_KEY: None}
