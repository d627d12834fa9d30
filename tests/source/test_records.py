"""Tests for logsync.source.records."""

import pytest

from logsync.core.errors import ParseError
from logsync.source.records import Record, sort_records
from tests._support.fakes import log, ts


class TestFromApi:
    def test_keeps_payload(self):
        record = Record.from_api(log("a", ts(1), model="claude"))
        assert record.id == "a"
        assert record.created_at == ts(1)
        assert record.payload["model"] == "claude"

    def test_numeric_id_is_stringified(self):
        assert Record.from_api({"id": 42, "created_at": ts(1)}).id == "42"

    def test_missing_id_becomes_empty(self):
        assert Record.from_api({"created_at": ts(1)}).id == ""

    @pytest.mark.parametrize("item", [None, "x", [1, 2]])
    def test_non_object(self, item):
        with pytest.raises(ParseError):
            Record.from_api(item)

    def test_missing_created_at(self):
        with pytest.raises(ParseError) as exc_info:
            Record.from_api({"id": "a"})
        assert exc_info.value.context.record_id == "a"

    def test_invalid_created_at(self):
        with pytest.raises(ParseError):
            Record.from_api({"id": "a", "created_at": "yesterday"})


class TestOrdering:
    def test_equality_ignores_payload(self):
        assert Record("a", ts(1), {"x": 1}) == Record("a", ts(1), {"x": 2})

    def test_sort_by_timestamp_then_id(self):
        records = [Record("b", ts(5)), Record("a", ts(5)), Record("z", ts(1))]
        assert [r.id for r in sort_records(records)] == ["z", "a", "b"]
        assert [r.id for r in sort_records(records, ascending=False)] == ["b", "a", "z"]

    def test_precision_differences_compare_equal(self):
        records = [Record("b", "2026-01-01T00:00:05Z"), Record("a", "2026-01-01T00:00:05.000Z")]
        assert [r.id for r in sort_records(records)] == ["a", "b"]

    def test_to_dict_overrides_identity_fields(self):
        record = Record("a", ts(1), {"id": 7, "model": "m"})
        assert record.to_dict() == {"id": "a", "created_at": ts(1), "model": "m"}
