"""Tests for logsync.sink.bigquery."""

import httpx
import pytest

from logsync.core.errors import AuthError, SinkError
from logsync.sink.auth import INSERT_SCOPE, READ_SCOPE
from logsync.sink.bigquery import ROW_COLUMNS, BigQuerySink, build_insert_request, to_row
from logsync.source.records import Record
from tests._support.fakes import log, ts


def _record(record_id: str, seconds: int = 1, **extra) -> Record:
    return Record.from_api(log(record_id, ts(seconds), **extra))


class TestRowMapping:
    def test_columns(self):
        row = to_row(_record("a", cost=0.002, path="/v1/chat"), ingested_at="2026-01-02T00:00:00.000Z")
        assert set(row) == set(ROW_COLUMNS) | {"ingested_at"}
        assert row["id"] == "a"
        assert row["created_at"] == ts(1)
        assert row["cost"] == 0.002
        assert row["path"] == "/v1/chat"
        assert row["ingested_at"] == "2026-01-02T00:00:00.000Z"

    def test_missing_fields_are_null(self):
        row = to_row(Record.from_api({"id": "a", "created_at": ts(1)}), ingested_at="x")
        assert row["model"] is None
        assert row["step"] is None

    def test_zero_and_false_survive(self):
        row = to_row(_record("a", tokens_in=0, cached=False, cost=0), ingested_at="x")
        assert row["tokens_in"] == 0
        assert row["cached"] is False
        assert row["cost"] == 0

    def test_extra_payload_fields_dropped(self):
        row = to_row(_record("a", metadata={"k": "v"}), ingested_at="x")
        assert "metadata" not in row

    def test_request_body(self):
        body = build_insert_request([_record("a"), _record("b")], ingested_at="now")
        assert body["kind"] == "bigquery#tableDataInsertAllRequest"
        assert body["skipInvalidRows"] is False
        assert body["ignoreUnknownValues"] is False
        assert [row["insertId"] for row in body["rows"]] == ["a", "b"]
        assert body["rows"][0]["json"]["ingested_at"] == "now"


class TestWrite:
    def test_empty_batch_sends_nothing(self, sink, bigquery, tokens):
        report = sink.write([])
        assert report.attempted == 0
        assert bigquery.inserts == []
        assert tokens.scopes == []

    def test_insert(self, sink, bigquery, tokens):
        report = sink.write([_record("a"), _record("b", 2)])
        assert report.ok
        assert report.inserted == 2
        assert bigquery.inserted_ids == ["a", "b"]
        assert bigquery.auth_headers == ["Bearer static-token"]
        assert tokens.scopes == [INSERT_SCOPE]

    def test_row_errors_reported(self, sink, bigquery):
        bigquery.reject_ids = {"b"}
        report = sink.write([_record("a"), _record("b", 2), _record("c", 3)])
        assert not report.ok
        assert report.attempted == 3
        assert report.inserted == 2
        assert [(e.index, e.record_id) for e in report.row_errors] == [(1, "b")]
        assert report.row_errors[0].messages == ["bad row b"]
        assert report.to_dict()["failed_ids"] == ["b"]

    def test_malformed_row_error_entries_skipped(self, sink, bigquery):
        bigquery.raw_insert_errors = ["oops", None, {"index": 0, "errors": [{"reason": "invalid"}]}]
        report = sink.write([_record("a"), _record("b", 2)])
        assert [(e.index, e.record_id) for e in report.row_errors] == [(0, "a")]
        assert report.row_errors[0].messages == ["invalid"]
        assert report.inserted == 1

    @pytest.mark.parametrize(("status", "retryable"), [(500, True), (503, True), (429, True), (400, False), (403, False)])
    def test_request_failure(self, sink, bigquery, status, retryable):
        bigquery.fail_status = status
        with pytest.raises(SinkError) as exc_info:
            sink.write([_record("a")])
        assert exc_info.value.context.http_status == status
        assert exc_info.value.retryable is retryable

    def test_transport_failure(self, tokens):
        def boom(request):
            raise httpx.ReadTimeout("slow", request=request)

        sink = BigQuerySink(
            httpx.Client(transport=httpx.MockTransport(boom)), tokens, project="p", dataset="d", table="t"
        )
        with pytest.raises(SinkError):
            sink.write([_record("a")])

    def test_token_failure_propagates(self, http, bigquery):
        class NoTokens:
            def get_token(self, scope):
                raise AuthError("no key")

        sink = BigQuerySink(http, NoTokens(), project="proj", dataset="ds", table="tbl")
        with pytest.raises(AuthError):
            sink.write([_record("a")])
        assert bigquery.inserts == []

    def test_urls(self, sink):
        assert sink.insert_url.endswith("/projects/proj/datasets/ds/tables/tbl/insertAll")


class TestTableExists:
    def test_exists(self, sink, tokens):
        assert sink.table_exists() is True
        assert tokens.scopes == [READ_SCOPE]

    def test_missing(self, sink, bigquery):
        bigquery.table_status = 404
        assert sink.table_exists() is False

    def test_forbidden(self, sink, bigquery):
        bigquery.table_status = 403
        assert sink.table_exists() is False
