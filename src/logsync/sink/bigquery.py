"""
BigQuery streaming-insert sink.

Manifesto:
    One batch, one ``insertAll`` request. Each row carries the record id as
    its ``insertId`` so BigQuery drops retries of the same row, and both
    strictness flags are off (``skipInvalidRows=false``,
    ``ignoreUnknownValues=false``) so a malformed row is rejected rather
    than silently coerced.

    The outcome has two levels:

    - **Request failed** (transport error, non-2xx): :class:`SinkError`,
      the cycle aborts and its cursor stays where it was
    - **Rows rejected** inside a 2xx: reported in :class:`InsertReport`
      and logged per record id; the cycle still commits

    Persistently malformed rows are therefore dropped, not retried
    forever.

Architecture:
    ::

        BigQuerySink.write(records)
              │  token = tokens.get_token(INSERT_SCOPE)
              ▼
        POST {base}/projects/{p}/datasets/{d}/tables/{t}/insertAll
             {"kind": "bigquery#tableDataInsertAllRequest",
              "skipInvalidRows": false, "ignoreUnknownValues": false,
              "rows": [{"insertId": id, "json": row}, ...]}
              │
              ▼
        InsertReport(attempted, inserted, row_errors=[RowError(index, record_id, messages)])

Tags:
    bigquery, insertAll, streaming-insert, sink, httpx
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from logsync.core.errors import SinkError
from logsync.core.logging import get_logger
from logsync.core.timestamps import format_timestamp, utc_now
from logsync.sink.auth import INSERT_SCOPE, READ_SCOPE
from logsync.source.records import Record

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://bigquery.googleapis.com/bigquery/v2"

# Columns of the destination table, in table order; ingested_at is appended.
ROW_COLUMNS = (
    "id",
    "created_at",
    "provider",
    "model",
    "model_type",
    "success",
    "status_code",
    "cached",
    "duration",
    "tokens_in",
    "tokens_out",
    "cost",
    "request_type",
    "request_content_type",
    "response_content_type",
    "path",
    "step",
)


class TokenSource(Protocol):
    def get_token(self, scope: str) -> str: ...


@dataclass(frozen=True, slots=True)
class RowError:
    """A row BigQuery rejected inside a successful response."""

    index: int
    record_id: str | None
    messages: list[str] = field(default_factory=list)


@dataclass
class InsertReport:
    """Outcome of one ``insertAll`` call."""

    attempted: int = 0
    row_errors: list[RowError] = field(default_factory=list)

    @property
    def inserted(self) -> int:
        return self.attempted - len(self.row_errors)

    @property
    def ok(self) -> bool:
        return not self.row_errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "inserted": self.inserted,
            "failed_ids": [e.record_id for e in self.row_errors],
        }


def to_row(record: Record, *, ingested_at: str) -> dict[str, Any]:
    """Map a record onto the table columns; absent fields become ``None``."""
    row = {column: record.payload.get(column) for column in ROW_COLUMNS}
    row["id"] = record.id
    row["created_at"] = record.created_at
    row["ingested_at"] = ingested_at
    return row


def build_insert_request(records: list[Record], *, ingested_at: str | None = None) -> dict[str, Any]:
    stamp = ingested_at or format_timestamp(utc_now())
    return {
        "kind": "bigquery#tableDataInsertAllRequest",
        "skipInvalidRows": False,
        "ignoreUnknownValues": False,
        "rows": [{"insertId": r.id, "json": to_row(r, ingested_at=stamp)} for r in records],
    }


class BigQuerySink:
    """Writes record batches to one BigQuery table.

    Args:
        http: Client used for API calls (owned by the caller).
        tokens: Anything with ``get_token(scope)``.
        project, dataset, table: Destination table coordinates.
        base_url: API root, overridable for tests.
    """

    def __init__(
        self,
        http: httpx.Client,
        tokens: TokenSource,
        *,
        project: str,
        dataset: str,
        table: str,
        base_url: str = DEFAULT_BASE_URL,
    ):
        self._http = http
        self._tokens = tokens
        self.table = table
        self.table_url = f"{base_url.rstrip('/')}/projects/{project}/datasets/{dataset}/tables/{table}"

    @property
    def insert_url(self) -> str:
        return f"{self.table_url}/insertAll"

    def write(self, records: list[Record]) -> InsertReport:
        """Insert *records* in one request.

        Raises:
            SinkError: Transport failure or non-2xx response.
            AuthError: No access token could be obtained.
        """
        if not records:
            return InsertReport()

        started = time.monotonic()
        token = self._tokens.get_token(INSERT_SCOPE)
        body = build_insert_request(records)
        logger.debug("bigquery_insert_sending", rows=len(records))

        try:
            response = self._http.post(
                self.insert_url,
                json=body,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise SinkError(f"insertAll request failed: {e}", cause=e).with_context(url=self.insert_url) from e

        if not response.is_success:
            logger.error("bigquery_insert_error", status=response.status_code, body=response.text[:500])
            raise SinkError(
                f"insertAll returned {response.status_code}: {response.text[:200]}",
                retryable=response.status_code >= 500 or response.status_code == 429,
            ).with_context(url=self.insert_url, http_status=response.status_code)

        try:
            payload = response.json() if response.content else {}
        except ValueError:
            payload = {}
            logger.warning("bigquery_insert_response_unparsed", status=response.status_code)

        report = InsertReport(attempted=len(records), row_errors=self._row_errors(payload, records))
        if report.row_errors:
            for err in report.row_errors:
                logger.error("bigquery_row_rejected", index=err.index, record_id=err.record_id, errors=err.messages)
            logger.warning("bigquery_insert_partial", inserted=report.inserted, failed=len(report.row_errors))
        else:
            logger.info(
                "bigquery_insert_completed",
                rows=report.inserted,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
        return report

    @staticmethod
    def _row_errors(payload: Any, records: list[Record]) -> list[RowError]:
        if not isinstance(payload, dict):
            return []
        errors = []
        for item in payload.get("insertErrors") or []:
            if not isinstance(item, dict):
                continue
            index = item.get("index")
            record_id = records[index].id if isinstance(index, int) and 0 <= index < len(records) else None
            messages = [
                e.get("message") or e.get("reason") or str(e) if isinstance(e, dict) else str(e)
                for e in item.get("errors") or []
            ]
            errors.append(RowError(index=index if isinstance(index, int) else -1, record_id=record_id, messages=messages))
        return errors

    def table_exists(self) -> bool:
        """Check the destination table. Any failure is logged and reported as False."""
        try:
            token = self._tokens.get_token(READ_SCOPE)
            response = self._http.get(self.table_url, headers={"Authorization": f"Bearer {token}"})
        except Exception as e:
            logger.error("bigquery_table_check_failed", error=str(e))
            return False

        if response.status_code == 404:
            logger.warning("bigquery_table_missing", table=self.table)
            return False
        if not response.is_success:
            logger.error("bigquery_table_check_failed", status=response.status_code, body=response.text[:500])
            return False
        logger.info("bigquery_table_exists", table=self.table)
        return True


__all__ = [
    "BigQuerySink",
    "InsertReport",
    "RowError",
    "ROW_COLUMNS",
    "build_insert_request",
    "to_row",
]
