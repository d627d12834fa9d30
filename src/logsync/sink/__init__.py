"""Warehouse sink: BigQuery streaming inserts and service-account auth."""

from logsync.sink.auth import INSERT_SCOPE, READ_SCOPE, ServiceAccountTokenProvider, sign_assertion
from logsync.sink.bigquery import BigQuerySink, InsertReport, RowError

__all__ = [
    "BigQuerySink",
    "INSERT_SCOPE",
    "InsertReport",
    "READ_SCOPE",
    "RowError",
    "ServiceAccountTokenProvider",
    "sign_assertion",
]
