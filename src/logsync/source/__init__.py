"""Log source: records and the paginated logs API client."""

from logsync.source.client import (
    FetchQuery,
    FilterOp,
    IdComparison,
    LogSourceClient,
    Order,
    backfill_query,
    forward_queries,
)
from logsync.source.records import Record, sort_records

__all__ = [
    "FetchQuery",
    "FilterOp",
    "IdComparison",
    "LogSourceClient",
    "Order",
    "Record",
    "backfill_query",
    "forward_queries",
    "sort_records",
]
