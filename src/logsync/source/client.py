"""
Paginated, filtered reads against the AI Gateway logs API.

Manifesto:
    The logs API is ordered by ``created_at`` but timestamps are not
    unique: a page may end in the middle of a run of records that share one
    timestamp. Resuming with ``created_at > cursor.ts`` alone would skip the
    rest of that run, so forward sync always reads in two phases:

    - **Phase 1:** ``created_at == cursor.ts AND id > cursor.id`` (ascending)
    - **Phase 2:** ``created_at > cursor.ts`` (ascending)

    Phase 1 followed by phase 2 is every record after the cursor, in order.

    The client never retries. A failed page fails the whole fetch, and the
    records of earlier pages are dropped with it, so a cycle can never commit
    a partial read. Retrying is the next scheduler tick's job.

Architecture:
    ::

        FetchQuery(op, timestamp, id_cmp, order, max_pages)
              │
              ▼
        LogSourceClient.fetch(query)
              │   page = 1..max_pages
              ▼
        GET {base}/accounts/{acct}/ai-gateway/gateways/{gw}/logs
            ?per_page&page&order_by=created_at&order_by_direction
            &filters={"key":"created_at","operator":op,"value":[ts]}
            &filters={"key":"id","operator":gt|lt,"value":[id]}
              │
              ▼  stop on empty page or len(page) < per_page
        list[Record]

Guardrails:
    ❌ DON'T: Use an id comparison without ``op == EQ``
    ✅ DO: Build forward reads with :func:`forward_queries`

    ❌ DON'T: Catch SourceError inside a cycle and carry on
    ✅ DO: Let it abort the cycle before any state is written

Tags:
    http, pagination, cursor, two-phase-fetch, httpx
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from logsync.core.cursors import Cursor
from logsync.core.errors import ParseError, SourceError, SourceUnavailableError
from logsync.core.logging import get_logger
from logsync.source.records import Record

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.cloudflare.com/client/v4"


class FilterOp(str, Enum):
    """Comparison operators understood by the logs API filters."""

    EQ = "eq"
    GT = "gt"
    LT = "lt"


class Order(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True, slots=True)
class IdComparison:
    """Tie-break on ``id`` among records sharing one timestamp."""

    op: FilterOp
    id: str

    def __post_init__(self) -> None:
        if self.op not in (FilterOp.GT, FilterOp.LT):
            raise ValueError(f"id comparison must be gt or lt, got {self.op.value}")


@dataclass(frozen=True, slots=True)
class FetchQuery:
    """One logical read: a timestamp predicate, an order and a page budget.

    Raises:
        ValueError: If ``id_cmp`` is combined with anything but ``EQ`` or
            ``max_pages`` is not positive.
    """

    op: FilterOp
    timestamp: str
    order: Order = Order.ASC
    max_pages: int = 1
    id_cmp: IdComparison | None = None

    def __post_init__(self) -> None:
        if self.id_cmp is not None and self.op is not FilterOp.EQ:
            raise ValueError("id comparison is only valid with an eq timestamp filter")
        if self.max_pages < 1:
            raise ValueError(f"max_pages must be positive, got {self.max_pages}")

    def filters(self) -> list[dict[str, Any]]:
        result = [{"key": "created_at", "operator": self.op.value, "value": [self.timestamp]}]
        if self.id_cmp is not None:
            result.append({"key": "id", "operator": self.id_cmp.op.value, "value": [self.id_cmp.id]})
        return result

    def describe(self) -> str:
        text = f"created_at {self.op.value} {self.timestamp}"
        if self.id_cmp is not None:
            text += f" and id {self.id_cmp.op.value} {self.id_cmp.id!r}"
        return f"{text} ({self.order.value}, <= {self.max_pages} pages)"


def forward_queries(
    cursor: Cursor,
    *,
    phase1_max_pages: int,
    phase2_max_pages: int,
) -> tuple[FetchQuery, FetchQuery]:
    """Build the phase-1 (same timestamp, later id) and phase-2 (later timestamp) reads."""
    phase1 = FetchQuery(
        op=FilterOp.EQ,
        timestamp=cursor.timestamp,
        id_cmp=IdComparison(FilterOp.GT, cursor.id),
        order=Order.ASC,
        max_pages=phase1_max_pages,
    )
    phase2 = FetchQuery(
        op=FilterOp.GT,
        timestamp=cursor.timestamp,
        order=Order.ASC,
        max_pages=phase2_max_pages,
    )
    return phase1, phase2


def backfill_query(oldest: str, *, max_pages: int) -> FetchQuery:
    """Newest-first read of everything strictly older than *oldest*."""
    return FetchQuery(op=FilterOp.LT, timestamp=oldest, order=Order.DESC, max_pages=max_pages)


class LogSourceClient:
    """Reads gateway logs page by page.

    The ``httpx.Client`` is owned by the caller (the container closes it).

    Example:
        >>> client = LogSourceClient(http, account_id="acct", gateway_id="gw", api_token="...")
        >>> records = client.fetch(backfill_query("2026-01-01T00:00:00Z", max_pages=2))
    """

    def __init__(
        self,
        http: httpx.Client,
        *,
        account_id: str,
        gateway_id: str,
        api_token: str,
        per_page: int = 50,
        base_url: str = DEFAULT_BASE_URL,
    ):
        if per_page < 1:
            raise ValueError(f"per_page must be positive, got {per_page}")
        self._http = http
        self._headers = {
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        }
        self.per_page = per_page
        self.url = f"{base_url.rstrip('/')}/accounts/{account_id}/ai-gateway/gateways/{gateway_id}/logs"

    def fetch(self, query: FetchQuery) -> list[Record]:
        """Read up to ``query.max_pages`` pages.

        Raises:
            SourceUnavailableError: Transport failure.
            SourceError: Non-200 response or ``success: false``.
            ParseError: Body is not the expected envelope.
        """
        started = time.monotonic()
        records: list[Record] = []
        pages = 0
        for page in range(1, query.max_pages + 1):
            batch = self.fetch_page(query, page)
            pages += 1
            if not batch:
                logger.debug("logs_page_empty", page=page)
                break
            records.extend(batch)
            logger.debug("logs_page_fetched", page=page, count=len(batch))
            if len(batch) < self.per_page:
                break

        logger.info(
            "logs_fetched",
            query=query.describe(),
            count=len(records),
            pages=pages,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return records

    def fetch_page(self, query: FetchQuery, page: int) -> list[Record]:
        """Read a single page of *query*."""
        params: list[tuple[str, str | int]] = [
            ("per_page", self.per_page),
            ("page", page),
            ("order_by", "created_at"),
            ("order_by_direction", query.order.value),
        ]
        params.extend(("filters", json.dumps(f, separators=(",", ":"))) for f in query.filters())

        try:
            response = self._http.get(self.url, params=params, headers=self._headers)
        except httpx.HTTPError as e:
            raise SourceUnavailableError(f"Logs API unreachable: {e}", cause=e).with_context(
                url=self.url, page=page
            ) from e

        if response.status_code != 200:
            logger.error("logs_api_error", status=response.status_code, page=page, body=response.text[:500])
            raise SourceError(
                f"Logs API returned {response.status_code}: {response.text[:200]}"
            ).with_context(url=self.url, http_status=response.status_code, page=page)

        return self._parse(response, page)

    def _parse(self, response: httpx.Response, page: int) -> list[Record]:
        try:
            body = response.json()
        except ValueError as e:
            raise ParseError("Logs API returned invalid JSON", cause=e).with_context(url=self.url, page=page) from e

        if not isinstance(body, dict):
            raise ParseError("Logs API response is not an object").with_context(url=self.url, page=page)

        if not body.get("success"):
            messages = [
                str(err.get("message", err)) if isinstance(err, dict) else str(err)
                for err in body.get("errors") or []
            ]
            raise SourceError(
                f"Logs API error: {', '.join(messages) or 'Unknown error'}"
            ).with_context(url=self.url, http_status=response.status_code, page=page)

        result = body.get("result")
        if result is None:
            return []
        if not isinstance(result, list):
            raise ParseError("Logs API result is not a list").with_context(url=self.url, page=page)
        return [Record.from_api(item) for item in result]

    def fetch_after(self, cursor: Cursor, *, phase1_max_pages: int, phase2_max_pages: int) -> list[Record]:
        """Two-phase read of every record after *cursor*, ascending."""
        phase1, phase2 = forward_queries(
            cursor, phase1_max_pages=phase1_max_pages, phase2_max_pages=phase2_max_pages
        )
        same_ts = self.fetch(phase1)
        newer = self.fetch(phase2)
        logger.debug("forward_phases_fetched", phase1=len(same_ts), phase2=len(newer))
        return same_ts + newer


__all__ = [
    "FilterOp",
    "Order",
    "IdComparison",
    "FetchQuery",
    "LogSourceClient",
    "forward_queries",
    "backfill_query",
]
