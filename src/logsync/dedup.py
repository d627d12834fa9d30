"""
Per-batch dedup filter backed by TTL markers in the ids namespace.

Manifesto:
    The sink accepts duplicates (its insert id absorbs retries for a short
    window, and a downstream view dedups the rest), so dedup here is a cost
    control, not a correctness guarantee. That sets the failure policy:

    - **Lookups fail loud:** a store read error aborts the cycle
    - **Marks fail soft:** a store write error is logged and recorded in
      :class:`MarkReport`, never raised; a lost marker only risks a future
      duplicate
    - **Bounded memory:** markers expire after ``ttl_seconds`` (45 days by
      default); past that, an id may be delivered again

Architecture:
    ::

        records ──► select()                          ──► accepted
                    drop empty id
                    drop id already seen in this batch
                    drop id with marker id:<id>

        accepted ─► mark() ── put id:<id> = "1" (ttl) per record, in parallel
                              └─► MarkReport(marked, failures)

        filter() = select() then mark(), the optimistic order. Controllers
        running with ``mark_after_sink`` call select() / mark() around the
        sink write instead.

Tags:
    dedup, idempotency, ttl, key-value, best-effort
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from logsync.core.kv import KeyValueStore, iter_keys
from logsync.core.logging import get_logger
from logsync.core.result import Result, partition_results, try_result
from logsync.source.records import Record

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 45 * 24 * 60 * 60
MARKER_VALUE = "1"


@dataclass
class MarkReport:
    """Outcome of writing dedup markers for a batch."""

    marked: list[str] = field(default_factory=list)
    failures: list[tuple[str, Exception]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        return {
            "marked": len(self.marked),
            "failed": [record_id for record_id, _ in self.failures],
        }


@dataclass(frozen=True, slots=True)
class DedupStats:
    total_entries: int
    sample_ids: list[str]


class DedupFilter:
    """Drops records already delivered within the retention window.

    Args:
        kv: The ids namespace of the key/value store. Owned by this filter.
        ttl_seconds: Marker lifetime.
        key_prefix: Marker key prefix, ``id:`` by default.
        max_workers: Parallel marker writes; 1 writes sequentially.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        key_prefix: str = "id:",
        max_workers: int = 8,
    ):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self._kv = kv
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self.max_workers = max(1, max_workers)

    def key_for(self, record_id: str) -> str:
        return f"{self.key_prefix}{record_id}"

    def select(self, records: Iterable[Record]) -> list[Record]:
        """Return the records not yet delivered, in input order. Writes nothing."""
        started = time.monotonic()
        seen: set[str] = set()
        accepted: list[Record] = []
        total = 0

        for record in records:
            total += 1
            if not record.id:
                logger.warning("record_without_id", created_at=record.created_at)
                continue
            if record.id in seen:
                logger.debug("duplicate_in_batch", record_id=record.id)
                continue
            seen.add(record.id)
            if self._kv.get(self.key_for(record.id)):
                logger.debug("already_processed", record_id=record.id)
                continue
            accepted.append(record)

        logger.info(
            "dedup_complete",
            input=total,
            output=len(accepted),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return accepted

    def mark(self, records: Iterable[Record]) -> MarkReport:
        """Write a marker for each record. Never raises for store failures."""
        ids = [r.id for r in records if r.id]
        report = MarkReport()
        if not ids:
            return report

        if self.max_workers == 1 or len(ids) == 1:
            results = [self._mark_one(record_id) for record_id in ids]
        else:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(ids))) as pool:
                results = list(pool.map(self._mark_one, ids))

        marked, _ = partition_results(results)
        report.marked.extend(marked)
        for record_id, result in zip(ids, results):
            if result.is_err():
                report.failures.append((record_id, result.error))
                logger.warning("mark_failed", record_id=record_id, error=str(result.error))

        logger.debug("dedup_marked", marked=len(report.marked), failed=len(report.failures))
        return report

    def _mark_one(self, record_id: str) -> Result[str]:
        return try_result(
            lambda: self._kv.put(self.key_for(record_id), MARKER_VALUE, ttl_seconds=self.ttl_seconds)
        ).map(lambda _: record_id)

    def filter(self, records: Iterable[Record]) -> tuple[list[Record], MarkReport]:
        """Select the undelivered records and mark them immediately."""
        accepted = self.select(records)
        return accepted, self.mark(accepted)

    # ── maintenance ──────────────────────────────────────────────

    def stats(self, *, sample: int = 10) -> DedupStats:
        """Count live markers and return a few of their ids."""
        total = 0
        sample_ids: list[str] = []
        for key in iter_keys(self._kv, self.key_prefix):
            total += 1
            if len(sample_ids) < sample:
                sample_ids.append(key[len(self.key_prefix):])
        logger.info("dedup_stats", total_entries=total)
        return DedupStats(total_entries=total, sample_ids=sample_ids)

    def clear(self) -> int:
        """Delete every marker. The next cycles may re-deliver records."""
        logger.warning("dedup_cache_clearing")
        # Collect first so deletes do not disturb backend list cursors.
        keys = list(iter_keys(self._kv, self.key_prefix))
        for key in keys:
            self._kv.delete(key)
        logger.info("dedup_cache_cleared", deleted=len(keys))
        return len(keys)


__all__ = ["DedupFilter", "DedupStats", "MarkReport", "DEFAULT_TTL_SECONDS"]
