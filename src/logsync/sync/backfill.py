"""
Backfill sync: walk backward from the oldest-seen marker.

Each cycle reads the newest ``backfill_max_pages`` pages strictly older
than the marker, delivers them oldest-first and moves the marker back to
the oldest delivered record. The marker is deleted (backfill complete) when
a read comes back empty or the marker reaches the stop boundary; forward
sync sets a new one the next time it finds the store without one.

If every record of a read was already delivered, the marker still moves
back to the oldest record read. Without that a window full of duplicates
would be re-read forever.

Known gap: a read that ends part way through a run of records sharing one
timestamp moves the marker to that timestamp, and the next ``lt`` read
skips the rest of the run.
"""

from __future__ import annotations

import time
from dataclasses import replace

from logsync.core.cursors import BackfillState, CursorStore
from logsync.core.logging import get_logger
from logsync.core.timestamps import at_or_before
from logsync.dedup import DedupFilter
from logsync.sink.bigquery import BigQuerySink
from logsync.source.client import LogSourceClient, backfill_query
from logsync.source.records import sort_records
from logsync.sync.delivery import deliver
from logsync.sync.report import CycleReport, CycleStatus

logger = get_logger(__name__)

CADENCE = "backfill"


def run_backfill_cycle(
    state: BackfillState,
    *,
    source: LogSourceClient,
    dedup: DedupFilter,
    sink: BigQuerySink,
    max_pages: int = 40,
    mark_after_sink: bool = True,
) -> tuple[BackfillState, CycleReport]:
    """Run one backfill cycle and return the state to commit."""
    started = time.monotonic()
    report = CycleReport(cadence=CADENCE, oldest=state.oldest)

    def finish(new_state: BackfillState, status: CycleStatus) -> tuple[BackfillState, CycleReport]:
        report.status = status
        report.oldest = new_state.oldest
        report.elapsed_ms = int((time.monotonic() - started) * 1000)
        return new_state, report

    if state.oldest is None:
        logger.info("backfill_no_marker")
        return finish(state, CycleStatus.NOOP)

    if at_or_before(state.oldest, state.stop_at):
        logger.info("backfill_reached_stop", oldest=state.oldest, stop_at=state.stop_at)
        return finish(replace(state, oldest=None), CycleStatus.BACKFILL_COMPLETE)

    logger.debug("backfill_window", oldest=state.oldest, stop_at=state.stop_at)
    fetched = source.fetch(backfill_query(state.oldest, max_pages=max_pages))
    report.fetched = len(fetched)

    if not fetched:
        logger.info("backfill_exhausted", oldest=state.oldest)
        return finish(replace(state, oldest=None), CycleStatus.BACKFILL_COMPLETE)

    ordered = sort_records(fetched, ascending=True)
    delivery = deliver(ordered, dedup=dedup, sink=sink, mark_after_sink=mark_after_sink)
    report.accepted = len(delivery.accepted)
    report.inserted = delivery.insert.inserted
    report.row_errors = list(delivery.insert.row_errors)
    report.marking_failures = [record_id for record_id, _ in delivery.marks.failures]

    new_oldest = (delivery.accepted or ordered)[0].created_at
    if not delivery.accepted:
        logger.info("backfill_window_already_delivered", fetched=len(fetched), new_oldest=new_oldest)

    if at_or_before(new_oldest, state.stop_at):
        logger.info("backfill_reached_stop", oldest=new_oldest, stop_at=state.stop_at)
        return finish(replace(state, oldest=None), CycleStatus.BACKFILL_COMPLETE)

    return finish(replace(state, oldest=new_oldest), CycleStatus.COMPLETED)


class BackfillController:
    """Loads backfill state, runs one cycle, commits the result."""

    def __init__(
        self,
        store: CursorStore,
        *,
        source: LogSourceClient,
        dedup: DedupFilter,
        sink: BigQuerySink,
        max_pages: int = 40,
        mark_after_sink: bool = True,
    ):
        self.store = store
        self.source = source
        self.dedup = dedup
        self.sink = sink
        self.max_pages = max_pages
        self.mark_after_sink = mark_after_sink

    def run(self) -> CycleReport:
        state = self.store.load_backfill()
        new_state, report = run_backfill_cycle(
            state,
            source=self.source,
            dedup=self.dedup,
            sink=self.sink,
            max_pages=self.max_pages,
            mark_after_sink=self.mark_after_sink,
        )
        if new_state != state:
            self.store.save_backfill(new_state)
            logger.info("backfill_cycle_completed", **report.to_dict())
        return report


__all__ = ["BackfillController", "run_backfill_cycle", "CADENCE"]
