"""
Forward sync: ingest everything newer than the committed cursor.

Manifesto:
    One invocation runs one cycle. The cycle is a function from state to
    state; the controller loads state before it and saves the result after
    it, so nothing is written unless every step up to the sink write
    succeeded.

    - **Two-phase read:** same-timestamp records first, then newer ones
    - **Commit last:** the cursor moves to the last delivered record only
      after the sink write returned
    - **Idempotent retry:** an aborted cycle leaves the cursor alone, the
      next tick reads the same window again

Architecture:
    ::

        ForwardController.run()
              │ CursorStore.load_forward()
              ▼
        run_forward_cycle(state)
              │ cursor = state.cursor or {now - lookback, ""}
              │ phase 1: eq ts, id > cursor.id   (phase1_max_pages)
              │ phase 2: gt ts                   (forward_max_pages)
              │ deliver(phase1 + phase2)
              │   nothing fetched → NOOP, state unchanged
              │   all duplicates  → cursor moves to last fetched
              ▼
        ForwardState(cursor=last delivered, oldest=oldest or first delivered)
              │ CursorStore.save_forward(new_state)
              ▼
        CycleReport

Tags:
    forward-sync, cursor, incremental, two-phase-fetch
"""

from __future__ import annotations

import time
from dataclasses import replace
from datetime import datetime

from logsync.core.cursors import Cursor, CursorStore, ForwardState
from logsync.core.logging import get_logger
from logsync.core.timestamps import lookback
from logsync.dedup import DedupFilter
from logsync.sink.bigquery import BigQuerySink
from logsync.source.client import LogSourceClient
from logsync.sync.delivery import deliver
from logsync.sync.report import CycleReport, CycleStatus

logger = get_logger(__name__)

CADENCE = "forward"


def run_forward_cycle(
    state: ForwardState,
    *,
    source: LogSourceClient,
    dedup: DedupFilter,
    sink: BigQuerySink,
    phase1_max_pages: int = 5,
    forward_max_pages: int = 20,
    lookback_minutes: int = 10,
    mark_after_sink: bool = True,
    now: datetime | None = None,
) -> tuple[ForwardState, CycleReport]:
    """Run one forward cycle and return the state to commit.

    Raises:
        SourceError: A fetch failed; nothing was delivered.
        SinkError: The write failed; the returned state was never produced.
    """
    started = time.monotonic()
    cursor = state.cursor or Cursor(timestamp=lookback(lookback_minutes, now=now), id="")
    logger.debug("forward_cursor", ts=cursor.timestamp, id=cursor.id, defaulted=state.cursor is None)

    fetched = source.fetch_after(
        cursor, phase1_max_pages=phase1_max_pages, phase2_max_pages=forward_max_pages
    )
    delivery = deliver(fetched, dedup=dedup, sink=sink, mark_after_sink=mark_after_sink)

    report = CycleReport(
        cadence=CADENCE,
        fetched=len(fetched),
        accepted=len(delivery.accepted),
        cursor=state.cursor,
        oldest=state.oldest,
    )

    if not fetched:
        report.elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info("forward_nothing_new", elapsed_ms=report.elapsed_ms)
        return state, report

    # A window of already-marked records still moves the cursor past it.
    covered = delivery.accepted or fetched
    if not delivery.accepted:
        logger.info("forward_window_already_delivered", fetched=len(fetched), last_id=fetched[-1].id)

    last = covered[-1]
    new_state = replace(
        state,
        cursor=Cursor(timestamp=last.created_at, id=last.id),
        oldest=state.oldest or covered[0].created_at,
    )

    report.status = CycleStatus.COMPLETED
    report.inserted = delivery.insert.inserted
    report.row_errors = list(delivery.insert.row_errors)
    report.marking_failures = [record_id for record_id, _ in delivery.marks.failures]
    report.cursor = new_state.cursor
    report.oldest = new_state.oldest
    report.elapsed_ms = int((time.monotonic() - started) * 1000)
    return new_state, report


class ForwardController:
    """Loads forward state, runs one cycle, commits the result."""

    def __init__(
        self,
        store: CursorStore,
        *,
        source: LogSourceClient,
        dedup: DedupFilter,
        sink: BigQuerySink,
        phase1_max_pages: int = 5,
        forward_max_pages: int = 20,
        lookback_minutes: int = 10,
        mark_after_sink: bool = True,
    ):
        self.store = store
        self.source = source
        self.dedup = dedup
        self.sink = sink
        self.phase1_max_pages = phase1_max_pages
        self.forward_max_pages = forward_max_pages
        self.lookback_minutes = lookback_minutes
        self.mark_after_sink = mark_after_sink

    def run(self) -> CycleReport:
        state = self.store.load_forward()
        new_state, report = run_forward_cycle(
            state,
            source=self.source,
            dedup=self.dedup,
            sink=self.sink,
            phase1_max_pages=self.phase1_max_pages,
            forward_max_pages=self.forward_max_pages,
            lookback_minutes=self.lookback_minutes,
            mark_after_sink=self.mark_after_sink,
        )
        if report.status is CycleStatus.COMPLETED:
            self.store.save_forward(new_state)
            logger.info("forward_cycle_completed", **report.to_dict())
        return report


__all__ = ["ForwardController", "run_forward_cycle", "CADENCE"]
