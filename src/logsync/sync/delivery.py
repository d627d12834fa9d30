"""Dedup, write and mark one ordered batch.

Both controllers hand their ordered batch to :func:`deliver`. The order of
marking relative to the sink write is the one knob:

- ``mark_after_sink=True``: select, write, then mark. A sink failure leaves
  no markers behind, so the next cycle re-sends the batch. A crash between
  write and mark causes a duplicate the insert id absorbs.
- ``mark_after_sink=False``: select and mark, then write. A sink failure
  leaves markers for rows that never arrived, and those rows are skipped
  until the markers expire.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from logsync.dedup import DedupFilter, MarkReport
from logsync.sink.bigquery import BigQuerySink, InsertReport
from logsync.source.records import Record


@dataclass
class Delivery:
    accepted: list[Record] = field(default_factory=list)
    insert: InsertReport = field(default_factory=InsertReport)
    marks: MarkReport = field(default_factory=MarkReport)


def deliver(
    records: list[Record],
    *,
    dedup: DedupFilter,
    sink: BigQuerySink,
    mark_after_sink: bool = True,
) -> Delivery:
    """Send the not-yet-delivered part of *records*. Sink failures propagate."""
    if not mark_after_sink:
        accepted, marks = dedup.filter(records)
        if not accepted:
            return Delivery()
        return Delivery(accepted=accepted, insert=sink.write(accepted), marks=marks)

    accepted = dedup.select(records)
    if not accepted:
        return Delivery()
    insert = sink.write(accepted)
    return Delivery(accepted=accepted, insert=insert, marks=dedup.mark(accepted))


__all__ = ["Delivery", "deliver"]
