"""Per-cycle outcome reported by both controllers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from logsync.core.cursors import Cursor
from logsync.sink.bigquery import RowError


class CycleStatus(str, Enum):
    """How a cycle ended (failures raise instead)."""

    COMPLETED = "completed"
    NOOP = "noop"
    BACKFILL_COMPLETE = "backfill_complete"
    SKIPPED = "skipped"


@dataclass
class CycleReport:
    """What one forward or backfill cycle did.

    ``cursor`` is the forward cursor after the cycle and ``oldest`` the
    oldest-seen marker after the cycle (``None`` once backfill is complete).
    """

    cadence: str
    status: CycleStatus = CycleStatus.NOOP
    fetched: int = 0
    accepted: int = 0
    inserted: int = 0
    row_errors: list[RowError] = field(default_factory=list)
    marking_failures: list[str] = field(default_factory=list)
    cursor: Cursor | None = None
    oldest: str | None = None
    elapsed_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "cadence": self.cadence,
            "status": self.status.value,
            "fetched": self.fetched,
            "accepted": self.accepted,
            "inserted": self.inserted,
            "elapsed_ms": self.elapsed_ms,
        }
        if self.row_errors:
            result["rejected_ids"] = [e.record_id for e in self.row_errors]
        if self.marking_failures:
            result["marking_failures"] = list(self.marking_failures)
        if self.cursor is not None:
            result["cursor"] = {"ts": self.cursor.timestamp, "id": self.cursor.id}
        result["oldest"] = self.oldest
        return result


__all__ = ["CycleReport", "CycleStatus"]
