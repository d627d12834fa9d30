"""
Cursor state for incremental sync.

Two controllers own two disjoint pieces of progress state:

- the forward controller owns the **cursor** ``{ts, id}`` of the last
  committed record and, once, the **oldest-seen marker**;
- the backfill controller owns the **oldest-seen marker** after that,
  moving it backward until it reaches the **stop boundary**.

State is a value. Cycle functions take a state object and return a new one;
only :class:`CursorStore` reads or writes the durable store.

Manifesto:
    - **Explicit state:** ``ForwardState`` / ``BackfillState`` are frozen
      dataclasses passed in and returned, never module globals
    - **Commit last:** callers save state only after the sink write returned
    - **Wire compatible:** keys ``forward``, ``oldest``, ``backfill_stop_at``
      hold the same values the Cloudflare Worker writes

Architecture:
    ::

        state namespace
        ┌──────────────────┬───────────────────────────────────────────┐
        │ forward          │ {"ts": "2026-01-01T00:00:00.000Z", "id": …} │
        │ oldest           │ 2025-12-30T17:04:11.512Z                    │
        │ backfill_stop_at │ 2025-01-01T00:00:00Z                        │
        └──────────────────┴───────────────────────────────────────────┘

        CursorStore.load_forward()  → ForwardState(cursor, oldest)
        CursorStore.save_forward(s) → forward := cursor, oldest := first seen
        CursorStore.load_backfill() → BackfillState(oldest, stop_at)
        CursorStore.save_backfill(s)→ oldest := s.oldest | delete

Guardrails:
    ❌ DON'T: Write ``oldest`` from forward sync once it exists
    ✅ DO: Let save_forward() set it only when the store has none

    ❌ DON'T: Save a cursor before the sink write returned
    ✅ DO: Run the cycle function, then save the state it returned

Tags:
    cursor, watermark, incremental, backfill, state
"""

from __future__ import annotations

import json
from dataclasses import dataclass

from logsync.core.errors import StorageError
from logsync.core.kv import KeyValueStore
from logsync.core.logging import get_logger
from logsync.core.timestamps import EPOCH, parse_timestamp

logger = get_logger(__name__)

FORWARD_KEY = "forward"
OLDEST_KEY = "oldest"
STOP_AT_KEY = "backfill_stop_at"


@dataclass(frozen=True, slots=True)
class Cursor:
    """Position of the last committed record in forward order."""

    timestamp: str
    id: str

    def to_json(self) -> str:
        return json.dumps({"ts": self.timestamp, "id": self.id})

    @classmethod
    def from_json(cls, raw: str) -> Cursor:
        try:
            data = json.loads(raw)
            return cls(timestamp=str(data["ts"]), id=str(data.get("id") or ""))
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError(f"Stored forward cursor is malformed: {raw!r}", cause=e) from e


@dataclass(frozen=True, slots=True)
class ForwardState:
    """State read and produced by one forward cycle.

    ``cursor`` is ``None`` until the first batch is committed.
    ``oldest`` is the oldest-seen marker as loaded (``None`` if unset).
    """

    cursor: Cursor | None = None
    oldest: str | None = None


@dataclass(frozen=True, slots=True)
class BackfillState:
    """State read and produced by one backfill cycle.

    ``oldest`` is ``None`` when there is nothing (left) to backfill.
    """

    oldest: str | None = None
    stop_at: str = EPOCH


class CursorStore:
    """Loads and saves controller state in the state namespace.

    Args:
        kv: State namespace of the key/value store.
        default_stop_at: Boundary used when ``backfill_stop_at`` is not
            persisted. Falls back to the epoch.
    """

    def __init__(self, kv: KeyValueStore, *, default_stop_at: str | None = None):
        self._kv = kv
        if default_stop_at is not None:
            parse_timestamp(default_stop_at)
        self._default_stop_at = default_stop_at or EPOCH

    # ── forward ──────────────────────────────────────────────────

    def load_forward(self) -> ForwardState:
        raw = self._kv.get(FORWARD_KEY)
        cursor = Cursor.from_json(raw) if raw else None
        return ForwardState(cursor=cursor, oldest=self._kv.get(OLDEST_KEY) or None)

    def save_forward(self, state: ForwardState) -> None:
        if state.cursor is not None:
            self._kv.put(FORWARD_KEY, state.cursor.to_json())
        # Backfill may have moved or cleared the marker since load.
        if state.oldest and not self._kv.get(OLDEST_KEY):
            self._kv.put(OLDEST_KEY, state.oldest)
            logger.info("oldest_marker_recorded", oldest=state.oldest)

    # ── backfill ─────────────────────────────────────────────────

    def load_backfill(self) -> BackfillState:
        """Read the marker and stop boundary.

        Raises:
            StorageError: A stored timestamp does not parse.
        """
        stop_at = self._stored_timestamp(STOP_AT_KEY) or self._default_stop_at
        return BackfillState(oldest=self._stored_timestamp(OLDEST_KEY), stop_at=stop_at)

    def _stored_timestamp(self, key: str) -> str | None:
        raw = self._kv.get(key) or None
        if raw is not None:
            try:
                parse_timestamp(raw)
            except ValueError as e:
                raise StorageError(f"Stored {key} is malformed: {raw!r}", cause=e) from e
        return raw

    def save_backfill(self, state: BackfillState) -> None:
        if state.oldest is None:
            self._kv.delete(OLDEST_KEY)
        else:
            self._kv.put(OLDEST_KEY, state.oldest)

    # ── maintenance ──────────────────────────────────────────────

    def set_stop_boundary(self, timestamp: str) -> None:
        """Persist the backfill stop boundary (validated as ISO-8601)."""
        parse_timestamp(timestamp)
        self._kv.put(STOP_AT_KEY, timestamp)

    def clear_stop_boundary(self) -> None:
        self._kv.delete(STOP_AT_KEY)

    def clear_oldest(self) -> None:
        """Drop the oldest-seen marker, ending any backfill in progress."""
        self._kv.delete(OLDEST_KEY)

    def snapshot(self) -> dict[str, str | None]:
        """Raw values of every state key, for display."""
        return {key: self._kv.get(key) for key in (FORWARD_KEY, OLDEST_KEY, STOP_AT_KEY)}


__all__ = [
    "Cursor",
    "ForwardState",
    "BackfillState",
    "CursorStore",
    "FORWARD_KEY",
    "OLDEST_KEY",
    "STOP_AT_KEY",
]
