"""Log records as returned by the AI Gateway logs API."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from logsync.core.errors import ParseError
from logsync.core.timestamps import parse_timestamp


@dataclass(frozen=True, slots=True)
class Record:
    """One logged gateway event.

    Only ``id`` and ``created_at`` mean anything to the sync engine. The
    rest of the API object is kept verbatim in ``payload`` and handed to
    the sink.
    """

    id: str
    created_at: str
    payload: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_api(cls, item: Any) -> Record:
        """Build a record from one element of the API ``result`` list.

        A missing ``id`` becomes ``""`` (dropped later by the dedup filter).

        Raises:
            ParseError: If the item is not an object or ``created_at`` is
                missing or not ISO-8601.
        """
        if not isinstance(item, dict):
            raise ParseError(f"Log entry is not an object: {item!r}")
        created_at = item.get("created_at")
        if not isinstance(created_at, str) or not created_at:
            raise ParseError("Log entry has no created_at").with_context(record_id=str(item.get("id") or ""))
        try:
            parse_timestamp(created_at)
        except ValueError as e:
            raise ParseError(f"Log entry has invalid created_at {created_at!r}", cause=e).with_context(
                record_id=str(item.get("id") or "")
            ) from e
        raw_id = item.get("id")
        return cls(id="" if raw_id is None else str(raw_id), created_at=created_at, payload=dict(item))

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return parse_timestamp(self.created_at), self.id

    def to_dict(self) -> dict[str, Any]:
        return {**self.payload, "id": self.id, "created_at": self.created_at}


def sort_records(records: Iterable[Record], *, ascending: bool = True) -> list[Record]:
    """Order records by ``(created_at, id)``."""
    return sorted(records, key=lambda r: r.sort_key, reverse=not ascending)


__all__ = ["Record", "sort_records"]
