"""
Run-id generation and timestamp utilities (stdlib-only).

The log source speaks ISO-8601 with a trailing ``Z``; state keys store the
same strings verbatim. Comparisons go through :func:`parse_timestamp` so
that ``2026-01-01T00:00:00Z`` and ``2026-01-01T00:00:00.000Z`` order equal.

Features:
    - **utc_now():** Timezone-aware UTC datetime
    - **format_timestamp():** millisecond ISO-8601 with ``Z`` suffix
    - **parse_timestamp():** accepts ``Z`` / offsets / naive (assumed UTC)
    - **generate_run_id():** time-sortable 26-char id for log correlation

STDLIB ONLY.
"""

import random
import time
from datetime import UTC, datetime, timedelta

EPOCH = "1970-01-01T00:00:00Z"


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def format_timestamp(dt: datetime) -> str:
    """Format a datetime the way the log source does (``...T..:..:..sssZ``)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string to an aware UTC datetime.

    Raises:
        ValueError: If *value* is not ISO-8601.
    """
    dt = datetime.fromisoformat(value.strip())
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def lookback(minutes: int, *, now: datetime | None = None) -> str:
    """Timestamp *minutes* before *now*, formatted for the source filters."""
    return format_timestamp((now or utc_now()) - timedelta(minutes=minutes))


def at_or_before(value: str, boundary: str) -> bool:
    """True when timestamp *value* is ≤ *boundary*."""
    return parse_timestamp(value) <= parse_timestamp(boundary)


def generate_run_id() -> str:
    """
    Generate a ULID-like identifier.

    Format: 26 characters, base32 encoded, time-sortable.
    """
    timestamp_ms = int(time.time() * 1000)
    timestamp_chars = _encode_base32(timestamp_ms, 10)
    random_part = "".join(random.choices(_ENCODING, k=16))
    return timestamp_chars + random_part


# ULID base32 alphabet (Crockford's)
_ENCODING = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_ENCODING_LEN = len(_ENCODING)


def _encode_base32(value: int, length: int) -> str:
    """Encode integer to base32 string of fixed length."""
    result = []
    for _ in range(length):
        result.append(_ENCODING[value % _ENCODING_LEN])
        value //= _ENCODING_LEN
    return "".join(reversed(result))
