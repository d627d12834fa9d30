"""
Durable key/value store abstraction with three backends.

The sync engine keeps two kinds of state outside the process: cursor
state (``forward``, ``oldest``, ``backfill_stop_at``, cached tokens) and
per-record dedup markers (``id:<record id>`` with a TTL). Both go through
the same small ``KeyValueStore`` protocol.

Manifesto:
    - **Protocol-based:** KeyValueStore defines the contract, callers never
      see the backend
    - **TTL support:** dedup markers and cached tokens expire on their own
    - **Paged listing:** maintenance commands walk keys by prefix + cursor
    - **String values:** callers own serialization (JSON for structured state)

Architecture:
    ::

        KeyValueStore (Protocol)
        ├── InMemoryKeyValueStore - single process, lazy TTL expiry (tests)
        ├── RedisKeyValueStore    - SETEX / SCAN, namespaced by key prefix
        └── CloudflareKVStore     - Workers KV REST API (values / keys)

        API: get(key) → str | None
             put(key, value, ttl_seconds=None)
             delete(key)
             list(prefix, cursor=None, limit=1000) → KeyPage(keys, cursor)

Guardrails:
    ❌ DON'T: Rely on list() ordering across backends
    ✅ DO: Treat list() as "every key with this prefix, eventually"

    ❌ DON'T: Assume put-then-get is atomic across processes
    ✅ DO: Keep each key owned by exactly one controller

Tags:
    key-value, redis, cloudflare-kv, ttl, protocol, state
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from logsync.core.errors import StorageError
from logsync.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class KeyPage:
    """One page of a prefix listing.

    Attributes:
        keys: Key names on this page.
        cursor: Opaque continuation token, ``None`` when listing is complete.
    """

    keys: list[str] = field(default_factory=list)
    cursor: str | None = None


class KeyValueStore(Protocol):
    """Protocol for durable key/value store implementations."""

    def get(self, key: str) -> str | None:
        """Return the stored value, or ``None`` if absent or expired."""
        ...

    def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        """Store *value*; ``ttl_seconds=None`` means no expiry."""
        ...

    def delete(self, key: str) -> None:
        """Remove *key*. No-op if absent."""
        ...

    def list(self, prefix: str, cursor: str | None = None, limit: int = 1000) -> KeyPage:
        """List keys starting with *prefix*, one page at a time."""
        ...


def iter_keys(store: KeyValueStore, prefix: str, *, limit: int = 1000):
    """Yield every key under *prefix*, following list cursors."""
    cursor: str | None = None
    while True:
        page = store.list(prefix, cursor=cursor, limit=limit)
        yield from page.keys
        cursor = page.cursor
        if not cursor:
            return


# ------------------------------------------------------------------ #
# In-memory store
# ------------------------------------------------------------------ #


class InMemoryKeyValueStore:
    """Dict-backed store with lazy TTL expiry.

    Example:
        store = InMemoryKeyValueStore()
        store.put("id:abc", "1", ttl_seconds=3600)
        store.get("id:abc")  # "1"
    """

    def __init__(self, *, clock: Any = time.time) -> None:
        self._store: dict[str, tuple[str, float | None]] = {}
        self._clock = clock

    def get(self, key: str) -> str | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._store[key]
            return None
        return value

    def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        expires_at = (self._clock() + ttl_seconds) if ttl_seconds else None
        self._store[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def list(self, prefix: str, cursor: str | None = None, limit: int = 1000) -> KeyPage:
        live = sorted(k for k in list(self._store) if k.startswith(prefix) and self.get(k) is not None)
        start = int(cursor) if cursor else 0
        end = start + limit
        next_cursor = str(end) if end < len(live) else None
        return KeyPage(keys=live[start:end], cursor=next_cursor)

    def size(self) -> int:
        """Return the number of stored keys (expired entries included)."""
        return len(self._store)


# ------------------------------------------------------------------ #
# Redis store
# ------------------------------------------------------------------ #


class RedisKeyValueStore:
    """Redis-backed store.

    Requires the ``redis`` package (``pip install gateway-logsync[redis]``).
    Each logical namespace gets its own key prefix so state and dedup
    markers can share one Redis database.

    Example:
        state = RedisKeyValueStore("redis://localhost:6379/0", namespace="state")
        ids = RedisKeyValueStore("redis://localhost:6379/0", namespace="ids")
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        namespace: str = "",
        client: Any | None = None,
    ):
        if client is None:
            import redis

            client = redis.from_url(url, decode_responses=True)
        self._client = client
        self._prefix = f"{namespace}:" if namespace else ""

    def _k(self, key: str) -> str:
        return self._prefix + key

    def get(self, key: str) -> str | None:
        try:
            raw = self._client.get(self._k(key))
        except Exception as e:
            raise StorageError(f"Redis GET failed for {key}", cause=e) from e
        if isinstance(raw, bytes):
            return raw.decode("utf-8")
        return raw

    def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        try:
            if ttl_seconds:
                self._client.setex(self._k(key), ttl_seconds, value)
            else:
                self._client.set(self._k(key), value)
        except Exception as e:
            raise StorageError(f"Redis SET failed for {key}", cause=e) from e

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._k(key))
        except Exception as e:
            raise StorageError(f"Redis DEL failed for {key}", cause=e) from e

    def list(self, prefix: str, cursor: str | None = None, limit: int = 1000) -> KeyPage:
        try:
            next_cursor, raw_keys = self._client.scan(
                cursor=int(cursor or 0),
                match=f"{self._k(prefix)}*",
                count=limit,
            )
        except Exception as e:
            raise StorageError(f"Redis SCAN failed for prefix {prefix}", cause=e) from e
        keys = []
        for raw in raw_keys:
            name = raw.decode("utf-8") if isinstance(raw, bytes) else raw
            keys.append(name[len(self._prefix):])
        return KeyPage(keys=keys, cursor=str(next_cursor) if int(next_cursor) else None)


# ------------------------------------------------------------------ #
# Cloudflare Workers KV (REST)
# ------------------------------------------------------------------ #


class CloudflareKVStore:
    """Workers KV namespace accessed through the Cloudflare REST API.

    This is the store the Cloudflare Worker deployment uses, so pointing
    logsync at the same namespaces continues from the Worker's cursors and
    dedup markers.

    Args:
        client: ``httpx.Client`` used for all calls (owned by the caller).
        account_id: Cloudflare account id.
        namespace_id: KV namespace id.
        api_token: Bearer token with KV read/write permission.
        base_url: API root, overridable for tests.
    """

    # Workers KV rejects expiration_ttl below 60 seconds.
    MIN_TTL_SECONDS = 60

    def __init__(
        self,
        client: httpx.Client,
        *,
        account_id: str,
        namespace_id: str,
        api_token: str,
        base_url: str = "https://api.cloudflare.com/client/v4",
    ):
        self._client = client
        self._root = f"{base_url.rstrip('/')}/accounts/{account_id}/storage/kv/namespaces/{namespace_id}"
        self._headers = {"Authorization": f"Bearer {api_token}"}

    def _value_url(self, key: str) -> str:
        return f"{self._root}/values/{quote(key, safe='')}"

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._client.request(method, url, headers=self._headers, **kwargs)
        except httpx.HTTPError as e:
            raise StorageError(f"Workers KV {method} failed", cause=e).with_context(url=url) from e

    @staticmethod
    def _raise_for(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        raise StorageError(
            f"Workers KV {action} returned {response.status_code}: {response.text[:200]}"
        ).with_context(url=str(response.request.url), http_status=response.status_code)

    def get(self, key: str) -> str | None:
        response = self._send("GET", self._value_url(key))
        if response.status_code == 404:
            return None
        self._raise_for(response, "get")
        return response.text

    def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        params = {}
        if ttl_seconds:
            params["expiration_ttl"] = max(ttl_seconds, self.MIN_TTL_SECONDS)
        response = self._send(
            "PUT",
            self._value_url(key),
            params=params,
            content=value.encode("utf-8"),
        )
        self._raise_for(response, "put")

    def delete(self, key: str) -> None:
        response = self._send("DELETE", self._value_url(key))
        if response.status_code == 404:
            return
        self._raise_for(response, "delete")

    def list(self, prefix: str, cursor: str | None = None, limit: int = 1000) -> KeyPage:
        params: dict[str, Any] = {"prefix": prefix, "limit": limit}
        if cursor:
            params["cursor"] = cursor
        response = self._send("GET", f"{self._root}/keys", params=params)
        self._raise_for(response, "list")
        try:
            body = response.json()
            keys = [item["name"] for item in body.get("result") or []]
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError("Workers KV list returned a malformed payload", cause=e) from e
        next_cursor = (body.get("result_info") or {}).get("cursor") or None
        return KeyPage(keys=keys, cursor=next_cursor)


__all__ = [
    "KeyPage",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
    "CloudflareKVStore",
    "iter_keys",
]
