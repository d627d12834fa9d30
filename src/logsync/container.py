"""
Lazy-initialised dependency container.

:class:`SyncContainer` builds every collaborator of a sync cycle from
:class:`~logsync.core.settings.SyncSettings` on first access. Credentials
are checked by the property that needs them, so ``container.cursor_store``
works without sink credentials.

Usage::

    from logsync.container import SyncContainer

    with SyncContainer() as c:
        c.forward_controller().run()

    # Tests inject collaborators instead:
    SyncContainer(settings, http=httpx.Client(transport=mock), state_kv=InMemoryKeyValueStore())
"""

from __future__ import annotations

from typing import Any

import httpx

from logsync.core.cursors import CursorStore
from logsync.core.kv import CloudflareKVStore, InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore
from logsync.core.settings import KVBackend, SyncSettings, get_settings
from logsync.dedup import DedupFilter
from logsync.sink.auth import ServiceAccountTokenProvider
from logsync.sink.bigquery import BigQuerySink
from logsync.source.client import LogSourceClient
from logsync.sync.backfill import BackfillController
from logsync.sync.forward import ForwardController


def create_http_client(settings: SyncSettings) -> httpx.Client:
    """Shared HTTP client. Without ``HTTP_TIMEOUT_SECONDS`` the httpx default applies."""
    if settings.http_timeout_seconds is None:
        return httpx.Client()
    return httpx.Client(timeout=settings.http_timeout_seconds)


def create_kv_store(settings: SyncSettings, namespace: str, http: httpx.Client) -> KeyValueStore:
    """Build the store for the ``state`` or ``ids`` namespace."""
    if settings.kv_backend is KVBackend.MEMORY:
        return InMemoryKeyValueStore()
    if settings.kv_backend is KVBackend.REDIS:
        return RedisKeyValueStore(settings.redis_url, namespace=namespace)

    namespace_field = f"cf_kv_{namespace}_namespace_id"
    settings.require("cf_api_token", "cf_account_id", namespace_field)
    return CloudflareKVStore(
        http,
        account_id=settings.cf_account_id,
        namespace_id=getattr(settings, namespace_field),
        api_token=settings.cf_api_token,
        base_url=settings.cf_api_base_url,
    )


class SyncContainer:
    """Lazy-initialised dependency container.

    Components are created on first property access. :meth:`close`
    releases the HTTP client if the container created it.
    """

    def __init__(
        self,
        settings: SyncSettings | None = None,
        *,
        http: httpx.Client | None = None,
        state_kv: KeyValueStore | None = None,
        ids_kv: KeyValueStore | None = None,
        tokens: Any | None = None,
    ) -> None:
        self._settings = settings
        self._http = http
        self._owns_http = http is None
        self._state_kv = state_kv
        self._ids_kv = ids_kv
        self._tokens = tokens
        self._source: LogSourceClient | None = None
        self._sink: BigQuerySink | None = None
        self._dedup: DedupFilter | None = None
        self._cursor_store: CursorStore | None = None

    # ── Properties (lazy) ────────────────────────────────────────

    @property
    def settings(self) -> SyncSettings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def http(self) -> httpx.Client:
        if self._http is None:
            self._http = create_http_client(self.settings)
        return self._http

    @property
    def state_kv(self) -> KeyValueStore:
        if self._state_kv is None:
            self._state_kv = create_kv_store(self.settings, "state", self.http)
        return self._state_kv

    @property
    def ids_kv(self) -> KeyValueStore:
        if self._ids_kv is None:
            self._ids_kv = create_kv_store(self.settings, "ids", self.http)
        return self._ids_kv

    @property
    def cursor_store(self) -> CursorStore:
        if self._cursor_store is None:
            self._cursor_store = CursorStore(self.state_kv, default_stop_at=self.settings.backfill_stop_at)
        return self._cursor_store

    @property
    def dedup(self) -> DedupFilter:
        if self._dedup is None:
            self._dedup = DedupFilter(self.ids_kv, ttl_seconds=self.settings.dedup_ttl_seconds)
        return self._dedup

    @property
    def source(self) -> LogSourceClient:
        if self._source is None:
            s = self.settings
            s.require("cf_api_token", "cf_account_id", "aig_gateway_id")
            self._source = LogSourceClient(
                self.http,
                account_id=s.cf_account_id,
                gateway_id=s.aig_gateway_id,
                api_token=s.cf_api_token,
                per_page=s.logs_per_page,
                base_url=s.cf_api_base_url,
            )
        return self._source

    @property
    def tokens(self) -> Any:
        if self._tokens is None:
            s = self.settings
            s.require("gcp_sa_email", "gcp_sa_private_key_pem")
            self._tokens = ServiceAccountTokenProvider(
                self.state_kv,
                self.http,
                email=s.gcp_sa_email,
                private_key_pem=s.gcp_sa_private_key_pem,
                token_uri=s.gcp_token_uri,
            )
        return self._tokens

    @property
    def sink(self) -> BigQuerySink:
        if self._sink is None:
            s = self.settings
            s.require("gcp_bq_project", "gcp_bq_dataset", "gcp_bq_table")
            self._sink = BigQuerySink(
                self.http,
                self.tokens,
                project=s.gcp_bq_project,
                dataset=s.gcp_bq_dataset,
                table=s.gcp_bq_table,
                base_url=s.bigquery_base_url,
            )
        return self._sink

    # ── Controllers ──────────────────────────────────────────────

    def forward_controller(self) -> ForwardController:
        s = self.settings
        return ForwardController(
            self.cursor_store,
            source=self.source,
            dedup=self.dedup,
            sink=self.sink,
            phase1_max_pages=s.phase1_max_pages,
            forward_max_pages=s.forward_max_pages,
            lookback_minutes=s.forward_lookback_minutes,
            mark_after_sink=s.mark_after_sink,
        )

    def backfill_controller(self) -> BackfillController:
        s = self.settings
        return BackfillController(
            self.cursor_store,
            source=self.source,
            dedup=self.dedup,
            sink=self.sink,
            max_pages=s.backfill_max_pages,
            mark_after_sink=s.mark_after_sink,
        )

    # ── Lifecycle ────────────────────────────────────────────────

    def close(self) -> None:
        """Dispose of managed resources."""
        if self._http is not None and self._owns_http:
            self._http.close()
            self._http = None

    def __enter__(self) -> SyncContainer:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


__all__ = ["SyncContainer", "create_http_client", "create_kv_store"]
