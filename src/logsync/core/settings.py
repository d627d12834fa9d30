"""Environment-driven settings for logsync.

Every knob the engine has is a field on :class:`SyncSettings`. Variable
names match the Cloudflare Worker deployment (``CF_API_TOKEN``,
``GCP_BQ_TABLE``, ``FORWARD_MAX_PAGES`` ...) so an existing ``.dev.vars``
file can be reused as ``.env``.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** bad page sizes fail at startup, not mid-cycle
    - **Lazy credentials:** secrets are optional here and checked by the
      component that needs them, so maintenance commands run without them
    - **Cached:** ``get_settings()`` parses the environment once

Examples:
    >>> from logsync.core.settings import SyncSettings
    >>> s = SyncSettings(logs_per_page=100)
    >>> s.dedup_ttl_seconds
    3888000

Tags:
    settings, configuration, pydantic, environment
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from logsync.core.errors import MissingConfigError
from logsync.core.logging import resolve_level


class KVBackend(str, Enum):
    """Durable key/value store implementation."""

    MEMORY = "memory"
    REDIS = "redis"
    CLOUDFLARE = "cloudflare"


class SyncSettings(BaseSettings):
    """All logsync settings.

    Fields
    ──────
    Source        : cf_api_token, cf_account_id, aig_gateway_id, logs_per_page
    Page budgets  : phase1_max_pages, forward_max_pages, backfill_max_pages
    Cursor        : forward_lookback_minutes, backfill_stop_at
    Dedup         : dedup_ttl_days, mark_after_sink
    Sink          : gcp_* service account and table coordinates
    State         : kv_backend, redis_url, cf_kv_*_namespace_id
    Scheduling    : forward_cron, backfill_cron, lease_enabled, lease_ttl_seconds
    Observability : log_level, log_json
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Log source ───────────────────────────────────────────────
    cf_api_token: str | None = None
    cf_account_id: str | None = None
    aig_gateway_id: str | None = None
    cf_api_base_url: str = "https://api.cloudflare.com/client/v4"
    logs_per_page: int = Field(default=50, gt=0)

    # ── Page budgets ─────────────────────────────────────────────
    phase1_max_pages: int = Field(default=5, gt=0)
    forward_max_pages: int = Field(default=20, gt=0)
    backfill_max_pages: int = Field(default=40, gt=0)

    # ── Cursor defaults ──────────────────────────────────────────
    forward_lookback_minutes: int = Field(default=10, ge=0)
    backfill_stop_at: str | None = None

    # ── Dedup ────────────────────────────────────────────────────
    dedup_ttl_days: int = Field(default=45, gt=0)
    mark_after_sink: bool = True

    # ── Sink ─────────────────────────────────────────────────────
    gcp_token_uri: str = "https://oauth2.googleapis.com/token"
    gcp_sa_email: str | None = None
    gcp_sa_private_key_pem: str | None = None
    gcp_bq_project: str | None = None
    gcp_bq_dataset: str | None = None
    gcp_bq_table: str | None = None
    bigquery_base_url: str = "https://bigquery.googleapis.com/bigquery/v2"

    # ── State store ──────────────────────────────────────────────
    kv_backend: KVBackend = KVBackend.MEMORY
    redis_url: str = "redis://localhost:6379/0"
    cf_kv_state_namespace_id: str | None = None
    cf_kv_ids_namespace_id: str | None = None

    # ── Scheduling ───────────────────────────────────────────────
    forward_cron: str = "*/1 * * * *"
    backfill_cron: str = "0 * * * *"
    lease_enabled: bool = False
    lease_ttl_seconds: int = Field(default=300, ge=60)

    # ── Transport / observability ────────────────────────────────
    http_timeout_seconds: float | None = None
    log_level: str = "info"
    log_json: bool | None = None

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        resolve_level(value)
        return value.lower()

    @field_validator("gcp_sa_private_key_pem")
    @classmethod
    def _unescape_pem(cls, value: str | None) -> str | None:
        # Secrets stores often flatten the PEM onto one line with literal "\n".
        if value is None:
            return None
        return value.replace("\\n", "\n")

    @property
    def dedup_ttl_seconds(self) -> int:
        return self.dedup_ttl_days * 24 * 60 * 60

    def require(self, *fields: str) -> None:
        """Raise :class:`MissingConfigError` for the first unset field."""
        for name in fields:
            if not getattr(self, name):
                raise MissingConfigError(name.upper())


_settings: SyncSettings | None = None


def get_settings(*, reload: bool = False) -> SyncSettings:
    """Load and cache a :class:`SyncSettings` instance."""
    global _settings
    if _settings is None or reload:
        _settings = SyncSettings()
    return _settings


__all__ = [
    "KVBackend",
    "SyncSettings",
    "get_settings",
]
