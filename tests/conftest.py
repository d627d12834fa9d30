"""
Shared pytest fixtures for logsync tests.

This module provides:
- In-memory state / ids key-value stores
- Fake logs API, BigQuery and token endpoints behind one httpx.MockTransport
- Ready-wired source client, dedup filter and sink
- Settings isolated from the developer's environment and .env file

Usage:
    def test_something(source, logs_api):
        logs_api.entries = [log("1", ts(10))]
        assert source.fetch(...)
"""

from __future__ import annotations

import logging
from collections.abc import Generator

import httpx
import pytest
import structlog

from logsync.core.kv import InMemoryKeyValueStore
from logsync.core.settings import SyncSettings
from logsync.dedup import DedupFilter
from logsync.sink.bigquery import BigQuerySink
from logsync.source.client import LogSourceClient
from tests._support.fakes import (
    ACCOUNT,
    BQ_BASE,
    CF_BASE,
    GATEWAY,
    LOGS_URL,
    TABLE_URL,
    TOKEN_URL,
    FakeBigQuery,
    FakeLogsAPI,
    FakeTokenEndpoint,
    Router,
    StaticTokens,
)

PER_PAGE = 3


@pytest.fixture(autouse=True)
def _reset_structlog() -> Generator[None, None, None]:
    """Undo configure_logging() calls made by CLI tests."""
    root = logging.getLogger()
    before, level = set(root.handlers), root.level
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    for handler in root.handlers[:]:
        if handler not in before and type(handler) is logging.StreamHandler:
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture
def state_kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def ids_kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def logs_api() -> FakeLogsAPI:
    return FakeLogsAPI()


@pytest.fixture
def bigquery() -> FakeBigQuery:
    return FakeBigQuery()


@pytest.fixture
def token_endpoint() -> FakeTokenEndpoint:
    return FakeTokenEndpoint()


@pytest.fixture
def router(logs_api, bigquery, token_endpoint) -> Router:
    return Router().add(LOGS_URL, logs_api).add(TABLE_URL, bigquery).add(TOKEN_URL, token_endpoint)


@pytest.fixture
def http(router) -> Generator[httpx.Client, None, None]:
    client = router.client()
    yield client
    client.close()


@pytest.fixture
def source(http) -> LogSourceClient:
    return LogSourceClient(http, account_id=ACCOUNT, gateway_id=GATEWAY, api_token="cf-token", per_page=PER_PAGE)


@pytest.fixture
def dedup(ids_kv) -> DedupFilter:
    return DedupFilter(ids_kv, ttl_seconds=3600, max_workers=1)


@pytest.fixture
def tokens() -> StaticTokens:
    return StaticTokens()


@pytest.fixture
def sink(http, tokens) -> BigQuerySink:
    return BigQuerySink(http, tokens, project="proj", dataset="ds", table="tbl")


@pytest.fixture
def settings(monkeypatch) -> SyncSettings:
    """Settings pointing at the fakes, ignoring any .env file."""
    for name in ("BACKFILL_STOP_AT", "LEASE_ENABLED", "KV_BACKEND", "MARK_AFTER_SINK", "LOG_LEVEL", "LOG_JSON"):
        monkeypatch.delenv(name, raising=False)
    return SyncSettings(
        _env_file=None,
        cf_api_token="cf-token",
        cf_account_id=ACCOUNT,
        aig_gateway_id=GATEWAY,
        cf_api_base_url=CF_BASE,
        logs_per_page=PER_PAGE,
        gcp_sa_email="sync@proj.iam.gserviceaccount.com",
        gcp_sa_private_key_pem="unused",
        gcp_token_uri=TOKEN_URL,
        gcp_bq_project="proj",
        gcp_bq_dataset="ds",
        gcp_bq_table="tbl",
        bigquery_base_url=BQ_BASE,
    )
