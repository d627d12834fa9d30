"""
In-process fakes for the HTTP collaborators of a sync cycle.

Everything is served through ``httpx.MockTransport`` so the real client,
sink and token code run unchanged:

- :class:`FakeLogsAPI` implements the logs endpoint's filters
  (``created_at``/``id`` with eq/gt/lt), ordering and paging over an
  in-memory list of log dicts.
- :class:`FakeBigQuery` records insertAll bodies and can reject rows or
  fail whole requests.
- :class:`FakeTokenEndpoint` answers the JWT-bearer exchange.

Usage::

    from tests._support.fakes import FakeLogsAPI, Router, log, ts

    api = FakeLogsAPI([log("1", ts(10)), log("2", ts(10))])
    http = httpx.Client(transport=httpx.MockTransport(Router().add(LOGS_URL, api)))
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any
from urllib.parse import parse_qs

import httpx
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from logsync.core.timestamps import parse_timestamp

ACCOUNT = "acct"
GATEWAY = "gw"
CF_BASE = "https://api.cloudflare.com/client/v4"
LOGS_URL = f"{CF_BASE}/accounts/{ACCOUNT}/ai-gateway/gateways/{GATEWAY}/logs"
TOKEN_URL = "https://oauth2.googleapis.com/token"
BQ_BASE = "https://bigquery.googleapis.com/bigquery/v2"
TABLE_URL = f"{BQ_BASE}/projects/proj/datasets/ds/tables/tbl"

Handler = Callable[[httpx.Request], httpx.Response]


def ts(seconds: int, minute: int = 0) -> str:
    """Timestamp on 2026-01-01 at 00:<minute>:<seconds>, in the API's format."""
    return f"2026-01-01T00:{minute:02d}:{seconds:02d}.000Z"


def log(record_id: str, created_at: str, **extra: Any) -> dict[str, Any]:
    """A gateway log entry as the API returns it."""
    entry = {
        "id": record_id,
        "created_at": created_at,
        "provider": "openai",
        "model": "gpt-4o-mini",
        "success": True,
        "status_code": 200,
        "cached": False,
        "duration": 120,
        "tokens_in": 10,
        "tokens_out": 20,
    }
    entry.update(extra)
    return entry


def rsa_private_key_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


def public_key_pem(private_pem: str) -> str:
    key = serialization.load_pem_private_key(private_pem.encode(), password=None)
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


class Router:
    """Dispatch requests to handlers by URL prefix (longest prefix first)."""

    def __init__(self) -> None:
        self.routes: list[tuple[str, Handler]] = []

    def add(self, prefix: str, handler: Handler) -> Router:
        self.routes.append((prefix, handler))
        self.routes.sort(key=lambda r: len(r[0]), reverse=True)
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url).split("?", 1)[0]
        for prefix, handler in self.routes:
            if url.startswith(prefix):
                return handler(request)
        return httpx.Response(404, json={"error": f"no route for {url}"})

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


def _matches(entry: dict[str, Any], flt: dict[str, Any]) -> bool:
    key, op, value = flt["key"], flt["operator"], flt["value"][0]
    if key == "created_at":
        left, right = parse_timestamp(entry["created_at"]), parse_timestamp(value)
    else:
        left, right = str(entry.get(key, "")), value
    if op == "eq":
        return left == right
    if op == "gt":
        return left > right
    if op == "lt":
        return left < right
    raise AssertionError(f"unexpected operator {op}")


class FakeLogsAPI:
    """The AI Gateway logs endpoint over a static list of entries."""

    def __init__(self, entries: list[dict[str, Any]] | None = None) -> None:
        self.entries = list(entries or [])
        self.requests: list[httpx.Request] = []
        self.fail_status: int | None = None
        self.fail_on_page: int | None = None
        self.body_override: Any = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        params = request.url.params
        page = int(params["page"])
        if self.fail_status is not None and (self.fail_on_page is None or self.fail_on_page == page):
            return httpx.Response(self.fail_status, text="upstream exploded")
        if self.body_override is not None:
            if isinstance(self.body_override, (bytes, str)):
                return httpx.Response(200, content=self.body_override)
            return httpx.Response(200, json=self.body_override)

        per_page = int(params["per_page"])
        descending = params.get("order_by_direction") == "desc"
        filters = [json.loads(f) for f in params.get_list("filters")]

        rows = [e for e in self.entries if all(_matches(e, f) for f in filters)]
        rows.sort(key=lambda e: (parse_timestamp(e["created_at"]), str(e.get("id", ""))), reverse=descending)
        chunk = rows[(page - 1) * per_page : page * per_page]
        return httpx.Response(200, json={"success": True, "result": chunk, "errors": [], "messages": []})

    def pages_requested(self) -> list[int]:
        return [int(r.url.params["page"]) for r in self.requests]


class FakeBigQuery:
    """insertAll + tables.get for one table."""

    def __init__(self) -> None:
        self.inserts: list[dict[str, Any]] = []
        self.auth_headers: list[str] = []
        self.fail_status: int | None = None
        self.reject_ids: set[str] = set()
        self.raw_insert_errors: list[Any] | None = None
        self.table_status = 200

    @property
    def rows(self) -> list[dict[str, Any]]:
        return [row["json"] for body in self.inserts for row in body["rows"]]

    @property
    def inserted_ids(self) -> list[str]:
        return [row["insertId"] for body in self.inserts for row in body["rows"]]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.auth_headers.append(request.headers.get("Authorization", ""))
        if request.method == "GET":
            return httpx.Response(self.table_status, json={"id": "proj:ds.tbl"})

        if self.fail_status is not None:
            return httpx.Response(self.fail_status, text="backend error")
        body = json.loads(request.content)
        self.inserts.append(body)
        errors = [
            {"index": i, "errors": [{"reason": "invalid", "message": f"bad row {row['insertId']}"}]}
            for i, row in enumerate(body["rows"])
            if row["insertId"] in self.reject_ids
        ]
        if self.raw_insert_errors is not None:
            errors = self.raw_insert_errors
        payload: dict[str, Any] = {"kind": "bigquery#tableDataInsertAllResponse"}
        if errors:
            payload["insertErrors"] = errors
        return httpx.Response(200, json=payload)


class FakeTokenEndpoint:
    """OAuth token endpoint accepting any JWT-bearer assertion."""

    def __init__(self) -> None:
        self.assertions: list[str] = []
        self.grant_types: list[str] = []
        self.fail_status: int | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        self.grant_types.append(form.get("grant_type", ""))
        self.assertions.append(form.get("assertion", ""))
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"error": "invalid_grant"})
        return httpx.Response(
            200,
            json={"access_token": f"ya29.token-{len(self.assertions)}", "expires_in": 3599, "token_type": "Bearer"},
        )


class StaticTokens:
    """Token source that never talks to the network."""

    def __init__(self, token: str = "static-token") -> None:
        self.token = token
        self.scopes: list[str] = []

    def get_token(self, scope: str) -> str:
        self.scopes.append(scope)
        return self.token
