"""Service-account access tokens for the warehouse API.

Signs an RS256 JWT for the service account, exchanges it at the token
endpoint (``urn:ietf:params:oauth:grant-type:jwt-bearer``) and caches the
resulting access token in the state namespace under
``google_token:<scope>`` as ``{"token": ..., "expires": <epoch ms>}`` for
55 minutes. The assertion itself is valid for one hour.
"""

from __future__ import annotations

import json
import time
from typing import Any, Callable

import httpx
import jwt

from logsync.core.errors import AuthError, StorageError, TokenExchangeError
from logsync.core.kv import KeyValueStore
from logsync.core.logging import get_logger

logger = get_logger(__name__)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 3600
TOKEN_CACHE_SECONDS = 55 * 60

INSERT_SCOPE = "https://www.googleapis.com/auth/bigquery.insertdata"
READ_SCOPE = "https://www.googleapis.com/auth/bigquery"


def sign_assertion(
    email: str,
    private_key_pem: str,
    *,
    scope: str,
    token_uri: str,
    now: int | None = None,
) -> str:
    """Build the signed JWT presented to the token endpoint.

    Raises:
        AuthError: If the key cannot be loaded or signing fails.
    """
    issued = int(time.time()) if now is None else now
    claims = {
        "iss": email,
        "scope": scope,
        "aud": token_uri,
        "iat": issued,
        "exp": issued + ASSERTION_LIFETIME_SECONDS,
    }
    try:
        return jwt.encode(claims, private_key_pem, algorithm="RS256")
    except (ValueError, TypeError, jwt.PyJWTError) as e:
        raise AuthError("Could not sign service account assertion", cause=e) from e


class ServiceAccountTokenProvider:
    """Hands out bearer tokens per scope, cached in the state store.

    Args:
        kv: State namespace (token cache).
        http: Client used for the token exchange.
        email: Service account email (JWT ``iss``).
        private_key_pem: PKCS#8 PEM private key.
        token_uri: Token endpoint (JWT ``aud``).
        clock: Returns epoch seconds; injectable for tests.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        http: httpx.Client,
        *,
        email: str,
        private_key_pem: str,
        token_uri: str = "https://oauth2.googleapis.com/token",
        clock: Callable[[], float] = time.time,
    ):
        self._kv = kv
        self._http = http
        self._email = email
        self._private_key_pem = private_key_pem
        self._token_uri = token_uri
        self._clock = clock

    @staticmethod
    def cache_key(scope: str) -> str:
        return f"google_token:{scope}"

    def get_token(self, scope: str) -> str:
        """Return a cached token for *scope*, exchanging a new one if needed."""
        now_ms = int(self._clock() * 1000)
        cached = self._read_cache(scope)
        if cached is not None and cached["expires"] > now_ms:
            return cached["token"]

        token = self.exchange(scope)
        entry = {"token": token, "expires": now_ms + TOKEN_CACHE_SECONDS * 1000}
        try:
            self._kv.put(self.cache_key(scope), json.dumps(entry), ttl_seconds=TOKEN_CACHE_SECONDS)
        except StorageError as e:
            logger.warning("token_cache_write_failed", scope=scope, error=str(e))
        return token

    def _read_cache(self, scope: str) -> dict[str, Any] | None:
        raw = self._kv.get(self.cache_key(scope))
        if not raw:
            return None
        try:
            entry = json.loads(raw)
            if isinstance(entry.get("token"), str) and isinstance(entry.get("expires"), (int, float)):
                return entry
        except (ValueError, AttributeError):
            pass
        logger.debug("token_cache_entry_ignored", scope=scope)
        return None

    def exchange(self, scope: str) -> str:
        """Sign an assertion and trade it for an access token (no cache).

        Raises:
            TokenExchangeError: Transport failure or non-2xx response.
            AuthError: Signing failed or the response carries no token.
        """
        assertion = sign_assertion(
            self._email,
            self._private_key_pem,
            scope=scope,
            token_uri=self._token_uri,
            now=int(self._clock()),
        )
        try:
            response = self._http.post(
                self._token_uri,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            )
        except httpx.HTTPError as e:
            raise TokenExchangeError(
                f"Token endpoint unreachable: {e}", retryable=True, cause=e
            ).with_context(url=self._token_uri) from e

        if not response.is_success:
            raise TokenExchangeError(
                f"Failed to get access token: {response.status_code} {response.text[:200]}"
            ).with_context(url=self._token_uri, http_status=response.status_code)

        try:
            token = response.json()["access_token"]
        except (ValueError, KeyError, TypeError) as e:
            raise AuthError("Token endpoint response has no access_token", cause=e).with_context(
                url=self._token_uri
            ) from e

        logger.debug("access_token_exchanged", scope=scope)
        return token


__all__ = [
    "ServiceAccountTokenProvider",
    "sign_assertion",
    "INSERT_SCOPE",
    "READ_SCOPE",
    "JWT_BEARER_GRANT",
    "TOKEN_CACHE_SECONDS",
]
