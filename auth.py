"""Plugin key/secret exchange for backend bearer tokens."""

import asyncio
import hashlib
import json
import re
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import httpx

from core.config import Config
from core.errors import extract_code, extract_message, parse_json_object
from core.exceptions import AuthMalformedResponse, AuthRejected, AuthUnreachable, ConfigurationError
from core.headers import HeaderBuilder
from core.protocols import RequestLogger, TokenStore
from core.request_types import CachedToken, Credentials, new_correlation_id

TOKEN_KEY_PREFIX = "utilitysign_api_token_"

_FRACTION_RE = re.compile(r"(\.\d+)")


def token_cache_key(api_key: str) -> str:
    """Store key for a credential pair; the raw key never appears in the store."""
    return TOKEN_KEY_PREFIX + hashlib.md5(api_key.encode()).hexdigest()


def parse_expires_at(value: Any) -> float | None:
    """Parse backend ``expiresAt`` (ISO-8601 or epoch s/ms) into epoch seconds."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # Millisecond timestamps
        return value / 1000 if value > 1e12 else float(value)
    if isinstance(value, str) and value.strip():
        # .NET emits 7 fractional digits; datetime accepts at most 6
        text = _FRACTION_RE.sub(lambda m: m.group(1)[:7], value.strip())
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            # Backend timestamps are UTC
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.timestamp()
    return None


class TokenAuthenticator:
    """Exchange the plugin credential pair for a cached bearer token.

    The token lives in an injected ``TokenStore`` so every request handler and
    worker shares it. Concurrent refreshes may each call the backend; the
    authenticate endpoint is idempotent so duplicates are tolerated.
    """

    def __init__(
        self,
        credentials: Credentials,
        client: httpx.AsyncClient,
        store: TokenStore,
        logger: RequestLogger,
        *,
        auth_path: str = "/api/v1/wordpress/authenticate",
        timeout: float = 90.0,
        refresh_margin: float = 60.0,
        default_ttl: float = 3600.0,
        header_builder: HeaderBuilder | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._credentials = credentials
        self._client = client
        self._store = store
        self._logger = logger
        self._auth_path = "/" + auth_path.lstrip("/")
        self._timeout = timeout
        self._refresh_margin = refresh_margin
        self._default_ttl = default_ttl
        self._headers = header_builder or HeaderBuilder()
        self._clock = clock
        self._cache_key = token_cache_key(credentials.key)

    @classmethod
    def from_config(
        cls,
        config: Config,
        client: httpx.AsyncClient,
        store: TokenStore,
        logger: RequestLogger,
        *,
        clock: Callable[[], float] = time.time,
    ) -> "TokenAuthenticator":
        return cls(
            config.credentials(),
            client,
            store,
            logger,
            auth_path=config.backend.auth_path,
            timeout=config.backend.timeout_seconds,
            refresh_margin=config.token.refresh_margin_seconds,
            default_ttl=config.token.default_ttl_seconds,
            header_builder=HeaderBuilder(config.client),
            clock=clock,
        )

    @property
    def auth_path(self) -> str:
        return self._auth_path

    def cached_token(self) -> CachedToken | None:
        """Return the stored token if it is still usable (margin applied)."""
        cached = CachedToken.from_record(self._store.get(self._cache_key))
        if cached and cached.is_usable(self._clock(), self._refresh_margin):
            return cached
        return None

    async def ensure_token(self, correlation_id: str | None = None) -> str:
        """Return a valid bearer token, authenticating only when needed.

        Raises:
            ConfigurationError: credential pair is incomplete.
            AuthUnreachable: transport failure or timeout.
            AuthRejected: backend answered with a non-2xx status.
            AuthMalformedResponse: 2xx without a usable ``accessToken``.
        """
        cached = self.cached_token()
        if cached:
            return cached.token
        return (await self.authenticate(correlation_id)).token

    async def authenticate(self, correlation_id: str | None = None) -> CachedToken:
        """Perform the credential exchange and persist the new token."""
        if not self._credentials.is_configured:
            raise ConfigurationError("Plugin key and secret are not configured")

        correlation_id = correlation_id or new_correlation_id("wp-auth-")
        url = self._credentials.base_url + self._auth_path
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.post(
                    url,
                    json={"PluginKey": self._credentials.key, "PluginSecret": self._credentials.secret},
                    headers=self._headers.build_auth_headers(self._credentials, correlation_id),
                    timeout=self._timeout,
                ),
                self._timeout,
            )
        except (httpx.TimeoutException, TimeoutError) as e:
            duration_ms = _elapsed_ms(start)
            message = f"Authentication timed out after {duration_ms:.0f}ms: {str(e) or type(e).__name__}"
            self._logger.log_auth(correlation_id, outcome="unreachable", duration_ms=duration_ms, message=message)
            raise AuthUnreachable(message, duration_ms=duration_ms) from e
        except httpx.RequestError as e:
            duration_ms = _elapsed_ms(start)
            message = f"Unable to reach authentication endpoint: {str(e) or type(e).__name__}"
            self._logger.log_auth(correlation_id, outcome="unreachable", duration_ms=duration_ms, message=message)
            raise AuthUnreachable(message, duration_ms=duration_ms) from e

        duration_ms = _elapsed_ms(start)
        if not response.is_success:
            data = parse_json_object(response.text)
            message = extract_message(data, response.text, response.status_code)
            self._logger.log_auth(
                correlation_id,
                outcome="rejected",
                duration_ms=duration_ms,
                status=response.status_code,
                message=message,
            )
            raise AuthRejected(message, status_code=response.status_code, code=extract_code(data))

        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            self._logger.log_auth(
                correlation_id,
                outcome="malformed",
                duration_ms=duration_ms,
                status=response.status_code,
                message="Authentication response is not JSON",
            )
            raise AuthMalformedResponse(
                "Authentication response is not JSON", status_code=response.status_code
            ) from e

        access_token = data.get("accessToken") if isinstance(data, dict) else None
        if not isinstance(access_token, str) or not access_token:
            self._logger.log_auth(
                correlation_id,
                outcome="malformed",
                duration_ms=duration_ms,
                status=response.status_code,
                message="No accessToken in authentication response",
            )
            raise AuthMalformedResponse(
                "Authentication succeeded but no access token received",
                status_code=response.status_code,
            )

        now = self._clock()
        expires_at = parse_expires_at(data.get("expiresAt"))
        if expires_at is None:
            expires_at = now + self._default_ttl

        token = CachedToken(token=access_token, expires_at=expires_at)
        self._store.set(self._cache_key, token.to_record(), ttl=max(1.0, expires_at - now))
        self._logger.log_auth(
            correlation_id,
            outcome="authenticated",
            duration_ms=duration_ms,
            status=response.status_code,
        )
        return token

    def invalidate(self) -> None:
        """Drop the stored token so the next call re-authenticates."""
        self._store.delete(self._cache_key)


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000
