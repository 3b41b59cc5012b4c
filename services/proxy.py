"""Authenticated proxying of browser requests to the signing backend."""

import asyncio
import json
import time
from typing import Any

import httpx

from auth import TokenAuthenticator
from core.errors import ErrorNormalizer
from core.exceptions import AuthError, AuthRejected, AuthUnreachable, ConfigurationError, InvalidRequest
from core.field_map import FieldMapper
from core.headers import HeaderBuilder
from core.protocols import RequestLogger
from core.request_types import (
    CallRecord,
    Credentials,
    Failure,
    FailureKind,
    ProxyRequest,
    ProxyResult,
    Success,
    new_correlation_id,
)

NOT_CONFIGURED_MESSAGE = "Plugin key is not configured. Please enter the plugin key and secret in the proxy settings."


class RequestProxy:
    """Forward requests to the backend with a cached bearer token.

    Never retries; every call yields exactly one ``CallRecord`` on the logger.
    """

    def __init__(
        self,
        credentials: Credentials,
        client: httpx.AsyncClient,
        authenticator: TokenAuthenticator,
        logger: RequestLogger,
        *,
        timeout: float = 90.0,
        header_builder: HeaderBuilder | None = None,
        normalizer: ErrorNormalizer | None = None,
        mapper: FieldMapper | None = None,
    ) -> None:
        self._credentials = credentials
        self._client = client
        self._auth = authenticator
        self._logger = logger
        self._timeout = timeout
        self._headers = header_builder or HeaderBuilder()
        self._normalizer = normalizer or ErrorNormalizer()
        self._mapper = mapper or FieldMapper()

    async def proxy(
        self,
        method: str,
        path: str,
        body: Any = None,
        extra_headers: dict[str, str] | None = None,
        *,
        correlation_id: str | None = None,
    ) -> ProxyResult:
        """Send one request to the backend and normalize the outcome."""
        correlation_id = correlation_id or new_correlation_id()
        method = method.upper()
        start = time.monotonic()

        if not self._credentials.is_configured:
            return self._finish(method, path, start, _not_configured(correlation_id))

        try:
            token = await self._auth.ensure_token(correlation_id)
        except ConfigurationError:
            return self._finish(method, path, start, _not_configured(correlation_id))
        except AuthError as e:
            return self._finish(method, path, start, self._auth_failure(e, correlation_id))

        try:
            headers = self._headers.build_backend_headers(token, correlation_id, extra_headers)
        except InvalidRequest as e:
            failure = Failure(
                kind=FailureKind.INVALID_REQUEST,
                http_status=400,
                message=e.message,
                correlation_id=correlation_id,
                code=e.code,
            )
            return self._finish(method, path, start, failure, request_body=body)

        request = ProxyRequest(method=method, path=path, headers=headers, body=body)
        return await self._send(request, correlation_id, start)

    async def check_connection(
        self,
        *,
        correlation_id: str | None = None,
        force_refresh: bool = False,
    ) -> ProxyResult:
        """Verify the credential pair by obtaining a token.

        Failures are logged against the authentication endpoint.
        """
        correlation_id = correlation_id or new_correlation_id()
        start = time.monotonic()
        path = self._auth.auth_path
        if not self._credentials.is_configured:
            return self._finish("POST", path, start, _not_configured(correlation_id))
        if force_refresh:
            self._auth.invalidate()
        try:
            await self._auth.ensure_token(correlation_id)
        except ConfigurationError:
            return self._finish("POST", path, start, _not_configured(correlation_id))
        except AuthError as e:
            return self._finish("POST", path, start, self._auth_failure(e, correlation_id))
        return Success(
            status=200,
            body={"success": True, "message": "Connection successful!", "token_received": True},
        )

    async def _send(self, request: ProxyRequest, correlation_id: str, start: float) -> ProxyResult:
        """Execute the prepared request against the backend."""
        url = self._credentials.base_url + "/" + request.path.lstrip("/")
        content = json.dumps(request.body) if request.body is not None else None
        try:
            # httpx timeouts are per phase; wait_for bounds the whole exchange
            response = await asyncio.wait_for(
                self._client.request(
                    request.method,
                    url,
                    content=content,
                    headers=request.headers,
                    timeout=self._timeout,
                ),
                self._timeout,
            )
        except (httpx.TimeoutException, TimeoutError) as e:
            duration_ms = _elapsed_ms(start)
            failure = Failure(
                kind=FailureKind.UNREACHABLE,
                http_status=504,
                message=f"Backend timeout after {duration_ms:.0f}ms: {str(e) or type(e).__name__}",
                correlation_id=correlation_id,
                code="backend_timeout",
                duration_ms=duration_ms,
            )
            return self._finish(request.method, request.path, start, failure, request_body=request.body)
        except httpx.RequestError as e:
            duration_ms = _elapsed_ms(start)
            failure = Failure(
                kind=FailureKind.UNREACHABLE,
                http_status=502,
                message=f"Unable to reach UtilitySign API: {str(e) or type(e).__name__}",
                correlation_id=correlation_id,
                code="backend_unreachable",
                duration_ms=duration_ms,
            )
            return self._finish(request.method, request.path, start, failure, request_body=request.body)

        duration_ms = _elapsed_ms(start)
        if response.status_code >= 400:
            failure = self._normalizer.normalize(
                response.status_code,
                response.text,
                correlation_id=correlation_id,
                duration_ms=duration_ms,
            )
            return self._finish(
                request.method,
                request.path,
                start,
                failure,
                request_body=request.body,
                response_body=response.text,
            )

        raw = response.text
        if not raw.strip():
            data: Any = {}
        else:
            try:
                data = json.loads(raw)
            except (json.JSONDecodeError, ValueError):
                failure = Failure(
                    kind=FailureKind.MALFORMED_RESPONSE,
                    http_status=502,
                    message="Backend returned an unreadable response",
                    correlation_id=correlation_id,
                    code="backend_malformed_response",
                    backend_status=response.status_code,
                    duration_ms=duration_ms,
                )
                return self._finish(
                    request.method,
                    request.path,
                    start,
                    failure,
                    request_body=request.body,
                    response_body=raw,
                )

        result = Success(status=response.status_code, body=self._mapper.map_response(data))
        self._logger.log_call(
            CallRecord(
                correlation_id=correlation_id,
                method=request.method,
                path=request.path,
                status=response.status_code,
                duration_ms=duration_ms,
            ),
            request_body=request.body,
            response_body=data,
        )
        return result

    def _auth_failure(self, error: AuthError, correlation_id: str) -> Failure:
        return Failure(
            kind=FailureKind.AUTH_FAILED,
            http_status=502,
            message=f"Authentication with UtilitySign API failed: {error.message}",
            correlation_id=correlation_id,
            code=error.code if isinstance(error, AuthRejected) and error.code else "auth_failed",
            backend_status=error.status_code,
            duration_ms=error.duration_ms if isinstance(error, AuthUnreachable) else None,
        )

    def _finish(
        self,
        method: str,
        path: str,
        start: float,
        failure: Failure,
        *,
        request_body: Any = None,
        response_body: Any = None,
    ) -> Failure:
        """Log the failed call once and hand the failure back."""
        duration_ms = failure.duration_ms if failure.duration_ms is not None else _elapsed_ms(start)
        self._logger.log_call(
            CallRecord(
                correlation_id=failure.correlation_id,
                method=method,
                path=path,
                status=failure.http_status,
                duration_ms=duration_ms,
                kind=failure.kind,
                code=failure.code,
                message=failure.message,
            ),
            request_body=request_body,
            response_body=response_body,
        )
        return failure


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


def _not_configured(correlation_id: str) -> Failure:
    return Failure(
        kind=FailureKind.NOT_CONFIGURED,
        http_status=500,
        message=NOT_CONFIGURED_MESSAGE,
        correlation_id=correlation_id,
        code="missing_plugin_key",
    )
