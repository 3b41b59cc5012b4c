"""Test doubles: a scripted backend, a fake clock and an in-memory logger."""

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

import httpx

from core.request_types import CallRecord

BASE_URL = "https://backend.test"
PLUGIN_KEY = "wp_0123456789abcdef0123456789abcdef"
PLUGIN_SECRET = "s3cret-plugin-secret"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingLogger:
    """RequestLogger that keeps everything in memory."""

    def __init__(self) -> None:
        self.calls: list[CallRecord] = []
        self.auths: list[dict[str, Any]] = []
        self.errors: list[tuple[str, int, str]] = []

    def log_call(self, record: CallRecord, *, request_body: Any = None, response_body: Any = None) -> None:
        self.calls.append(record)

    def log_auth(
        self,
        correlation_id: str,
        *,
        outcome: str,
        duration_ms: float,
        status: int | None = None,
        message: str | None = None,
    ) -> None:
        self.auths.append(
            {
                "correlation_id": correlation_id,
                "outcome": outcome,
                "duration_ms": duration_ms,
                "status": status,
                "message": message,
            }
        )

    def log_error(self, route: str, status: int, message: str) -> None:
        self.errors.append((route, status, message))


Handler = Callable[[httpx.Request], Any]


class FakeBackend:
    """Scripted UtilitySign API: issues numbered tokens and serves registered routes."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.auth_calls = 0
        self.auth_delay = 0.0
        self.auth_handler: Handler | None = None
        self.expires_at: Any = None
        self._routes: dict[tuple[str, str], Handler] = {}

    def route(self, method: str, path: str, handler: Handler | httpx.Response) -> None:
        if isinstance(handler, httpx.Response):
            response = handler
            self._routes[(method, path)] = lambda request: response
        else:
            self._routes[(method, path)] = handler

    @property
    def backend_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if not r.url.path.endswith("/authenticate")]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/authenticate"):
            self.auth_calls += 1
            call_number = self.auth_calls
            if self.auth_delay:
                await asyncio.sleep(self.auth_delay)
            if self.auth_handler is not None:
                return await _resolve(self.auth_handler(request))
            body: dict[str, Any] = {"accessToken": f"token-{call_number}"}
            if self.expires_at is not None:
                body["expiresAt"] = self.expires_at
            return httpx.Response(200, json=body)

        handler = self._routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": f"No route for {request.method} {request.url.path}"})
        return await _resolve(handler(request))


async def _resolve(result: Any) -> httpx.Response:
    if inspect.isawaitable(result):
        result = await result
    return result
