"""Shared protocol definitions."""

from typing import Any, Protocol

from core.request_types import CallRecord


class RequestLogger(Protocol):
    """Protocol for request logging (Dashboard)."""

    def log_call(self, record: CallRecord, *, request_body: Any = None, response_body: Any = None) -> None: ...
    def log_auth(
        self,
        correlation_id: str,
        *,
        outcome: str,
        duration_ms: float,
        status: int | None = None,
        message: str | None = None,
    ) -> None: ...
    def log_error(self, route: str, status: int, message: str) -> None: ...


class TokenStore(Protocol):
    """Key-value store with optional per-entry time-to-live (seconds)."""

    def get(self, key: str) -> Any | None: ...
    def set(self, key: str, value: Any, ttl: float | None = None) -> None: ...
    def delete(self, key: str) -> None: ...
