"""Shared request data types."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import uuid4

_CORRELATION_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


@dataclass(frozen=True)
class Credentials:
    """Plugin key/secret pair and the backend it authenticates against."""

    key: str
    secret: str
    base_url: str

    @property
    def is_configured(self) -> bool:
        return bool(self.key) and bool(self.secret)


@dataclass(frozen=True)
class CachedToken:
    """Bearer token with its absolute expiry (epoch seconds)."""

    token: str
    expires_at: float

    def is_usable(self, now: float, margin: float = 0.0) -> bool:
        return bool(self.token) and now < self.expires_at - margin

    def to_record(self) -> dict[str, Any]:
        return {"token": self.token, "expires_at": self.expires_at}

    @classmethod
    def from_record(cls, record: Any) -> "CachedToken | None":
        if not isinstance(record, dict):
            return None
        token = record.get("token")
        expires_at = record.get("expires_at")
        if not isinstance(token, str) or not isinstance(expires_at, (int, float)):
            return None
        return cls(token=token, expires_at=float(expires_at))


@dataclass(frozen=True)
class ProxyRequest:
    """Prepared data for a backend request."""

    method: str
    path: str
    headers: dict[str, str]
    body: Any = None


class FailureKind(str, Enum):
    NOT_CONFIGURED = "not_configured"
    AUTH_FAILED = "auth_failed"
    UNREACHABLE = "unreachable"
    BACKEND_REJECTED = "backend_rejected"
    MALFORMED_RESPONSE = "malformed_response"
    INVALID_REQUEST = "invalid_request"


@dataclass(frozen=True)
class Success:
    status: int
    body: Any


@dataclass(frozen=True)
class Failure:
    """Normalized failure returned to the caller instead of raising."""

    kind: FailureKind
    http_status: int
    message: str
    correlation_id: str
    code: str | None = None
    backend_status: int | None = None
    duration_ms: float | None = None

    def to_payload(self) -> dict[str, Any]:
        """Error envelope sent to the browser."""
        return {
            "code": self.code or self.kind.value,
            "message": self.message,
            "data": {
                "status": self.http_status,
                "error_code": self.code,
                "backend_status": self.backend_status,
                "correlation_id": self.correlation_id,
            },
        }


ProxyResult = Success | Failure


@dataclass(frozen=True)
class CorrelationContext:
    correlation_id: str = field(default_factory=lambda: new_correlation_id())

    @classmethod
    def from_inbound(cls, *candidates: Any) -> "CorrelationContext":
        """Honor the first well-formed caller-supplied id, else generate one."""
        for candidate in candidates:
            if isinstance(candidate, str) and _CORRELATION_ID_RE.match(candidate.strip()):
                return cls(correlation_id=candidate.strip())
        return cls()


@dataclass(frozen=True)
class CallRecord:
    """One proxied backend call, as written to the operational log."""

    correlation_id: str
    method: str
    path: str
    status: int
    duration_ms: float
    kind: FailureKind | None = None
    code: str | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.kind is None


def new_correlation_id(prefix: str = "wp-rest-") -> str:
    return f"{prefix}{uuid4()}"
