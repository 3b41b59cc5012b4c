"""Normalization of backend error responses into the proxy's failure contract."""

import json
from collections.abc import Callable, Iterable
from typing import Any

from core.request_types import Failure, FailureKind

GENERIC_MESSAGE = "Backend request failed"

MessageExtractor = Callable[[dict[str, Any]], str | None]


def _from_message(data: dict[str, Any]) -> str | None:
    message = data.get("message")
    if message is None:
        return None
    return message if isinstance(message, str) else json.dumps(message)


def _from_error(data: dict[str, Any]) -> str | None:
    error = data.get("error")
    if error is None:
        return None
    return error if isinstance(error, str) else json.dumps(error)


def _from_errors(data: dict[str, Any]) -> str | None:
    """Flatten ASP.NET ModelState ``{"field": ["msg", ...]}`` into one line."""
    errors = data.get("errors")
    if isinstance(errors, dict):
        parts = []
        for field, messages in errors.items():
            if isinstance(messages, list):
                parts.append(f"{field}: {', '.join(str(m) for m in messages)}")
            else:
                parts.append(f"{field}: {messages}")
        return "; ".join(parts)
    if isinstance(errors, list):
        return "; ".join(str(m) for m in errors)
    if isinstance(errors, str):
        return errors
    return None


DEFAULT_EXTRACTORS: tuple[MessageExtractor, ...] = (_from_message, _from_error, _from_errors)


def parse_json_object(raw_body: str) -> dict[str, Any] | None:
    if not raw_body:
        return None
    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def extract_message(
    data: dict[str, Any] | None,
    raw_body: str,
    status: int,
    extractors: Iterable[MessageExtractor] = DEFAULT_EXTRACTORS,
) -> str:
    """First non-empty extractor wins; then raw text; then a generic message."""
    if data is not None:
        for extractor in extractors:
            message = extractor(data)
            if message and message.strip():
                return message.strip()
    if raw_body and raw_body.strip():
        return raw_body.strip()
    return f"{GENERIC_MESSAGE} (HTTP {status})"


def extract_code(data: dict[str, Any] | None) -> str | None:
    if data is None:
        return None
    for key in ("errorCode", "code"):
        value = data.get(key)
        if value not in (None, ""):
            return str(value)
    return None


class ErrorNormalizer:
    """Map backend status + error body into a ``Failure``."""

    def __init__(
        self,
        configuration_error_codes: Iterable[str] = (),
        extractors: Iterable[MessageExtractor] = DEFAULT_EXTRACTORS,
    ) -> None:
        self._configuration_codes = frozenset(configuration_error_codes)
        self._extractors = tuple(extractors)

    def normalize(
        self,
        http_status: int,
        raw_body: str,
        *,
        correlation_id: str,
        duration_ms: float | None = None,
    ) -> Failure:
        data = parse_json_object(raw_body)
        code = extract_code(data)
        return Failure(
            kind=FailureKind.BACKEND_REJECTED,
            http_status=self.map_status(http_status, code),
            message=extract_message(data, raw_body, http_status, self._extractors),
            correlation_id=correlation_id,
            code=code,
            backend_status=http_status,
            duration_ms=duration_ms,
        )

    def map_status(self, http_status: int, code: str | None) -> int:
        """Configuration problems are client errors, never a retryable 503."""
        if code is not None and code in self._configuration_codes:
            return 400
        return http_status
