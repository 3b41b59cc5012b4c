"""FastAPI route handlers."""

import json
from json import JSONDecodeError
from typing import Any

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from core.protocols import RequestLogger
from core.request_types import CorrelationContext, Failure, FailureKind, ProxyResult
from services.signing_service import SigningService

MAX_BODY_SIZE = 1024 * 1024  # 1MB

CORRELATION_HEADER = "X-Correlation-Id"


async def _parse_json_body(
    request: Request,
    context: CorrelationContext,
    logger: RequestLogger,
) -> dict[str, Any] | Response:
    """Parse request body as a JSON object, or return a logged error Response."""
    raw_body = await request.body()
    if len(raw_body) > MAX_BODY_SIZE:
        return _rejected(
            request,
            logger,
            Failure(
                kind=FailureKind.INVALID_REQUEST,
                http_status=413,
                message="Request body too large",
                correlation_id=context.correlation_id,
                code="request_too_large",
            ),
        )
    if not raw_body.strip():
        return {}

    text_body = raw_body.decode("utf-8", errors="replace")
    try:
        body = json.loads(text_body)
    except (JSONDecodeError, ValueError) as e:
        return _rejected(
            request,
            logger,
            Failure(
                kind=FailureKind.INVALID_REQUEST,
                http_status=400,
                message=f"Invalid JSON: {e}",
                correlation_id=context.correlation_id,
                code="invalid_json",
            ),
        )
    if not isinstance(body, dict):
        return _rejected(
            request,
            logger,
            Failure(
                kind=FailureKind.INVALID_REQUEST,
                http_status=400,
                message="Request body must be a JSON object",
                correlation_id=context.correlation_id,
                code="invalid_json",
            ),
        )
    return body


def _context(
    request: Request,
    body: dict[str, Any] | None = None,
    current: CorrelationContext | None = None,
) -> CorrelationContext:
    """Header id first, then the payload's ``correlationId``, then the id already issued."""
    payload_id = body.get("correlationId") if body else None
    issued = current.correlation_id if current else None
    return CorrelationContext.from_inbound(request.headers.get(CORRELATION_HEADER), payload_id, issued)


def _render(result: ProxyResult, context: CorrelationContext) -> Response:
    """Failures arrive already logged by the service or the proxy."""
    if isinstance(result, Failure):
        return _error_response(result)
    return JSONResponse(
        content=result.body,
        status_code=result.status,
        headers={CORRELATION_HEADER: context.correlation_id},
    )


def _error_response(failure: Failure) -> Response:
    return JSONResponse(
        content=failure.to_payload(),
        status_code=failure.http_status,
        headers={CORRELATION_HEADER: failure.correlation_id},
    )


def _rejected(request: Request, logger: RequestLogger, failure: Failure) -> Response:
    # Body never reached the service, so nothing downstream logs it
    logger.log_error(request.url.path, failure.http_status, f"{failure.code}: {failure.message}")
    return _error_response(failure)


def _service(request: Request) -> SigningService:
    return request.app.state.signing_service


async def handle_create_signing(request: Request, logger: RequestLogger) -> Response:
    """Handle POST /signing."""
    context = _context(request)
    body = await _parse_json_body(request, context, logger)
    if isinstance(body, Response):
        return body
    context = _context(request, body, context)
    result = await _service(request).create_signing_request(body, context.correlation_id)
    return _render(result, context)


async def handle_signing_status(request: Request, request_id: str) -> Response:
    """Handle GET /signing/{request_id}."""
    context = _context(request)
    result = await _service(request).get_signing_status(request_id, context.correlation_id)
    return _render(result, context)


async def handle_initiate_bankid(request: Request, logger: RequestLogger) -> Response:
    """Handle POST /signing/bankid/initiate."""
    context = _context(request)
    body = await _parse_json_body(request, context, logger)
    if isinstance(body, Response):
        return body
    context = _context(request, body, context)
    result = await _service(request).initiate_bankid(body, context.correlation_id)
    return _render(result, context)


async def handle_bankid_status(request: Request, session_id: str) -> Response:
    """Handle GET /signing/bankid/status/{session_id}."""
    context = _context(request)
    result = await _service(request).get_bankid_status(session_id, context.correlation_id)
    return _render(result, context)


async def handle_cancel_bankid(request: Request, logger: RequestLogger) -> Response:
    """Handle POST /signing/bankid/cancel."""
    context = _context(request)
    body = await _parse_json_body(request, context, logger)
    if isinstance(body, Response):
        return body
    context = _context(request, body, context)
    result = await _service(request).cancel_bankid_session(body, context.correlation_id)
    return _render(result, context)


async def handle_trigger_completion(request: Request, request_id: str) -> Response:
    """Handle POST /signing/{request_id}/complete."""
    context = _context(request)
    result = await _service(request).trigger_completion(request_id, context.correlation_id)
    return _render(result, context)


async def handle_connection_check(request: Request) -> Response:
    """Handle GET /connection."""
    context = _context(request)
    result = await request.app.state.request_proxy.check_connection(correlation_id=context.correlation_id)
    return _render(result, context)
