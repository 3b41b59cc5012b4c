import asyncio
import json

import httpx
import pytest

from core.request_types import Credentials, Failure, FailureKind, Success
from tests.helpers import BASE_URL

STATUS_PATH = "/api/v1.0/signing/req-1"


class TestProxy:
    @pytest.mark.asyncio
    async def test_unconfigured_fails_fast(self, make_proxy, backend, logger):
        proxy = make_proxy(Credentials("", "", BASE_URL))

        result = await proxy.proxy("GET", STATUS_PATH, correlation_id="corr-nc")

        assert isinstance(result, Failure)
        assert result.kind is FailureKind.NOT_CONFIGURED
        assert result.http_status == 500
        assert result.code == "missing_plugin_key"
        assert backend.requests == []
        assert len(logger.calls) == 1
        assert logger.calls[0].kind is FailureKind.NOT_CONFIGURED

    @pytest.mark.asyncio
    async def test_standard_headers(self, make_proxy, backend):
        backend.route("GET", STATUS_PATH, httpx.Response(200, json={"Id": "req-1"}))

        await make_proxy().proxy("get", STATUS_PATH, correlation_id="corr-hdr")

        request = backend.backend_requests[0]
        assert request.method == "GET"
        assert str(request.url) == BASE_URL + STATUS_PATH
        assert request.headers["Authorization"] == "Bearer token-1"
        assert request.headers["X-Correlation-Id"] == "corr-hdr"
        assert request.headers["X-Request-Source"] == "wordpress-plugin"
        assert request.headers["X-Client-Id"] == "utilitysign-wordpress-plugin"
        assert request.headers["X-Plugin-Version"] == "1.0.4"
        assert request.headers["Accept"] == "application/json; charset=UTF-8"
        assert request.headers["Content-Type"] == "application/json; charset=UTF-8"

    @pytest.mark.asyncio
    async def test_body_and_extra_headers_forwarded(self, make_proxy, backend):
        backend.route("POST", "/api/v1.0/wordpress/signing", httpx.Response(201, json={"Id": "req-9"}))

        await make_proxy().proxy(
            "POST",
            "/api/v1.0/wordpress/signing",
            {"SignerName": "Kari Nordmann"},
            {"X-Idempotency-Key": "wp-signing-abc"},
        )

        request = backend.backend_requests[0]
        assert json.loads(request.content) == {"SignerName": "Kari Nordmann"}
        assert request.headers["X-Idempotency-Key"] == "wp-signing-abc"

    @pytest.mark.asyncio
    async def test_non_ascii_header_is_rejected(self, make_proxy, backend, logger):
        result = await make_proxy().proxy(
            "POST",
            "/api/v1.0/wordpress/signing",
            {},
            {"X-Idempotency-Key": "nøkkel-1"},
            correlation_id="corr-hdr-bad",
        )

        assert isinstance(result, Failure)
        assert result.kind is FailureKind.INVALID_REQUEST
        assert result.http_status == 400
        assert result.code == "invalid_header"
        assert backend.backend_requests == []
        assert [(c.correlation_id, c.code) for c in logger.calls] == [("corr-hdr-bad", "invalid_header")]

    @pytest.mark.asyncio
    async def test_generates_correlation_id(self, make_proxy, backend):
        backend.route("GET", STATUS_PATH, httpx.Response(200, json={}))

        await make_proxy().proxy("GET", STATUS_PATH)

        assert backend.backend_requests[0].headers["X-Correlation-Id"].startswith("wp-rest-")

    @pytest.mark.asyncio
    async def test_success_body_gets_aliases(self, make_proxy, backend):
        backend.route(
            "GET",
            STATUS_PATH,
            httpx.Response(200, json={"SigningUrl": "https://sign.test/abc", "Id": "req-1"}),
        )

        result = await make_proxy().proxy("GET", STATUS_PATH)

        assert result == Success(
            status=200,
            body={
                "SigningUrl": "https://sign.test/abc",
                "Id": "req-1",
                "signing_url": "https://sign.test/abc",
                "id": "req-1",
            },
        )

    @pytest.mark.asyncio
    async def test_empty_body_is_empty_object(self, make_proxy, backend):
        backend.route("POST", "/api/v1.0/bankid/auth/cancel", httpx.Response(204))

        result = await make_proxy().proxy("POST", "/api/v1.0/bankid/auth/cancel", {"orderRef": "s-1"})

        assert result == Success(status=204, body={})

    @pytest.mark.asyncio
    async def test_unparseable_success_body(self, make_proxy, backend):
        backend.route("GET", STATUS_PATH, httpx.Response(200, text="<html>maintenance</html>"))

        result = await make_proxy().proxy("GET", STATUS_PATH)

        assert isinstance(result, Failure)
        assert result.kind is FailureKind.MALFORMED_RESPONSE
        assert result.http_status == 502
        assert result.backend_status == 200

    @pytest.mark.asyncio
    async def test_backend_error_is_normalized(self, make_proxy, backend):
        backend.route(
            "POST",
            "/api/v1.0/wordpress/signing",
            httpx.Response(400, json={"errors": {"SignerEmail": ["The SignerEmail field is required."]}}),
        )

        result = await make_proxy().proxy("POST", "/api/v1.0/wordpress/signing", {})

        assert isinstance(result, Failure)
        assert result.kind is FailureKind.BACKEND_REJECTED
        assert result.http_status == 400
        assert result.message == "SignerEmail: The SignerEmail field is required."

    @pytest.mark.asyncio
    async def test_configuration_error_code_becomes_client_error(self, make_proxy, backend):
        backend.route(
            "POST",
            "/api/v1.0/wordpress/signing",
            httpx.Response(503, json={"errorCode": "INTEGRATION_NOT_CONFIGURED", "message": "Not configured"}),
        )

        result = await make_proxy().proxy("POST", "/api/v1.0/wordpress/signing", {})

        assert result.http_status == 400
        assert result.backend_status == 503
        assert result.code == "INTEGRATION_NOT_CONFIGURED"

    @pytest.mark.asyncio
    async def test_timeout_reports_duration(self, make_proxy, backend, logger):
        async def slow(request):
            await asyncio.sleep(1.0)
            return httpx.Response(200, json={})

        backend.route("GET", STATUS_PATH, slow)

        result = await make_proxy(timeout=0.2).proxy("GET", STATUS_PATH)

        assert isinstance(result, Failure)
        assert result.kind is FailureKind.UNREACHABLE
        assert result.http_status == 504
        assert result.duration_ms >= 190
        assert logger.calls[-1].kind is FailureKind.UNREACHABLE

    @pytest.mark.asyncio
    async def test_transport_error(self, make_proxy, backend):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        backend.route("GET", STATUS_PATH, refuse)

        result = await make_proxy().proxy("GET", STATUS_PATH)

        assert result.kind is FailureKind.UNREACHABLE
        assert result.http_status == 502
        assert result.code == "backend_unreachable"

    @pytest.mark.asyncio
    async def test_auth_failure_stops_before_backend(self, make_proxy, backend):
        backend.auth_handler = lambda request: httpx.Response(401, json={"message": "Invalid plugin secret"})

        result = await make_proxy().proxy("GET", STATUS_PATH)

        assert isinstance(result, Failure)
        assert result.kind is FailureKind.AUTH_FAILED
        assert result.backend_status == 401
        assert "Invalid plugin secret" in result.message
        assert backend.backend_requests == []

    @pytest.mark.asyncio
    async def test_one_log_record_per_call(self, make_proxy, backend, logger):
        backend.route("GET", STATUS_PATH, httpx.Response(200, json={}))
        backend.route("GET", "/api/v1.0/signing/missing", httpx.Response(404, json={"message": "Not found"}))
        proxy = make_proxy()

        await proxy.proxy("GET", STATUS_PATH, correlation_id="corr-a")
        await proxy.proxy("GET", "/api/v1.0/signing/missing", correlation_id="corr-b")

        assert [(c.correlation_id, c.status, c.ok) for c in logger.calls] == [
            ("corr-a", 200, True),
            ("corr-b", 404, False),
        ]

    @pytest.mark.asyncio
    async def test_never_retries(self, make_proxy, backend):
        backend.route("GET", STATUS_PATH, httpx.Response(500, json={"message": "boom"}))

        await make_proxy().proxy("GET", STATUS_PATH)

        assert len(backend.backend_requests) == 1


class TestCheckConnection:
    @pytest.mark.asyncio
    async def test_success(self, make_proxy, backend):
        result = await make_proxy().check_connection()

        assert isinstance(result, Success)
        assert result.body["token_received"] is True
        assert backend.auth_calls == 1

    @pytest.mark.asyncio
    async def test_force_refresh_reauthenticates(self, make_proxy, backend):
        proxy = make_proxy()
        await proxy.check_connection()

        await proxy.check_connection(force_refresh=True)

        assert backend.auth_calls == 2

    @pytest.mark.asyncio
    async def test_unconfigured(self, make_proxy, backend, logger):
        result = await make_proxy(Credentials("", "", BASE_URL)).check_connection()

        assert result.kind is FailureKind.NOT_CONFIGURED
        assert backend.requests == []
        assert [(c.method, c.path, c.kind) for c in logger.calls] == [
            ("POST", "/api/v1/wordpress/authenticate", FailureKind.NOT_CONFIGURED)
        ]

    @pytest.mark.asyncio
    async def test_rejected_credentials_are_logged(self, make_proxy, backend, logger):
        backend.auth_handler = lambda request: httpx.Response(401, json={"message": "Invalid plugin key"})

        result = await make_proxy().check_connection(correlation_id="corr-conn")

        assert result.kind is FailureKind.AUTH_FAILED
        assert [(c.correlation_id, c.kind) for c in logger.calls] == [("corr-conn", FailureKind.AUTH_FAILED)]
