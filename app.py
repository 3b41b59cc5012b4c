"""FastAPI application factory."""

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request

from api.handlers import (
    handle_bankid_status,
    handle_cancel_bankid,
    handle_connection_check,
    handle_create_signing,
    handle_initiate_bankid,
    handle_signing_status,
    handle_trigger_completion,
)
from auth import TokenAuthenticator
from core.config import PLUGIN_VERSION, Config
from core.errors import ErrorNormalizer
from core.field_map import FieldMapper
from core.headers import HeaderBuilder
from core.protocols import RequestLogger, TokenStore
from core.token_store import create_token_store
from services.proxy import RequestProxy
from services.signing_service import SigningService

ROUTE_PREFIX = "/utilitysign/v1"


def build_proxy(
    config: Config,
    client: httpx.AsyncClient,
    store: TokenStore,
    logger: RequestLogger,
) -> RequestProxy:
    """Wire the authenticator, normalizer and mapper around one HTTP client."""
    return RequestProxy(
        config.credentials(),
        client,
        TokenAuthenticator.from_config(config, client, store, logger),
        logger,
        timeout=config.backend.timeout_seconds,
        header_builder=HeaderBuilder(config.client),
        normalizer=ErrorNormalizer(config.errors.configuration_error_codes),
        mapper=FieldMapper(),
    )


def create_app(
    config: Config,
    logger: RequestLogger,
    *,
    store: TokenStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    token_store = store if store is not None else create_token_store(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        limits = httpx.Limits(max_connections=100, max_keepalive_connections=20)
        backend_client = httpx.AsyncClient(
            timeout=config.backend.timeout_seconds,
            limits=limits,
            transport=transport,
        )
        app.state.request_proxy = build_proxy(config, backend_client, token_store, logger)
        app.state.signing_service = SigningService(app.state.request_proxy, logger, config.signing)
        try:
            yield
        finally:
            await backend_client.aclose()

    app = FastAPI(title="UtilitySign Proxy", version=PLUGIN_VERSION, lifespan=lifespan)

    @app.post(f"{ROUTE_PREFIX}/signing")
    async def create_signing(request: Request):
        return await handle_create_signing(request, logger)

    @app.post(f"{ROUTE_PREFIX}/signing/bankid/initiate")
    async def initiate_bankid(request: Request):
        return await handle_initiate_bankid(request, logger)

    @app.get(f"{ROUTE_PREFIX}/signing/bankid/status/{{session_id}}")
    async def bankid_status(request: Request, session_id: str):
        return await handle_bankid_status(request, session_id)

    @app.post(f"{ROUTE_PREFIX}/signing/bankid/cancel")
    async def cancel_bankid(request: Request):
        return await handle_cancel_bankid(request, logger)

    @app.get(f"{ROUTE_PREFIX}/signing/{{request_id}}")
    async def signing_status(request: Request, request_id: str):
        return await handle_signing_status(request, request_id)

    @app.post(f"{ROUTE_PREFIX}/signing/{{request_id}}/complete")
    async def trigger_completion(request: Request, request_id: str):
        return await handle_trigger_completion(request, request_id)

    @app.get(f"{ROUTE_PREFIX}/connection")
    async def connection_check(request: Request):
        return await handle_connection_check(request)

    return app
