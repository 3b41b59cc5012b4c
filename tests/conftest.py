"""Shared fixtures: a scripted backend behind httpx.MockTransport."""

import httpx
import pytest
import pytest_asyncio

from auth import TokenAuthenticator
from core.config import ErrorSettings
from core.errors import ErrorNormalizer
from core.request_types import Credentials
from core.token_store import MemoryTokenStore
from services.proxy import RequestProxy
from tests.helpers import BASE_URL, PLUGIN_KEY, PLUGIN_SECRET, FakeBackend, FakeClock, RecordingLogger


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(key=PLUGIN_KEY, secret=PLUGIN_SECRET, base_url=BASE_URL)


@pytest.fixture
def store(clock: FakeClock) -> MemoryTokenStore:
    return MemoryTokenStore(clock=clock)


@pytest_asyncio.fixture
async def http_client(backend: FakeBackend):
    async with httpx.AsyncClient(transport=httpx.MockTransport(backend.handle)) as client:
        yield client


@pytest.fixture
def authenticator(credentials, http_client, store, logger, clock) -> TokenAuthenticator:
    return TokenAuthenticator(credentials, http_client, store, logger, clock=clock)


@pytest.fixture
def make_proxy(http_client, store, logger, clock):
    """Build a RequestProxy with its own authenticator; override credentials or timeout."""

    def factory(credentials: Credentials | None = None, *, timeout: float = 5.0) -> RequestProxy:
        credentials = credentials or Credentials(key=PLUGIN_KEY, secret=PLUGIN_SECRET, base_url=BASE_URL)
        auth = TokenAuthenticator(credentials, http_client, store, logger, clock=clock)
        return RequestProxy(
            credentials,
            http_client,
            auth,
            logger,
            timeout=timeout,
            normalizer=ErrorNormalizer(ErrorSettings().configuration_error_codes),
        )

    return factory
