"""
Shared fixtures: a fake backend behind httpx.MockTransport and a fully
wired ApiContext talking to it.
"""

import httpx
import pytest
import pytest_asyncio

from lynbrook_api import create_context
from lynbrook_api.settings import Settings

from tests.helpers import API_ORIGIN, FakeBackend


@pytest.fixture
def settings() -> Settings:
    return Settings(API_ORIGIN=API_ORIGIN, REQUEST_TIMEOUT=5, REVALIDATE_ON_SUBSCRIBE=False)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def transport(backend: FakeBackend) -> httpx.MockTransport:
    return httpx.MockTransport(backend)


@pytest_asyncio.fixture
async def ctx(settings: Settings, transport: httpx.MockTransport):
    """Started context with no stored token."""
    context = create_context(settings=settings, transport=transport)
    await context.start()
    yield context
    await context.close()
