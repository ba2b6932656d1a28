"""
Composition root: wires one session's worth of components together.
"""

from dataclasses import dataclass

import httpx
from loguru import logger

from lynbrook_api.resources import Resources
from lynbrook_api.services.auth import AuthInterceptor, AuthService
from lynbrook_api.services.cache import CacheLayer
from lynbrook_api.services.client import ApiClient
from lynbrook_api.services.session import SessionStore, TokenChangeHandler, TokenLoader
from lynbrook_api.settings import Settings, global_settings


@dataclass
class ApiContext:
    """Every component for one logged-in session, explicitly wired."""

    settings: Settings
    session: SessionStore
    client: ApiClient
    cache: CacheLayer
    interceptor: AuthInterceptor
    auth: AuthService
    resources: Resources

    async def start(self) -> "ApiContext":
        """Resolve the stored token; requests wait until this completes."""
        await self.session.load()
        return self

    async def close(self) -> None:
        await self.cache.close()
        await self.client.close()
        logger.info("ApiContext closed")

    async def __aenter__(self) -> "ApiContext":
        return await self.start()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def create_context(
    load_token: TokenLoader | None = None,
    on_token_change: TokenChangeHandler | None = None,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    throw_on_error: bool = False,
) -> ApiContext:
    """Build an ApiContext; call start() (or use `async with`) before requests."""
    settings = settings or global_settings
    session = SessionStore(load_token=load_token, on_token_change=on_token_change)
    client = ApiClient(session, settings=settings, transport=transport)
    cache = CacheLayer(fetcher=client.fetch, settings=settings)
    interceptor = AuthInterceptor(session, cache)
    auth = AuthService(client, session, interceptor, throw_on_error=throw_on_error)
    resources = Resources(cache, client)
    return ApiContext(
        settings=settings,
        session=session,
        client=client,
        cache=cache,
        interceptor=interceptor,
        auth=auth,
        resources=resources,
    )
