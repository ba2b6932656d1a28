"""
Authentication flows on top of the session, client and cache.

- AuthInterceptor: forces sign-out whenever a cached fetch returns 401
- AuthService: credential exchange against the backend auth endpoints
"""

from enum import Enum
from typing import Any
from urllib.parse import urlencode

from loguru import logger
from pydantic import ValidationError

from lynbrook_api.models import AuthorizationUrl, TokenResponse, UserType
from lynbrook_api.services.cache import CacheLayer, CacheState
from lynbrook_api.services.client import ApiClient, GuardedRequest, RequestOptions
from lynbrook_api.services.errors import RequestError
from lynbrook_api.services.session import SessionStore


class AuthInterceptor:
    """
    Watches every settled cache fetch and signs out on HTTP 401.

    Sign-out clears the session token and then every cache entry, so no
    data fetched under the old token outlives it. Repeated 401s while
    already signed out are harmless: clearing an empty cache starts no
    fetch, so nothing can loop.
    """

    def __init__(self, session: SessionStore, cache: CacheLayer):
        self._session = session
        self._cache = cache
        self._remove_observer = cache.add_observer(self.after_request)

    async def after_request(self, key: str, state: CacheState[Any]) -> None:
        if state.error is not None and state.error.status == 401:
            logger.warning(f"Unauthorized response for {key}, signing out")
            await self.sign_out()

    async def sign_out(self) -> None:
        try:
            await self._session.set_token(None)
        finally:
            self._cache.clear()

    def detach(self) -> None:
        """Stop watching the cache."""
        self._remove_observer()


class Provider(str, Enum):
    """OAuth providers supported by the backend."""

    SCHOOLOGY = "schoology"
    GOOGLE = "google"


# Callback parameters forwarded to the backend, per provider
KEEP_CALLBACK_FIELDS: dict[Provider, list[str]] = {
    Provider.SCHOOLOGY: ["oauth_token"],
    Provider.GOOGLE: ["code", "state"],
}

FORM_OPTIONS = RequestOptions(headers={"Content-Type": "application/x-www-form-urlencoded"})


class AuthService:
    """
    Credential exchange: password sign-in, guest registration and OAuth
    provider sign-in. A successful exchange commits the returned access
    token to the session.

    Failures are recorded on `error` and the call returns None, unless the
    service was built with throw_on_error=True.

    Usage:
        auth = AuthService(client, session, interceptor)
        token = await auth.sign_in("a@b.com", "secret")
        if token is None:
            print(auth.error)
    """

    def __init__(
        self,
        client: ApiClient,
        session: SessionStore,
        interceptor: AuthInterceptor,
        throw_on_error: bool = False,
    ):
        self._session = session
        self._interceptor = interceptor
        self._guarded = GuardedRequest(client, throw_on_error=throw_on_error)

    @property
    def error(self) -> RequestError | None:
        return self._guarded.error

    async def sign_in(self, email: str, password: str) -> str | None:
        """Exchange email and password for an access token."""
        resp = await self._guarded.request(
            "POST", "/auth/jwt/create", {"email": email, "password": password}
        )
        return await self._accept_token(resp)

    async def register(
        self,
        email: str,
        password: str,
        re_password: str,
        user_type: UserType = UserType.GUEST,
    ) -> str | None:
        """Create a guest account, then sign in with it."""
        resp = await self._guarded.request(
            "POST",
            "/auth/users/",
            {
                "email": email,
                "password": password,
                "re_password": re_password,
                "type": int(user_type),
            },
        )
        if not resp:
            return None
        return await self.sign_in(email, password)

    async def authorization_url(self, provider: Provider | str, redirect_uri: str) -> str | None:
        """URL the user should visit to authorize with an OAuth provider."""
        provider = Provider(provider)
        path = f"/auth/o/{provider.value}/?{urlencode({'redirect_uri': redirect_uri})}"
        resp = await self._guarded.request("GET", path)
        try:
            return AuthorizationUrl.model_validate(resp or {}).authorization_url
        except ValidationError:
            logger.warning(f"Malformed authorization response from {provider.value}")
            return None

    async def handle_provider_callback(
        self, provider: Provider | str, params: dict[str, str]
    ) -> str | None:
        """Forward the provider's callback parameters and sign in."""
        provider = Provider(provider)
        body = urlencode(
            [(name, params.get(name, "")) for name in KEEP_CALLBACK_FIELDS[provider]]
        )
        resp = await self._guarded.request(
            "POST", f"/auth/o/{provider.value}/", body, FORM_OPTIONS
        )
        return await self._accept_token(resp)

    async def sign_out(self) -> None:
        """Manual sign-out."""
        logger.info("Signing out")
        await self._interceptor.sign_out()

    async def _accept_token(self, resp: Any) -> str | None:
        try:
            access = TokenResponse.model_validate(resp or {}).access
        except ValidationError:
            logger.warning("Malformed token response")
            return None
        if access is None:
            return None
        await self._session.set_token(access)
        return access
