"""
ApiClient - Async HTTP request executor for the backend API.

Responsibilities:
- Resolve request paths against the API origin
- Attach the session's bearer token when one is present
- Encode bodies as JSON unless the caller supplies its own options
- Shape every non-2xx response into a RequestError
"""

import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import httpx
from loguru import logger

from lynbrook_api.services.errors import NetworkError, RequestError
from lynbrook_api.services.session import SessionStore
from lynbrook_api.settings import Settings, global_settings


@dataclass
class RequestOptions:
    """
    Caller-supplied request options.

    Passing options disables the default JSON encoding: the body is sent
    as given, so it should already be serialized.
    """

    headers: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None


class ApiClient:
    """
    Executes requests against the backend with the current session token.

    Usage:
        client = ApiClient(session)

        user = await client.execute("GET", "/users/me/")
        await client.execute("POST", "/auth/jwt/create", {"email": e, "password": p})

        # Form-encoded body with explicit options
        await client.execute(
            "POST",
            "/auth/o/google/",
            "code=abc&state=xyz",
            RequestOptions(headers={"Content-Type": "application/x-www-form-urlencoded"}),
        )
    """

    def __init__(
        self,
        session: SessionStore,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._session = session
        self._settings = settings or global_settings
        self._origin = httpx.URL(self._settings.api_origin)
        self._transport = transport

        # HTTP client (lazy initialization)
        self._http_client: httpx.AsyncClient | None = None

    @property
    def session(self) -> SessionStore:
        return self._session

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._settings.request_timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._http_client

    def api_path(self, path: str) -> str:
        """Resolve a path against the API origin; absolute URLs pass through."""
        if path.startswith("http"):
            return path
        return str(self._origin.join(path))

    async def execute(
        self,
        method: str,
        path: str,
        body: Any = None,
        options: RequestOptions | None = None,
    ) -> Any:
        """
        Make a request and return the parsed JSON body.

        Args:
            method: HTTP method (GET, POST, etc.)
            path: API path or absolute URL
            body: Request body; JSON-encoded when no options are given
            options: Explicit headers/timeout; body is then sent as-is

        Returns:
            Parsed JSON, or None when the response body is empty or not JSON

        Raises:
            UnauthorizedError: On HTTP 401
            RequestError: For any other non-2xx status
            NetworkError: If the request never produced a response
        """
        if options is None:
            options = RequestOptions(headers={"Content-Type": "application/json"})
            if body is not None and not isinstance(body, str):
                body = json.dumps(body)

        return await self._send(method, path, body, options)

    async def fetch(self, path: str) -> Any:
        """GET fetcher used by the cache layer."""
        return await self._send("GET", path, None, None)

    async def _send(
        self,
        method: str,
        path: str,
        content: str | bytes | None,
        options: RequestOptions | None,
    ) -> Any:
        """Execute the actual HTTP request."""
        # No request leaves before the stored token has been resolved
        if self._session.loading and not self._session.load_started:
            logger.warning(
                f"{method} {path} is waiting for the session to load; "
                "call SessionStore.load() (or ApiContext.start()) first"
            )
        await self._session.wait_until_loaded()

        url = self.api_path(path)
        headers: dict[str, str] = {}
        token = self._session.current_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if options is not None:
            headers.update(options.headers)

        request_kwargs: dict[str, Any] = {"headers": headers}
        if content is not None:
            request_kwargs["content"] = content
        if options is not None and options.timeout is not None:
            request_kwargs["timeout"] = options.timeout

        client = await self._get_http_client()

        try:
            response = await client.request(method, url, **request_kwargs)
        except httpx.RequestError as e:
            logger.warning(f"{method} {url} failed: {type(e).__name__}: {e}")
            raise NetworkError(url, str(e) or type(e).__name__) from e

        if not response.is_success:
            logger.debug(f"{method} {url} -> HTTP {response.status_code}")
            raise RequestError.from_response(url, response.status_code, _parse_json(response))

        return _parse_json(response)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
            logger.debug("ApiClient closed")

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def _parse_json(response: httpx.Response) -> Any:
    """Parsed JSON body, or None when the body is empty or unparsable."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


class GuardedRequest:
    """
    Wraps ApiClient calls so failures land in an error slot.

    By default a failed request returns None and the error is kept in
    `error`; with throw_on_error=True the error is recorded and re-raised.

    Usage:
        guarded = GuardedRequest(client)
        resp = await guarded.request("POST", "/users/spend-points/")
        if guarded.error:
            ...
    """

    def __init__(self, client: ApiClient, throw_on_error: bool = False):
        self._client = client
        self.throw_on_error = throw_on_error
        self.error: RequestError | None = None

    async def request_with(self, func: Callable[[str | None], Awaitable[Any]]) -> Any:
        """Run func with the current token, recording any RequestError."""
        try:
            return await func(self._client.session.current_token())
        except RequestError as e:
            self.error = e
            if self.throw_on_error:
                raise
        return None

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        options: RequestOptions | None = None,
    ) -> Any:
        return await self.request_with(
            lambda _token: self._client.execute(method, path, body, options)
        )
