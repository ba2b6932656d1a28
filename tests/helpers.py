"""
Test doubles shared across test modules.
"""

import asyncio
import json
from typing import Any, Callable

import httpx

API_ORIGIN = "https://api.test/api/"


class FakeBackend:
    """Routes requests by (method, url) and records what was sent."""

    def __init__(self):
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self,
        method: str,
        url: str,
        status: int = 200,
        body: Any = None,
        raw: bytes | None = None,
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if raw is not None:
                return httpx.Response(status, content=raw)
            if body is None:
                return httpx.Response(status)
            return httpx.Response(status, json=body)

        self.routes[(method, str(httpx.URL(url)))] = handler

    def calls(self, method: str, url: str) -> list[httpx.Request]:
        url = str(httpx.URL(url))
        return [r for r in self.requests if r.method == method and str(r.url) == url]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, str(request.url)))
        if handler is None:
            return httpx.Response(404, json={"detail": "Not found."})
        return handler(request)

    @staticmethod
    def json_body(request: httpx.Request) -> Any:
        return json.loads(request.content)


class GatedFetcher:
    """
    Cache fetcher whose responses are released by the test.

    Each call to a key waits until release(key, ...) or fail(key, ...) is
    called for it.
    """

    def __init__(self):
        self.calls: list[str] = []
        self._pending: dict[str, list[asyncio.Future]] = {}

    async def __call__(self, key: str) -> Any:
        self.calls.append(key)
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending.setdefault(key, []).append(future)
        return await future

    def pending(self, key: str) -> int:
        return len([f for f in self._pending.get(key, []) if not f.done()])

    def release(self, key: str, data: Any) -> None:
        self._next(key).set_result(data)

    def fail(self, key: str, error: Exception) -> None:
        self._next(key).set_exception(error)

    def _next(self, key: str) -> asyncio.Future:
        for future in self._pending.get(key, []):
            if not future.done():
                return future
        raise AssertionError(f"no pending fetch for {key}")


async def settle() -> None:
    """Let every ready task run until the loop is idle."""
    for _ in range(10):
        await asyncio.sleep(0)
