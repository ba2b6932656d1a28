"""
Endpoint bindings over the cache layer.
"""

from typing import Any

from lynbrook_api.services.cache import CacheLayer, CacheState
from lynbrook_api.services.client import ApiClient, GuardedRequest
from lynbrook_api.services.pagination import PaginatedSeries

CURRENT_USER = "/users/me/"


class Resources:
    """Read and write helpers for the backend's resources."""

    def __init__(self, cache: CacheLayer, client: ApiClient):
        self._cache = cache
        self._client = client

    # Get Requests

    async def user(self) -> CacheState[Any]:
        return await self._cache.get(CURRENT_USER)

    async def memberships(self) -> CacheState[Any]:
        return await self._cache.get("/users/me/orgs/")

    async def orgs(self) -> CacheState[Any]:
        return await self._cache.get("/orgs/")

    async def org(self, org_id: int) -> CacheState[Any]:
        return await self._cache.get(f"/orgs/{org_id}/")

    async def events(self) -> CacheState[Any]:
        return await self._cache.get("/events/")

    async def event(self, event_id: int) -> CacheState[Any]:
        return await self._cache.get(f"/events/{event_id}/")

    async def prizes(self) -> CacheState[Any]:
        return await self._cache.get("/prizes/")

    def posts(self) -> PaginatedSeries[Any]:
        return PaginatedSeries(self._cache, "/posts/")

    async def post(self, post_id: int) -> CacheState[Any]:
        return await self._cache.get(f"/posts/{post_id}/")

    async def polls(self, post_id: int) -> CacheState[Any]:
        return await self._cache.get(f"/posts/{post_id}/polls/")

    async def poll(self, post_id: int, poll_id: int) -> CacheState[Any]:
        return await self._cache.get(f"/posts/{post_id}/polls/{poll_id}/")

    async def poll_submissions(self, post_id: int, poll_id: int) -> CacheState[Any]:
        return await self._cache.get(f"/posts/{post_id}/polls/{poll_id}/submissions/")

    async def schedules(self) -> CacheState[Any]:
        return await self._cache.get("/schedules/")

    async def current_schedule(self) -> CacheState[Any]:
        return await self._cache.get("/schedules/current/")

    async def next_schedule(self) -> CacheState[Any]:
        return await self._cache.get("/schedules/next/")

    # Mutations

    async def spend_points(self, throw_on_error: bool = False) -> tuple[Any, GuardedRequest]:
        """Spend the current user's points, then refresh the current user."""
        guarded = GuardedRequest(self._client, throw_on_error=throw_on_error)
        resp = await guarded.request("POST", "/users/spend-points/")
        await self._cache.mutate(CURRENT_USER)
        return resp, guarded
