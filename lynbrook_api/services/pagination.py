"""
PaginatedSeries - Follows server-supplied "next" cursors page by page.

Page 0 is keyed by the base path; page i is keyed by the `next` cursor of
page i-1. Every page is an ordinary cache entry, so single-flight and
stale-while-revalidate apply to each page independently.
"""

from typing import Any, Generic, TypeVar

from loguru import logger
from pydantic import BaseModel

from lynbrook_api.models import Page, parse_page
from lynbrook_api.services.cache import CacheLayer, CacheState
from lynbrook_api.services.errors import RequestError

T = TypeVar("T")


class PaginatedSeries(Generic[T]):
    """
    A growing sequence of pages for one listable resource.

    Usage:
        posts = PaginatedSeries(cache, "/posts/", item_model=Post)
        await posts.load()
        while posts.can_load_more:
            await posts.load_more()
        for post in posts.items:
            ...
    """

    def __init__(
        self,
        cache: CacheLayer,
        base_path: str,
        item_model: type[BaseModel] | None = None,
    ):
        self._cache = cache
        self.base_path = base_path
        self._item_model = item_model
        self._size = 1
        self._error: RequestError | None = None

    @property
    def size(self) -> int:
        """Number of pages requested so far."""
        return self._size

    @property
    def keys(self) -> list[str]:
        """Cache keys of the requested pages whose key is known."""
        keys: list[str] = []
        key: str | None = self.base_path
        for _ in range(self._size):
            if key is None:
                break
            keys.append(key)
            state = self._cache.peek(key)
            if state is None or state.last_fetched_at is None:
                break
            key = self._next_cursor(state)
        return keys

    @property
    def pages(self) -> list[Page[Any]]:
        """Resolved pages, in order, stopping at the first missing one."""
        pages: list[Page[Any]] = []
        for key in self.keys:
            state = self._cache.peek(key)
            if state is None or state.last_fetched_at is None or state.data is None:
                break
            pages.append(parse_page(state.data, self._item_model))
        return pages

    @property
    def items(self) -> list[Any]:
        return [item for page in self.pages for item in page.results]

    @property
    def error(self) -> RequestError | None:
        return self._error

    @property
    def is_validating(self) -> bool:
        for key in self.keys:
            state = self._cache.peek(key)
            if state is not None and state.is_validating:
                return True
        return False

    @property
    def can_load_more(self) -> bool:
        """True when the last loaded page points at a next page."""
        keys = self.keys
        if len(keys) < self._size:
            return False
        state = self._cache.peek(keys[-1])
        if state is None or state.last_fetched_at is None:
            return False
        return self._next_cursor(state) is not None

    async def load(self) -> list[Page[Any]]:
        """Load every requested page that is not cached yet."""
        index = 0
        while index < self._size:
            # Each page's key is only known once the previous page resolved
            keys = self.keys
            if index >= len(keys):
                break
            state = await self._cache.get(keys[index])
            self._record(state)
            if state.last_fetched_at is None:
                break
            index += 1
        return self.pages

    async def load_more(self) -> list[Page[Any]]:
        """Fetch exactly one more page; a no-op at the end of the series."""
        if not self.can_load_more:
            logger.debug(f"No more pages for {self.base_path}")
            return self.pages

        self._size += 1
        key = self.keys[-1]
        state = await self._cache.get(key)
        self._record(state)
        if state.last_fetched_at is None:
            # Failed before any data arrived; allow retrying the same page
            self._size -= 1
        return self.pages

    async def revalidate(self, index: int | None = None) -> list[Page[Any]]:
        """
        Refetch one page, or every loaded page when index is None.

        An index outside the known pages is a no-op.
        """
        keys = self.keys
        if index is None:
            targets = keys
        elif 0 <= index < len(keys):
            targets = [keys[index]]
        else:
            logger.debug(f"No page {index} to revalidate for {self.base_path}")
            targets = []
        for key in targets:
            self._record(await self._cache.revalidate(key))
        return self.pages

    def _record(self, state: CacheState[Any]) -> None:
        self._error = state.error

    @staticmethod
    def _next_cursor(state: CacheState[Any]) -> str | None:
        if not isinstance(state.data, dict):
            return None
        return state.data.get("next") or None
