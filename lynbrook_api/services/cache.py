"""
CacheLayer - Keyed response cache with single-flight fetches and
stale-while-revalidate semantics.

Features:
- One entry per key holding data, error and validation state
- At most one in-flight fetch per key; concurrent callers share it
- Revalidation keeps stale data visible until the new fetch settles
- Failed fetches set the error but never clear the last good data
- Settled fetches are reported to registered observers (afterRequest)
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Generic, TypeVar

from loguru import logger

from lynbrook_api.services.deduplicator import RequestDeduplicator
from lynbrook_api.services.errors import NetworkError, RequestError
from lynbrook_api.settings import Settings, global_settings

T = TypeVar("T")

Fetcher = Callable[[str], Awaitable[Any]]


@dataclass(frozen=True)
class CacheState(Generic[T]):
    """Immutable view of a cache entry."""

    data: T | None = None
    error: RequestError | None = None
    is_validating: bool = False
    last_fetched_at: datetime | None = None


Listener = Callable[[CacheState[Any]], None]
Observer = Callable[[str, CacheState[Any]], Awaitable[None] | None]

_MISSING: Any = object()


@dataclass
class CacheEntry:
    """Mutable state for a single key."""

    data: Any = None
    error: RequestError | None = None
    is_validating: bool = False
    last_fetched_at: datetime | None = None
    listeners: list[Listener] = field(default_factory=list)

    def snapshot(self) -> CacheState[Any]:
        return CacheState(
            data=self.data,
            error=self.error,
            is_validating=self.is_validating,
            last_fetched_at=self.last_fetched_at,
        )


class Subscription:
    """
    Handle returned by CacheLayer.subscribe().

    wait() resolves to the result of the fetch that was in flight when the
    subscription was made, or to the current state if none was.
    """

    def __init__(
        self,
        cache: "CacheLayer",
        key: str | None,
        listener: Listener | None,
        task: "asyncio.Task[CacheState[Any]] | None",
    ):
        self._cache = cache
        self.key = key
        self._listener = listener
        self._task = task

    @property
    def state(self) -> CacheState[Any]:
        if self.key is None:
            return CacheState()
        return self._cache.peek(self.key) or CacheState()

    async def wait(self) -> CacheState[Any]:
        if self._task is not None:
            # Shielded so one cancelled waiter cannot cancel the shared fetch
            return await asyncio.shield(self._task)
        return self.state

    def unsubscribe(self) -> None:
        if self.key is not None and self._listener is not None:
            self._cache._remove_listener(self.key, self._listener)
            self._listener = None


class CacheLayer:
    """
    Cache of GET responses keyed by request path.

    The layer knows nothing about authentication: it calls the supplied
    fetcher and reports every settled fetch to its observers.

    Usage:
        cache = CacheLayer(fetcher=client.fetch)

        state = await cache.get("/users/me/")
        if state.error:
            ...

        sub = cache.subscribe("/orgs/", listener=lambda state: render(state))
        await cache.revalidate("/orgs/")
        sub.unsubscribe()
    """

    def __init__(
        self,
        fetcher: Fetcher,
        settings: Settings | None = None,
        max_size: int | None = None,
        revalidate_on_subscribe: bool | None = None,
        debug: bool | None = None,
    ):
        settings = settings or global_settings
        self._fetcher = fetcher
        self._max_size = max_size if max_size is not None else settings.cache_max_size
        self._revalidate_on_subscribe = (
            revalidate_on_subscribe
            if revalidate_on_subscribe is not None
            else settings.revalidate_on_subscribe
        )
        self._debug = debug if debug is not None else settings.debug
        self._entries: dict[str, CacheEntry] = {}
        self._observers: list[Observer] = []
        self._deduplicator = RequestDeduplicator(debug=self._debug)
        self._stats = CacheStats()

    # Reading

    def subscribe(
        self,
        key: str | None,
        listener: Listener | None = None,
        revalidate: bool | None = None,
    ) -> Subscription:
        """
        Subscribe to a key, fetching it when needed.

        A fetch starts when nothing is in flight for the key and either the
        key has never been fetched or revalidate is true (defaults to the
        revalidate_on_subscribe setting). A None key never fetches.
        """
        if key is None:
            return Subscription(self, None, listener, None)

        entry = self._ensure_entry(key)
        if listener is not None:
            entry.listeners.append(listener)

        if revalidate is None:
            revalidate = self._revalidate_on_subscribe

        task = self._deduplicator.current(key)
        if task is not None:
            self._stats.deduplicated += 1
            self._log(f"JOIN: {key[:50]}...")
        elif revalidate or entry.last_fetched_at is None:
            task = self._start_fetch(key)
        else:
            self._stats.hits += 1
            self._log(f"HIT: {key[:50]}...")

        return Subscription(self, key, listener, task)

    async def get(self, key: str | None, revalidate: bool = False) -> CacheState[Any]:
        """Fetch-or-read a key and wait for it to settle."""
        return await self.subscribe(key, revalidate=revalidate).wait()

    def peek(self, key: str) -> CacheState[Any] | None:
        """Current state for key without fetching."""
        entry = self._entries.get(key)
        return entry.snapshot() if entry else None

    def keys(self) -> list[str]:
        return list(self._entries.keys())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    # Writing

    async def revalidate(self, key: str) -> CacheState[Any]:
        """
        Refetch key. Existing data stays visible with is_validating set
        until the new fetch settles. A fetch already in flight is not
        aborted; whichever settles last wins.
        """
        self._ensure_entry(key)
        task = self._start_fetch(key, force=True)
        return await asyncio.shield(task)

    async def mutate(
        self,
        key: str,
        data: Any = _MISSING,
        revalidate: bool = True,
    ) -> CacheState[Any] | None:
        """
        Replace the cached data for key and/or revalidate it.

        With no data, only known keys are revalidated; returns None for a
        key that is not cached.
        """
        if data is _MISSING:
            if key not in self._entries:
                return None
        else:
            entry = self._ensure_entry(key)
            entry.data = data
            entry.error = None
            entry.last_fetched_at = datetime.now()
            self._log(f"MUTATE: {key[:50]}...")
            self._notify(key)

        if revalidate:
            return await self.revalidate(key)
        return self.peek(key)

    def delete(self, key: str) -> bool:
        """Evict a single key."""
        self._deduplicator.forget(key)
        if self._entries.pop(key, None) is not None:
            self._log(f"DELETE: {key[:50]}...")
            return True
        return False

    def clear(self) -> int:
        """
        Drop every entry.

        Fetches still in flight resolve for their callers but are not
        written back, so nothing fetched before the clear survives it.
        """
        count = len(self._entries)
        self._entries.clear()
        self._deduplicator.forget_all()
        logger.info(f"Cache cleared: {count} entries removed")
        return count

    # Observers

    def add_observer(self, observer: Observer) -> Callable[[], None]:
        """
        Register an afterRequest observer, called with (key, state) for
        every settled fetch. Returns a function that removes it.
        """
        self._observers.append(observer)

        def remove() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return remove

    # Internals

    def _ensure_entry(self, key: str) -> CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            if self._max_size and len(self._entries) >= self._max_size:
                self._evict_oldest()
            entry = CacheEntry()
            self._entries[key] = entry
        return entry

    def _start_fetch(self, key: str, force: bool = False) -> "asyncio.Task[CacheState[Any]]":
        entry = self._entries[key]
        task = self._deduplicator.join(key, lambda: self._fetch(key, entry), force=force)
        self._stats.fetches += 1
        self._log(f"FETCH: {key[:50]}...")
        if not entry.is_validating:
            entry.is_validating = True
            self._notify(key)
        return task

    async def _fetch(self, key: str, entry: CacheEntry) -> CacheState[Any]:
        data: Any = None
        error: RequestError | None = None
        try:
            data = await self._fetcher(key)
        except RequestError as e:
            error = e
        except Exception as e:
            logger.exception(f"Unexpected error fetching {key}")
            error = NetworkError(key, f"{type(e).__name__}: {e}")

        if error is not None:
            self._stats.errors += 1

        if self._entries.get(key) is not entry:
            # Cleared or evicted while in flight
            self._stats.discarded += 1
            self._log(f"DISCARD: {key[:50]}...")
            state = CacheState(data=data, error=error, last_fetched_at=datetime.now())
        else:
            if error is None:
                entry.data = data
                entry.error = None
                entry.last_fetched_at = datetime.now()
            else:
                entry.error = error
            current = self._deduplicator.current(key)
            entry.is_validating = current is not None and current is not asyncio.current_task()
            state = entry.snapshot()
            self._notify(key)

        await self._report(key, state)
        return state

    def _notify(self, key: str) -> None:
        entry = self._entries.get(key)
        if entry is None:
            return
        state = entry.snapshot()
        for listener in list(entry.listeners):
            try:
                listener(state)
            except Exception:
                logger.exception(f"Cache listener for {key} failed")

    async def _report(self, key: str, state: CacheState[Any]) -> None:
        for observer in list(self._observers):
            try:
                result = observer(key, state)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"afterRequest observer failed for {key}")

    def _remove_listener(self, key: str, listener: Listener) -> None:
        entry = self._entries.get(key)
        if entry is not None and listener in entry.listeners:
            entry.listeners.remove(listener)

    def _evict_oldest(self) -> None:
        """Evict the least recently fetched entry that is not in flight."""
        idle = [k for k in self._entries if not self._deduplicator.is_in_flight(k)]
        if not idle:
            return
        oldest_key = min(
            idle,
            key=lambda k: self._entries[k].last_fetched_at or datetime.min,
        )
        del self._entries[oldest_key]
        self._stats.evictions += 1
        self._log(f"EVICT: {oldest_key[:50]}...")

    async def close(self) -> None:
        """Cancel in-flight fetches."""
        await self._deduplicator.cancel_all()

    def get_stats(self) -> "CacheStats":
        """Get cache statistics."""
        self._stats.size = len(self._entries)
        self._stats.in_flight = self._deduplicator.get_in_flight_count()
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[CacheLayer] {message}")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    fetches: int = 0
    deduplicated: int = 0
    errors: int = 0
    discarded: int = 0
    evictions: int = 0
    size: int = 0
    in_flight: int = 0

    @property
    def dedup_rate(self) -> float:
        total = self.fetches + self.deduplicated
        if total == 0:
            return 0.0
        return self.deduplicated / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "fetches": self.fetches,
            "deduplicated": self.deduplicated,
            "errors": self.errors,
            "discarded": self.discarded,
            "evictions": self.evictions,
            "size": self.size,
            "in_flight": self.in_flight,
            "dedup_rate": f"{self.dedup_rate:.2%}",
        }
