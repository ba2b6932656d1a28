"""
RequestDeduplicator - In-flight registry for single-flight fetches.

When multiple callers request the same key while a fetch is running,
only one actual request is made and every caller awaits the same task.
Registration is synchronous so that callers joining within the same
event-loop turn can never start a second request.
"""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


class RequestDeduplicator:
    """
    Deduplicates concurrent async requests by key.

    CacheLayer calls join() once per fetch it wants for a key and awaits
    the returned task; callers arriving while that task runs get the same
    task back. A forced join (revalidation) registers a fresh task without
    aborting the one already running.

    Usage:
        dedup = RequestDeduplicator()

        task = dedup.join("/users/me/", lambda: client.fetch("/users/me/"))
        same = dedup.join("/users/me/", lambda: client.fetch("/users/me/"))
        assert task is same
        state = await task
    """

    def __init__(self, debug: bool = False):
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._debug = debug

    def join(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
        force: bool = False,
    ) -> "asyncio.Task[T]":
        """
        Return the in-flight task for key, starting one if needed.

        With force=True a new task is always started and becomes the one
        later callers join; the previous task keeps running to completion.
        """
        task = self._in_flight.get(key)
        if task is not None and not force:
            self._log(f"DEDUPE: Waiting for in-flight request: {key[:50]}...")
            return task

        self._log(f"NEW: Starting request: {key[:50]}...")
        task = asyncio.create_task(self._execute_and_cleanup(key, request_fn))
        self._in_flight[key] = task
        return task

    async def _execute_and_cleanup(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
    ) -> T:
        """Execute request and unregister it when done."""
        try:
            return await request_fn()
        finally:
            # A forced request may have replaced this one in the registry
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]
            self._log(f"DONE: Request completed: {key[:50]}...")

    def current(self, key: str) -> "asyncio.Task[Any] | None":
        """The task later callers for key would join, if any."""
        return self._in_flight.get(key)

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def forget(self, key: str) -> bool:
        """Drop the registration for key; the running task is left alone."""
        return self._in_flight.pop(key, None) is not None

    def forget_all(self) -> int:
        """Drop every registration without cancelling the running tasks."""
        count = len(self._in_flight)
        self._in_flight.clear()
        if count:
            self._log(f"FORGET_ALL: {count} requests detached")
        return count

    async def cancel_all(self) -> int:
        """Cancel all in-flight requests."""
        tasks = list(self._in_flight.values())
        self._in_flight.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            self._log(f"CANCEL_ALL: {len(tasks)} requests cancelled")
        return len(tasks)

    def get_in_flight_count(self) -> int:
        """Get number of in-flight requests."""
        return len(self._in_flight)

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[Deduplicator] {message}")

