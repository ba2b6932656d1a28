"""
SessionStore - Holds the bearer token for the current session.

States:
- LOADING: the initial token has not been resolved yet
- ANONYMOUS: no token
- AUTHENTICATED: a bearer token is present

Transitions:
- LOADING → ANONYMOUS | AUTHENTICATED: once load() resolves
- ANONYMOUS → AUTHENTICATED: credential exchange returned a token
- AUTHENTICATED → ANONYMOUS: manual sign-out or a 401 on any request
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from loguru import logger

TokenLoader = Callable[[], Awaitable[str | None]]
TokenChangeHandler = Callable[[str | None], Awaitable[None]]
TokenListener = Callable[[str | None], None]

T = TypeVar("T")
F = TypeVar("F")


class SessionState(str, Enum):
    """Session states."""

    LOADING = "LOADING"
    ANONYMOUS = "ANONYMOUS"
    AUTHENTICATED = "AUTHENTICATED"


async def _no_token() -> str | None:
    return None


async def _ignore_token(token: str | None) -> None:
    return None


class SessionStore:
    """
    Owns the current bearer token.

    Persistence is delegated to two externally supplied coroutines: one
    called once at startup to load a stored token, and one awaited before
    every commit of a new token. Listeners are notified synchronously,
    before set_token() returns.

    Usage:
        session = SessionStore(load_token=storage.load, on_token_change=storage.save)
        await session.load()

        unsubscribe = session.subscribe(lambda token: print("token changed"))
        await session.set_token("abc")
    """

    def __init__(
        self,
        load_token: TokenLoader | None = None,
        on_token_change: TokenChangeHandler | None = None,
    ):
        self._load_token = load_token or _no_token
        self._on_token_change = on_token_change or _ignore_token
        self._token: str | None = None
        self._loading = True
        self._load_started = False
        self._loaded = asyncio.Event()
        self._listeners: list[TokenListener] = []

    @property
    def loading(self) -> bool:
        """True until the initial load() resolves."""
        return self._loading

    @property
    def load_started(self) -> bool:
        """True once load() has been called."""
        return self._load_started

    @property
    def state(self) -> SessionState:
        if self._loading:
            return SessionState.LOADING
        if self._token is None:
            return SessionState.ANONYMOUS
        return SessionState.AUTHENTICATED

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    def current_token(self) -> str | None:
        return self._token

    async def load(self) -> str | None:
        """
        Resolve the stored token once at startup.

        Loader failures are treated as "no token"; the session never stays
        in LOADING because of them.
        """
        if not self._loading:
            return self._token
        self._load_started = True

        try:
            token = await self._load_token()
        except Exception as e:
            logger.warning(f"Could not load stored token, starting anonymous: {e}")
            token = None

        if not token:
            token = None

        try:
            await self.set_token(token)
        except Exception as e:
            logger.warning(f"Token change handler failed during load: {e}")
            self._commit(None)

        self._loading = False
        self._loaded.set()
        logger.info(f"Session loaded: {self.state.value}")
        self._notify()
        return self._token

    async def wait_until_loaded(self) -> None:
        """Block until the initial load() has resolved."""
        await self._loaded.wait()

    async def set_token(self, token: str | None) -> None:
        """
        Persist, then commit a new token and notify listeners.

        The persistence callback must complete before the in-memory value
        changes; if it raises, nothing is committed.
        """
        await self._on_token_change(token)
        self._commit(token)

    def _commit(self, token: str | None) -> None:
        changed = token != self._token
        self._token = token
        if changed:
            logger.info(
                "Session token set" if token is not None else "Session token cleared"
            )
        if not self._loading:
            self._notify()

    def subscribe(self, listener: TokenListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def select(self, content: T, fallback: F) -> T | F:
        """Return fallback while the session is loading, content otherwise."""
        return fallback if self._loading else content

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._token)
            except Exception:
                logger.exception("Session listener failed")
