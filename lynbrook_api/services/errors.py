"""
Data-access layer exceptions.

Taxonomy:
- NetworkError: transport failure, no HTTP status (status == 0)
- RequestError: non-2xx HTTP status with optional parsed body
- UnauthorizedError: status 401, triggers forced sign-out
"""

from typing import Any

NETWORK_ERROR_STATUS = 0


class ApiError(Exception):
    """Base exception for data-access layer errors."""

    pass


class RequestError(ApiError):
    """A request that did not produce a successful response."""

    def __init__(self, url: str, status: int, body: Any = None, message: str | None = None):
        self._url = url
        self._status = status
        self._body = body
        super().__init__(message or f"HTTP {status} for {url}")

    @property
    def url(self) -> str:
        return self._url

    @property
    def status(self) -> int:
        return self._status

    @property
    def body(self) -> Any:
        return self._body

    @classmethod
    def from_response(cls, url: str, status: int, body: Any = None) -> "RequestError":
        """Build the most specific error for an HTTP status."""
        if status == 401:
            return UnauthorizedError(url, body)
        return cls(url, status, body)

    def to_dict(self) -> dict[str, Any]:
        """Error shape surfaced to collaborators."""
        data: dict[str, Any] = {"url": self.url, "status": self.status}
        if self.body is not None:
            data["body"] = self.body
        return data

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RequestError):
            return NotImplemented
        return (
            type(self) is type(other)
            and self.url == other.url
            and self.status == other.status
            and self.body == other.body
        )

    def __hash__(self) -> int:
        return hash((type(self), self.url, self.status))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(url={self.url!r}, status={self.status})"


class NetworkError(RequestError):
    """Connection failed before any HTTP status was received."""

    def __init__(self, url: str, message: str | None = None):
        super().__init__(
            url,
            NETWORK_ERROR_STATUS,
            message=f"Network error for {url}: {message}" if message else f"Network error for {url}",
        )


class UnauthorizedError(RequestError):
    """The backend rejected the bearer token."""

    def __init__(self, url: str, body: Any = None):
        super().__init__(url, 401, body)


class TokenStorageError(ApiError):
    """Loading or persisting the session token failed."""

    pass
