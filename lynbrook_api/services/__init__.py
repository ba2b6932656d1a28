"""
Data-access core.

Provides:
- SessionStore: bearer token lifecycle with persistence hooks
- ApiClient: request executor with consistent error shaping
- CacheLayer: single-flight, stale-while-revalidate response cache
- PaginatedSeries: cursor-following page accumulation
- AuthInterceptor / AuthService: 401 sign-out and credential exchange
"""

from lynbrook_api.services.errors import (
    ApiError,
    RequestError,
    NetworkError,
    UnauthorizedError,
    TokenStorageError,
)
from lynbrook_api.services.session import SessionStore, SessionState
from lynbrook_api.services.client import ApiClient, GuardedRequest, RequestOptions
from lynbrook_api.services.deduplicator import RequestDeduplicator
from lynbrook_api.services.cache import CacheLayer, CacheState, CacheStats, Subscription
from lynbrook_api.services.pagination import PaginatedSeries
from lynbrook_api.services.auth import AuthInterceptor, AuthService, Provider

__all__ = [
    # Errors
    "ApiError",
    "RequestError",
    "NetworkError",
    "UnauthorizedError",
    "TokenStorageError",
    # Session
    "SessionStore",
    "SessionState",
    # Client
    "ApiClient",
    "GuardedRequest",
    "RequestOptions",
    # Cache
    "RequestDeduplicator",
    "CacheLayer",
    "CacheState",
    "CacheStats",
    "Subscription",
    # Pagination
    "PaginatedSeries",
    # Auth
    "AuthInterceptor",
    "AuthService",
    "Provider",
]
