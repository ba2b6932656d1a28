"""
Client-side data-access layer for the Lynbrook ASB backend.
"""

from lynbrook_api.context import ApiContext, create_context
from lynbrook_api.models import Page, UserType
from lynbrook_api.services import (
    ApiClient,
    AuthInterceptor,
    AuthService,
    CacheLayer,
    CacheState,
    GuardedRequest,
    NetworkError,
    PaginatedSeries,
    RequestError,
    RequestOptions,
    SessionState,
    SessionStore,
    UnauthorizedError,
)

__all__ = [
    "ApiContext",
    "create_context",
    "Page",
    "UserType",
    "ApiClient",
    "AuthInterceptor",
    "AuthService",
    "CacheLayer",
    "CacheState",
    "GuardedRequest",
    "NetworkError",
    "PaginatedSeries",
    "RequestError",
    "RequestOptions",
    "SessionState",
    "SessionStore",
    "UnauthorizedError",
]
