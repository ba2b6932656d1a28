"""
Response shapes shared by the data-access layer.
"""

from enum import IntEnum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """One page of a cursor-paginated collection."""

    count: int = 0
    next: str | None = None
    previous: str | None = None
    results: list[T] = Field(default_factory=list)


class TokenResponse(BaseModel):
    """Credential exchange response."""

    access: str | None = None
    refresh: str | None = None


class AuthorizationUrl(BaseModel):
    """Provider authorization redirect."""

    authorization_url: str | None = None


class UserType(IntEnum):
    """Account types accepted by the registration endpoint."""

    STUDENT = 1
    STAFF = 2
    ADMIN = 3
    GUEST = 4


def parse_page(data: Any, item_model: type[BaseModel] | None = None) -> Page[Any]:
    """Validate raw JSON as a page, optionally typing its results."""
    if item_model is None:
        return Page[Any].model_validate(data)
    return Page[item_model].model_validate(data)  # type: ignore[valid-type]
