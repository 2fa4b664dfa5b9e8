"""Request context, user roles, API errors and storage handles shared by the handlers."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Callable

from bson import ObjectId


class ApiError(Exception):
    """An error that a handler answers with an HTTP status and a JSON body."""

    def __init__(self, status: int, message: str, key: str = "error") -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.key = key

    @property
    def body(self) -> dict[str, str]:
        return {self.key: self.message}


class UserRole(str, enum.Enum):
    ADMIN = "ROLE ADMIN"
    MEMBER = "ROLE MEMBER"
    MERCHANT = "ROLE MERCHANT"


def get_user_role(value: Any) -> UserRole | None:
    """Return the role named by ``value``, or None when it names no role."""
    if isinstance(value, UserRole):
        return value
    if isinstance(value, str):
        try:
            return UserRole(value)
        except ValueError:
            return None
    return None


def parse_object_id(value: Any, message: str) -> ObjectId:
    """Parse a 24-digit hex object id, raising a 400 error with ``message`` otherwise."""
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or len(value) != 24 or not ObjectId.is_valid(value):
        raise ApiError(400, message)
    return ObjectId(value)


@dataclass
class RequestContext:
    """Values that authentication attached to the current request."""

    values: dict[str, Any] = field(default_factory=dict)

    def require(self, key: str) -> Any:
        """Return the value under ``key``; its absence is a server error."""
        try:
            return self.values[key]
        except KeyError:
            raise ApiError(500, f'Key "{key}" does not exist') from None


@dataclass
class Store:
    """The database collections the handlers work on."""

    products: Any = None
    categories: Any = None
    brands: Any = None
    reviews: Any = None
    users: Any = None
    merchants: Any = None


@dataclass(frozen=True)
class Route:
    """One endpoint: method, path, handler and the access it requires."""

    method: str
    path: str
    handler: Callable[..., Any]
    auth: bool = False
    roles: tuple[UserRole, ...] = ()