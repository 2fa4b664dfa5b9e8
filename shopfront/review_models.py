"""Product reviews, their authors and the body that adds or edits one."""

from __future__ import annotations

import enum
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from bson import ObjectId

from shopfront.context import ApiError
from shopfront.product_models import _FLOAT_RE, _as_object_id
from shopfront.user_models import _encode, _enum_or_none, _json_value, _plain, _typed


class ReviewStatus(str, enum.Enum):
    REJECTED = "Rejected"
    APPROVED = "Approved"
    WAITING_APPROVAL = "Waiting Approval"


def _object_id(value: Any, key: str) -> ObjectId | None:
    """Read an object id, also in its extended-JSON form."""
    if isinstance(value, Mapping) and set(value) == {"$oid"}:
        value = value["$oid"]
        if not isinstance(value, str) or not value:
            raise ValueError(f"field {key!r} is not an object id")
    return _as_object_id(value, key)


_USER_FIELDS = (
    ("id", "_id"),
    ("first_name", "firstName"),
    ("last_name", "lastName"),
    ("email", "email"),
)


@dataclass
class ReviewUser:
    """The author of a review as copied into the review."""

    id: ObjectId | None = None
    first_name: str = ""
    last_name: str = ""
    email: str = ""

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> ReviewUser:
        if not isinstance(doc, Mapping):
            raise ValueError("review user must be a document")
        values: dict[str, Any] = {}
        for attr, key in _USER_FIELDS:
            raw = doc.get(key)
            if raw is None:
                continue
            values[attr] = _object_id(raw, key) if attr == "id" else _typed(raw, str, key)
        return cls(**values)


_REVIEW_FIELDS = (
    ("id", "_id"),
    ("product", "product"),
    ("title", "title"),
    ("rating", "rating"),
    ("review", "review"),
    ("is_recommended", "isRecommended"),
    ("status", "status"),
    ("updated", "updated"),
    ("created", "created"),
)


def _read_rating(raw: Any, key: str) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValueError("field 'rating' must be a number")
    return float(raw)


_REVIEW_READERS: dict[str, Callable[[Any, str], Any]] = {
    "id": _object_id,
    "product": _object_id,
    "title": lambda raw, key: _typed(raw, str, key),
    "rating": _read_rating,
    "review": lambda raw, key: _typed(raw, str, key),
    "is_recommended": lambda raw, key: _typed(raw, bool, key),
    "status": lambda raw, key: _enum_or_none(ReviewStatus, raw),
    "updated": lambda raw, key: _typed(raw, datetime, key),
    "created": lambda raw, key: _typed(raw, datetime, key),
}


@dataclass
class Review:
    id: ObjectId | None = None
    product: ObjectId | None = None
    user: ReviewUser = field(default_factory=ReviewUser)
    title: str = ""
    rating: float = 0.0
    review: str = ""
    is_recommended: bool = False
    status: ReviewStatus | None = None
    updated: datetime | None = None
    created: datetime | None = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> Review:
        values: dict[str, Any] = {
            attr: _REVIEW_READERS[attr](doc[key], key)
            for attr, key in _REVIEW_FIELDS
            if doc.get(key) is not None
        }
        user = doc.get("user")
        if user is not None:
            values["user"] = ReviewUser.from_document(user)
        return cls(**values)

    def _encode(self, convert: Callable[[Any], Any]) -> dict[str, Any]:
        body = {}
        for attr, key in _REVIEW_FIELDS:
            body.update(_encode(self, ((attr, key),), convert))
            if attr == "product":
                user = _encode(self.user, _USER_FIELDS, convert)
                if user:
                    body["user"] = user
        return body

    def to_document(self) -> dict[str, Any]:
        return self._encode(_plain)

    def to_json(self) -> dict[str, Any]:
        return self._encode(_json_value)


@dataclass
class PutReviewInput:
    """The body that adds or edits a review; title, rating and review are required."""

    title: str
    rating: str
    review: str
    product: ObjectId | None = None
    is_recommended: bool = False
    updated: datetime | None = None

    @classmethod
    def from_json(cls, data: Any) -> PutReviewInput:
        if not isinstance(data, Mapping):
            raise ValueError("request body must be a JSON object")
        required = {}
        for key in ("title", "rating", "review"):
            value = data.get(key)
            if value is None or value == "":
                raise ValueError(f"field {key!r} is required")
            required[key] = _typed(value, str, key)
        recommended = data.get("isRecommended")
        return cls(
            **required,
            product=_object_id(data.get("product"), "product"),
            is_recommended=(
                False if recommended is None else _typed(recommended, bool, "isRecommended")
            ),
        )

    def parsed_rating(self) -> float:
        """Return the rating as a number; an unreadable rating is a 400 error."""
        text = self.rating
        if not _FLOAT_RE.fullmatch(text):
            raise ApiError(400, "Invalid rating")
        value = float(text)
        if math.isinf(value) and "inf" not in text.lower():
            raise ApiError(400, "Invalid rating")
        return value