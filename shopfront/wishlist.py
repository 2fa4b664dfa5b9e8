"""Wishlist entries linking a user to a product."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from bson import ObjectId

from shopfront.user_models import _encode, _present

# (attribute, document key, JSON key)
_FIELDS = (
    ("id", "_id", "id"),
    ("product", "product", "product"),
    ("user", "user", "user"),
    ("is_liked", "isLiked", "isLiked"),
    ("updated", "updated", "updated"),
    ("created", "created", "created"),
)
_JSON_KEYS = tuple((attr, key) for attr, _, key in _FIELDS)


@dataclass
class Wishlist:
    id: ObjectId | None = None
    product: ObjectId | None = None
    user: ObjectId | None = None
    is_liked: bool = False
    updated: datetime | None = None
    created: datetime | None = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> Wishlist:
        return cls(**_present(doc, _FIELDS))

    def to_json(self) -> dict[str, Any]:
        return _encode(self, _JSON_KEYS)