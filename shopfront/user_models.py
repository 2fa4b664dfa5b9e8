"""User and merchant records and the request bodies that create or change them."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from bson import ObjectId

from shopfront.context import UserRole, get_user_role


class EmailProvider(str, enum.Enum):
    EMAIL = "Email"
    GOOGLE = "Google"
    FACEBOOK = "Facebook"


class MerchantStatus(str, enum.Enum):
    WAITING_APPROVAL = "Waiting Approval"
    REJECTED = "Rejected"
    APPROVED = "Approved"


def _enum_or_none(kind: type[enum.Enum], value: Any) -> Any:
    try:
        return kind(value)
    except ValueError:
        return None


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, enum.Enum) else value


def _json_value(value: Any) -> Any:
    """Turn a stored value into its JSON form."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return _plain(value)


def _is_empty(value: Any) -> bool:
    """Whether a field holds its zero value and is left out when encoded."""
    if value is None or value is False or value == "":
        return True
    return type(value) in (int, float) and value == 0


def _typed(value: Any, kind: type, key: str, noun: str | None = None) -> Any:
    """Return the value if it is of the given type, else raise ValueError."""
    if not isinstance(value, kind) or (kind is not bool and isinstance(value, bool)):
        raise ValueError(f"field {key!r} must be {noun or 'of type ' + kind.__name__}")
    return value


def _present(doc: Mapping[str, Any], fields: Iterable[tuple[str, ...]]) -> dict[str, Any]:
    """Map attributes to the document values that are set, from (attribute, key, ...) rows."""
    return {attr: doc[key] for attr, key, *_ in fields if doc.get(key) is not None}


def _encode(
    obj: Any,
    pairs: Iterable[tuple[str, str]],
    convert: Callable[[Any], Any] = _json_value,
) -> dict[str, Any]:
    """Encode the non-empty attributes of an object under the paired keys."""
    return {
        key: convert(getattr(obj, attr))
        for attr, key in pairs
        if not _is_empty(getattr(obj, attr))
    }


def _require_mapping(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError("request body must be a JSON object")
    return data


def _pick(data: Mapping[str, Any], key: str, kind: type, default: Any) -> Any:
    value = data.get(key)
    return default if value is None else _typed(value, kind, key)


# (attribute, document key, JSON key)
_USER_FIELDS = (
    ("id", "_id", "id"),
    ("email", "email", "email"),
    ("phone_number", "phoneNumber", "phoneNumber"),
    ("first_name", "firstName", "firstName"),
    ("last_name", "lastName", "lastName"),
    ("password", "password", "password"),
    ("merchant", "merchant", "merchant"),
    ("provider", "provider", "provider"),
    ("google_id", "googleId", "googleId"),
    ("facebook_id", "facebookId", "facebookId"),
    ("avatar", "avatar", "avatar"),
    ("role", "role", "role"),
    ("reset_password_token", "resetPasswordToken", "resetPasswordToken"),
    ("reset_password_expires", "resetPasswordExpires", "resetPasswordExpires"),
    ("updated", "updated", "updated"),
    ("created", "created", "created"),
)
_USER_DOC_KEYS = tuple((attr, key) for attr, key, _ in _USER_FIELDS)
_USER_JSON_KEYS = tuple((attr, key) for attr, _, key in _USER_FIELDS)


@dataclass
class User:
    id: ObjectId | None = None
    email: str = ""
    phone_number: str = ""
    first_name: str = ""
    last_name: str = ""
    password: str = ""
    merchant: ObjectId | None = None
    provider: EmailProvider | None = None
    google_id: str = ""
    facebook_id: str = ""
    avatar: str = ""
    role: UserRole | None = None
    reset_password_token: str = ""
    reset_password_expires: datetime | None = None
    updated: datetime | None = None
    created: datetime | None = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> User:
        values = _present(doc, _USER_FIELDS)
        if "provider" in values:
            values["provider"] = _enum_or_none(EmailProvider, values["provider"])
        if "role" in values:
            values["role"] = get_user_role(values["role"])
        return cls(**values)

    def to_document(self) -> dict[str, Any]:
        return _encode(self, _USER_DOC_KEYS, _plain)

    def to_json(self) -> dict[str, Any]:
        return _encode(self, _USER_JSON_KEYS)


_SEARCH_COPIED = (
    "id",
    "email",
    "phone_number",
    "first_name",
    "last_name",
    "role",
    "provider",
    "avatar",
    "created",
    "updated",
)


@dataclass
class UserSearch:
    """A user as listed to clients, with the merchant record in place of its id."""

    id: ObjectId | None = None
    email: str = ""
    phone_number: str = ""
    first_name: str = ""
    last_name: str = ""
    password: str = ""
    merchant: Merchant | None = None
    provider: EmailProvider | None = None
    google_id: str = ""
    facebook_id: str = ""
    avatar: str = ""
    role: UserRole | None = None
    reset_password_token: str = ""
    reset_password_expires: datetime | None = None
    updated: datetime | None = None
    created: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> UserSearch:
        return cls(**{attr: getattr(user, attr) for attr in _SEARCH_COPIED})

    def to_json(self) -> dict[str, Any]:
        body = {}
        for attr, key in _USER_JSON_KEYS:
            value = getattr(self, attr)
            if attr == "merchant":
                if value is not None:
                    body[key] = value.to_json()
            elif not _is_empty(value):
                body[key] = _json_value(value)
        return body


@dataclass
class UserUpdate:
    first_name: str = ""
    last_name: str = ""
    phone_number: str = ""

    @classmethod
    def from_json(cls, data: Any) -> UserUpdate:
        data = _require_mapping(data)
        return cls(
            first_name=_pick(data, "firstName", str, ""),
            last_name=_pick(data, "lastName", str, ""),
            phone_number=_pick(data, "phoneNumber", str, ""),
        )

    def to_document(self) -> dict[str, str]:
        return {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "phoneNumber": self.phone_number,
        }


_GMAIL_FIELDS = (
    ("email", "email", str, ""),
    ("family_name", "family_name", str, ""),
    ("given_name", "given_name", str, ""),
    ("google_id", "id", str, ""),
    ("name", "name", str, ""),
    ("picture", "picture", str, ""),
    ("verified_email", "verified_email", bool, False),
)


@dataclass
class InsertUserFromGmail:
    email: str = ""
    family_name: str = ""
    given_name: str = ""
    google_id: str = ""
    name: str = ""
    picture: str = ""
    verified_email: bool = False

    @classmethod
    def from_json(cls, data: Any) -> InsertUserFromGmail:
        data = _require_mapping(data)
        return cls(
            **{attr: _pick(data, key, kind, default) for attr, key, kind, default in _GMAIL_FIELDS}
        )


_MERCHANT_FIELDS = (
    ("id", "_id", "id"),
    ("name", "name", "name"),
    ("email", "email", "email"),
    ("phone_number", "phoneNumber", "phoneNumber"),
    ("brand_name", "brandName", "brandName"),
    ("business", "business", "business"),
    ("is_active", "isActive", "isActive"),
    ("brand", "brand", "brand"),
    ("status", "status", "status"),
    ("updated", "updated", "updated"),
    ("created", "created", "created"),
)


@dataclass
class Merchant:
    id: ObjectId | None = None
    name: str = ""
    email: str = ""
    phone_number: str = ""
    brand_name: str = ""
    business: str = ""
    is_active: bool = False
    brand: str = ""
    status: MerchantStatus | None = None
    updated: datetime | None = None
    created: datetime | None = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> Merchant:
        values = _present(doc, _MERCHANT_FIELDS)
        if "status" in values:
            values["status"] = _enum_or_none(MerchantStatus, values["status"])
        return cls(**values)

    def to_json(self) -> dict[str, Any]:
        return {key: _json_value(getattr(self, attr)) for attr, _, key in _MERCHANT_FIELDS}


_MERCHANT_ADD_KEYS = (
    ("name", "name"),
    ("email", "email"),
    ("phone_number", "phoneNumber"),
    ("brand_name", "brandName"),
    ("business", "business"),
)


@dataclass
class MerchantAdd:
    """A merchant application; every field is required."""

    name: str
    email: str
    phone_number: str
    brand_name: str
    business: str

    @classmethod
    def from_json(cls, data: Any) -> MerchantAdd:
        data = _require_mapping(data)
        values = {}
        for attr, key in _MERCHANT_ADD_KEYS:
            value = _pick(data, key, str, "")
            if not value:
                raise ValueError(f"field {key!r} is required")
            values[attr] = value
        return cls(**values)

    def to_document(self) -> dict[str, str]:
        # Stored under the lower-cased field names.
        return {attr.replace("_", ""): getattr(self, attr) for attr, _ in _MERCHANT_ADD_KEYS}