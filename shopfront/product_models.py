"""Product and brand records and the body that creates or changes a product."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from bson import ObjectId

from shopfront.user_models import _encode, _json_value, _typed

_INT_RE = re.compile(r"[+-]?[0-9]+")
_FLOAT_RE = re.compile(
    r"[+-]?(?:(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf(?:inity)?|nan)",
    re.IGNORECASE,
)
_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


def _as_object_id(value: Any, key: str) -> ObjectId | None:
    if value is None or value == "":
        return None
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and len(value) == 24 and ObjectId.is_valid(value):
        return ObjectId(value)
    raise ValueError(f"field {key!r} is not an object id")


def _as_str(value: Any, key: str) -> str:
    return _typed(value, str, key, "a string")


def _as_bool(value: Any, key: str) -> bool:
    return _typed(value, bool, key, "a boolean")


def _as_datetime(value: Any, key: str) -> datetime:
    return _typed(value, datetime, key, "a date")


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field {key!r} must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"field {key!r} must be an integer")
    return int(value)


def _as_float(value: Any, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field {key!r} must be a number")
    return float(value)


_CONVERTERS: dict[str, Callable[[Any, str], Any]] = {
    "id": _as_object_id,
    "sku": _as_str,
    "name": _as_str,
    "slug": _as_str,
    "image_url": _as_str,
    "image_key": _as_str,
    "description": _as_str,
    "quantity": _as_int,
    "price": _as_float,
    "taxable": _as_bool,
    "is_active": _as_bool,
    "updated": _as_datetime,
    "created": _as_datetime,
    "merchant": _as_object_id,
    "total_price": _as_float,
}

# (attribute, document and JSON key)
_PRODUCT_FIELDS = (
    ("id", "_id"),
    ("sku", "sku"),
    ("name", "name"),
    ("slug", "slug"),
    ("image_url", "imageUrl"),
    ("image_key", "imageKey"),
    ("description", "description"),
    ("quantity", "quantity"),
    ("price", "price"),
    ("taxable", "taxable"),
    ("is_active", "isActive"),
    ("updated", "updated"),
    ("created", "created"),
    ("merchant", "merchant"),
)


def _decode_fields(doc: Mapping[str, Any], fields: tuple[tuple[str, str], ...]) -> dict[str, Any]:
    return {
        attr: _CONVERTERS[attr](doc[key], key)
        for attr, key in fields
        if doc.get(key) is not None
    }


@dataclass
class Brand:
    id: ObjectId | None = None
    name: str = ""

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> Brand:
        if not isinstance(doc, Mapping):
            raise ValueError("brand must be a document")
        name = doc.get("name")
        return cls(
            id=_as_object_id(doc.get("_id"), "_id"),
            name="" if name is None else _as_str(name, "name"),
        )

    def _to_json(self) -> dict[str, Any]:
        return {"id": _json_value(self.id), "name": self.name}


@dataclass
class Product:
    """A product as listed in the store, with its brand embedded."""

    id: ObjectId | None = None
    sku: str = ""
    name: str = ""
    slug: str = ""
    image_url: str = ""
    image_key: str = ""
    description: str = ""
    quantity: int = 0
    price: float = 0.0
    taxable: bool = False
    is_active: bool = False
    brand: Brand | None = None
    updated: datetime | None = None
    created: datetime | None = None
    merchant: ObjectId | None = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> Product:
        values = _decode_fields(doc, _PRODUCT_FIELDS)
        brand = doc.get("brand")
        if brand is not None:
            values["brand"] = Brand.from_document(brand)
        return cls(**values)

    def to_json(self) -> dict[str, Any]:
        body = _encode(self, _PRODUCT_FIELDS)
        if self.brand is not None:
            body["brand"] = self.brand._to_json()
        return body


_INDIVIDUAL_FIELDS = _PRODUCT_FIELDS + (("total_price", "totalPrice"),)


@dataclass
class IndividualProduct:
    """A product as stored, with its brand kept as an id."""

    id: ObjectId | None = None
    sku: str = ""
    name: str = ""
    slug: str = ""
    image_url: str = ""
    image_key: str = ""
    description: str = ""
    quantity: int = 0
    price: float = 0.0
    taxable: bool = False
    is_active: bool = False
    brand: ObjectId | None = None
    updated: datetime | None = None
    created: datetime | None = None
    merchant: ObjectId | None = None
    total_price: float = 0.0

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> IndividualProduct:
        values = _decode_fields(doc, _INDIVIDUAL_FIELDS)
        brand = _as_object_id(doc.get("brand"), "brand")
        if brand is not None:
            values["brand"] = brand
        return cls(**values)

    def to_json(self) -> dict[str, Any]:
        body = _encode(self, _INDIVIDUAL_FIELDS)
        if self.brand is not None:
            body["brand"] = str(self.brand)
        return body


def _lookup(data: Mapping[str, Any], key: str) -> Any:
    if key in data:
        value = data[key]
    else:
        value = next(
            (v for k, v in data.items() if isinstance(k, str) and k.lower() == key.lower()),
            None,
        )
    if isinstance(value, list):
        value = value[0] if value else None
    return value


def _form_str(data: Mapping[str, Any], key: str) -> str:
    value = _lookup(data, key)
    return "" if value is None else _as_str(value, key)


def _form_int(data: Mapping[str, Any], key: str) -> int:
    value = _lookup(data, key)
    if value is None or value == "":
        return 0
    if isinstance(value, str):
        if not _INT_RE.fullmatch(value):
            raise ValueError(f"field {key!r} must be an integer")
        return int(value)
    return _as_int(value, key)


def _form_float(data: Mapping[str, Any], key: str) -> float:
    value = _lookup(data, key)
    if value is None or value == "":
        return 0.0
    if isinstance(value, str):
        if not _FLOAT_RE.fullmatch(value):
            raise ValueError(f"field {key!r} must be a number")
        return float(value)
    return _as_float(value, key)


def _form_bool(data: Mapping[str, Any], key: str) -> bool:
    value = _lookup(data, key)
    if value is None or value == "":
        return False
    if isinstance(value, str):
        if value in _TRUE_WORDS:
            return True
        if value in _FALSE_WORDS:
            return False
        raise ValueError(f"field {key!r} must be a boolean")
    return _as_bool(value, key)


@dataclass
class AddProductInput:
    """The body that adds or updates a product; sku, name, description, quantity and price are required."""

    sku: str
    name: str
    description: str
    quantity: int
    price: float
    taxable: bool = False
    is_active: bool = False
    brand: str = ""

    @classmethod
    def from_form(cls, data: Any) -> AddProductInput:
        if not isinstance(data, Mapping):
            raise ValueError("request body must be a form or JSON object")
        values = {
            "sku": _form_str(data, "sku"),
            "name": _form_str(data, "name"),
            "description": _form_str(data, "description"),
            "quantity": _form_int(data, "quantity"),
            "price": _form_float(data, "price"),
        }
        for key, value in values.items():
            if not value:
                raise ValueError(f"field {key!r} is required")
        return cls(
            **values,
            taxable=_form_bool(data, "taxable"),
            is_active=_form_bool(data, "isActive"),
            brand=_form_str(data, "brand"),
        )

    def to_document(self) -> dict[str, Any]:
        # Stored under the lower-cased field names.
        return {
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "quantity": self.quantity,
            "price": self.price,
            "taxable": self.taxable,
            "isactive": self.is_active,
            "brand": self.brand,
        }