"""Handlers for the merchant endpoints: applications, search, listing and account activation."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from bson import ObjectId
from pymongo.errors import PyMongoError

from shopfront.context import (
    ApiError,
    RequestContext,
    Route,
    Store,
    UserRole,
    get_user_role,
    parse_object_id,
)
from shopfront.user_models import Merchant, MerchantAdd

_log = logging.getLogger(__name__)

_RETRY = "Your request could not be processed. Please try again."
_MISSING_FIELDS = (
    "You must enter your name, email, business description, phone number, and email address."
)
_INT_RE = re.compile(r"[+-]?[0-9]+")


def _positive_int(text: str, message: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ApiError(400, message)
    value = int(text)
    if value < 1:
        raise ApiError(400, message)
    return value


def _json_id(value: Any) -> Any:
    return str(value) if isinstance(value, ObjectId) else value


def _decode_merchants(docs: Any) -> list[dict[str, Any]]:
    try:
        return [Merchant.from_document(doc).to_json() for doc in docs]
    except (ValueError, TypeError, PyMongoError) as exc:
        raise ApiError(500, "Error decoding merchants") from exc


def add_merchant(store: Store, body: Any) -> dict[str, Any]:
    """Record a merchant application unless its e-mail address is already in use."""
    try:
        data = MerchantAdd.from_json(body)
    except (ValueError, TypeError) as exc:
        raise ApiError(400, _MISSING_FIELDS) from exc

    try:
        existing = store.merchants.find_one({"email": data.email})
        if existing is not None:
            Merchant.from_document(existing)
            raise ApiError(400, "That email address is already in use.")
    except (ValueError, TypeError, PyMongoError):
        pass

    try:
        result = store.merchants.insert_one(data.to_document())
    except PyMongoError as exc:
        raise ApiError(400, _RETRY) from exc

    return {
        "success": True,
        "message": "We received your request! We will reach you on your phone number "
        + data.phone_number
        + "!",
        "merchant": _json_id(result.inserted_id),
    }


def search_merchants(store: Store, query: Mapping[str, str]) -> dict[str, Any]:
    """Find merchants whose phone, e-mail, name, brand name or status matches the search."""
    search = query.get("search", "")
    if search == "":
        raise ApiError(400, "Search query is required")
    try:
        re.compile(search)
    except re.error as exc:
        raise ApiError(400, "Invalid search query") from exc

    pattern = {"$regex": search, "$options": "i"}
    condition = {
        "$or": [
            {"phoneNumber": pattern},
            {"email": pattern},
            {"name": pattern},
            {"brandName": pattern},
            {"status": pattern},
        ]
    }
    try:
        docs = list(store.merchants.find(condition, projection={"brand": 1, "name": 1}))
    except PyMongoError as exc:
        raise ApiError(400, _RETRY) from exc

    return {"merchants": _decode_merchants(docs)}


def fetch_all_merchants(store: Store, query: Mapping[str, str]) -> dict[str, Any]:
    """List merchants, newest first, one page at a time."""
    page = _positive_int(query.get("page", "1"), "Invalid page number")
    limit = _positive_int(query.get("limit", "10"), "Invalid limit number")
    skip = (page - 1) * limit

    try:
        docs = list(store.merchants.find({}, sort=[("created", -1)], skip=skip, limit=limit))
    except PyMongoError as exc:
        raise ApiError(400, _RETRY) from exc
    merchants = _decode_merchants(docs)

    try:
        count = store.merchants.count_documents({})
    except PyMongoError as exc:
        raise ApiError(500, "Error counting merchants") from exc

    return {
        "merchants": merchants,
        "totalPages": (count + limit - 1) // limit,
        "currentPage": page,
        "count": count,
    }


def disable_merchant_account(
    store: Store, ctx: RequestContext, merchant_id: str, body: Any
) -> dict[str, Any]:
    """Switch a merchant account on or off; only an admin acting on its own id may do so."""
    user_id = parse_object_id(ctx.require("userID"), "Invalid user ID")
    role = get_user_role(ctx.require("role"))

    if not isinstance(body, Mapping):
        raise ApiError(400, "Invalid request body")
    is_active = body.get("isActive")
    if is_active is None:
        is_active = False
    elif not isinstance(is_active, bool):
        raise ApiError(400, "Invalid request body")

    merchant_object_id = parse_object_id(merchant_id, "Invalid merchant ID")

    if role is not UserRole.ADMIN or user_id != merchant_object_id:
        raise ApiError(403, "You are not authorized to perform this action")

    try:
        doc = store.merchants.find_one_and_update(
            {"_id": merchant_object_id}, {"$set": {"isActive": is_active}}
        )
    except PyMongoError as exc:
        raise ApiError(500, "Error updating merchant") from exc
    if doc is None:
        raise ApiError(404, "Merchant not found")
    try:
        Merchant.from_document(doc)
    except (ValueError, TypeError) as exc:
        raise ApiError(500, "Error updating merchant") from exc

    if not is_active:
        _log.info("deactivating the brand of merchant %s is not supported", merchant_object_id)

    return {"success": True}


def routes(path: str) -> list[Route]:
    """The merchant endpoints mounted under ``path``."""
    return [
        Route("POST", f"{path}/add", add_merchant),
        Route("GET", f"{path}/search", search_merchants, auth=True, roles=(UserRole.ADMIN,)),
        Route("GET", path, fetch_all_merchants, auth=True, roles=(UserRole.ADMIN,)),
        Route(
            "PUT",
            f"{path}/:id/active",
            disable_merchant_account,
            auth=True,
            roles=(UserRole.ADMIN, UserRole.MERCHANT),
        ),
    ]