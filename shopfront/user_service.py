"""Handlers for the user endpoints: searching, listing and editing user accounts."""

from __future__ import annotations

import math
import re
import secrets
from collections.abc import Mapping
from typing import Any

from bson import ObjectId
from pymongo import ReturnDocument
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
from shopfront.product_queries import parse_int
from shopfront.user_models import Merchant, User, UserSearch, UserUpdate

_RETRY = "Your request could not be processed. Please try again."
_NO_USER_ID = "User ID not found in request context"


def _with_merchant(store: Store, doc: Mapping[str, Any], user: User) -> UserSearch:
    """Copy ``user`` into a search result, embedding its merchant when one is found."""
    result = UserSearch.from_user(user)
    merchant_id = doc.get("merchant")
    if merchant_id is not None and merchant_id != "":
        try:
            merchant_doc = store.merchants.find_one({"_id": merchant_id})
            if merchant_doc is not None:
                result.merchant = Merchant.from_document(merchant_doc)
        except (ValueError, TypeError, PyMongoError):
            pass
    return result


def _search_results(store: Store, docs: Any) -> list[dict[str, Any]] | None:
    try:
        pairs = [(doc, User.from_document(doc)) for doc in docs]
    except (ValueError, TypeError, PyMongoError) as exc:
        raise ApiError(500, "Error decoding users") from exc
    results = [_with_merchant(store, doc, user).to_json() for doc, user in pairs]
    return results or None


def search_users(store: Store, ctx: RequestContext, query: Mapping[str, str]) -> dict[str, Any]:
    """Search users by first name, last name or e-mail; admins only."""
    raw_role = ctx.require("role")
    if not isinstance(raw_role, str):
        raise ApiError(500, "role is not a string")
    if get_user_role(raw_role) is not UserRole.ADMIN:
        raise ApiError(403, "Forbidden")

    search = query.get("search", "")
    try:
        re.compile(search)
    except re.error as exc:
        raise ApiError(400, "Invalid search query") from exc

    pattern = {"$regex": search, "$options": "i"}
    condition = {
        "$or": [
            {"firstName": pattern},
            {"lastName": pattern},
            {"email": pattern},
        ]
    }
    try:
        docs = list(store.users.find(condition, projection={"password": 0, "_id": 0}))
    except PyMongoError as exc:
        raise ApiError(400, _RETRY) from exc

    return {"users": _search_results(store, docs)}


def fetch_users(store: Store, query: Mapping[str, str]) -> dict[str, Any]:
    """List users, newest first, one page at a time."""
    page = parse_int(query.get("page"), 1)
    if page < 1:
        page = 1
    limit = parse_int(query.get("limit"), 10)
    if limit < 1:
        limit = 10
    skip = (page - 1) * limit

    try:
        docs = list(
            store.users.find(
                {},
                projection={"password": 0, "_id": 0, "googleId": 0},
                sort=[("created", -1)],
                skip=skip,
                limit=limit,
            )
        )
    except PyMongoError as exc:
        raise ApiError(400, _RETRY) from exc

    users = _search_results(store, docs)

    try:
        count = store.users.count_documents({})
    except PyMongoError as exc:
        raise ApiError(500, "Error counting users") from exc

    return {
        "users": users,
        "totalPages": float(math.ceil(count / limit)),
        "currentPage": page,
        "count": count,
    }


def _current_user_id(ctx: RequestContext) -> ObjectId:
    if "userID" not in ctx.values:
        raise ApiError(400, _NO_USER_ID)
    return parse_object_id(ctx.values["userID"], "Invalid user ID")


def get_current_user(store: Store, ctx: RequestContext) -> dict[str, Any]:
    """Return the signed-in user with its merchant embedded."""
    user_id = _current_user_id(ctx)
    try:
        doc = store.users.find_one({"_id": user_id}, projection={"password": 0})
        if doc is None:
            raise ApiError(400, _RETRY)
        user = User.from_document(doc)
    except (ValueError, TypeError, PyMongoError) as exc:
        raise ApiError(400, _RETRY) from exc
    return {"user": _with_merchant(store, doc, user).to_json()}


def update_user_profile(store: Store, ctx: RequestContext, body: Any) -> dict[str, Any]:
    """Change the signed-in user's names and phone number and return the updated user."""
    user_id = _current_user_id(ctx)
    try:
        update = UserUpdate.from_json(body)
    except (ValueError, TypeError) as exc:
        raise ApiError(400, "Invalid request body") from exc

    exclude = {"password": 0, "googleId": 0, "facebookId": 0}
    try:
        doc = store.users.find_one_and_update(
            {"_id": user_id},
            {"$set": update.to_document()},
            projection=exclude,
            return_document=ReturnDocument.AFTER,
        )
    except PyMongoError as exc:
        raise ApiError(400, _RETRY) from exc
    if doc is None:
        raise ApiError(400, _RETRY)

    try:
        user = User.from_document(doc)
    except (ValueError, TypeError) as exc:
        raise ApiError(500, "Error decoding updated user") from exc

    return {
        "success": True,
        "message": "Your profile is successfully updated!",
        "user": user.to_json(),
    }


def create_merchant_user(store: Store, email: str, name: str, merchant_id: ObjectId) -> Any:
    """Make the user with ``email`` a merchant, creating the account when there is none.

    Returns the update result for an existing user and None for a new one.
    Raises LookupError when an existing user has no merchant record under that e-mail.
    """
    existing = store.users.find_one({"email": email})
    if existing is not None:
        merchant_doc = store.merchants.find_one({"email": email})
        if merchant_doc is None:
            raise LookupError(f"no merchant with e-mail {email!r}")
        return store.users.update_one(
            {"_id": existing.get("_id")},
            {"$set": {"merchant": merchant_id, "role": UserRole.MERCHANT.value}},
        )

    reset_token = secrets.token_hex(48)
    document: dict[str, Any] = {
        "email": email,
        "firstName": name,
        "merchant": merchant_id,
        "role": UserRole.MERCHANT.value,
        "resetPasswordToken": reset_token,
    }
    document = {key: value for key, value in document.items() if value not in ("", None)}
    store.users.insert_one(document)
    return None


def routes(path: str) -> list[Route]:
    """The user endpoints mounted under ``path``."""
    return [
        Route("GET", f"{path}/search", search_users, auth=True, roles=(UserRole.ADMIN, UserRole.MERCHANT)),
        Route("GET", path, fetch_users, auth=True),
        Route("GET", f"{path}/me", get_current_user, auth=True),
        Route("PUT", path, update_user_profile, auth=True),
    ]