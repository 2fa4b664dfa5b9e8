"""Handlers for the review endpoints: posting, listing, editing, moderating and deleting reviews."""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from datetime import datetime, timezone
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
from shopfront.product_models import IndividualProduct, Product
from shopfront.review_models import PutReviewInput, Review, ReviewStatus, ReviewUser

_RETRY = "Your request could not be processed. Please try again."
_INT_RE = re.compile(r"[+-]?[0-9]+")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _get_string(ctx: RequestContext, key: str) -> str:
    value = ctx.values.get(key)
    return value if isinstance(value, str) else ""


def _string_id(ctx: RequestContext, key: str, unauthenticated: str, invalid: str) -> ObjectId:
    raw = ctx.require(key)
    if not isinstance(raw, str):
        raise ApiError(401, unauthenticated)
    return parse_object_id(raw, invalid)


def _positive_int(text: str, message: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ApiError(400, message)
    value = int(text)
    if value < 1:
        raise ApiError(400, message)
    return value


def _find_review(store: Store, object_id: ObjectId, status: int) -> Review:
    try:
        doc = store.reviews.find_one({"_id": object_id})
        if doc is None:
            raise ApiError(status, "Review not found")
        return Review.from_document(doc)
    except (ValueError, PyMongoError) as exc:
        raise ApiError(status, "Review not found") from exc


def _find_product(store: Store, product_id: ObjectId | None, kind: Any) -> Any:
    try:
        doc = store.products.find_one({"_id": product_id})
        if doc is None:
            raise ApiError(400, "Product not found")
        return kind.from_document(doc)
    except (ValueError, PyMongoError) as exc:
        raise ApiError(400, "Product not found") from exc


def _decode_reviews(docs: Any) -> list[dict[str, Any]]:
    try:
        return [Review.from_document(doc).to_json() for doc in docs]
    except (ValueError, PyMongoError) as exc:
        raise ApiError(500, "Error decoding reviews") from exc


def add_review(store: Store, ctx: RequestContext, body: Any) -> dict[str, Any]:
    """Store a review by the current user; it waits for approval before it is shown."""
    try:
        data = PutReviewInput.from_json(body)
    except ValueError as exc:
        raise ApiError(400, "Invalid request") from exc
    rating = data.parsed_rating()

    user_id = _string_id(ctx, "userID", "User not authenticated", "Invalid user ID")
    now = _now()
    review = Review(
        product=data.product,
        user=ReviewUser(
            id=user_id,
            first_name=_get_string(ctx, "firstname"),
            last_name=_get_string(ctx, "lastname"),
            email=_get_string(ctx, "email"),
        ),
        title=data.title,
        rating=rating,
        review=data.review,
        is_recommended=data.is_recommended,
        status=ReviewStatus.WAITING_APPROVAL,
        created=now,
        updated=now,
    )

    try:
        store.reviews.insert_one(review.to_document())
    except PyMongoError as exc:
        raise ApiError(500, "Could not add review") from exc

    return {
        "success": True,
        "message": "Your review has been added successfully and will appear when approved!",
        "review": review.to_json(),
    }


def get_all_reviews(store: Store, query: Mapping[str, str]) -> dict[str, Any]:
    """List every review, newest first, one page at a time."""
    page = _positive_int(query.get("page", "1"), "Invalid page number")
    limit = _positive_int(query.get("limit", "10"), "Invalid limit number")
    skip = (page - 1) * limit

    try:
        docs = store.reviews.find({}, sort=[("created", -1)], skip=skip, limit=limit)
    except PyMongoError as exc:
        raise ApiError(500, _RETRY) from exc
    reviews = _decode_reviews(docs)

    try:
        count = store.reviews.count_documents({})
    except PyMongoError as exc:
        raise ApiError(500, "Error counting reviews") from exc

    return {
        "reviews": reviews,
        "totalPages": float(math.ceil(count / limit)),
        "currentPage": page,
        "count": count,
    }


def get_product_reviews_by_slug(store: Store, slug: str) -> dict[str, Any]:
    """List the approved reviews of the product with ``slug``, newest first."""
    try:
        doc = store.products.find_one({"slug": slug})
        if doc is None:
            raise ApiError(404, "No product found.", key="message")
        product = IndividualProduct.from_document(doc)
    except (ValueError, PyMongoError) as exc:
        raise ApiError(404, "No product found.", key="message") from exc

    query = {"product": product.id, "status": ReviewStatus.APPROVED.value}
    try:
        docs = store.reviews.find(query, sort=[("created", -1)])
    except PyMongoError as exc:
        raise ApiError(500, _RETRY) from exc
    return {"reviews": _decode_reviews(docs)}


def update_review(store: Store, ctx: RequestContext, review_id: str, body: Any) -> dict[str, Any]:
    """Edit a review; only its author may do so."""
    user_id = parse_object_id(ctx.require("userID"), "Invalid user ID")
    object_id = parse_object_id(review_id, "Invalid review ID")

    try:
        update = PutReviewInput.from_json(body)
    except ValueError as exc:
        raise ApiError(400, "Invalid request body") from exc
    rating = update.parsed_rating()
    if rating < 1 or rating > 5:
        raise ApiError(400, "Rating must be between 1 and 5")

    review = _find_review(store, object_id, 404)
    if review.user.id != user_id:
        raise ApiError(403, "You are not allowed to update this review")

    update.updated = _now()
    fields = {
        "title": update.title,
        "rating": rating,
        "review": update.review,
        "isRecommended": update.is_recommended,
        "updated": update.updated,
    }
    try:
        result = store.reviews.find_one_and_update(
            {"_id": object_id}, {"$set": fields}, return_document=ReturnDocument.AFTER
        )
    except PyMongoError as exc:
        raise ApiError(400, _RETRY) from exc
    if result is None:
        raise ApiError(400, _RETRY)

    return {"success": True, "message": "Review has been updated successfully!"}


def _moderate(
    store: Store,
    ctx: RequestContext,
    review_id: str,
    kind: Any,
    status: ReviewStatus,
    active: bool,
    verb: str,
) -> dict[str, Any]:
    object_id = parse_object_id(review_id, "Invalid review ID")
    merchant_id = _string_id(ctx, "merchantID", "Merchant not authenticated", "Invalid merchant ID")

    review = _find_review(store, object_id, 400)
    product = _find_product(store, review.product, kind)
    role = get_user_role(ctx.require("role"))

    if product.merchant != merchant_id and role is not UserRole.ADMIN:
        raise ApiError(403, f"You are not allowed to {verb} this review")

    try:
        result = store.reviews.find_one_and_update(
            {"_id": object_id},
            {"$set": {"status": status.value, "isActive": active}},
            return_document=ReturnDocument.AFTER,
        )
    except PyMongoError as exc:
        raise ApiError(400, _RETRY) from exc
    if result is None:
        raise ApiError(400, _RETRY)
    return {"success": True}


def approve_review(store: Store, ctx: RequestContext, review_id: str) -> dict[str, Any]:
    """Approve a review of one of the merchant's products; an admin may approve any."""
    return _moderate(store, ctx, review_id, IndividualProduct, ReviewStatus.APPROVED, True, "approve")


def reject_review(store: Store, ctx: RequestContext, review_id: str) -> dict[str, Any]:
    """Reject a review of one of the merchant's products; an admin may reject any."""
    return _moderate(store, ctx, review_id, Product, ReviewStatus.REJECTED, False, "reject")


def delete_review(store: Store, ctx: RequestContext, review_id: str) -> dict[str, Any]:
    """Delete a review as its author, as the merchant of its product, or as an admin."""
    object_id = parse_object_id(review_id, "Invalid review id")
    review = _find_review(store, object_id, 400)

    user_id = _string_id(ctx, "userID", "User not authenticated", "Invalid user ID")
    role = get_user_role(ctx.require("role"))

    def remove() -> Any:
        try:
            return store.reviews.delete_one({"_id": object_id})
        except PyMongoError as exc:
            raise ApiError(400, _RETRY) from exc

    forbidden = ApiError(403, "You are not allowed to delete this review")

    if user_id == review.user.id:
        remove()
    elif role is UserRole.MERCHANT:
        product = _find_product(store, review.product, Product)
        merchant_id = parse_object_id(ctx.require("merchantID"), "Invalid merchant ID")
        if product.merchant != merchant_id:
            raise forbidden
        remove()
    elif role is UserRole.ADMIN:
        remove()
    else:
        raise forbidden

    if review.user.id != user_id and role is not UserRole.ADMIN:
        raise forbidden

    result = remove()
    return {
        "success": True,
        "message": "Review has been deleted successfully!",
        "review": {"DeletedCount": result.deleted_count},
    }


def routes(path: str) -> list[Route]:
    """The review endpoints mounted under ``path``."""
    moderators = (UserRole.ADMIN, UserRole.MERCHANT)
    return [
        Route("POST", f"{path}/add", add_review, auth=True),
        Route("GET", path, get_all_reviews),
        Route("GET", f"{path}/:slug", get_product_reviews_by_slug),
        Route("PUT", f"{path}/:id", update_review, auth=True),
        Route("PUT", f"{path}/approve/:reviewId", approve_review, auth=True, roles=moderators),
        # The reject path is served by the approve handler.
        Route("PUT", f"{path}/reject/:reviewId", approve_review, auth=True, roles=moderators),
        Route("DELETE", f"{path}/delete/:id", delete_review, auth=True),
    ]