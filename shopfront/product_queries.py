"""Aggregation pipelines and pagination for the store's product listing."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from bson import json_util
from bson.errors import BSONError

from shopfront.context import ApiError

_INT_RE = re.compile(r"[+-]?[0-9]+")
_FLOAT_RE = re.compile(
    r"[+-]?(?:(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf(?:inity)?|nan)",
    re.IGNORECASE,
)


def _parse_float(text: str | None) -> float:
    if text is None or not _FLOAT_RE.fullmatch(text):
        return 0.0
    return float(text)


def parse_int(text: str | None, default: int) -> int:
    """Read a query integer: ``default`` when absent, 0 when it is not an integer."""
    if text is None:
        return default
    if not _INT_RE.fullmatch(text):
        return 0
    return int(text)


def store_products_query(min_price: str | None, max_price: str | None, rating: str | None) -> list[dict[str, Any]]:
    """Build the pipeline that lists active products of active brands with their ratings."""
    low = _parse_float(min_price)
    high = _parse_float(max_price)
    rating_value = _parse_float(rating)

    price = {"$gte": low, "$lte": high} if low > 0 and high > 0 else None

    match_query = {
        "isActive": True,
        "price": price,
        "averageRating": {"$gte": rating_value},
    }

    return [
        {"$lookup": {"from": "brands", "localField": "brand", "foreignField": "_id", "as": "brands"}},
        {"$unwind": {"path": "$brands", "preserveNullAndEmptyArrays": True}},
        {
            "$addFields": {
                "brand.name": "$brands.name",
                "brand._id": "$brands._id",
                "brand.isActive": "$brands.isActive",
            }
        },
        {"$match": {"brand.isActive": True}},
        {"$lookup": {"from": "reviews", "localField": "_id", "foreignField": "product", "as": "reviews"}},
        {
            "$addFields": {
                "totalRatings": {"$sum": "$reviews.rating"},
                "totalReviews": {"$size": "$reviews"},
            }
        },
        {
            "$addFields": {
                "averageRating": {
                    "$cond": [
                        {"$eq": ["$totalReviews", 0]},
                        0,
                        {"$divide": ["$totalRatings", "$totalReviews"]},
                    ]
                }
            }
        },
        {"$match": match_query},
        {"$project": {"brands": 0, "reviews": 0}},
    ]


def parse_sort_order(text: str | None) -> dict[str, Any]:
    """Parse the sortOrder parameter, an extended-JSON document."""
    try:
        value = json_util.loads(text or "")
    except (ValueError, TypeError, BSONError) as exc:
        raise ApiError(400, "Invalid sortOrder format") from exc
    if not isinstance(value, dict):
        raise ApiError(400, "Invalid sortOrder format")
    return value


@dataclass(frozen=True)
class Pagination:
    count: int
    page: int
    limit: int
    skip: int
    current_page: int
    total_pages: int


def _trunc_div(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return -quotient if (a < 0) != (b < 0) else quotient


def paginate(count: int, page: int, limit: int) -> Pagination:
    """Work out the page window; the requested page applies only when results exceed one page."""
    if limit == 0:
        raise ValueError("limit must not be zero")
    overflow = count > limit
    size = page - 1 if overflow else 0
    return Pagination(
        count=count,
        page=page,
        limit=limit,
        skip=size * limit,
        current_page=page if overflow else 1,
        total_pages=_trunc_div(count + limit - 1, limit),
    )


def pagination_stages(sort_order: dict[str, Any], pagination: Pagination) -> list[dict[str, Any]]:
    return [
        {"$sort": sort_order},
        {"$skip": pagination.skip},
        {"$limit": pagination.limit},
    ]