"""Handlers for the product endpoints: store listing, search and merchant management."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Callable

from bson import ObjectId
from bson.regex import Regex
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
from shopfront.product_models import AddProductInput, IndividualProduct, Product
from shopfront.product_queries import (
    paginate,
    pagination_stages,
    parse_int,
    parse_sort_order,
    store_products_query,
)

_RETRY = "Your request could not be processed. Please try again."
_NO_PRODUCT = "No product found."
_NOT_OWNER = "You can only update products that belong to your merchant account."


def _jsonable(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def _decode_all(docs: Any, kind: Any, status: int) -> list[dict[str, Any]]:
    try:
        return [kind.from_document(doc).to_json() for doc in docs]
    except (ValueError, PyMongoError) as exc:
        raise ApiError(status, _RETRY) from exc


def get_product_by_slug(store: Store, slug: str) -> dict[str, Any]:
    """Return the active product with ``slug``."""
    try:
        doc = store.products.find_one({"slug": slug, "isActive": True})
        if doc is None:
            raise ApiError(404, _NO_PRODUCT, key="message")
        product = IndividualProduct.from_document(doc)
    except (ValueError, PyMongoError) as exc:
        raise ApiError(404, _NO_PRODUCT, key="message") from exc
    return {"product": product.to_json()}


def search_products_by_name(store: Store, name: str) -> dict[str, Any]:
    """List active products whose name matches ``name`` as a case-insensitive pattern."""
    query = {"name": Regex(name, "is"), "isActive": True}
    projection = {"name": 1, "slug": 1, "imageUrl": 1, "price": 1, "_id": 0}
    try:
        products = list(store.products.find(query, projection=projection))
    except PyMongoError as exc:
        raise ApiError(500, _RETRY) from exc
    if not products:
        raise ApiError(404, _NO_PRODUCT, key="message")
    return {"products": _jsonable(products)}


def fetch_store_products_by_filters(store: Store, query: Mapping[str, str]) -> dict[str, Any]:
    """List store products filtered by price, rating, category and brand, one page at a time."""
    page = parse_int(query.get("page"), 1)
    limit = parse_int(query.get("limit"), 10)
    sort_order = parse_sort_order(query.get("sortOrder", ""))

    category = query.get("category", "")
    brand = query.get("brand", "")
    pipeline = store_products_query(query.get("min", ""), query.get("max", ""), query.get("rating", ""))

    try:
        category_doc = store.categories.find_one(
            {"slug": category if category else None, "isActive": True}
        )
    except PyMongoError:
        category_doc = None
    if category_doc is not None:
        pipeline.append(
            {"$match": {"isActive": True, "_id": {"$in": category_doc.get("products") or []}}}
        )

    try:
        brand_doc = store.brands.find_one({"slug": brand, "isActive": True})
    except PyMongoError:
        brand_doc = None
    if brand_doc is not None:
        pipeline.append({"$match": {"brand._id": brand_doc.get("_id")}})

    try:
        count = sum(1 for _ in store.products.aggregate(pipeline))
    except PyMongoError as exc:
        raise ApiError(500, _RETRY) from exc

    try:
        window = paginate(count, page, limit)
    except ValueError as exc:
        raise ApiError(500, _RETRY) from exc

    try:
        docs = store.products.aggregate(pipeline + pagination_stages(sort_order, window))
    except PyMongoError as exc:
        raise ApiError(500, _RETRY) from exc
    products = _decode_all(docs, Product, 500)

    return {
        "products": products,
        "totalPages": window.total_pages,
        "currentPage": window.current_page,
        "count": count,
    }


def fetch_product_names(store: Store) -> dict[str, Any]:
    """List every product with only its id and name."""
    try:
        docs = store.products.find({}, projection={"name": 1})
    except PyMongoError as exc:
        raise ApiError(400, _RETRY) from exc
    return {"products": _decode_all(docs, Product, 400)}


def add_product(
    store: Store,
    ctx: RequestContext,
    form: Any,
    image: Any,
    uploader: Callable[[Any], tuple[str, str]],
) -> dict[str, Any]:
    """Create a product from a form and an uploaded image, owned by the current user."""
    try:
        data = AddProductInput.from_form(form)
    except ValueError as exc:
        raise ApiError(400, str(exc)) from exc

    if image is None:
        raise ApiError(400, "Image upload failed")

    try:
        existing = store.products.find_one({"sku": data.sku})
    except PyMongoError as exc:
        raise ApiError(400, "This SKU is already in use.") from exc
    if existing is not None:
        raise ApiError(400, "This SKU is already in use.")

    try:
        image_url, image_key = uploader(image)
    except Exception as exc:
        raise ApiError(400, "Image upload failed") from exc

    merchant = ctx.require("user")
    if not isinstance(merchant, ObjectId):
        raise ApiError(500, "user is not an object id")

    product = {
        "sku": data.sku,
        "name": data.name,
        "description": data.description,
        "quantity": data.quantity,
        "price": data.price,
        "taxable": data.taxable,
        "isActive": data.is_active,
        "brand": data.brand,
        "imageUrl": image_url,
        "imageKey": image_key,
        "merchant": merchant,
    }
    try:
        store.products.insert_one(dict(product))
    except PyMongoError as exc:
        raise ApiError(400, _RETRY) from exc

    return {
        "success": True,
        "message": "Product has been added successfully!",
        "product": _jsonable(product),
    }


def fetch_products(store: Store, ctx: RequestContext) -> dict[str, Any]:
    """List products: a merchant sees its own, anyone else sees all."""
    if "role" not in ctx.values:
        raise ApiError(401, "Unauthorized")
    role = get_user_role(ctx.values["role"])

    if role is UserRole.MERCHANT:
        merchant_id = parse_object_id(ctx.require("merchantID"), "Invalid merchant ID")
        query: dict[str, Any] = {"merchant": merchant_id}
    else:
        query = {}
    try:
        docs = store.products.find(query)
    except PyMongoError as exc:
        raise ApiError(400, _RETRY) from exc
    return {"products": _decode_all(docs, IndividualProduct, 400)}


def fetch_product(store: Store, ctx: RequestContext, product_id: str) -> dict[str, Any]:
    """Return one product; a merchant may only see its own."""
    raw_merchant = ctx.require("merchantID")
    if not isinstance(raw_merchant, str):
        raise ApiError(401, "Unauthorized")
    merchant_id = parse_object_id(raw_merchant, "Invalid merchant ID")

    raw_role = ctx.require("role")
    if not isinstance(raw_role, str):
        raise ApiError(401, "failed to get user role")
    role = get_user_role(raw_role)

    object_id = parse_object_id(product_id, "Invalid product ID")
    query: dict[str, Any] = {"_id": object_id}
    if role is UserRole.MERCHANT:
        query["merchant"] = merchant_id

    try:
        doc = store.products.find_one(query)
    except PyMongoError as exc:
        raise ApiError(400, _RETRY) from exc
    if doc is None:
        raise ApiError(404, _NO_PRODUCT, key="message")
    try:
        product = IndividualProduct.from_document(doc)
    except ValueError as exc:
        raise ApiError(400, _RETRY) from exc
    return {"product": product.to_json()}


def _check_owner(store: Store, object_id: ObjectId, user_id: ObjectId, missing: ApiError) -> None:
    try:
        doc = store.products.find_one({"_id": object_id, "merchant": user_id})
    except PyMongoError as exc:
        raise ApiError(400, _RETRY) from exc
    if doc is None:
        raise missing


def _set_fields(store: Store, object_id: ObjectId, fields: Mapping[str, Any]) -> None:
    try:
        result = store.products.find_one_and_update({"_id": object_id}, {"$set": dict(fields)})
    except PyMongoError as exc:
        raise ApiError(400, _RETRY) from exc
    if result is None:
        raise ApiError(400, _RETRY)


def _actor(ctx: RequestContext, product_id: str) -> tuple[ObjectId, UserRole | None, ObjectId]:
    user_id = parse_object_id(ctx.require("userID"), "Invalid user ID")
    role = get_user_role(ctx.require("role"))
    object_id = parse_object_id(product_id, "Invalid product ID")
    return user_id, role, object_id


def update_product(store: Store, ctx: RequestContext, product_id: str, body: Any) -> dict[str, Any]:
    """Replace a product's editable fields; a merchant may only change its own."""
    user_id, role, object_id = _actor(ctx, product_id)

    try:
        update = AddProductInput.from_form(body)
    except ValueError as exc:
        raise ApiError(400, "Invalid request body") from exc

    try:
        same_sku = store.products.find_one({"sku": update.sku})
    except PyMongoError:
        same_sku = None
    if same_sku is not None and same_sku.get("_id") != object_id:
        raise ApiError(400, "Sku or slug is already in use.")

    if role is UserRole.MERCHANT:
        _check_owner(store, object_id, user_id, ApiError(403, _NOT_OWNER))

    _set_fields(store, object_id, update.to_document())
    return {"success": True, "message": "Product has been updated successfully!"}


def update_product_status(store: Store, ctx: RequestContext, product_id: str, body: Any) -> dict[str, Any]:
    """Set arbitrary fields, such as the active flag, on a product."""
    user_id, role, object_id = _actor(ctx, product_id)

    if not isinstance(body, Mapping):
        raise ApiError(400, "Invalid request body")

    if role is UserRole.MEMBER:
        _check_owner(store, object_id, user_id, ApiError(403, _NOT_OWNER))

    _set_fields(store, object_id, body)
    return {"success": True, "message": "Product has been updated successfully!"}


def delete_product(store: Store, ctx: RequestContext, product_id: str) -> dict[str, Any]:
    """Delete a product; a merchant may only delete its own."""
    user_id, role, object_id = _actor(ctx, product_id)

    if role is UserRole.MERCHANT:
        _check_owner(store, object_id, user_id, ApiError(404, "Product not found"))

    try:
        result = store.products.delete_one({"_id": object_id})
    except PyMongoError as exc:
        raise ApiError(400, _RETRY) from exc
    if result.deleted_count == 0:
        raise ApiError(404, "Product not found")
    return {"success": True, "message": "Product has been deleted successfully!"}


def routes(path: str) -> list[Route]:
    """The product endpoints mounted under ``path``."""
    staff = (UserRole.MERCHANT, UserRole.ADMIN)
    return [
        Route("GET", f"{path}/item/:slug", get_product_by_slug),
        Route("GET", f"{path}/list/search/:name", search_products_by_name),
        Route("GET", f"{path}/list", fetch_store_products_by_filters),
        Route("GET", f"{path}/list/select", fetch_product_names),
        Route("POST", f"{path}/add", add_product, auth=True, roles=staff),
        Route("GET", path, fetch_products, auth=True, roles=staff),
        Route("GET", f"{path}/:id", fetch_product, auth=True, roles=staff),
        Route("PUT", f"{path}/:id", update_product, auth=True, roles=staff),
        Route("PUT", f"{path}/:id/active", update_product_status, auth=True, roles=staff),
        Route("DELETE", f"{path}/delete/:id", delete_product, auth=True, roles=staff),
    ]