# shopfront

Request handlers and data models for an online store backed by MongoDB.
The package covers the product catalogue, customer reviews, user profiles,
merchant accounts, and the payload models used by payment providers.

## How the handlers work

Each handler is a plain function. It takes a `Store` and, where the
endpoint needs it, a `RequestContext`. It returns the response body as a
dict.

- `Store` (in `shopfront.context`) holds the MongoDB collections as
  attributes: `products`, `categories`, `brands`, `reviews`, `users` and
  `merchants`. The store listing pipeline joins against collections named
  `brands` and `reviews`, so those names must match the database.
- `RequestContext` holds what authentication attached to the request in
  its `values` dict, under keys such as `userID`, `merchantID`, `role`,
  `user`, `firstname`, `lastname` and `email`. `RequestContext.require(key)`
  returns a value. If the key is missing, it raises a 500 `ApiError`.
- If a request cannot be served, the handler raises `ApiError`. It has a
  `status` (the HTTP status code), a `message`, and a `body` property that
  gives the JSON body to send, for example `{"error": "Invalid product ID"}`
  or `{"message": "No product found."}`.
- `UserRole` has three members: `ADMIN`, `MEMBER` and `MERCHANT`.
  `get_user_role(value)` turns a stored role string into a `UserRole`, or
  returns `None`. `parse_object_id(value, message)` parses a 24-digit hex
  id. If the id is not valid, it raises a 400 `ApiError` carrying
  `message`.

## Modules

- `shopfront.product_service` has `get_product_by_slug`,
  `search_products_by_name`, `fetch_store_products_by_filters`,
  `fetch_product_names`, `add_product`, `fetch_products`, `fetch_product`,
  `update_product`, `update_product_status` and `delete_product`.
  `add_product` takes an `uploader` callable. It stores the image and
  returns `(image_url, image_key)`.
- `shopfront.product_queries` has:
  - `store_products_query(min_price, max_price, rating)`, which builds the
    listing aggregation pipeline;
  - `parse_sort_order`, which reads an extended-JSON sort document;
  - `paginate(count, page, limit)`, which returns a `Pagination`;
  - `pagination_stages`;
  - `parse_int`.
- `shopfront.review_service` has `add_review`, `get_all_reviews`,
  `get_product_reviews_by_slug`, `update_review`, `approve_review`,
  `reject_review` and `delete_review`.
- `shopfront.user_service` has `search_users`, `fetch_users`,
  `get_current_user` and `update_user_profile`. It also has
  `create_merchant_user`, which gives an existing user the merchant role,
  or creates a new merchant user with a random reset-password token.
- `shopfront.merchant_service` has `add_merchant`, `search_merchants`,
  `fetch_all_merchants` and `disable_merchant_account`.
- `shopfront.payment_models` has:
  - `CashfreeWebhookRequest` and `parse_cashfree_webhook`;
  - `RazorpayWebhookEntity`;
  - `OrderCreateRequest` and `OrderCreateResponse`;
  - `Receipt` and `PaymentStatus`;
  - `DuplicateEventGuard`, which raises a 409 `ApiError` when an event id
    arrives a second time. It keeps the ids it has seen in memory.
- `shopfront.product_models`, `shopfront.review_models`,
  `shopfront.user_models` and `shopfront.wishlist` hold the records as
  stored in MongoDB and as sent in JSON. They provide `from_document`,
  `to_document` and `to_json` where each applies.

## Routes

Each service module has a `routes(path)` function. It returns the module's
endpoints as `Route` entries. Each entry gives the method, the path (with
`:name` parameters), the handler, whether authentication is required, and
the roles allowed. Any web framework can mount the handlers from this
list.

In `shopfront.review_service.routes`, the `reject/:reviewId` path is
served by `approve_review`.

## Example

```python
from pymongo import MongoClient

from shopfront.context import ApiError, RequestContext, Store
from shopfront.product_queries import paginate, store_products_query
from shopfront.product_service import fetch_product, get_product_by_slug

db = MongoClient("mongodb://localhost:27017")["shop"]
store = Store(
    products=db.products,
    categories=db.categories,
    brands=db.brands,
    reviews=db.reviews,
    users=db.users,
    merchants=db.merchants,
)

try:
    body = get_product_by_slug(store, "blue-mug")
except ApiError as exc:
    status, body = exc.status, exc.body

ctx = RequestContext({"merchantID": "0123456789abcdef01234567", "role": "ROLE ADMIN"})

pipeline = store_products_query("100", "500", "4")
window = paginate(42, 2, 10)  # window.skip == 10, window.total_pages == 5
```

## What the package does not do

- It runs no HTTP server. Mounting the routes is left to the caller.
- It does no authentication and does not check roles itself. The caller
  must check the roles named in each `Route`, and must fill
  `RequestContext` with the user's id, role and merchant id.
- It stores no images. `add_product` hands the image to the `uploader` it
  is given.
- It creates no payment orders and handles no payment webhooks. It only
  models their payloads.
- It sends no e-mail. Deactivating a merchant only logs that brand
  deactivation is not supported.