import re
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from bson import ObjectId

from shopfront.context import ApiError, RequestContext, Store, UserRole
from shopfront.merchant_service import (
    add_merchant,
    disable_merchant_account,
    fetch_all_merchants,
    routes,
    search_merchants,
)


def _matches(doc, condition):
    for key, expected in condition.items():
        if key == "$or":
            if not any(_matches(doc, part) for part in expected):
                return False
        elif isinstance(expected, dict) and "$regex" in expected:
            flags = re.IGNORECASE if "i" in expected.get("$options", "") else 0
            value = doc.get(key)
            if not isinstance(value, str) or not re.search(expected["$regex"], value, flags):
                return False
        elif doc.get(key) != expected:
            return False
    return True


class FakeCollection:
    def __init__(self, docs=()):
        self.docs = [dict(d) for d in docs]
        self.inserted = []
        self.find_calls = []

    def find_one(self, condition):
        return next((dict(d) for d in self.docs if _matches(d, condition)), None)

    def insert_one(self, doc):
        doc = dict(doc)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        self.inserted.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    def find(self, condition, projection=None, sort=None, skip=0, limit=0):
        self.find_calls.append({"condition": condition, "projection": projection})
        found = [dict(d) for d in self.docs if _matches(d, condition)]
        for key, direction in reversed(sort or []):
            found.sort(key=lambda d: d.get(key), reverse=direction < 0)
        found = found[skip:]
        return found[:limit] if limit else found

    def count_documents(self, condition):
        return sum(1 for d in self.docs if _matches(d, condition))

    def find_one_and_update(self, condition, update):
        for doc in self.docs:
            if _matches(doc, condition):
                before = dict(doc)
                doc.update(update["$set"])
                return before
        return None


BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _merchant(i, **extra):
    doc = {
        "_id": ObjectId(),
        "name": f"Shop {i}",
        "email": f"shop{i}@example.com",
        "phoneNumber": "unknown",
        "brandName": f"Brand {i}",
        "business": "goods",
        "isActive": True,
        "brand": "",
        "status": "Approved",
        "created": BASE + timedelta(days=i),
        "updated": BASE + timedelta(days=i),
    }
    doc.update(extra)
    return doc


def _body(**extra):
    body = {
        "name": "New Shop",
        "email": "new@example.com",
        "phoneNumber": "unknown",
        "brandName": "New Brand",
        "business": "goods",
    }
    body.update(extra)
    return body


def test_add_merchant_inserts_and_reports_id():
    merchants = FakeCollection()
    result = add_merchant(Store(merchants=merchants), _body())
    assert result["success"] is True
    assert result["message"] == "We received your request! We will reach you on your phone number unknown!"
    assert len(merchants.inserted) == 1
    assert result["merchant"] == str(merchants.inserted[0]["_id"])


def test_add_merchant_rejects_used_email():
    merchants = FakeCollection([_merchant(1, email="new@example.com")])
    with pytest.raises(ApiError) as info:
        add_merchant(Store(merchants=merchants), _body())
    assert info.value.status == 400
    assert info.value.message == "That email address is already in use."
    assert merchants.inserted == []


def test_add_merchant_requires_fields():
    merchants = FakeCollection()
    body = _body()
    del body["business"]
    with pytest.raises(ApiError) as info:
        add_merchant(Store(merchants=merchants), body)
    assert info.value.status == 400
    assert merchants.inserted == []


def test_search_merchants_requires_search():
    with pytest.raises(ApiError) as info:
        search_merchants(Store(merchants=FakeCollection()), {})
    assert info.value.message == "Search query is required"


def test_search_merchants_rejects_bad_pattern():
    with pytest.raises(ApiError) as info:
        search_merchants(Store(merchants=FakeCollection()), {"search": "("})
    assert info.value.message == "Invalid search query"


def test_search_merchants_matches_case_insensitively():
    merchants = FakeCollection([_merchant(1), _merchant(2, name="Other", brandName="X", email="x@example.com")])
    result = search_merchants(Store(merchants=merchants), {"search": "shop 1"})
    assert [m["name"] for m in result["merchants"]] == ["Shop 1"]
    assert merchants.find_calls[0]["projection"] == {"brand": 1, "name": 1}


def test_fetch_all_merchants_pages_newest_first():
    merchants = FakeCollection([_merchant(i) for i in range(5)])
    result = fetch_all_merchants(Store(merchants=merchants), {"page": "2", "limit": "2"})
    assert [m["name"] for m in result["merchants"]] == ["Shop 2", "Shop 1"]
    assert result["count"] == 5
    assert result["totalPages"] == 3
    assert result["currentPage"] == 2


@pytest.mark.parametrize(
    "query,message",
    [
        ({"page": "0"}, "Invalid page number"),
        ({"page": "x"}, "Invalid page number"),
        ({"limit": "-1"}, "Invalid limit number"),
    ],
)
def test_fetch_all_merchants_rejects_bad_numbers(query, message):
    with pytest.raises(ApiError) as info:
        fetch_all_merchants(Store(merchants=FakeCollection()), query)
    assert info.value.status == 400
    assert info.value.message == message


def test_disable_merchant_account_by_admin_on_own_id():
    doc = _merchant(1)
    merchants = FakeCollection([doc])
    ctx = RequestContext({"userID": str(doc["_id"]), "role": UserRole.ADMIN.value})
    result = disable_merchant_account(Store(merchants=merchants), ctx, str(doc["_id"]), {"isActive": False})
    assert result == {"success": True}
    assert merchants.docs[0]["isActive"] is False


def test_disable_merchant_account_forbidden_for_others():
    doc = _merchant(1)
    merchants = FakeCollection([doc])
    ctx = RequestContext({"userID": str(ObjectId()), "role": UserRole.ADMIN.value})
    with pytest.raises(ApiError) as info:
        disable_merchant_account(Store(merchants=merchants), ctx, str(doc["_id"]), {"isActive": False})
    assert info.value.status == 403
    assert merchants.docs[0]["isActive"] is True


def test_disable_merchant_account_forbidden_for_merchant_role():
    doc = _merchant(1)
    ctx = RequestContext({"userID": str(doc["_id"]), "role": UserRole.MERCHANT.value})
    with pytest.raises(ApiError) as info:
        disable_merchant_account(Store(merchants=FakeCollection([doc])), ctx, str(doc["_id"]), {})
    assert info.value.status == 403


def test_disable_merchant_account_missing_merchant():
    missing = ObjectId()
    ctx = RequestContext({"userID": str(missing), "role": UserRole.ADMIN.value})
    with pytest.raises(ApiError) as info:
        disable_merchant_account(Store(merchants=FakeCollection()), ctx, str(missing), {"isActive": True})
    assert info.value.status == 404
    assert info.value.message == "Merchant not found"


def test_disable_merchant_account_bad_body_and_ids():
    oid = str(ObjectId())
    ctx = RequestContext({"userID": oid, "role": UserRole.ADMIN.value})
    store = Store(merchants=FakeCollection())
    with pytest.raises(ApiError) as info:
        disable_merchant_account(store, ctx, oid, {"isActive": "yes"})
    assert info.value.message == "Invalid request body"
    with pytest.raises(ApiError) as info:
        disable_merchant_account(store, ctx, "nope", {"isActive": True})
    assert info.value.message == "Invalid merchant ID"
    with pytest.raises(ApiError) as info:
        disable_merchant_account(store, RequestContext({"userID": "bad", "role": "x"}), oid, {})
    assert info.value.message == "Invalid user ID"


def test_routes_layout():
    table = {(r.method, r.path): r for r in routes("/merchant")}
    assert table[("POST", "/merchant/add")].auth is False
    assert table[("GET", "/merchant/search")].roles == (UserRole.ADMIN,)
    assert table[("GET", "/merchant")].handler is fetch_all_merchants
    assert table[("PUT", "/merchant/:id/active")].roles == (UserRole.ADMIN, UserRole.MERCHANT)