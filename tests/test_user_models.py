from datetime import datetime, timezone

import pytest
from bson import ObjectId

from shopfront.context import UserRole
from shopfront.user_models import (
    EmailProvider,
    InsertUserFromGmail,
    Merchant,
    MerchantAdd,
    MerchantStatus,
    User,
    UserSearch,
    UserUpdate,
)

CREATED = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _user_document():
    return {
        "_id": ObjectId(),
        "email": "jane@example.com",
        "phoneNumber": "5550100",
        "firstName": "Jane",
        "lastName": "Doe",
        "password": "password",
        "merchant": ObjectId(),
        "provider": EmailProvider.EMAIL.value,
        "avatar": "a.png",
        "role": UserRole.MERCHANT.value,
        "created": CREATED,
        "updated": CREATED,
    }


def test_user_document_round_trip():
    doc = _user_document()
    user = User.from_document(doc)
    assert user.role is UserRole.MERCHANT
    assert user.provider is EmailProvider.EMAIL
    assert user.to_document() == doc


def test_user_json_uses_string_ids():
    doc = _user_document()
    body = User.from_document(doc).to_json()
    assert body["id"] == str(doc["_id"])
    assert body["merchant"] == str(doc["merchant"])
    assert body["created"] == CREATED.isoformat()
    assert "_id" not in body


def test_user_omits_empty_fields():
    assert User(email="a@example.com").to_document() == {"email": "a@example.com"}


def test_user_unknown_provider_and_role():
    user = User.from_document({"provider": "Nowhere", "role": "nobody"})
    assert user.provider is None and user.role is None


def test_user_search_from_user_drops_secrets():
    user = User.from_document(_user_document())
    search = UserSearch.from_user(user)
    body = search.to_json()
    assert "password" not in body
    assert "merchant" not in body
    assert body["email"] == user.email
    assert search.role is user.role


def test_user_search_includes_merchant():
    merchant = Merchant(name="Shop", email="shop@example.com")
    search = UserSearch(email="jane@example.com", merchant=merchant)
    assert search.to_json()["merchant"] == merchant.to_json()


def test_user_update_defaults_and_document():
    update = UserUpdate.from_json({"firstName": "Jane"})
    assert update.to_document() == {"firstName": "Jane", "lastName": "", "phoneNumber": ""}


@pytest.mark.parametrize("body", [{"firstName": 3}, ["firstName"], None])
def test_user_update_invalid(body):
    with pytest.raises(ValueError):
        UserUpdate.from_json(body)


def test_gmail_user_from_json():
    user = InsertUserFromGmail.from_json(
        {"email": "g@example.com", "id": "g-1", "given_name": "G", "verified_email": True}
    )
    assert user.google_id == "g-1"
    assert user.given_name == "G"
    assert user.verified_email is True
    assert user.family_name == ""


def test_merchant_from_document_and_json():
    oid = ObjectId()
    merchant = Merchant.from_document(
        {"_id": oid, "name": "Shop", "status": "Waiting Approval", "isActive": True}
    )
    assert merchant.status is MerchantStatus.WAITING_APPROVAL
    body = merchant.to_json()
    assert body["id"] == str(oid)
    assert body["status"] == "Waiting Approval"
    assert body["isActive"] is True
    assert body["brandName"] == ""


def test_merchant_add_round_trip():
    body = {
        "name": "Shop",
        "email": "shop@example.com",
        "phoneNumber": "5550100",
        "brandName": "Brand",
        "business": "Shoes",
    }
    merchant = MerchantAdd.from_json(body)
    assert merchant.phone_number == "5550100"
    document = merchant.to_document()
    assert set(document) == {"name", "email", "phonenumber", "brandname", "business"}
    assert sorted(document.values()) == sorted(body.values())


@pytest.mark.parametrize("missing", ["name", "email", "phoneNumber", "brandName", "business"])
def test_merchant_add_requires_every_field(missing):
    body = {
        "name": "Shop",
        "email": "shop@example.com",
        "phoneNumber": "5550100",
        "brandName": "Brand",
        "business": "Shoes",
    }
    del body[missing]
    with pytest.raises(ValueError, match=missing):
        MerchantAdd.from_json(body)