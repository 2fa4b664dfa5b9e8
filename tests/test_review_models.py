from datetime import datetime, timezone

import pytest
from bson import ObjectId

from shopfront.context import ApiError
from shopfront.review_models import PutReviewInput, Review, ReviewStatus, ReviewUser

REVIEW_ID = ObjectId("64b7f0c2a1b2c3d4e5f60720")
PRODUCT_ID = ObjectId("64b7f0c2a1b2c3d4e5f60721")
USER_ID = ObjectId("64b7f0c2a1b2c3d4e5f60722")
WHEN = datetime(2024, 6, 2, 8, 30, tzinfo=timezone.utc)


def _review():
    return Review(
        id=REVIEW_ID,
        product=PRODUCT_ID,
        user=ReviewUser(id=USER_ID, first_name="Ada", last_name="Lane", email="ada@example.com"),
        title="Great",
        rating=4.0,
        review="Works well",
        is_recommended=True,
        status=ReviewStatus.WAITING_APPROVAL,
        created=WHEN,
        updated=WHEN,
    )


def test_status_values():
    assert ReviewStatus.WAITING_APPROVAL.value == "Waiting Approval"
    assert ReviewStatus("Approved") is ReviewStatus.APPROVED


def test_review_document_round_trip():
    review = _review()
    doc = review.to_document()
    assert doc["status"] == "Waiting Approval"
    assert doc["user"]["firstName"] == "Ada"
    assert Review.from_document(doc) == review


def test_review_document_omits_empty_values():
    doc = Review(title="t").to_document()
    assert doc == {"title": "t"}


def test_review_to_json_converts_ids_and_dates():
    body = _review().to_json()
    assert body["_id"] == str(REVIEW_ID)
    assert body["product"] == str(PRODUCT_ID)
    assert body["user"]["_id"] == str(USER_ID)
    assert body["created"] == WHEN.isoformat()
    assert body["status"] == "Waiting Approval"


def test_review_user_from_document():
    user = ReviewUser.from_document({"_id": USER_ID, "email": "ada@example.com"})
    assert user.id == USER_ID
    assert user.email == "ada@example.com"
    assert user.first_name == ""


def test_review_from_document_rejects_bad_rating():
    with pytest.raises(ValueError):
        Review.from_document({"rating": "five"})


def test_put_review_input_from_json():
    data = {
        "title": "Nice",
        "rating": "4.5",
        "review": "Good value",
        "isRecommended": True,
        "product": str(PRODUCT_ID),
    }
    item = PutReviewInput.from_json(data)
    assert item.product == PRODUCT_ID
    assert item.is_recommended is True
    assert item.parsed_rating() == 4.5


def test_put_review_input_accepts_extended_object_id():
    item = PutReviewInput.from_json({"title": "a", "rating": "1", "review": "b", "product": {"$oid": str(PRODUCT_ID)}})
    assert item.product == PRODUCT_ID


@pytest.mark.parametrize(
    "data",
    [
        {"rating": "4", "review": "r"},
        {"title": "t", "rating": "", "review": "r"},
        {"title": "t", "rating": 4, "review": "r"},
        {"title": "t", "rating": "4", "review": "r", "product": "bad"},
        ["not", "an", "object"],
    ],
)
def test_put_review_input_rejects_bad_body(data):
    with pytest.raises(ValueError):
        PutReviewInput.from_json(data)


@pytest.mark.parametrize("rating", ["abc", " 4", "1e400", "4,5"])
def test_parsed_rating_invalid(rating):
    item = PutReviewInput(title="t", rating=rating, review="r")
    with pytest.raises(ApiError) as info:
        item.parsed_rating()
    assert info.value.status == 400
    assert info.value.message == "Invalid rating"


def test_parsed_rating_exponent():
    assert PutReviewInput(title="t", rating="5e0", review="r").parsed_rating() == 5.0