"""Payment provider payloads, receipts and webhook de-duplication."""

from __future__ import annotations

import copy
import enum
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from bson import ObjectId

from shopfront.context import ApiError

EVENT_ID_HEADER = "x-razorpay-event-id"

_CASHFREE_FIELDS = {
    "orderId": "order_id",
    "orderAmount": "order_amount",
    "referenceId": "reference_id",
    "txStatus": "tx_status",
    "paymentMode": "payment_mode",
    "txMsg": "tx_msg",
    "txTime": "tx_time",
    "signature": "signature",
}


@dataclass
class CashfreeWebhookRequest:
    order_id: str = ""
    order_amount: str = ""
    reference_id: str = ""
    tx_status: str = ""
    payment_mode: str = ""
    tx_msg: str = ""
    tx_time: str = ""
    signature: str = ""


def parse_cashfree_webhook(data: bytes | bytearray | str) -> CashfreeWebhookRequest:
    """Decode a webhook body into a :class:`CashfreeWebhookRequest`."""
    if isinstance(data, str):
        data = data.encode()
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError("webhook data must be bytes")
    try:
        raw = json.loads(data)
    except ValueError as exc:
        raise ValueError(f"error in unmarshalling data: {exc}") from exc
    if raw is None:
        return CashfreeWebhookRequest()
    if not isinstance(raw, dict):
        raise ValueError("error in unmarshalling data: expected a JSON object")
    values = {}
    for key, attr in _CASHFREE_FIELDS.items():
        value = raw.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            raise ValueError(f"error in unmarshalling data: {key} must be a string")
        values[attr] = value
    return CashfreeWebhookRequest(**values)


_PAYMENT_DEFAULTS: dict[str, Any] = {
    "id": "",
    "entity": "",
    "amount": 0,
    "currency": "",
    "status": "",
    "order_id": "",
    "invoice_id": None,
    "international": False,
    "method": "",
    "amount_refunded": 0,
    "refund_status": None,
    "captured": False,
    "description": "",
    "card_id": None,
    "bank": None,
    "wallet": None,
    "vpa": "",
    "email": "",
    "contact": "",
    "notes": [],
    "fee": 0,
    "tax": 0,
    "error_code": None,
    "error_description": None,
    "error_source": None,
    "error_step": None,
    "error_reason": None,
    "acquirer_data": {"rrn": "", "upi_transaction_id": ""},
    "created_at": 0,
    "reward": None,
    "upi": {"vpa": ""},
    "base_amount": 0,
}


def _payment_defaults() -> dict[str, Any]:
    return copy.deepcopy(_PAYMENT_DEFAULTS)


def _merge_payment(raw: dict[str, Any]) -> dict[str, Any]:
    payment = _payment_defaults()
    for key, default in payment.items():
        value = raw.get(key)
        if value is None:
            continue
        if isinstance(default, dict) and isinstance(value, dict):
            default.update({k: value[k] for k in default if value.get(k) is not None})
        else:
            payment[key] = value
    return payment


@dataclass
class RazorpayWebhookEntity:
    """A payment webhook event; ``payment`` is the payment entity with every field filled."""

    entity: str = ""
    account_id: str = ""
    event: str = ""
    contains: list[str] = field(default_factory=list)
    payment: dict[str, Any] = field(default_factory=_payment_defaults)
    created_at: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RazorpayWebhookEntity:
        payload = data.get("payload") or {}
        payment = (payload.get("payment") or {}).get("entity") or {}
        return cls(
            entity=data.get("entity") or "",
            account_id=data.get("account_id") or "",
            event=data.get("event") or "",
            contains=list(data.get("contains") or []),
            payment=_merge_payment(payment),
            created_at=data.get("created_at") or 0,
        )


class PaymentStatus(str, enum.Enum):
    CAPTURED = "captured"
    FAILED = "failed"


@dataclass
class Receipt:
    id: ObjectId | None = None
    order_id: ObjectId | None = None
    cart_id: ObjectId | None = None
    razorpay_order_id: str = ""
    amount: float = 0.0
    created: datetime | None = None
    updated: datetime | None = None
    payment_provider: str = ""
    provider_data: Any = None
    payment_status: PaymentStatus | None = None


@dataclass
class OrderCreateRequest:
    amount: int
    currency: str
    receipt: str
    partial_payment: bool = False
    notes: dict[str, str] | None = None
    first_payment_min_amount: int = 0

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "amount": self.amount,
            "currency": self.currency,
            "receipt": self.receipt,
            "partial_payment": self.partial_payment,
        }
        if self.notes:
            body["notes"] = dict(self.notes)
        if self.first_payment_min_amount:
            body["first_payment_min_amount"] = self.first_payment_min_amount
        return body


@dataclass
class OrderCreateResponse:
    id: str = ""
    entity: str = ""
    amount: int = 0
    amount_paid: int = 0
    amount_due: int = 0
    currency: str = ""
    receipt: str = ""
    offer_id: Any = None
    status: str = ""
    attempts: int = 0
    notes: Any = None
    created_at: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OrderCreateResponse:
        return cls(
            id=data.get("id") or "",
            entity=data.get("entity") or "",
            amount=data.get("amount") or 0,
            amount_paid=data.get("amount_paid") or 0,
            amount_due=data.get("amount_due") or 0,
            currency=data.get("currency") or "",
            receipt=data.get("receipt") or "",
            offer_id=data.get("offer_id"),
            status=data.get("status") or "",
            attempts=data.get("attempts") or 0,
            notes=data.get("notes"),
            created_at=data.get("created_at") or 0,
        )

    def get_notes(self) -> dict[str, str] | None:
        """Return the notes as a mapping, or None when the provider sent a list."""
        if not isinstance(self.notes, dict):
            return None
        notes = {}
        for key, value in self.notes.items():
            if not isinstance(value, str):
                raise TypeError(f"note {key!r} is not a string")
            notes[key] = value
        return notes

    def created_time(self) -> datetime:
        return datetime.fromtimestamp(self.created_at, tz=timezone.utc)


class DuplicateEventGuard:
    """Rejects webhook events whose id has already been seen."""

    def __init__(self, seen: set[str] | None = None) -> None:
        self._seen: set[str] = set(seen or ())

    def check(self, event_id: str | None) -> None:
        if not event_id:
            return
        if event_id in self._seen:
            raise ApiError(409, "Conflict")
        self._seen.add(event_id)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._seen