from datetime import datetime
from decimal import Decimal

import pytest

from closerpay.schemas import PaymentEvent, RefundEvent, UnhandledEvent
from closerpay.services.errors import MalformedPayloadError
from closerpay.services.events import extract_amount, normalize, normalize_event_type


@pytest.mark.parametrize("raw,expected", [
    ("payment.succeeded", "payment.succeeded"),
    ("payment_succeeded", "payment.succeeded"),
    ("Refund.Created", "refund.created"),
    ("refund_updated", "refund.updated"),
    ("", "unknown"),
    (None, "unknown"),
])
def test_normalize_event_type(raw, expected):
    assert normalize_event_type(raw) == expected


def test_payment_event_fields():
    payload = {
        "type": "payment.succeeded",
        "id": "evt_1",
        "data": {
            "id": "pay_1",
            "plan": {"id": "plan_1"},
            "product": {"id": "prod_1", "name": "Program"},
            "user": {"id": "user_1", "name": "Ann Client", "email": "ann@example.com"},
            "membership": {"id": "mem_1", "email": "other@example.com"},
            "final_amount": 150,
            "currency": "USD",
            "paid_at": 1700000000,
        },
    }
    event = normalize(payload, "msg_1")

    assert isinstance(event, PaymentEvent)
    assert event.message_id == "msg_1"
    assert event.status == "succeeded"
    assert event.payment_id == "pay_1"
    assert event.plan_id == "plan_1"
    assert event.product_name == "Program"
    assert event.customer_email == "ann@example.com"
    assert event.membership_id == "mem_1"
    assert event.amount == Decimal("150")
    assert event.currency == "usd"
    assert event.paid_at == datetime(2023, 11, 14, 22, 13, 20)


def test_payload_id_is_fallback_message_id():
    event = normalize({"type": "payment.failed", "id": "evt_9", "data": {"id": "pay_1"}})
    assert event.message_id == "evt_9"
    assert event.status == "failed"


def test_action_field_and_flat_payload():
    payload = {"action": "payment_pending", "id": "pay_7", "plan": {"id": "plan_1"}, "total": "10.00"}
    event = normalize(payload, "msg_7")
    assert isinstance(event, PaymentEvent)
    assert event.status == "pending"
    assert event.payment_id == "pay_7"
    assert event.plan_id == "plan_1"


def test_string_total_wins_over_numeric_amounts():
    assert extract_amount({"total": "99.50", "final_amount": 120, "subtotal": 130}) == Decimal("99.50")


def test_amount_fallback_order():
    assert extract_amount({"final_amount": 120, "subtotal": 130}) == Decimal("120")
    assert extract_amount({"subtotal": "130.25"}) == Decimal("130.25")
    assert extract_amount({"creator_total": 80, "amount": 90}) == Decimal("80")
    assert extract_amount({"total": "n/a", "amount": 90}) == Decimal("90")
    assert extract_amount({}) == Decimal("0")


def test_refund_event_with_nested_payment():
    payload = {"type": "refund.created", "data": {"id": "ref_1", "payment": {"id": "pay_1"}, "amount": 50,
                                                  "created_at": 1700000100}}
    event = normalize(payload, "msg_r")
    assert isinstance(event, RefundEvent)
    assert event.payment_id == "pay_1"
    assert event.amount == Decimal("50")
    assert event.refunded_at == datetime(2023, 11, 14, 22, 15)


def test_refund_event_with_flat_payment_id():
    event = normalize({"type": "refund_updated", "data": {"payment_id": "pay_2"}}, "msg_r2")
    assert isinstance(event, RefundEvent)
    assert event.payment_id == "pay_2"
    assert event.amount == Decimal("0")


def test_unknown_event_type_is_unhandled():
    event = normalize({"type": "membership.went_valid", "data": {}}, "msg_u")
    assert isinstance(event, UnhandledEvent)
    assert event.event_type == "membership.went_valid"


def test_missing_message_id_is_malformed():
    with pytest.raises(MalformedPayloadError):
        normalize({"type": "payment.succeeded", "data": {"id": "pay_1"}})


def test_non_object_payload_is_malformed():
    with pytest.raises(MalformedPayloadError):
        normalize(["not", "an", "object"], "msg_1")
