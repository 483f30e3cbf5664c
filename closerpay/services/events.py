"""Normalizes the different Whop payload shapes into one canonical event."""
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from ..schemas import PaymentEvent, RefundEvent, UnhandledEvent, WebhookEventIn
from ..utils import get_path, parse_timestamp, to_decimal
from .errors import MalformedPayloadError

logger = logging.getLogger(__name__)

PAYMENT_EVENT_STATUSES = {
    "payment.succeeded": "succeeded",
    "payment.failed": "failed",
    "payment.pending": "pending",
}
REFUND_EVENT_TYPES = {"refund.created", "refund.updated"}

# string ``total`` is what Whop actually charged; numeric fields are fallbacks
AMOUNT_FIELDS = ("total", "final_amount", "subtotal", "creator_total", "amount")


def normalize_event_type(raw: Any) -> str:
    """``payment_succeeded`` / ``Payment.Succeeded`` -> ``payment.succeeded``."""
    if not isinstance(raw, str) or not raw.strip():
        return "unknown"
    name = raw.strip().lower()
    if "." not in name and "_" in name:
        head, _, tail = name.partition("_")
        name = f"{head}.{tail}"
    return name


def _str(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def extract_amount(data: Dict[str, Any]) -> Decimal:
    total = data.get("total")
    if isinstance(total, str):
        parsed = to_decimal(total)
        if parsed is not None:
            return parsed
    for field in AMOUNT_FIELDS:
        parsed = to_decimal(data.get(field))
        if parsed is not None:
            return parsed
    return Decimal("0")


def _event_data(payload: Dict[str, Any]) -> Dict[str, Any]:
    data = payload.get("data")
    return data if isinstance(data, dict) else payload


def _payment_event(base: Dict[str, Any], status: str, data: Dict[str, Any]) -> PaymentEvent:
    return PaymentEvent(
        **base,
        status=status,
        payment_id=_str(data.get("id")),
        plan_id=_str(get_path(data, "plan", "id")) or _str(data.get("plan_id")),
        product_id=_str(get_path(data, "product", "id")) or _str(data.get("product_id")),
        product_name=_str(get_path(data, "product", "title")) or _str(get_path(data, "product", "name")),
        customer_id=_str(get_path(data, "user", "id")),
        customer_name=_str(get_path(data, "user", "name")) or _str(get_path(data, "membership", "name")),
        customer_email=(
            _str(get_path(data, "user", "email"))
            or _str(get_path(data, "membership", "email"))
            or _str(data.get("email"))
        ),
        membership_id=_str(get_path(data, "membership", "id")),
        amount=extract_amount(data),
        currency=(_str(data.get("currency")) or "usd").lower(),
        paid_at=parse_timestamp(data.get("paid_at")),
    )


def _refund_event(base: Dict[str, Any], data: Dict[str, Any]) -> RefundEvent:
    return RefundEvent(
        **base,
        payment_id=_str(get_path(data, "payment", "id")) or _str(data.get("payment_id")),
        amount=extract_amount(data),
        refunded_at=parse_timestamp(data.get("refunded_at") or data.get("created_at")),
    )


def normalize(payload: Any, transport_id: Optional[str] = None) -> WebhookEventIn:
    """
    Build the canonical event for a parsed webhook document.

    The transport ``webhook-id`` is preferred as message id because it stays
    the same across redeliveries; the payload ``id`` is the fallback.
    """
    if not isinstance(payload, dict):
        raise MalformedPayloadError("Webhook payload must be a JSON object")

    message_id = _str(transport_id) or _str(payload.get("id"))
    if not message_id:
        raise MalformedPayloadError("Missing message ID")

    event_type = normalize_event_type(payload.get("type") or payload.get("action"))
    data = _event_data(payload)
    base = {"message_id": message_id, "event_type": event_type, "payload": payload, "data": data}

    if event_type in PAYMENT_EVENT_STATUSES:
        return _payment_event(base, PAYMENT_EVENT_STATUSES[event_type], data)
    if event_type in REFUND_EVENT_TYPES:
        return _refund_event(base, data)

    logger.info("[WEBHOOK] unhandled event type %s (message %s)", event_type, message_id)
    return UnhandledEvent(**base)
