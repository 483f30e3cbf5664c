"""Webhook signature checks (Standard Webhooks HMAC or a shared-secret header)."""
import base64
import binascii
import hashlib
import hmac
import logging
import time
from typing import Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300
SECRET_PREFIX = "whsec_"


def _signing_keys(secret: str) -> list:
    """Whop signs with the raw secret string; whsec_ secrets may also be base64 keys."""
    keys = [secret.encode("utf-8")]
    if secret.startswith(SECRET_PREFIX):
        try:
            keys.append(base64.b64decode(secret[len(SECRET_PREFIX):], validate=True))
        except (binascii.Error, ValueError):
            pass
    return keys


def compute_signature(secret: str, msg_id: str, timestamp: str, body: bytes) -> str:
    """Base64 HMAC-SHA256 over ``{id}.{timestamp}.{body}`` with the raw secret."""
    signed = f"{msg_id}.{timestamp}.".encode("utf-8") + body
    return base64.b64encode(hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).digest()).decode()


def _candidate_signatures(header: str) -> list:
    candidates = []
    for chunk in header.split(" "):
        version, _, value = chunk.strip().partition(",")
        if version != "v1" or not value:
            continue
        candidates.append(value)
    return candidates


def _verify_standard(body: bytes, msg_id: str, timestamp: str, signature: str, secret: str,
                     tolerance: int, now: float) -> bool:
    try:
        ts = int(timestamp)
    except (TypeError, ValueError):
        logger.warning("[WEBHOOK] signature timestamp is not an integer")
        return False
    if abs(now - ts) > tolerance:
        logger.warning("[WEBHOOK] signature timestamp out of tolerance (%ss)", int(abs(now - ts)))
        return False

    candidates = _candidate_signatures(signature)
    if not candidates:
        logger.warning("[WEBHOOK] webhook-signature header has no v1 candidates")
        return False

    signed = f"{msg_id}.{timestamp}.".encode("utf-8") + body
    for key in _signing_keys(secret):
        expected = base64.b64encode(hmac.new(key, signed, hashlib.sha256).digest()).decode()
        for candidate in candidates:
            if hmac.compare_digest(expected.encode(), candidate.encode()):
                return True

    logger.warning("[WEBHOOK] signature mismatch for message %s", msg_id)
    return False


def verify_signature(body: bytes, headers: Mapping[str, str], secret: Optional[str], *,
                     secret_headers: Iterable[str] = (),
                     tolerance: int = DEFAULT_TOLERANCE_SECONDS,
                     now: Optional[float] = None) -> bool:
    """Return True when the request is authentic (or no secret is configured)."""
    if not secret:
        logger.warning(
            "[WEBHOOK] no webhook secret configured; accepting request WITHOUT signature "
            "verification. Configure a secret before going live."
        )
        return True

    # header lookups are case-insensitive on Starlette's Headers; normalize plain dicts
    lookup = {k.lower(): v for k, v in headers.items()}

    msg_id = lookup.get("webhook-id")
    timestamp = lookup.get("webhook-timestamp")
    signature = lookup.get("webhook-signature")
    if msg_id and timestamp and signature:
        return _verify_standard(
            body, msg_id, timestamp, signature, secret,
            tolerance, time.time() if now is None else now,
        )

    for name in secret_headers:
        presented = lookup.get(name.lower())
        if presented is None:
            continue
        if hmac.compare_digest(presented.encode("utf-8"), secret.encode("utf-8")):
            return True
        logger.warning("[WEBHOOK] shared secret mismatch in header %s", name)
        return False

    logger.warning(
        "[WEBHOOK] missing signature headers (id=%s timestamp=%s signature=%s)",
        bool(msg_id), bool(timestamp), bool(signature),
    )
    return False
