"""Outbound Zapier webhook for succeeded payments."""
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
from sqlalchemy import update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..config import settings
from ..models import MULTI_PAYMENT_PLAN_TYPES, Closer, Payment, PaymentPlan, ZapierStatus
from ..utils import get_path, truncate, utcnow
from .errors import DeliveryError

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500


def _money(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def split_name(name: Optional[str]):
    parts = (name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def build_payload(payment: Payment, plan: Optional[PaymentPlan], closer: Optional[Closer]) -> Dict[str, Any]:
    """Rebuild the automation summary from stored payment, plan and closer state."""
    data = payment.whop_webhook_data if isinstance(payment.whop_webhook_data, dict) else {}
    first_name, last_name = split_name(closer.name if closer else None)
    has_total = plan is not None and plan.plan_type in MULTI_PAYMENT_PLAN_TYPES

    return {
        "client_name": (
            get_path(data, "user", "name")
            or get_path(data, "membership", "name")
            or (plan.client_name if plan else None)
            or payment.customer_name
            or payment.customer_email
        ),
        "client_email": payment.customer_email,
        "package": (
            get_path(data, "product", "title")
            or get_path(data, "product", "name")
            or payment.product_name
        ),
        "amount_collected": _money(payment.amount),
        "total_to_be_collected": _money(plan.total_amount) if has_total else None,
        "payment_type": plan.plan_type if plan else "unknown",
        "closer_first_name": first_name,
        "closer_last_name": last_name,
    }


async def _set_status(session: AsyncSession, payment_id: int, **values) -> None:
    await session.exec(update(Payment).where(Payment.id == payment_id).values(**values))
    await session.commit()


class ZapierNotifier:
    def __init__(self, timeout: float = settings.zapier_timeout_seconds,
                 max_attempts: int = settings.zapier_max_attempts):
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)

    async def _post(self, url: str, payload: Dict[str, Any]) -> None:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(url, json=payload)
        if not resp.is_success:
            raise DeliveryError(f"HTTP {resp.status_code}: {resp.text}")

    async def deliver(self, session: AsyncSession, payment: Payment, plan: Optional[PaymentPlan],
                      closer: Optional[Closer], url: Optional[str]) -> str:
        """POST the summary, bounded attempts, and record sent/failed/skipped on the payment."""
        if not url:
            await _set_status(session, payment.id, zapier_status=ZapierStatus.SKIPPED.value)
            logger.info("[ZAPIER] no webhook url configured; payment %s skipped", payment.id)
            return ZapierStatus.SKIPPED.value

        payload = build_payload(payment, plan, closer)
        last_error = ""
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self._post(url, payload)
            except (httpx.HTTPError, DeliveryError) as e:
                last_error = str(e) or e.__class__.__name__
                logger.warning(
                    "[ZAPIER] delivery attempt %s/%s failed for payment %s: %s",
                    attempt, self.max_attempts, payment.id, last_error,
                )
                continue

            await _set_status(
                session, payment.id,
                zapier_status=ZapierStatus.SENT.value, zapier_sent_at=utcnow(), zapier_error=None,
            )
            logger.info("[ZAPIER] payment %s delivered", payment.id)
            return ZapierStatus.SENT.value

        await _set_status(
            session, payment.id,
            zapier_status=ZapierStatus.FAILED.value, zapier_error=truncate(last_error, MAX_ERROR_LENGTH),
        )
        return ZapierStatus.FAILED.value

    async def retry(self, session: AsyncSession, payment_id: int, url: Optional[str]) -> Optional[str]:
        """Manual retry from the admin surface. Returns None when the payment does not exist."""
        q = (
            select(Payment, PaymentPlan, Closer)
            .join(Closer, Closer.id == Payment.closer_id)
            .join(PaymentPlan, PaymentPlan.id == Payment.payment_link_id, isouter=True)
            .where(Payment.id == payment_id)
        )
        res = await session.exec(q)
        row = res.first()
        if row is None:
            return None
        payment, plan, closer = row
        return await self.deliver(session, payment, plan, closer, url)
