"""Payment ledger writes, keyed by the Whop payment id."""
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import case, func, update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..db import upsert
from ..models import Payment, PaymentStatus, PlanType
from ..schemas import PaymentEvent, RefundEvent
from ..utils import utcnow
from .commission import calculate_commission
from .plans import ResolvedPlan

logger = logging.getLogger(__name__)


async def get_payment(session: AsyncSession, whop_payment_id: str) -> Optional[Payment]:
    q = (
        select(Payment)
        .where(Payment.whop_payment_id == whop_payment_id)
        .execution_options(populate_existing=True)
    )
    res = await session.exec(q)
    return res.one_or_none()


async def next_installment_number(session: AsyncSession, payment_link_id: int, whop_payment_id: str) -> int:
    """
    1-based position of a new succeeded payment within its plan.

    Counts the plan's other succeeded payments at processing time. Concurrent
    installments of the same plan can end up sharing a number; the payment
    itself is identified by its Whop id, so that is only cosmetic.
    """
    q = (
        select(func.count())
        .select_from(Payment)
        .where(
            Payment.payment_link_id == payment_link_id,
            Payment.status == PaymentStatus.SUCCEEDED.value,
            Payment.whop_payment_id != whop_payment_id,
        )
    )
    res = await session.exec(q)
    return int(res.one()) + 1


def _keep_existing(column, excluded_column):
    return func.coalesce(column, excluded_column)


async def record_payment(session: AsyncSession, event: PaymentEvent, resolved: ResolvedPlan) -> Payment:
    """
    Create or update the ledger row for ``event.payment_id``.

    Commission and installment number are computed only for a succeeded
    payment that does not have them yet; on conflict they are never
    overwritten. Later events update status, paid_at and the raw payload,
    except that a refunded payment stays refunded and the amount of a
    succeeded payment is not replaced.
    """
    plan, closer = resolved.plan, resolved.closer
    now = utcnow()

    commission: Optional[Decimal] = None
    installment_number: Optional[int] = None
    if event.status == PaymentStatus.SUCCEEDED.value:
        existing = await get_payment(session, event.payment_id)
        if existing is None or existing.commission_amount is None:
            commission = calculate_commission(event.amount, closer.commission_type, closer.commission_value)
        if existing is None or existing.installment_number is None:
            installment_number = await next_installment_number(session, plan.id, event.payment_id)

    paid_at = event.paid_at
    if paid_at is None and event.status == PaymentStatus.SUCCEEDED.value:
        paid_at = now

    values = {
        "whop_payment_id": event.payment_id,
        "closer_id": plan.closer_id,
        "payment_link_id": plan.id,
        "whop_plan_id": plan.whop_plan_id,
        "whop_product_id": event.product_id or plan.whop_product_id,
        "product_name": event.product_name or plan.product_name,
        "customer_email": event.customer_email,
        "customer_name": event.customer_name,
        "customer_id": event.customer_id,
        "membership_id": event.membership_id,
        "amount": event.amount,
        "currency": event.currency,
        "status": event.status,
        "paid_at": paid_at,
        "installment_number": installment_number,
        "is_recurring": plan.plan_type != PlanType.ONE_TIME.value,
        "commission_amount": commission,
        "whop_webhook_data": event.data,
        "created_at": now,
        "updated_at": now,
    }

    # a succeeded or refunded row has a final amount; refunded is terminal
    settled = Payment.status.in_((PaymentStatus.SUCCEEDED.value, PaymentStatus.REFUNDED.value))
    refunded = Payment.status == PaymentStatus.REFUNDED.value

    def on_conflict(excluded):
        return {
            "status": case((refunded, Payment.status), else_=excluded.status),
            "amount": case((settled, Payment.amount), else_=excluded.amount),
            "currency": case((settled, Payment.currency), else_=excluded.currency),
            "paid_at": _keep_existing(excluded.paid_at, Payment.paid_at),
            "whop_webhook_data": excluded.whop_webhook_data,
            "updated_at": excluded.updated_at,
            # set once
            "commission_amount": _keep_existing(Payment.commission_amount, excluded.commission_amount),
            "installment_number": _keep_existing(Payment.installment_number, excluded.installment_number),
            "customer_email": _keep_existing(Payment.customer_email, excluded.customer_email),
            "customer_name": _keep_existing(Payment.customer_name, excluded.customer_name),
            "customer_id": _keep_existing(Payment.customer_id, excluded.customer_id),
            "membership_id": _keep_existing(Payment.membership_id, excluded.membership_id),
        }

    stmt = upsert(session, Payment, values, index_elements=["whop_payment_id"], update=on_conflict)
    await session.exec(stmt)
    await session.commit()

    payment = await get_payment(session, event.payment_id)
    logger.info(
        "[LEDGER] payment %s status=%s amount=%s commission=%s installment=%s",
        event.payment_id,
        payment.status,
        payment.amount,
        payment.commission_amount,
        payment.installment_number,
    )
    return payment


async def apply_refund(session: AsyncSession, event: RefundEvent) -> bool:
    """
    Mark a ledger payment refunded. Returns False when the payment is unknown.

    A missing refund amount means the whole payment was refunded. The first
    refund timestamp is kept on redelivery.
    """
    if not event.payment_id:
        return False

    refund_amount = event.amount if event.amount > 0 else Payment.amount
    res = await session.exec(
        update(Payment)
        .where(Payment.whop_payment_id == event.payment_id)
        .values(
            status=PaymentStatus.REFUNDED.value,
            refund_amount=refund_amount,
            refunded_at=func.coalesce(Payment.refunded_at, event.refunded_at or utcnow()),
            updated_at=utcnow(),
        )
    )
    await session.commit()
    return bool(res.rowcount)
