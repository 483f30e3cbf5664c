from dataclasses import dataclass
from typing import Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..models import Closer, PaymentPlan


@dataclass
class ResolvedPlan:
    plan: PaymentPlan
    closer: Closer


async def resolve_plan(session: AsyncSession, whop_plan_id: Optional[str]) -> Optional[ResolvedPlan]:
    """
    Find the payment link created for a Whop plan, with its closer.

    Events for plans this system never created (test events, other storefronts)
    are expected, so a miss returns None instead of raising.
    """
    if not whop_plan_id:
        return None

    q = (
        select(PaymentPlan, Closer)
        .join(Closer, Closer.id == PaymentPlan.closer_id)
        .where(PaymentPlan.whop_plan_id == whop_plan_id)
    )
    res = await session.exec(q)
    row = res.first()
    if row is None:
        return None
    plan, closer = row
    return ResolvedPlan(plan=plan, closer=closer)
