"""Revenue and commission aggregates over succeeded ledger payments."""
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import and_, func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..models import Closer, Payment, PaymentStatus
from ..schemas import AnalyticsOverviewOut, CloserRevenueOut, ProductRevenueOut, RevenuePointOut
from ..utils import utcnow

ZERO = Decimal("0.00")
CENTS = Decimal("0.01")


def _cents(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS)


def percent_change(current, previous) -> float:
    if previous > 0:
        change = (float(current) - float(previous)) / float(previous) * 100
    elif current > 0:
        change = 100.0
    else:
        change = 0.0
    return round(change, 1)


async def _totals(session: AsyncSession, closer_id: Optional[int] = None,
                  date_from: Optional[datetime] = None, date_to: Optional[datetime] = None):
    q = select(
        func.coalesce(func.sum(Payment.amount), 0),
        func.count(Payment.id),
        func.coalesce(func.sum(Payment.commission_amount), 0),
    ).where(Payment.status == PaymentStatus.SUCCEEDED.value)
    if closer_id is not None:
        q = q.where(Payment.closer_id == closer_id)
    if date_from is not None:
        q = q.where(Payment.paid_at >= date_from)
    if date_to is not None:
        q = q.where(Payment.paid_at <= date_to)
    res = await session.exec(q)
    revenue, count, commission = res.one()
    return _cents(revenue), int(count), _cents(commission)


async def overview(session: AsyncSession, closer_id: Optional[int] = None,
                   date_from: Optional[datetime] = None, date_to: Optional[datetime] = None) -> AnalyticsOverviewOut:
    """
    Headline numbers for the dashboard.

    Revenue and commission are all-time; sales and average deal size follow
    the date filter. With a start date the change figures compare against the
    immediately preceding period of the same length.
    """
    all_revenue, all_sales, all_commission = await _totals(session, closer_id)
    has_filter = date_from is not None or date_to is not None
    period_revenue, period_sales, _ = await _totals(session, closer_id, date_from, date_to)

    prev_revenue, prev_sales = ZERO, 0
    if date_from is not None:
        end = date_to or utcnow()
        duration = end - date_from
        prev_revenue, prev_sales, _ = await _totals(
            session, closer_id, date_from - duration, date_from - timedelta(microseconds=1)
        )

    average = (period_revenue / period_sales).quantize(CENTS) if period_sales else ZERO
    return AnalyticsOverviewOut(
        total_revenue=all_revenue,
        total_commission=all_commission,
        total_sales=period_sales if has_filter else all_sales,
        average_deal_size=average,
        revenue_change=percent_change(period_revenue, prev_revenue),
        sales_change=percent_change(period_sales, prev_sales),
    )


async def revenue_by_closer(session: AsyncSession, date_from: Optional[datetime] = None,
                            date_to: Optional[datetime] = None) -> List[CloserRevenueOut]:
    conditions = [Payment.closer_id == Closer.id, Payment.status == PaymentStatus.SUCCEEDED.value]
    if date_from is not None:
        conditions.append(Payment.paid_at >= date_from)
    if date_to is not None:
        conditions.append(Payment.paid_at <= date_to)

    q = (
        select(
            Closer.id,
            Closer.name,
            func.coalesce(func.sum(Payment.amount), 0),
            func.count(Payment.id),
            func.coalesce(func.sum(Payment.commission_amount), 0),
        )
        .join(Payment, and_(*conditions), isouter=True)
        .where(Closer.is_active == True)  # noqa: E712
        .group_by(Closer.id, Closer.name)
    )
    res = await session.exec(q)
    rows = [
        CloserRevenueOut(
            closer_id=closer_id,
            closer_name=name,
            revenue=_cents(revenue),
            sales=int(sales),
            commission=_cents(commission),
        )
        for closer_id, name, revenue, sales, commission in res.all()
    ]
    rows.sort(key=lambda r: r.revenue, reverse=True)
    return rows


async def revenue_by_product(session: AsyncSession, date_from: Optional[datetime] = None,
                             date_to: Optional[datetime] = None) -> List[ProductRevenueOut]:
    # products without a Whop id are grouped by name
    key = func.coalesce(Payment.whop_product_id, Payment.product_name)
    q = select(
        func.max(Payment.whop_product_id),
        func.max(Payment.product_name),
        func.coalesce(func.sum(Payment.amount), 0),
        func.count(Payment.id),
    ).where(Payment.status == PaymentStatus.SUCCEEDED.value)
    if date_from is not None:
        q = q.where(Payment.paid_at >= date_from)
    if date_to is not None:
        q = q.where(Payment.paid_at <= date_to)
    res = await session.exec(q.group_by(key))
    rows = [
        ProductRevenueOut(
            product_id=product_id or "",
            product_name=name or "Unknown Product",
            revenue=_cents(revenue),
            sales=int(sales),
        )
        for product_id, name, revenue, sales in res.all()
    ]
    rows.sort(key=lambda r: r.revenue, reverse=True)
    return rows


async def revenue_over_time(session: AsyncSession, days: int = 30, date_from: Optional[datetime] = None,
                            date_to: Optional[datetime] = None) -> List[RevenuePointOut]:
    """
    Daily succeeded revenue, one point per UTC day with empty days as zero.

    Without an explicit start the window is the last ``days`` days.
    """
    end = date_to or utcnow()
    start = date_from or end - timedelta(days=days)

    q = (
        select(Payment.paid_at, Payment.amount)
        .where(
            Payment.status == PaymentStatus.SUCCEEDED.value,
            Payment.paid_at >= start,
            Payment.paid_at <= end,
        )
        .order_by(Payment.paid_at)
    )
    res = await session.exec(q)

    totals: Dict[date, Decimal] = {}
    day = start.date()
    while day <= end.date():
        totals[day] = ZERO
        day += timedelta(days=1)
    for paid_at, amount in res.all():
        totals[paid_at.date()] = totals.get(paid_at.date(), ZERO) + Decimal(str(amount))

    return [RevenuePointOut(date=d, revenue=_cents(v)) for d, v in totals.items()]
