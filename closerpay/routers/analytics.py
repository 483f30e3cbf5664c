from datetime import datetime
from fastapi import APIRouter, Depends, Query
from sqlmodel.ext.asyncio.session import AsyncSession
from typing import List, Optional
from ..db import get_session
from ..schemas import AnalyticsOverviewOut, CloserRevenueOut, ProductRevenueOut, RevenuePointOut
from ..services import analytics
from ..utils import parse_timestamp, require_service_api_key

router = APIRouter(prefix="/api/analytics", tags=["analytics"], dependencies=[Depends(require_service_api_key)])

def _date(value: Optional[str]) -> Optional[datetime]:
    # unparseable dates are ignored rather than rejected
    return parse_timestamp(value) if value else None

@router.get("/overview", response_model=AnalyticsOverviewOut)
async def analytics_overview(
    closer_id: Optional[int] = None,
    date_from: Optional[str] = Query(default=None, alias="from"),
    date_to: Optional[str] = Query(default=None, alias="to"),
    session: AsyncSession = Depends(get_session),
):
    return await analytics.overview(session, closer_id, _date(date_from), _date(date_to))

@router.get("/by-closer", response_model=List[CloserRevenueOut])
async def analytics_by_closer(
    date_from: Optional[str] = Query(default=None, alias="from"),
    date_to: Optional[str] = Query(default=None, alias="to"),
    session: AsyncSession = Depends(get_session),
):
    return await analytics.revenue_by_closer(session, _date(date_from), _date(date_to))

@router.get("/by-product", response_model=List[ProductRevenueOut])
async def analytics_by_product(
    date_from: Optional[str] = Query(default=None, alias="from"),
    date_to: Optional[str] = Query(default=None, alias="to"),
    session: AsyncSession = Depends(get_session),
):
    return await analytics.revenue_by_product(session, _date(date_from), _date(date_to))

@router.get("/revenue-over-time", response_model=List[RevenuePointOut])
async def analytics_revenue_over_time(
    days: int = Query(default=30, ge=1, le=365),
    date_from: Optional[str] = Query(default=None, alias="from"),
    date_to: Optional[str] = Query(default=None, alias="to"),
    session: AsyncSession = Depends(get_session),
):
    """Daily revenue for the last `days` days, or for the from/to range when given."""
    return await analytics.revenue_over_time(session, days, _date(date_from), _date(date_to))
