from fastapi import APIRouter, Depends, HTTPException
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy import func, or_
from sqlmodel import select
from typing import Optional
from ..schemas import DownPaymentStatusIn, DownPaymentStatusOut, Pagination, PaymentOut, PaymentPage
from ..db import get_session
from ..models import Closer, Payment, PaymentPlan, PlanType
from ..utils import require_service_api_key

router = APIRouter(prefix="/api", tags=["payments"], dependencies=[Depends(require_service_api_key)])

# internal helper to page through a filtered payments query
async def paginate(session: AsyncSession, q, page: int, limit: int) -> PaymentPage:
    total = (await session.exec(select(func.count()).select_from(q.subquery()))).one()
    res = await session.exec(
        q.order_by(Payment.created_at.desc(), Payment.id.desc()).offset((page - 1) * limit).limit(limit)
    )
    return PaymentPage(
        data=[PaymentOut.model_validate(p) for p in res.all()],
        pagination=Pagination(page=page, limit=limit, total=total, pages=-(-total // limit)),
    )

@router.get("/payments", response_model=PaymentPage)
async def list_payments(
    closer_id: Optional[int] = None,
    status: Optional[str] = None,
    plan_type: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    session: AsyncSession = Depends(get_session),
):
    """Ledger rows, newest first."""
    page, limit = max(1, page), min(100, max(1, limit))
    q = select(Payment)
    if closer_id is not None:
        q = q.where(Payment.closer_id == closer_id)
    if status:
        q = q.where(Payment.status == status)
    if plan_type:
        q = q.join(PaymentPlan, PaymentPlan.id == Payment.payment_link_id).where(PaymentPlan.plan_type == plan_type)
    return await paginate(session, q, page, limit)

@router.get("/payments/{payment_id}", response_model=PaymentOut)
async def get_payment(payment_id: int, session: AsyncSession = Depends(get_session)):
    payment = await session.get(Payment, payment_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    return payment

@router.get("/down-payments", response_model=PaymentPage)
async def list_down_payments(
    closer_id: Optional[int] = None,
    status: Optional[str] = None,
    dp_status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    session: AsyncSession = Depends(get_session),
):
    """Payments on down-payment links; dp_status=pending means not settled yet."""
    page, limit = max(1, page), min(100, max(1, limit))
    q = (
        select(Payment)
        .join(PaymentPlan, PaymentPlan.id == Payment.payment_link_id)
        .join(Closer, Closer.id == Payment.closer_id)
        .where(PaymentPlan.plan_type == PlanType.DOWN_PAYMENT.value)
    )
    if closer_id is not None:
        q = q.where(Payment.closer_id == closer_id)
    if status:
        q = q.where(Payment.status == status)
    if dp_status == "pending":
        q = q.where(PaymentPlan.down_payment_status.is_(None))
    elif dp_status:
        q = q.where(PaymentPlan.down_payment_status == dp_status)
    if search:
        term = f"%{search.lower()}%"
        q = q.where(or_(
            func.lower(Payment.customer_name).like(term),
            func.lower(Payment.customer_email).like(term),
            func.lower(Closer.name).like(term),
        ))
    return await paginate(session, q, page, limit)

@router.patch("/down-payments", response_model=DownPaymentStatusOut)
async def update_down_payment_status(payload: DownPaymentStatusIn, session: AsyncSession = Depends(get_session)):
    """Settle (fully_paid), cancel, or reset (null) a down-payment link."""
    plan = await session.get(PaymentPlan, payload.payment_link_id)
    if not plan or plan.plan_type != PlanType.DOWN_PAYMENT.value:
        raise HTTPException(status_code=404, detail="Down payment link not found")

    plan.down_payment_status = payload.down_payment_status
    session.add(plan)
    await session.commit()
    await session.refresh(plan)
    return DownPaymentStatusOut(id=plan.id, down_payment_status=plan.down_payment_status)
