import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy import func
from sqlmodel import select
from ..db import get_session
from ..dependencies import get_notifier, get_settings_provider
from ..models import Payment, PaymentStatus, ZapierStatus
from ..schemas import WebhookAck, WebhookEventOut, WebhookStatusOut, ZapierDeliveryOut, ZapierRetryIn, ZapierRetryOut
from ..services import event_store
from ..services.dispatcher import WebhookDispatcher
from ..services.errors import WebhookError
from ..services.notifier import ZapierNotifier
from ..services.settings_provider import SettingsProvider
from ..utils import require_service_api_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])

# Webhook (Whop -> POST)
@router.post("/whop", response_model=WebhookAck, response_model_exclude_none=True)
async def whop_webhook(
    request: Request,
    session: AsyncSession = Depends(get_session),
    settings_provider: SettingsProvider = Depends(get_settings_provider),
    notifier: ZapierNotifier = Depends(get_notifier),
):
    """
    Whop payment notifications. Always acknowledged once authenticated and
    parseable; processing errors are kept on the webhook event log instead.
    """
    raw = await request.body()
    dispatcher = WebhookDispatcher(session, settings_provider, notifier)
    try:
        result = await dispatcher.dispatch(raw, request.headers)
    except WebhookError as e:
        logger.warning("[WEBHOOK] rejected request (%s): %s", e.status_code, e)
        return JSONResponse(status_code=e.status_code, content={"status": "error", "message": str(e)})

    return WebhookAck(status=result.status)

@router.get("/status", response_model=WebhookStatusOut, dependencies=[Depends(require_service_api_key)])
async def webhook_status(session: AsyncSession = Depends(get_session)):
    """Recent inbound events and Zapier deliveries, for diagnosing gaps."""
    events = await event_store.recent_events(session, limit=50)

    q = (
        select(Payment)
        .where(Payment.status == PaymentStatus.SUCCEEDED.value, Payment.zapier_status.is_not(None))
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .limit(50)
    )
    deliveries = (await session.exec(q)).all()

    q = select(func.count(Payment.id)).where(
        Payment.status == PaymentStatus.SUCCEEDED.value, Payment.zapier_status.is_(None)
    )
    missing = (await session.exec(q)).one()

    return WebhookStatusOut(
        recent_events=[WebhookEventOut.model_validate(e) for e in events],
        zapier_deliveries=[ZapierDeliveryOut.model_validate(p) for p in deliveries],
        missing_zapier_count=missing,
    )

@router.post("/zapier-retry", response_model=ZapierRetryOut, dependencies=[Depends(require_service_api_key)])
async def zapier_retry(
    payload: ZapierRetryIn,
    session: AsyncSession = Depends(get_session),
    settings_provider: SettingsProvider = Depends(get_settings_provider),
    notifier: ZapierNotifier = Depends(get_notifier),
):
    """Re-send the automation webhook for one payment."""
    url = await settings_provider.get_zapier_webhook_url()
    if not url:
        raise HTTPException(status_code=400, detail="No Zapier webhook URL configured")

    status = await notifier.retry(session, payload.payment_id, url)
    if status is None:
        raise HTTPException(status_code=404, detail="Payment not found")

    payment = await session.get(Payment, payload.payment_id, populate_existing=True)
    if status != ZapierStatus.SENT.value:
        raise HTTPException(status_code=502, detail=payment.zapier_error or "Zapier delivery failed")
    return ZapierRetryOut(payment_id=payment.id, status=status, error=payment.zapier_error)
