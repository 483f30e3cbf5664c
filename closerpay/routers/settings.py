import re
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel.ext.asyncio.session import AsyncSession
from ..db import get_session
from ..dependencies import get_settings_provider
from ..schemas import WebhookSecretIn, ZapierSettingsIn, ZapierSettingsOut
from ..services.settings_provider import SettingsProvider, save_settings
from ..utils import require_service_api_key

router = APIRouter(prefix="/api/settings", tags=["settings"], dependencies=[Depends(require_service_api_key)])

URL_RE = re.compile(r"^https?://", re.IGNORECASE)

@router.get("/zapier", response_model=ZapierSettingsOut)
async def get_zapier_settings(settings_provider: SettingsProvider = Depends(get_settings_provider)):
    return ZapierSettingsOut(zapier_webhook_url=await settings_provider.get_zapier_webhook_url())

@router.put("/zapier", response_model=ZapierSettingsOut)
async def update_zapier_settings(payload: ZapierSettingsIn, session: AsyncSession = Depends(get_session)):
    """Empty or null clears the URL; deliveries are then recorded as skipped."""
    url = (payload.zapier_webhook_url or "").strip() or None
    if url and not URL_RE.match(url):
        raise HTTPException(status_code=400, detail="URL must start with http:// or https://")

    row = await save_settings(session, zapier_webhook_url=url)
    return ZapierSettingsOut(zapier_webhook_url=row.zapier_webhook_url)

@router.put("/webhook-secret", status_code=204)
async def update_webhook_secret(payload: WebhookSecretIn, session: AsyncSession = Depends(get_session)):
    # never echoed back
    secret = (payload.webhook_secret or "").strip() or None
    await save_settings(session, webhook_secret=secret)
