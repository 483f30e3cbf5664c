"""Whop webhook pipeline: verify, dedupe, record, handle, then notify."""
import json
import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Tuple

from sqlmodel.ext.asyncio.session import AsyncSession

from ..config import settings
from ..models import Payment, PaymentStatus, ZapierStatus
from ..schemas import PaymentEvent, RefundEvent, WebhookEventIn
from . import event_store
from .errors import InvalidSignatureError, MalformedPayloadError
from .events import normalize
from .ledger import apply_refund, record_payment
from .notifier import ZapierNotifier
from .plans import ResolvedPlan, resolve_plan
from .settings_provider import SettingsProvider
from .signature import verify_signature

logger = logging.getLogger(__name__)

HandlerOutcome = Optional[Tuple[Payment, ResolvedPlan]]


@dataclass
class DispatchResult:
    status: str  # ok, already_processed
    message_id: str
    event_type: str
    error: Optional[str] = None
    zapier_status: Optional[str] = None


class WebhookDispatcher:
    def __init__(self, session: AsyncSession, settings_provider: SettingsProvider,
                 notifier: Optional[ZapierNotifier] = None,
                 secret_headers: Iterable[str] = settings.webhook_secret_headers,
                 tolerance: int = settings.webhook_tolerance_seconds):
        self.session = session
        self.settings_provider = settings_provider
        self.notifier = notifier or ZapierNotifier()
        self.secret_headers = list(secret_headers)
        self.tolerance = tolerance

    async def dispatch(self, body: bytes, headers: Mapping[str, str]) -> DispatchResult:
        headers = {k.lower(): v for k, v in headers.items()}

        secret = await self.settings_provider.get_webhook_secret()
        if not verify_signature(body, headers, secret,
                                secret_headers=self.secret_headers, tolerance=self.tolerance):
            raise InvalidSignatureError("Invalid webhook signature")

        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            raise MalformedPayloadError("Invalid JSON body")

        event = normalize(payload, headers.get("webhook-id"))
        message_id = event.message_id

        if await event_store.is_processed(self.session, message_id):
            logger.info("[WEBHOOK] duplicate message ignored: %s", message_id)
            return DispatchResult("already_processed", message_id, event.event_type)

        await event_store.record_received(self.session, message_id, event.event_type, payload)

        try:
            outcome = await self.route(event)
        except Exception as e:
            await self.session.rollback()
            error = f"{e.__class__.__name__}: {e}"
            logger.exception("[WEBHOOK] processing failed for message %s (%s)", message_id, event.event_type)
            await event_store.mark_failed(self.session, message_id, error)
            return DispatchResult("ok", message_id, event.event_type, error=error)

        await event_store.mark_processed(self.session, message_id)
        logger.info("[WEBHOOK] processed message %s (%s)", message_id, event.event_type)

        zapier_status = None
        if outcome is not None:
            zapier_status = await self.notify(*outcome)
        return DispatchResult("ok", message_id, event.event_type, zapier_status=zapier_status)

    async def route(self, event: WebhookEventIn) -> HandlerOutcome:
        if isinstance(event, PaymentEvent):
            return await self.handle_payment(event)
        if isinstance(event, RefundEvent):
            await self.handle_refund(event)
        return None

    async def handle_payment(self, event: PaymentEvent) -> HandlerOutcome:
        if not event.payment_id:
            logger.warning("[WEBHOOK] %s without payment id (message %s)", event.event_type, event.message_id)
            return None

        resolved = await resolve_plan(self.session, event.plan_id)
        if resolved is None:
            logger.warning(
                "[WEBHOOK] no payment link for plan %s; ignoring payment %s",
                event.plan_id, event.payment_id,
            )
            return None

        payment = await record_payment(self.session, event, resolved)
        # a late success for an already refunded payment is not announced
        if event.status != PaymentStatus.SUCCEEDED.value or payment.status != PaymentStatus.SUCCEEDED.value:
            return None
        return payment, resolved

    async def handle_refund(self, event: RefundEvent) -> None:
        applied = await apply_refund(self.session, event)
        if not applied:
            logger.info("[WEBHOOK] refund for untracked payment %s ignored", event.payment_id)

    async def notify(self, payment: Payment, resolved: ResolvedPlan) -> Optional[str]:
        """Best effort: a delivery problem is recorded on the payment, never raised."""
        if payment.zapier_status == ZapierStatus.SENT.value:
            return payment.zapier_status
        try:
            url = await self.settings_provider.get_zapier_webhook_url()
            return await self.notifier.deliver(self.session, payment, resolved.plan, resolved.closer, url)
        except Exception:
            await self.session.rollback()
            logger.exception("[ZAPIER] notification crashed for payment %s", payment.id)
            return None
