"""Inbound webhook event log, keyed by message id."""
from typing import List, Optional

from sqlalchemy import update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..db import upsert
from ..models import WebhookEvent
from ..utils import truncate, utcnow

MAX_ERROR_LENGTH = 2000


async def get_event(session: AsyncSession, message_id: str) -> Optional[WebhookEvent]:
    res = await session.exec(select(WebhookEvent).where(WebhookEvent.whop_message_id == message_id))
    return res.one_or_none()


async def is_processed(session: AsyncSession, message_id: str) -> bool:
    event = await get_event(session, message_id)
    return event is not None and event.processed_at is not None


async def record_received(session: AsyncSession, message_id: str, event_type: str, payload: dict) -> None:
    """Insert the raw event unless a row for this message id already exists."""
    stmt = upsert(
        session,
        WebhookEvent,
        {
            "whop_message_id": message_id,
            "event_type": event_type,
            "payload": payload,
            "created_at": utcnow(),
        },
        index_elements=["whop_message_id"],
    )
    await session.exec(stmt)
    await session.commit()


async def mark_processed(session: AsyncSession, message_id: str) -> None:
    await session.exec(
        update(WebhookEvent)
        .where(WebhookEvent.whop_message_id == message_id)
        .values(processed_at=utcnow(), error=None)
    )
    await session.commit()


async def mark_failed(session: AsyncSession, message_id: str, error: str) -> None:
    """Record the failure but leave processed_at null so a redelivery retries it."""
    await session.exec(
        update(WebhookEvent)
        .where(WebhookEvent.whop_message_id == message_id)
        .values(error=truncate(error, MAX_ERROR_LENGTH))
    )
    await session.commit()


async def recent_events(session: AsyncSession, limit: int = 50) -> List[WebhookEvent]:
    res = await session.exec(
        select(WebhookEvent).order_by(WebhookEvent.created_at.desc(), WebhookEvent.id.desc()).limit(limit)
    )
    return list(res.all())
