"""
Shared fixtures.

- File-backed sqlite+aiosqlite database per test (real per-session connections,
  so ON CONFLICT upserts and commits behave like they do on PostgreSQL).
- FastAPI app driven through httpx.AsyncClient + ASGITransport, with the
  session, settings provider and notifier dependencies overridden.
- httpx.AsyncClient inside the notifier replaced by a recording double.
"""
import json
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from closerpay.config import settings
from closerpay.db import get_session, init_db
from closerpay.dependencies import get_notifier, get_settings_provider
from closerpay.main import app
from closerpay.models import Closer, PaymentPlan
from closerpay.services.notifier import ZapierNotifier
from closerpay.services.settings_provider import StaticSettingsProvider
from closerpay.services.signature import compute_signature

WEBHOOK_SECRET = "test-webhook-secret"
ZAPIER_URL = "https://hooks.zapier.test/catch/1"
ADMIN_HEADERS = {"X-API-KEY": settings.service_api_key}


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'closerpay-test.db'}", future=True)
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def db(engine):
    """Session factory; use `async with db() as s:` for short-lived sessions."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(db):
    async with db() as s:
        yield s


@pytest.fixture
def settings_provider():
    return StaticSettingsProvider(webhook_secret=WEBHOOK_SECRET, zapier_webhook_url=None)


class _DummyAsyncClient:
    """httpx.AsyncClient double that replays queued outcomes."""

    def __init__(self, recorder: "ZapierRecorder") -> None:
        self._recorder = recorder

    async def __aenter__(self) -> "_DummyAsyncClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False

    async def post(self, url: str, json=None, **kwargs) -> httpx.Response:
        self._recorder.calls.append({"url": url, "json": json})
        outcome = self._recorder.outcomes.pop(0) if self._recorder.outcomes else httpx.Response(200)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class ZapierRecorder:
    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.outcomes: List[Any] = []

    def queue(self, *outcomes) -> None:
        self.outcomes.extend(outcomes)


@pytest.fixture
def zapier(monkeypatch):
    recorder = ZapierRecorder()

    def _factory(*args, **kwargs):
        return _DummyAsyncClient(recorder)

    monkeypatch.setattr("closerpay.services.notifier.httpx.AsyncClient", _factory)
    return recorder


@pytest.fixture
async def client(db, settings_provider, zapier):
    async def _session_override():
        async with db() as s:
            yield s

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_settings_provider] = lambda: settings_provider
    app.dependency_overrides[get_notifier] = lambda: ZapierNotifier(timeout=1.0, max_attempts=2)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
async def closer(db):
    async with db() as s:
        row = Closer(name="Jane Van Doe", email="jane@example.com", commission_type="percentage", commission_value=15)
        s.add(row)
        await s.commit()
        await s.refresh(row)
        return row


async def make_plan(db, closer: Closer, whop_plan_id: str, plan_type: str = "split_pay", **kwargs) -> PaymentPlan:
    values = {
        "closer_id": closer.id,
        "whop_plan_id": whop_plan_id,
        "whop_product_id": "prod_1",
        "product_name": "Coaching Program",
        "plan_type": plan_type,
        "total_amount": Decimal("600.00"),
        "initial_price": Decimal("200.00"),
        "renewal_price": Decimal("200.00"),
        "billing_period_days": 30,
        "split_payments": 3,
    }
    values.update(kwargs)
    async with db() as s:
        plan = PaymentPlan(**values)
        s.add(plan)
        await s.commit()
        await s.refresh(plan)
        return plan


@pytest.fixture
async def plan(db, closer):
    return await make_plan(db, closer, "plan_split")


def payment_payload(payment_id: str = "pay_1", plan_id: str = "plan_split", event_type: str = "payment.succeeded",
                    amount: str = "200.00", **data) -> Dict[str, Any]:
    body = {
        "id": payment_id,
        "plan": {"id": plan_id},
        "product": {"id": "prod_1", "title": "Coaching Program"},
        "user": {"id": "user_1", "name": "Client Person", "email": "client@example.com"},
        "membership": {"id": "mem_1", "email": "client@example.com"},
        "total": amount,
        "currency": "usd",
        "paid_at": 1700000000,
    }
    body.update(data)
    return {"type": event_type, "data": body}


def signed_headers(body: bytes, msg_id: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> Dict[str, str]:
    ts = str(int(time.time()) if timestamp is None else timestamp)
    return {
        "webhook-id": msg_id,
        "webhook-timestamp": ts,
        "webhook-signature": f"v1,{compute_signature(secret, msg_id, ts, body)}",
        "content-type": "application/json",
    }


async def send_webhook(client: AsyncClient, payload: Dict[str, Any], msg_id: str) -> httpx.Response:
    body = json.dumps(payload).encode()
    return await client.post("/api/webhooks/whop", content=body, headers=signed_headers(body, msg_id))
