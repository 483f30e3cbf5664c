from decimal import Decimal
from enum import Enum
from typing import Optional
from datetime import datetime
from sqlalchemy import JSON, Column, Numeric, Text
from sqlmodel import SQLModel, Field
from .utils import utcnow


class CommissionType(str, Enum):
    PERCENTAGE = "percentage"
    FLAT = "flat"


class PlanType(str, Enum):
    ONE_TIME = "one_time"
    RENEWAL = "renewal"
    SPLIT_PAY = "split_pay"
    CUSTOM_SPLIT = "custom_split"
    DOWN_PAYMENT = "down_payment"


class PaymentStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PENDING = "pending"
    REFUNDED = "refunded"


class ZapierStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


# plan kinds whose outbound summary carries the full amount to be collected
MULTI_PAYMENT_PLAN_TYPES = (
    PlanType.DOWN_PAYMENT.value,
    PlanType.SPLIT_PAY.value,
    PlanType.CUSTOM_SPLIT.value,
)


class Closer(SQLModel, table=True):
    __tablename__ = "closers"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: Optional[str] = Field(default=None, index=True)
    commission_type: str = CommissionType.PERCENTAGE.value  # percentage, flat
    commission_value: float = 0.0
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class PaymentPlan(SQLModel, table=True):
    """A checkout link a closer generated; correlated to Whop by whop_plan_id."""
    __tablename__ = "payment_links"

    id: Optional[int] = Field(default=None, primary_key=True)
    closer_id: int = Field(foreign_key="closers.id", index=True)
    whop_plan_id: str = Field(unique=True, index=True)
    whop_product_id: Optional[str] = None
    product_name: str = "Unknown Product"
    client_name: Optional[str] = None
    purchase_url: Optional[str] = None
    plan_type: str = PlanType.ONE_TIME.value
    total_amount: Decimal = Field(default=Decimal("0"), sa_column=Column(Numeric(12, 2), nullable=False))
    initial_price: Decimal = Field(default=Decimal("0"), sa_column=Column(Numeric(12, 2), nullable=False))
    renewal_price: Optional[Decimal] = Field(default=None, sa_column=Column(Numeric(12, 2)))
    billing_period_days: Optional[int] = None
    split_payments: Optional[int] = None  # null for open-ended renewals
    status: str = Field(default="active", index=True)  # active, expired, completed
    down_payment_status: Optional[str] = None  # null (pending), fully_paid, cancelled
    created_at: datetime = Field(default_factory=utcnow)


class Payment(SQLModel, table=True):
    __tablename__ = "payments"

    id: Optional[int] = Field(default=None, primary_key=True)
    whop_payment_id: str = Field(unique=True, index=True)
    closer_id: int = Field(foreign_key="closers.id", index=True)
    payment_link_id: Optional[int] = Field(default=None, foreign_key="payment_links.id", index=True)
    whop_plan_id: Optional[str] = None
    whop_product_id: Optional[str] = None
    product_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    customer_id: Optional[str] = None
    membership_id: Optional[str] = None
    amount: Decimal = Field(default=Decimal("0"), sa_column=Column(Numeric(12, 2), nullable=False))
    currency: str = "usd"
    status: str = Field(default=PaymentStatus.PENDING.value, index=True)  # succeeded, failed, pending, refunded
    paid_at: Optional[datetime] = Field(default=None, index=True)
    installment_number: Optional[int] = None
    is_recurring: bool = False
    commission_amount: Optional[Decimal] = Field(default=None, sa_column=Column(Numeric(12, 2)))
    refund_amount: Optional[Decimal] = Field(default=None, sa_column=Column(Numeric(12, 2)))
    refunded_at: Optional[datetime] = None
    whop_webhook_data: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    zapier_status: Optional[str] = None  # sent, failed, skipped
    zapier_error: Optional[str] = Field(default=None, sa_column=Column(Text))
    zapier_sent_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WebhookEvent(SQLModel, table=True):
    __tablename__ = "webhook_events"

    id: Optional[int] = Field(default=None, primary_key=True)
    whop_message_id: str = Field(unique=True, index=True)
    event_type: str = "unknown"
    payload: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    processed_at: Optional[datetime] = None
    error: Optional[str] = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(default_factory=utcnow, index=True)


class AppSettings(SQLModel, table=True):
    __tablename__ = "app_settings"

    id: str = Field(default="default", primary_key=True)
    webhook_secret: Optional[str] = None
    zapier_webhook_url: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)
