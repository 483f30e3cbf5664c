from datetime import date, datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Literal, Optional, Union


# --- inbound webhook events (canonical form built by services.events) ---

class InboundEvent(BaseModel):
    message_id: str
    event_type: str  # canonical dotted name, e.g. payment.succeeded
    payload: dict = Field(default_factory=dict)  # full request document
    data: dict = Field(default_factory=dict)  # the event's data object

class PaymentEvent(InboundEvent):
    kind: Literal["payment"] = "payment"
    status: str  # succeeded, failed, pending
    payment_id: Optional[str] = None
    plan_id: Optional[str] = None
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    membership_id: Optional[str] = None
    amount: Decimal = Decimal("0")
    currency: str = "usd"
    paid_at: Optional[datetime] = None

class RefundEvent(InboundEvent):
    kind: Literal["refund"] = "refund"
    payment_id: Optional[str] = None
    amount: Decimal = Decimal("0")
    refunded_at: Optional[datetime] = None

class UnhandledEvent(InboundEvent):
    kind: Literal["unhandled"] = "unhandled"

WebhookEventIn = Union[PaymentEvent, RefundEvent, UnhandledEvent]


# --- webhook responses ---

class WebhookAck(BaseModel):
    status: str  # ok, already_processed, error
    message: Optional[str] = None


# --- admin surface ---

class ZapierRetryIn(BaseModel):
    payment_id: int

class ZapierRetryOut(BaseModel):
    payment_id: int
    status: str
    error: Optional[str] = None

class WebhookEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    whop_message_id: str
    event_type: str
    processed_at: Optional[datetime] = None
    error: Optional[str] = None
    created_at: datetime

class ZapierDeliveryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    whop_payment_id: str
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    product_name: Optional[str] = None
    amount: Decimal
    zapier_status: Optional[str] = None
    zapier_error: Optional[str] = None
    zapier_sent_at: Optional[datetime] = None
    created_at: datetime

class WebhookStatusOut(BaseModel):
    recent_events: List[WebhookEventOut]
    zapier_deliveries: List[ZapierDeliveryOut]
    missing_zapier_count: int

class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    whop_payment_id: str
    closer_id: int
    payment_link_id: Optional[int] = None
    whop_plan_id: Optional[str] = None
    product_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    amount: Decimal
    currency: str
    status: str
    paid_at: Optional[datetime] = None
    installment_number: Optional[int] = None
    is_recurring: bool
    commission_amount: Optional[Decimal] = None
    refund_amount: Optional[Decimal] = None
    refunded_at: Optional[datetime] = None
    zapier_status: Optional[str] = None
    zapier_error: Optional[str] = None
    zapier_sent_at: Optional[datetime] = None
    created_at: datetime

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

class PaymentPage(BaseModel):
    data: List[PaymentOut]
    pagination: Pagination

class DownPaymentStatusIn(BaseModel):
    payment_link_id: int
    down_payment_status: Optional[Literal["fully_paid", "cancelled"]] = None  # null resets to pending

class DownPaymentStatusOut(BaseModel):
    id: int
    down_payment_status: Optional[str] = None

class ZapierSettingsIn(BaseModel):
    zapier_webhook_url: Optional[str] = None

class ZapierSettingsOut(BaseModel):
    zapier_webhook_url: Optional[str] = None

class WebhookSecretIn(BaseModel):
    webhook_secret: Optional[str] = None

class AnalyticsOverviewOut(BaseModel):
    total_revenue: Decimal
    total_commission: Decimal
    total_sales: int
    average_deal_size: Decimal
    revenue_change: float
    sales_change: float

class CloserRevenueOut(BaseModel):
    closer_id: int
    closer_name: str
    revenue: Decimal
    sales: int
    commission: Decimal

class ProductRevenueOut(BaseModel):
    product_id: str
    product_name: str
    revenue: Decimal
    sales: int

class RevenuePointOut(BaseModel):
    date: date
    revenue: Decimal
