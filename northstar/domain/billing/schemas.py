"""Billing domain schemas - Pydantic models for validation"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

SUBSCRIPTION_STATUSES = ("active", "paused", "cancelled")
INVOICE_STATUSES = ("sent", "paid", "overdue", "cancelled")

_BILLING_MONTH = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def validate_billing_month(value: str) -> str:
    if not _BILLING_MONTH.match(value):
        raise ValueError("billing_month must be in YYYY-MM format")
    return value


class ServiceLineItem(BaseModel):
    """One billable line; amount is kept as given and only derived when omitted"""

    description: str
    quantity: float = 1
    unit_price: float
    amount: Optional[float] = None

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("description is required")
        return v.strip()

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("quantity must be greater than 0")
        return v

    @model_validator(mode="after")
    def default_amount(self) -> "ServiceLineItem":
        if self.amount is None:
            self.amount = round(self.quantity * self.unit_price, 2)
        return self


# ============================================================================
# SUBSCRIPTIONS
# ============================================================================


class SubscriptionUpsert(BaseModel):
    """Create or replace a client's recurring services"""

    user_id: int
    recurring_services: list[ServiceLineItem]
    billing_day: int
    status: str = "active"
    notes: Optional[str] = None

    @field_validator("billing_day")
    @classmethod
    def validate_billing_day(cls, v: int) -> int:
        if v < 1 or v > 31:
            raise ValueError("billing_day must be between 1 and 31")
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in SUBSCRIPTION_STATUSES:
            raise ValueError(f"status must be one of: {', '.join(SUBSCRIPTION_STATUSES)}")
        return v


class SubscriptionStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in SUBSCRIPTION_STATUSES:
            raise ValueError(f"status must be one of: {', '.join(SUBSCRIPTION_STATUSES)}")
        return v


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    user_email: str
    recurring_services: list[dict]
    billing_day: int
    status: str
    last_invoice_date: Optional[datetime] = None
    monthly_recurring_total: float
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ============================================================================
# PENDING SERVICES
# ============================================================================


class PendingServiceCreate(BaseModel):
    """One-off work to be billed on the next monthly invoice"""

    user_id: int
    description: str
    quantity: float = 1
    unit_price: float
    amount: Optional[float] = None
    service_date: datetime
    billing_month: str  # "YYYY-MM"
    notes: Optional[str] = None

    @field_validator("billing_month")
    @classmethod
    def validate_month(cls, v: str) -> str:
        return validate_billing_month(v)

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("quantity must be greater than 0")
        return v

    @model_validator(mode="after")
    def default_amount(self) -> "PendingServiceCreate":
        if self.amount is None:
            self.amount = round(self.quantity * self.unit_price, 2)
        return self


class PendingServiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    user_email: str
    description: str
    quantity: float
    unit_price: float
    amount: float
    service_date: datetime
    billing_month: str
    invoiced: bool
    invoice_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


# ============================================================================
# INVOICES
# ============================================================================


class GenerateInvoiceRequest(BaseModel):
    user_id: int
    year: int
    month: int


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_number: str
    user_id: int
    user_email: str
    billing_month: str
    line_items: list[dict]
    subtotal: float
    tax: float
    total: float
    currency: Optional[str] = "USD"
    status: str
    due_date: datetime
    notes: Optional[str] = None
    service_subscription_id: Optional[int] = None
    created_at: Optional[datetime] = None


class GenerateInvoiceResponse(BaseModel):
    success: bool
    invoice: Optional[InvoiceResponse] = None
    notification_error: Optional[str] = None


class PreviewLineItem(BaseModel):
    description: str
    quantity: float
    unit_price: float
    amount: float
    type: str  # "recurring" or "one-time"
    service_date: Optional[datetime] = None


class InvoicePreviewResponse(BaseModel):
    billing_month: str
    user_email: str
    line_items: list[PreviewLineItem]
    subtotal: float
    tax: float
    total: float
    recurring_total: float
    one_time_total: float


class DueInvoicesResponse(BaseModel):
    generated: int
    errors: list[str]
