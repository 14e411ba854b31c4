"""
Subscription, Pending Service and Invoice Models for Monthly Client Billing
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class ServiceSubscription(Base):
    """Recurring services template billed to a client every month"""

    __tablename__ = "service_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    user_email = Column(String(255), nullable=False)

    # [{"description", "quantity", "unit_price", "amount"}, ...]
    recurring_services = Column(JSON, nullable=False, default=list)
    billing_day = Column(Integer, nullable=False)  # 1-31, clamped to month end
    status = Column(String(20), default="active", nullable=False)  # active, paused, cancelled
    last_invoice_date = Column(DateTime, nullable=True)
    # Cached sum of recurring_services amounts; rewritten with every change to the items
    monthly_recurring_total = Column(Float, nullable=False, default=0)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    invoices = relationship("Invoice", back_populates="subscription")

    __table_args__ = (Index("ix_service_subscriptions_billing_day_status", "billing_day", "status"),)


class PendingService(Base):
    """One-off billable work waiting for the next monthly invoice"""

    __tablename__ = "pending_services"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    user_email = Column(String(255), nullable=False)

    description = Column(String(500), nullable=False)
    quantity = Column(Float, nullable=False, default=1)
    unit_price = Column(Float, nullable=False)
    amount = Column(Float, nullable=False)  # Stored as given; not re-derived

    service_date = Column(DateTime, nullable=False)  # When the work was performed
    billing_month = Column(String(7), nullable=False)  # "YYYY-MM"
    invoiced = Column(Boolean, default=False, nullable=False, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_pending_services_user_month_invoiced", "user_id", "billing_month", "invoiced"),
    )


class Invoice(Base):
    """Consolidated monthly invoice; never modified after creation"""

    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String(50), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    user_email = Column(String(255), nullable=False)
    billing_month = Column(String(7), nullable=False, index=True)  # "YYYY-MM"

    # Snapshot of the billed items; no live reference back to pending services
    line_items = Column(JSON, nullable=False, default=list)
    subtotal = Column(Float, nullable=False)
    tax = Column(Float, nullable=False, default=0)
    total = Column(Float, nullable=False)
    currency = Column(String(10), default="USD")

    status = Column(String(50), default="sent")  # sent, paid, overdue, cancelled
    due_date = Column(DateTime, nullable=False)
    notes = Column(Text, nullable=True)
    service_subscription_id = Column(Integer, ForeignKey("service_subscriptions.id"), nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    subscription = relationship("ServiceSubscription", back_populates="invoices")

    # One invoice per client per billing month; this constraint is the authority
    __table_args__ = (UniqueConstraint("user_id", "billing_month", name="uq_invoices_user_month"),)
