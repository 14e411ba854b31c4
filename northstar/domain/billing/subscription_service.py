"""Subscription service - Business logic for recurring services, one-off work and invoice lookup"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import User
from ...models_invoice import Invoice, PendingService, ServiceSubscription
from .repository import BillingRepository
from .schemas import (
    INVOICE_STATUSES,
    PendingServiceCreate,
    SubscriptionUpsert,
    validate_billing_month,
)

logger = logging.getLogger(__name__)


def recurring_total(items: list[dict]) -> float:
    return round(sum(float(item.get("amount", 0)) for item in items), 2)


class SubscriptionService:
    """Service for client subscription and pending service management"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BillingRepository()

    def _get_client(self, user_id: int) -> User:
        user = self.repo.get_user_by_id(self.db, user_id)
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        return user

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def list_subscriptions(self) -> list[ServiceSubscription]:
        return self.repo.list_subscriptions(self.db)

    def find_subscription(self, user_id: int) -> Optional[ServiceSubscription]:
        return self.repo.get_subscription(self.db, user_id)

    def get_subscription(self, user_id: int) -> ServiceSubscription:
        subscription = self.find_subscription(user_id)
        if not subscription:
            raise HTTPException(status_code=404, detail="No subscription found for this client")
        return subscription

    def upsert_subscription(self, data: SubscriptionUpsert) -> ServiceSubscription:
        """Create or replace a client's subscription; the cached monthly total is recomputed"""
        user = self._get_client(data.user_id)
        items = [item.model_dump() for item in data.recurring_services]

        subscription = self.repo.get_subscription(self.db, data.user_id)
        if subscription is None:
            subscription = ServiceSubscription(user_id=user.id)
            logger.info(f"📥 Creating subscription for {user.email}")
        else:
            logger.info(f"🔄 Updating subscription for {user.email}")

        subscription.user_email = user.email
        subscription.recurring_services = items
        subscription.monthly_recurring_total = recurring_total(items)
        subscription.billing_day = data.billing_day
        subscription.status = data.status
        subscription.notes = data.notes
        return self.repo.save_subscription(self.db, subscription)

    def update_status(self, user_id: int, status: str) -> ServiceSubscription:
        subscription = self.get_subscription(user_id)
        subscription.status = status
        subscription = self.repo.save_subscription(self.db, subscription)
        logger.info(f"✅ Subscription for {subscription.user_email} is now {status}")
        return subscription

    # ------------------------------------------------------------------
    # Pending services
    # ------------------------------------------------------------------

    def add_pending_service(self, data: PendingServiceCreate) -> PendingService:
        user = self._get_client(data.user_id)
        service = self.repo.create_pending_service(
            self.db,
            user_id=user.id,
            user_email=user.email,
            description=data.description,
            quantity=data.quantity,
            unit_price=data.unit_price,
            amount=data.amount,
            service_date=data.service_date,
            billing_month=data.billing_month,
            invoiced=False,
            notes=data.notes,
        )
        logger.info(f"✅ Logged pending service {service.id} for {user.email} ({data.billing_month}, ${data.amount:,.2f})")
        return service

    def list_pending_services(self, user_id: int, billing_month: Optional[str] = None) -> list[PendingService]:
        if billing_month is not None:
            try:
                validate_billing_month(billing_month)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e)) from None
        return self.repo.list_uninvoiced_services(self.db, user_id, billing_month)

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def list_invoices(
        self,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        billing_month: Optional[str] = None,
    ) -> list[Invoice]:
        if status is not None and status not in INVOICE_STATUSES:
            raise HTTPException(
                status_code=400, detail=f"Invalid status. Must be one of: {', '.join(INVOICE_STATUSES)}"
            )
        if billing_month is not None:
            try:
                validate_billing_month(billing_month)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e)) from None
        return self.repo.list_invoices(self.db, user_id=user_id, status=status, billing_month=billing_month)

    def get_invoice(self, invoice_id: int, user: Optional[User] = None) -> Invoice:
        """Fetch one invoice; when a client is given it must be theirs"""
        invoice = self.repo.get_invoice(self.db, invoice_id)
        if not invoice or (user is not None and invoice.user_id != user.id):
            raise HTTPException(status_code=404, detail="Invoice not found")
        return invoice
