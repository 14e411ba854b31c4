"""Billing repository - Database operations for subscriptions, pending services and invoices"""

from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from ...models import User
from ...models_invoice import Invoice, PendingService, ServiceSubscription


class BillingRepository:
    """Repository for billing database operations"""

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    @staticmethod
    def get_subscription(db: Session, user_id: int) -> Optional[ServiceSubscription]:
        return db.query(ServiceSubscription).filter(ServiceSubscription.user_id == user_id).first()

    @staticmethod
    def get_active_subscription(db: Session, user_id: int) -> Optional[ServiceSubscription]:
        return (
            db.query(ServiceSubscription)
            .filter(ServiceSubscription.user_id == user_id, ServiceSubscription.status == "active")
            .first()
        )

    @staticmethod
    def list_subscriptions(db: Session) -> list[ServiceSubscription]:
        return db.query(ServiceSubscription).order_by(ServiceSubscription.created_at.desc()).all()

    @staticmethod
    def list_due_subscriptions(db: Session, day: int, include_overflow: bool = False) -> list[ServiceSubscription]:
        """
        Active subscriptions billed on the given day of month.

        include_overflow also selects billing days past the end of the month
        (e.g. day 31 in a 30-day month), used on a month's last day.
        """
        day_filter = ServiceSubscription.billing_day == day
        if include_overflow:
            day_filter = or_(day_filter, ServiceSubscription.billing_day > day)
        return (
            db.query(ServiceSubscription)
            .filter(ServiceSubscription.status == "active", day_filter)
            .order_by(ServiceSubscription.id)
            .all()
        )

    @staticmethod
    def save_subscription(db: Session, subscription: ServiceSubscription) -> ServiceSubscription:
        db.add(subscription)
        db.commit()
        db.refresh(subscription)
        return subscription

    # ------------------------------------------------------------------
    # Pending services
    # ------------------------------------------------------------------

    @staticmethod
    def create_pending_service(db: Session, **fields) -> PendingService:
        service = PendingService(**fields)
        db.add(service)
        db.commit()
        db.refresh(service)
        return service

    @staticmethod
    def list_uninvoiced_services(
        db: Session, user_id: int, billing_month: Optional[str] = None
    ) -> list[PendingService]:
        query = db.query(PendingService).filter(
            PendingService.user_id == user_id,
            PendingService.invoiced.is_(False),
        )
        if billing_month is not None:
            query = query.filter(PendingService.billing_month == billing_month)
        return query.order_by(PendingService.service_date, PendingService.id).all()

    @staticmethod
    def mark_services_invoiced(db: Session, service_ids: list[int], invoice_id: int) -> int:
        """
        Flag exactly these services as invoiced; rows already invoiced are left alone.

        Does not commit. Returns the number of rows changed.
        """
        if not service_ids:
            return 0
        result = db.execute(
            update(PendingService)
            .where(PendingService.id.in_(service_ids), PendingService.invoiced.is_(False))
            .values(invoiced=True, invoice_id=invoice_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    @staticmethod
    def get_invoice_for_month(db: Session, user_id: int, billing_month: str) -> Optional[Invoice]:
        return (
            db.query(Invoice)
            .filter(Invoice.user_id == user_id, Invoice.billing_month == billing_month)
            .first()
        )

    @staticmethod
    def get_invoice(db: Session, invoice_id: int) -> Optional[Invoice]:
        return db.query(Invoice).filter(Invoice.id == invoice_id).first()

    @staticmethod
    def list_invoices(
        db: Session,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        billing_month: Optional[str] = None,
    ) -> list[Invoice]:
        query = db.query(Invoice)
        if user_id is not None:
            query = query.filter(Invoice.user_id == user_id)
        if status is not None:
            query = query.filter(Invoice.status == status)
        if billing_month is not None:
            query = query.filter(Invoice.billing_month == billing_month)
        return query.order_by(Invoice.billing_month.desc(), Invoice.id.desc()).all()

    @staticmethod
    def add_invoice(db: Session, invoice: Invoice) -> Invoice:
        """Insert without committing so the caller controls the transaction"""
        db.add(invoice)
        db.flush()
        return invoice
