"""
Monthly invoice consolidation

Merges a client's recurring subscription items and the month's un-invoiced
one-off services into a single invoice. At most one invoice exists per client
per billing month; the (user_id, billing_month) unique constraint decides
races, the lookup beforehand only saves work.
"""

import calendar
import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import INVOICE_DUE_DAYS
from ...email_service import InvoiceEmailPayload, send_invoice_email
from ...models_invoice import Invoice, PendingService, ServiceSubscription
from .repository import BillingRepository

logger = logging.getLogger(__name__)

Notifier = Callable[[InvoiceEmailPayload], Awaitable[Any]]


class InvoiceErrorCode(str, Enum):
    INVALID_BILLING_PERIOD = "INVALID_BILLING_PERIOD"
    ALREADY_GENERATED = "ALREADY_GENERATED"
    NO_ACTIVE_SUBSCRIPTION = "NO_ACTIVE_SUBSCRIPTION"
    STORAGE_FAILURE = "STORAGE_FAILURE"


@dataclass
class GenerateInvoiceResult:
    success: bool
    invoice: Optional[Invoice] = None
    error: Optional[str] = None
    error_code: Optional[InvoiceErrorCode] = None
    # Set when the invoice was stored but the email could not be sent
    notification_error: Optional[str] = None

    @classmethod
    def failure(cls, code: InvoiceErrorCode, message: str) -> "GenerateInvoiceResult":
        return cls(success=False, error=message, error_code=code)


@dataclass
class InvoicePreviewResult:
    success: bool
    preview: Optional[dict] = None
    error: Optional[str] = None
    error_code: Optional[InvoiceErrorCode] = None


@dataclass
class DueInvoicesResult:
    generated: int = 0
    errors: list[str] = field(default_factory=list)


class _ConsumedServicesChanged(Exception):
    """Pending services were flagged by someone else mid-transaction"""


def utc_now() -> datetime:
    """Current time as naive UTC, the form the invoice columns store"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def billing_month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def format_month_year(year: int, month: int) -> str:
    """e.g. "March 2025" """
    return f"{calendar.month_name[month]} {year}"


def invoice_number_for(user_id: int, year: int, month: int) -> str:
    return f"INV-{year:04d}{month:02d}-{user_id:04d}"


def _line_item(item: dict) -> dict:
    """Snapshot a stored recurring item; a missing amount is derived as on input"""
    quantity = item.get("quantity", 1)
    amount = item.get("amount")
    if amount is None:
        amount = round(float(quantity) * float(item["unit_price"]), 2)
    return {
        "description": item["description"],
        "quantity": quantity,
        "unit_price": item["unit_price"],
        "amount": amount,
    }


def _pending_line_item(service: PendingService) -> dict:
    return {
        "description": service.description,
        "quantity": service.quantity,
        "unit_price": service.unit_price,
        "amount": service.amount,
    }


class InvoiceGenerationService:
    """Generates consolidated monthly invoices"""

    def __init__(
        self,
        db: Session,
        notifier: Optional[Notifier] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.repo = BillingRepository()
        self.notifier = notifier or send_invoice_email
        self.clock = clock or utc_now

    def _check_period(self, year: int, month: int) -> Optional[GenerateInvoiceResult]:
        if not 1 <= month <= 12 or not 1 <= year <= 9999:
            return GenerateInvoiceResult.failure(
                InvoiceErrorCode.INVALID_BILLING_PERIOD,
                f"Invalid billing period: {year}-{month}",
            )
        return None

    def _gather(
        self, user_id: int, year: int, month: int
    ) -> tuple[Optional[GenerateInvoiceResult], Optional[ServiceSubscription], list[PendingService]]:
        """Shared read-only steps: period check, duplicate check, subscription and pending lookup"""
        invalid = self._check_period(year, month)
        if invalid:
            return invalid, None, []

        billing_month = billing_month_key(year, month)
        if self.repo.get_invoice_for_month(self.db, user_id, billing_month):
            return (
                GenerateInvoiceResult.failure(
                    InvoiceErrorCode.ALREADY_GENERATED,
                    f"Invoice already exists for {billing_month}",
                ),
                None,
                [],
            )

        subscription = self.repo.get_active_subscription(self.db, user_id)
        if not subscription:
            return (
                GenerateInvoiceResult.failure(
                    InvoiceErrorCode.NO_ACTIVE_SUBSCRIPTION,
                    "No active service subscription found for this client",
                ),
                None,
                [],
            )

        pending = self.repo.list_uninvoiced_services(self.db, user_id, billing_month)
        return None, subscription, pending

    async def generate_monthly_invoice(self, user_id: int, year: int, month: int) -> GenerateInvoiceResult:
        """
        Generate the invoice for one client and month.

        The insert, the pending-service flags and the subscription's
        last_invoice_date are committed together. The email goes out after the
        commit and its failure is reported, never rolled back.
        """
        failure, subscription, pending = self._gather(user_id, year, month)
        if failure:
            logger.info(f"⚠️ Invoice for user {user_id} {year}-{month:02d} not generated: {failure.error}")
            return failure

        billing_month = billing_month_key(year, month)
        line_items = [_line_item(item) for item in (subscription.recurring_services or [])]
        line_items.extend(_pending_line_item(s) for s in pending)

        subtotal = round(sum(float(item["amount"]) for item in line_items), 2)
        tax = 0.0  # No tax is charged on these services yet
        total = round(subtotal + tax, 2)

        now = self.clock()
        invoice = Invoice(
            invoice_number=invoice_number_for(user_id, year, month),
            user_id=subscription.user_id,
            user_email=subscription.user_email,
            billing_month=billing_month,
            line_items=line_items,
            subtotal=subtotal,
            tax=tax,
            total=total,
            status="sent",
            due_date=now + timedelta(days=INVOICE_DUE_DAYS),
            notes=f"Invoice for services provided in {format_month_year(year, month)}",
            service_subscription_id=subscription.id,
        )
        user_email = subscription.user_email
        pending_ids = [s.id for s in pending]

        try:
            self.repo.add_invoice(self.db, invoice)
            changed = self.repo.mark_services_invoiced(self.db, pending_ids, invoice.id)
            if changed != len(pending_ids):
                raise _ConsumedServicesChanged(f"expected {len(pending_ids)} pending services, flagged {changed}")
            subscription.last_invoice_date = now
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"⚠️ Invoice for {user_email} {billing_month} was created concurrently")
            return GenerateInvoiceResult.failure(
                InvoiceErrorCode.ALREADY_GENERATED,
                f"Invoice already exists for {billing_month}",
            )
        except (_ConsumedServicesChanged, SQLAlchemyError) as e:
            self.db.rollback()
            logger.error(f"❌ Failed to store invoice for {user_email} {billing_month}: {e}")
            return GenerateInvoiceResult.failure(
                InvoiceErrorCode.STORAGE_FAILURE,
                "Failed to store invoice; no changes were saved",
            )

        self.db.refresh(invoice)
        logger.info(
            f"✅ Generated invoice {invoice.invoice_number} for {user_email}: "
            f"{len(line_items)} line items, total ${total:,.2f}"
        )

        result = GenerateInvoiceResult(success=True, invoice=invoice)
        try:
            user = self.repo.get_user_by_id(self.db, user_id)
            await self.notifier(
                InvoiceEmailPayload(
                    to=invoice.user_email,
                    client_name=(user.full_name if user and user.full_name else invoice.user_email),
                    invoice_id=invoice.id,
                    invoice_number=invoice.invoice_number,
                    billing_period=format_month_year(year, month),
                    line_items=list(invoice.line_items),
                    subtotal=invoice.subtotal,
                    tax=invoice.tax,
                    total=invoice.total,
                    due_date=invoice.due_date.date().isoformat(),
                )
            )
            logger.info(f"📧 Invoice {invoice.invoice_number} emailed to {invoice.user_email}")
        except Exception as e:
            logger.error(f"❌ Invoice {invoice.invoice_number} stored but email failed: {e}")
            result.notification_error = str(e)

        return result

    async def generate_due_invoices(self, today: Optional[date] = None) -> DueInvoicesResult:
        """
        Generate invoices for every active subscription billed today.

        On the last day of a month, subscriptions whose billing day does not
        exist in that month are billed as well. Each client is processed
        independently; failures are collected, not raised.
        """
        today = today or self.clock().date()
        last_day = calendar.monthrange(today.year, today.month)[1]
        subscriptions = self.repo.list_due_subscriptions(
            self.db, today.day, include_overflow=today.day == last_day
        )
        targets = [(s.user_id, s.user_email) for s in subscriptions]
        logger.info(f"🔄 Generating due invoices for {today.isoformat()}: {len(targets)} subscription(s)")

        outcome = DueInvoicesResult()
        for user_id, user_email in targets:
            try:
                result = await self.generate_monthly_invoice(user_id, today.year, today.month)
            except Exception as e:
                self.db.rollback()
                outcome.errors.append(f"{user_email}: {e}")
                logger.exception(f"❌ Unexpected error generating invoice for {user_email}: {e}")
                continue
            if result.success:
                outcome.generated += 1
            else:
                outcome.errors.append(f"{user_email}: {result.error}")
                logger.error(f"❌ Failed to generate invoice for {user_email}: {result.error}")

        logger.info(f"✅ Due invoices done: {outcome.generated} generated, {len(outcome.errors)} failed")
        return outcome

    def preview_monthly_invoice(self, user_id: int, year: int, month: int) -> InvoicePreviewResult:
        """What generate_monthly_invoice would produce, without writing anything"""
        failure, subscription, pending = self._gather(user_id, year, month)
        if failure:
            return InvoicePreviewResult(success=False, error=failure.error, error_code=failure.error_code)

        line_items = [dict(_line_item(item), type="recurring") for item in (subscription.recurring_services or [])]
        line_items.extend(
            dict(_pending_line_item(s), type="one-time", service_date=s.service_date) for s in pending
        )

        subtotal = round(sum(float(item["amount"]) for item in line_items), 2)
        tax = 0.0
        recurring_total = round(subscription.monthly_recurring_total or 0, 2)

        return InvoicePreviewResult(
            success=True,
            preview={
                "billing_month": billing_month_key(year, month),
                "user_email": subscription.user_email,
                "line_items": line_items,
                "subtotal": subtotal,
                "tax": tax,
                "total": round(subtotal + tax, 2),
                "recurring_total": recurring_total,
                "one_time_total": round(subtotal - recurring_total, 2),
            },
        )
