"""Billing router - FastAPI endpoints for subscriptions, pending services and monthly invoices"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import User
from .invoice_service import GenerateInvoiceResult, InvoiceErrorCode, InvoiceGenerationService
from .schemas import (
    DueInvoicesResponse,
    GenerateInvoiceRequest,
    GenerateInvoiceResponse,
    InvoicePreviewResponse,
    InvoiceResponse,
    PendingServiceCreate,
    PendingServiceResponse,
    SubscriptionResponse,
    SubscriptionStatusUpdate,
    SubscriptionUpsert,
)
from .subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])


def get_subscription_service(db: Session = Depends(get_db)) -> SubscriptionService:
    """Dependency injection for SubscriptionService"""
    return SubscriptionService(db)


def get_invoice_service(db: Session = Depends(get_db)) -> InvoiceGenerationService:
    """Dependency injection for InvoiceGenerationService"""
    return InvoiceGenerationService(db)


def _raise_for_failure(code: Optional[InvoiceErrorCode], message: Optional[str]) -> None:
    status_code = 500 if code == InvoiceErrorCode.STORAGE_FAILURE else 400
    raise HTTPException(status_code=status_code, detail=message or "Invoice generation failed")


# ============================================================================
# ADMIN - SUBSCRIPTIONS
# ============================================================================


@router.get("/admin/subscriptions", response_model=list[SubscriptionResponse])
async def list_subscriptions(
    admin: User = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """All client subscriptions"""
    return service.list_subscriptions()


@router.get("/admin/subscriptions/{user_id}", response_model=SubscriptionResponse)
async def get_subscription(
    user_id: int,
    admin: User = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """One client's subscription"""
    return service.get_subscription(user_id)


@router.post("/admin/subscriptions", response_model=SubscriptionResponse)
async def upsert_subscription(
    data: SubscriptionUpsert,
    admin: User = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Create or update a client's recurring services"""
    return service.upsert_subscription(data)


@router.patch("/admin/subscriptions/{user_id}/status", response_model=SubscriptionResponse)
async def update_subscription_status(
    user_id: int,
    data: SubscriptionStatusUpdate,
    admin: User = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Activate, pause or cancel a subscription"""
    return service.update_status(user_id, data.status)


# ============================================================================
# ADMIN - PENDING SERVICES
# ============================================================================


@router.post("/admin/pending-services", response_model=PendingServiceResponse, status_code=201)
async def add_pending_service(
    data: PendingServiceCreate,
    admin: User = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Log one-off work for the client's next monthly invoice"""
    return service.add_pending_service(data)


@router.get("/admin/pending-services/{user_id}", response_model=list[PendingServiceResponse])
async def list_pending_services(
    user_id: int,
    billing_month: Optional[str] = Query(None, description="YYYY-MM"),
    admin: User = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """A client's un-invoiced one-off work"""
    return service.list_pending_services(user_id, billing_month)


# ============================================================================
# ADMIN - INVOICES
# ============================================================================


@router.get("/admin/invoice/preview/{user_id}", response_model=InvoicePreviewResponse)
async def preview_invoice(
    user_id: int,
    year: int = Query(...),
    month: int = Query(...),
    admin: User = Depends(require_admin),
    service: InvoiceGenerationService = Depends(get_invoice_service),
):
    """Preview the monthly invoice without creating it"""
    result = service.preview_monthly_invoice(user_id, year, month)
    if not result.success:
        _raise_for_failure(result.error_code, result.error)
    return result.preview


@router.post("/admin/invoice/generate", response_model=GenerateInvoiceResponse)
async def generate_invoice(
    data: GenerateInvoiceRequest,
    admin: User = Depends(require_admin),
    service: InvoiceGenerationService = Depends(get_invoice_service),
):
    """Generate one client's monthly invoice"""
    result: GenerateInvoiceResult = await service.generate_monthly_invoice(data.user_id, data.year, data.month)
    if not result.success:
        _raise_for_failure(result.error_code, result.error)
    return GenerateInvoiceResponse(
        success=True,
        invoice=InvoiceResponse.model_validate(result.invoice),
        notification_error=result.notification_error,
    )


@router.post("/admin/invoice/generate-due", response_model=DueInvoicesResponse)
async def generate_due_invoices(
    admin: User = Depends(require_admin),
    service: InvoiceGenerationService = Depends(get_invoice_service),
):
    """Run today's billing batch now"""
    result = await service.generate_due_invoices()
    return DueInvoicesResponse(generated=result.generated, errors=result.errors)


@router.get("/admin/invoices", response_model=list[InvoiceResponse])
async def list_invoices(
    user_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    billing_month: Optional[str] = Query(None, description="YYYY-MM"),
    admin: User = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """All invoices, optionally filtered"""
    return service.list_invoices(user_id=user_id, status=status, billing_month=billing_month)


@router.get("/admin/invoices/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int,
    admin: User = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """One invoice"""
    return service.get_invoice(invoice_id)


# ============================================================================
# CLIENT
# ============================================================================


@router.get("/subscription", response_model=Optional[SubscriptionResponse])
async def get_my_subscription(
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """The current client's subscription, or null"""
    return service.find_subscription(user.id)


@router.get("/pending-services", response_model=list[PendingServiceResponse])
async def get_my_pending_services(
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """The current client's un-invoiced work"""
    return service.list_pending_services(user.id)


@router.get("/invoices", response_model=list[InvoiceResponse])
async def get_my_invoices(
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """The current client's invoices"""
    return service.list_invoices(user_id=user.id)


@router.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
async def get_my_invoice(
    invoice_id: int,
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """One of the current client's invoices"""
    return service.get_invoice(invoice_id, user)
