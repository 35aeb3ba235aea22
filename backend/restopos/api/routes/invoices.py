"""Invoice routes."""

from typing import Optional

from fastapi import APIRouter, Query, Request, status

from restopos.core.rate_limit import limiter
from restopos.core.rbac import CurrentUser
from restopos.db.session import DbSession
from restopos.schemas.invoice import (
    InvoiceCreate,
    InvoiceEmailRequest,
    InvoiceListResponse,
    InvoiceResponse,
)
from restopos.services.invoice_service import InvoiceService

router = APIRouter()


@router.post("", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_invoice(request: Request, payload: InvoiceCreate, db: DbSession, current_user: CurrentUser):
    """Issue the invoice for an order. Each order can be invoiced once."""
    return InvoiceService(db).create_invoice(payload.order_id, current_user)


@router.get("", response_model=InvoiceListResponse)
@limiter.limit("120/minute")
def list_invoices(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    order_id: Optional[int] = None,
    invoice_status: Optional[str] = Query(None, alias="status"),
    is_paid: Optional[str] = Query(None, description="true or false"),
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
):
    filters = {
        "order_id": order_id,
        "status": invoice_status,
        "is_paid": is_paid,
        "start_date": start_date,
        "end_date": end_date,
        "search": search,
    }
    return InvoiceService(db).get_invoices(filters, page=page, limit=limit)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
@limiter.limit("120/minute")
def get_invoice(request: Request, invoice_id: int, db: DbSession, current_user: CurrentUser):
    return InvoiceService(db).get_invoice_by_id(invoice_id)


@router.post("/{invoice_id}/print", response_model=InvoiceResponse)
@limiter.limit("60/minute")
def print_invoice(request: Request, invoice_id: int, db: DbSession, current_user: CurrentUser):
    return InvoiceService(db).mark_invoice_as_printed(invoice_id, current_user)


@router.post("/{invoice_id}/email", response_model=InvoiceResponse)
@limiter.limit("30/minute")
def email_invoice(
    request: Request, invoice_id: int, payload: InvoiceEmailRequest, db: DbSession, current_user: CurrentUser,
):
    """Record that the invoice was emailed; delivery itself happens elsewhere."""
    return InvoiceService(db).mark_invoice_as_emailed(invoice_id, payload.email, current_user)


@router.post("/{invoice_id}/pay", response_model=InvoiceResponse)
@limiter.limit("60/minute")
def pay_invoice(request: Request, invoice_id: int, db: DbSession, current_user: CurrentUser):
    return InvoiceService(db).mark_invoice_as_paid(invoice_id, current_user)
