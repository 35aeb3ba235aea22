"""Customer order routes."""

from typing import List, Optional

from fastapi import APIRouter, Query, Request, status

from restopos.core.rate_limit import limiter
from restopos.core.rbac import CurrentUser
from restopos.db.session import DbSession
from restopos.schemas.order import (
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    OrderUpdate,
    PaymentCreate,
    SalesSummaryRow,
)
from restopos.services.order_service import OrderService

router = APIRouter()


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
def create_order(request: Request, payload: OrderCreate, db: DbSession, current_user: CurrentUser):
    """Create an order; totals, tax and order number are computed server-side."""
    data = payload.model_dump(mode="json", exclude_none=True)
    return OrderService(db).create_order(data, current_user)


@router.get("", response_model=OrderListResponse)
@limiter.limit("120/minute")
def list_orders(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    order_type: Optional[str] = None,
    order_status: Optional[str] = None,
    payment_status: Optional[str] = None,
    start_date: Optional[str] = Query(None, description="ISO date or datetime, inclusive"),
    end_date: Optional[str] = Query(None, description="ISO date or datetime, inclusive"),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
):
    """List orders newest first."""
    filters = {
        "order_type": order_type,
        "order_status": order_status,
        "payment_status": payment_status,
        "start_date": start_date,
        "end_date": end_date,
        "search": search,
    }
    return OrderService(db).get_orders(filters, page=page, limit=limit)


@router.get("/sales-summary", response_model=List[SalesSummaryRow])
@limiter.limit("30/minute")
def sales_summary(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
):
    """Completed-order revenue grouped by day."""
    return OrderService(db).get_sales_summary(start_date, end_date)


@router.get("/{order_id}", response_model=OrderResponse)
@limiter.limit("120/minute")
def get_order(request: Request, order_id: int, db: DbSession, current_user: CurrentUser):
    return OrderService(db).get_order_by_id(order_id)


@router.patch("/{order_id}", response_model=OrderResponse)
@limiter.limit("60/minute")
def update_order(request: Request, order_id: int, payload: OrderUpdate, db: DbSession, current_user: CurrentUser):
    """Partially update an order. Send ``version`` to guard against lost updates."""
    data = payload.model_dump(mode="json", exclude_unset=True)
    return OrderService(db).update_order(order_id, data, current_user)


@router.patch("/{order_id}/status", response_model=OrderResponse)
@limiter.limit("60/minute")
def update_order_status(
    request: Request, order_id: int, payload: OrderStatusUpdate, db: DbSession, current_user: CurrentUser,
):
    return OrderService(db).update_order_status(order_id, payload.status, current_user, payload.notes)


@router.post("/{order_id}/payments", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
def add_payment(request: Request, order_id: int, payload: PaymentCreate, db: DbSession, current_user: CurrentUser):
    data = payload.model_dump(mode="json", exclude_none=True)
    return OrderService(db).add_payment(order_id, data, current_user)
