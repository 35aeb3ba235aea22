"""Kitchen order ticket routes."""

from typing import List, Optional

from fastapi import APIRouter, Query, Request, status

from restopos.core.rate_limit import limiter
from restopos.core.rbac import CurrentUser
from restopos.db.session import DbSession
from restopos.schemas.kot import KOTCreate, KOTPrintRequest, KOTResponse, KOTStatusUpdate
from restopos.services.kot_service import KOTService

router = APIRouter()


@router.post("", response_model=KOTResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
def create_kot(request: Request, payload: KOTCreate, db: DbSession, current_user: CurrentUser):
    """Send order items to a kitchen station.

    Item ids that could not be flagged as sent are listed in ``warnings``;
    the ticket itself is still created.
    """
    data = payload.model_dump(mode="json", exclude_none=True)
    return KOTService(db).create_kot(data, current_user)


@router.get("", response_model=List[KOTResponse])
@limiter.limit("120/minute")
def list_kots(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    order_id: Optional[int] = None,
    kot_status: Optional[List[str]] = Query(None, description="Repeat to match several statuses"),
    station: Optional[str] = None,
    order_type: Optional[str] = None,
):
    filters = {
        "order_id": order_id,
        "kot_status": kot_status,
        "station": station,
        "order_type": order_type,
    }
    return KOTService(db).get_kots(filters)


@router.get("/{kot_id}", response_model=KOTResponse)
@limiter.limit("120/minute")
def get_kot(request: Request, kot_id: int, db: DbSession, current_user: CurrentUser):
    return KOTService(db).get_kot_by_id(kot_id)


@router.patch("/{kot_id}/status", response_model=KOTResponse)
@limiter.limit("120/minute")
def update_kot_status(
    request: Request, kot_id: int, payload: KOTStatusUpdate, db: DbSession, current_user: CurrentUser,
):
    return KOTService(db).update_kot_status(kot_id, payload.status, current_user, payload.notes)


@router.post("/{kot_id}/print", response_model=KOTResponse)
@limiter.limit("60/minute")
def print_kot(
    request: Request,
    kot_id: int,
    db: DbSession,
    current_user: CurrentUser,
    payload: Optional[KOTPrintRequest] = None,
):
    printer = payload.printer if payload else "default"
    return KOTService(db).mark_kot_as_printed(kot_id, current_user, printer)
