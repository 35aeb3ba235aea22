"""API routes."""

from fastapi import APIRouter

from restopos.api.routes import orders, kots, invoices

api_router = APIRouter()

api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(kots.router, prefix="/kots", tags=["kots", "kitchen"])
api_router.include_router(invoices.router, prefix="/invoices", tags=["invoices"])
