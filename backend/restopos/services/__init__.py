# Services module

from restopos.services.pricing import (
    round2,
    calculate_taxes,
    calculate_item_total,
    calculate_order_totals,
    OrderTotals,
    TaxCalculation,
    TaxLine,
)
from restopos.services.numbering import SequenceGenerator
from restopos.services.order_service import OrderService, ORDER_TRANSITIONS
from restopos.services.kot_service import KOTService
from restopos.services.invoice_service import InvoiceService, generate_item_name

__all__ = [
    "round2",
    "calculate_taxes",
    "calculate_item_total",
    "calculate_order_totals",
    "OrderTotals",
    "TaxCalculation",
    "TaxLine",
    "SequenceGenerator",
    "OrderService",
    "ORDER_TRANSITIONS",
    "KOTService",
    "InvoiceService",
    "generate_item_name",
]
