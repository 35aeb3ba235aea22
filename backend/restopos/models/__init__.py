"""SQLAlchemy models."""

from restopos.models.user import User
from restopos.models.restaurant import Table, Dish, Variant
from restopos.models.order import (
    Order,
    OrderItem,
    OrderTax,
    OrderPayment,
    OrderStatusEntry,
    OrderType,
    OrderStatus,
    PaymentStatus,
    PaymentMethod,
    ItemStatus,
    DiscountType,
    CustomerType,
    ThirdPartyProvider,
)
from restopos.models.kot import (
    KOT,
    KOTItem,
    KOTStatusEntry,
    KOTStatus,
    KOTStation,
    KOTPriority,
)
from restopos.models.invoice import Invoice, InvoiceStatus
from restopos.models.sequence import SequenceCounter

__all__ = [
    "User",
    "Table",
    "Dish",
    "Variant",
    "Order",
    "OrderItem",
    "OrderTax",
    "OrderPayment",
    "OrderStatusEntry",
    "OrderType",
    "OrderStatus",
    "PaymentStatus",
    "PaymentMethod",
    "ItemStatus",
    "DiscountType",
    "CustomerType",
    "ThirdPartyProvider",
    "KOT",
    "KOTItem",
    "KOTStatusEntry",
    "KOTStatus",
    "KOTStation",
    "KOTPriority",
    "Invoice",
    "InvoiceStatus",
    "SequenceCounter",
]
