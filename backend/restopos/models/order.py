"""Customer order aggregate - order, line items, taxes, payments, status history."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from sqlalchemy import (
    JSON, Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from restopos.db.base import Base, TimestampMixin, VersionMixin, utcnow
from restopos.models.validators import non_negative, positive, validate_list_of_dicts

if TYPE_CHECKING:
    from restopos.models.invoice import Invoice
    from restopos.models.kot import KOT
    from restopos.models.restaurant import Dish, Table, Variant
    from restopos.models.user import User


class OrderType(str, Enum):
    DINE_IN = "dine_in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"
    QR_ORDER = "qr_order"
    DIRECT_TAKEAWAY = "direct_takeaway"
    DIRECT_DELIVERY = "direct_delivery"
    THIRD_PARTY = "third_party"


class ThirdPartyProvider(str, Enum):
    ZOMATO = "zomato"
    SWIGGY = "swiggy"
    UBER_EATS = "uber_eats"
    OTHER = "other"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_ORDER_STATUSES = frozenset({OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value})


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    REFUNDED = "refunded"
    REFUND_PENDING = "refund_pending"


class ItemStatus(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    CANCELLED = "cancelled"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    NONE = "none"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    UPI = "upi"
    WALLET = "wallet"
    OTHER = "other"


class CustomerType(str, Enum):
    NEW = "new"
    RETURNING = "returning"
    REGISTERED = "registered"
    VIP = "vip"


class Order(Base, TimestampMixin, VersionMixin):
    """One customer order end-to-end.

    Pricing columns are written only by the pricing calculator; callers
    supply the discount and charge inputs.
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False, index=True)
    invoice_number: Mapped[Optional[str]] = mapped_column(String(40), unique=True, nullable=True)

    order_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    third_party_provider: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    third_party_order_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    order_status: Mapped[str] = mapped_column(String(20), default=OrderStatus.PENDING.value, nullable=False, index=True)
    payment_status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.UNPAID.value, nullable=False, index=True)
    order_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    # Customer
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(30), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_address: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    customer_type: Mapped[str] = mapped_column(String(20), default=CustomerType.NEW.value)

    table_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tables.id"), nullable=True)
    server_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    captain_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)

    # Pricing
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    total_tax: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    discount_type: Mapped[str] = mapped_column(String(20), default=DiscountType.NONE.value, nullable=False)
    discount_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    discount_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    discount_reason: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    delivery_charge: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    packaging_charge: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    service_charge: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    tip: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    round_off: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    amount_due: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)

    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    updated_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    cancelled_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.position",
    )
    taxes: Mapped[List["OrderTax"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", order_by="OrderTax.id",
    )
    payments: Mapped[List["OrderPayment"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", order_by="OrderPayment.id",
    )
    status_history: Mapped[List["OrderStatusEntry"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", order_by="OrderStatusEntry.id",
    )
    kots: Mapped[List["KOT"]] = relationship(back_populates="order", order_by="KOT.id")
    invoice: Mapped[Optional["Invoice"]] = relationship(back_populates="order", uselist=False)

    table: Mapped[Optional["Table"]] = relationship(foreign_keys=[table_id])
    server: Mapped[Optional["User"]] = relationship(foreign_keys=[server_id])
    captain: Mapped[Optional["User"]] = relationship(foreign_keys=[captain_id])
    creator: Mapped[Optional["User"]] = relationship(foreign_keys=[created_by])

    @validates(
        "subtotal", "total_tax", "discount_value", "discount_amount", "delivery_charge",
        "packaging_charge", "service_charge", "tip",
    )
    def _validate_amounts(self, key, value):
        return non_negative(key, value)

    @property
    def is_terminal(self) -> bool:
        return self.order_status in TERMINAL_ORDER_STATUSES

    @property
    def amount_paid(self) -> Decimal:
        return sum((Decimal(p.amount) for p in self.payments), Decimal("0"))

    @property
    def outstanding_balance(self) -> Decimal:
        return max(Decimal("0"), Decimal(self.total) - self.amount_paid)

    @property
    def customer(self) -> Dict[str, Any]:
        return {
            "name": self.customer_name,
            "phone": self.customer_phone,
            "email": self.customer_email,
            "address": self.customer_address,
            "customer_type": self.customer_type,
        }

    @property
    def pricing(self) -> Dict[str, Any]:
        return {
            "subtotal": self.subtotal,
            "tax_breakdown": [
                {"tax_name": t.tax_name, "tax_rate": t.tax_rate, "tax_amount": t.tax_amount}
                for t in self.taxes
            ],
            "total_tax": self.total_tax,
            "discount": {
                "type": self.discount_type,
                "value": self.discount_value,
                "code": self.discount_code,
                "reason": self.discount_reason,
            },
            "discount_amount": self.discount_amount,
            "delivery_charge": self.delivery_charge,
            "packaging_charge": self.packaging_charge,
            "service_charge": self.service_charge,
            "tip": self.tip,
            "total": self.total,
            "round_off": self.round_off,
            "amount_due": self.amount_due,
        }

    @property
    def table_name(self) -> Optional[str]:
        return self.table.name if self.table else None

    @property
    def server_name(self) -> Optional[str]:
        return self.server.display_name if self.server else None

    @property
    def captain_name(self) -> Optional[str]:
        return self.captain.display_name if self.captain else None


class OrderItem(Base):
    """Line item owned by an order."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    dish_id: Mapped[int] = mapped_column(ForeignKey("dishes.id"), nullable=False)
    dish_name: Mapped[str] = mapped_column(String(200), nullable=False)
    variant_id: Mapped[Optional[int]] = mapped_column(ForeignKey("variants.id"), nullable=True)
    variant_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    # [{"add_on_id": 3, "name": "Extra cheese", "price": "20.00"}]
    add_ons: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    item_status: Mapped[str] = mapped_column(String(20), default=ItemStatus.PENDING.value, nullable=False)
    kot_generated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    item_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")
    dish: Mapped[Optional["Dish"]] = relationship()
    variant: Mapped[Optional["Variant"]] = relationship()

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return positive(key, value)

    @validates("price", "item_total")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)

    @validates("add_ons")
    def _validate_add_ons(self, key, value):
        return validate_list_of_dicts(key, value)


class OrderTax(Base):
    """One line of the order's tax breakdown."""

    __tablename__ = "order_taxes"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    tax_name: Mapped[str] = mapped_column(String(50), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    order: Mapped[Order] = relationship(back_populates="taxes")


class OrderPayment(Base):
    """Payment recorded against an order."""

    __tablename__ = "order_payments"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    received_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)

    order: Mapped[Order] = relationship(back_populates="payments")

    @validates("amount")
    def _validate_amount(self, key, value):
        return positive(key, value)


class OrderStatusEntry(Base):
    """Append-only order status audit log entry."""

    __tablename__ = "order_status_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    order: Mapped[Order] = relationship(back_populates="status_history")
