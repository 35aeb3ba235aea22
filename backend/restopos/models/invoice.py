"""Invoice model - immutable financial snapshot of a billable order."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from restopos.db.base import Base, TimestampMixin, utcnow

if TYPE_CHECKING:
    from restopos.models.order import Order


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    ISSUED = "issued"
    PAID = "paid"
    VOID = "void"
    REFUNDED = "refunded"


class Invoice(Base, TimestampMixin):
    """Billing document for one order.

    Everything under "Snapshot" is copied from the order and configuration at
    issue time and is never rewritten; JSON snapshot amounts are stored as
    decimal strings.
    """

    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(primary_key=True)
    invoice_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False, index=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), unique=True, nullable=False)
    order_number: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    invoice_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Snapshot
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(30), nullable=False)
    customer_details: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    restaurant_details: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    # [{"name": "Paneer Tikka - Full (Extra cheese)", "quantity": 2, "price": "100.00", "amount": "220.00"}]
    items: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False)
    tax_breakup: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False)
    payment_methods: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False)
    additional_info: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    delivery_charge: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    packaging_charge: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    service_charge: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    tip: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    round_off: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    grand_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    change_returned: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    outstanding_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)

    # Mutable
    status: Mapped[str] = mapped_column(String(20), default=InvoiceStatus.ISSUED.value, nullable=False, index=True)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_email_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    email_sent_to: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_printed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    printed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    print_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    updated_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)

    order: Mapped["Order"] = relationship(back_populates="invoice")

    @property
    def payment_details(self) -> Dict[str, Decimal]:
        return {
            "subtotal": self.subtotal,
            "tax_total": self.tax_total,
            "discount": self.discount,
            "delivery_charge": self.delivery_charge,
            "packaging_charge": self.packaging_charge,
            "service_charge": self.service_charge,
            "tip": self.tip,
            "round_off": self.round_off,
            "grand_total": self.grand_total,
            "amount_paid": self.amount_paid,
            "change_returned": self.change_returned,
            "outstanding_amount": self.outstanding_amount,
        }
