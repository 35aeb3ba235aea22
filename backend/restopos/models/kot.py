"""Kitchen order ticket (KOT) models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from restopos.db.base import Base, TimestampMixin, utcnow
from restopos.models.validators import positive, validate_list_of_dicts

if TYPE_CHECKING:
    from restopos.models.order import Order
    from restopos.models.restaurant import Table
    from restopos.models.user import User


class KOTStatus(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Forward-only ordering; cancelled is reachable from any non-terminal status
KOT_STATUS_RANK = {
    KOTStatus.PENDING: 0,
    KOTStatus.PREPARING: 1,
    KOTStatus.READY: 2,
    KOTStatus.COMPLETED: 3,
}

TERMINAL_KOT_STATUSES = frozenset({KOTStatus.COMPLETED.value, KOTStatus.CANCELLED.value})


class KOTStation(str, Enum):
    KITCHEN = "kitchen"
    BAR = "bar"
    DESSERT = "dessert"
    OTHER = "other"


class KOTPriority(int, Enum):
    HIGH = 1
    NORMAL = 2
    LOW = 3


class KOT(Base, TimestampMixin):
    """Ticket routing a subset of an order's items to one preparation station."""

    __tablename__ = "kots"

    id: Mapped[int] = mapped_column(primary_key=True)
    kot_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False, index=True)

    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    order_number: Mapped[str] = mapped_column(String(40), nullable=False)
    order_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    table_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tables.id"), nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    order_item_ids: Mapped[Optional[List[int]]] = mapped_column(JSON, nullable=True)

    kot_status: Mapped[str] = mapped_column(String(20), default=KOTStatus.PENDING.value, nullable=False, index=True)
    priority: Mapped[int] = mapped_column(Integer, default=KOTPriority.NORMAL.value, nullable=False)
    station: Mapped[str] = mapped_column(String(20), default=KOTStation.KITCHEN.value, nullable=False, index=True)

    preparation_start_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completion_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    estimated_completion_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    printed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    printed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    print_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    printed_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    printer: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    updated_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)

    order: Mapped["Order"] = relationship(back_populates="kots")
    table: Mapped[Optional["Table"]] = relationship()
    kot_items: Mapped[List["KOTItem"]] = relationship(
        back_populates="kot", cascade="all, delete-orphan", order_by="KOTItem.id",
    )
    status_history: Mapped[List["KOTStatusEntry"]] = relationship(
        back_populates="kot", cascade="all, delete-orphan", order_by="KOTStatusEntry.id",
    )
    printer_user: Mapped[Optional["User"]] = relationship(foreign_keys=[printed_by])

    # Item-flagging problems from create_kot; not persisted
    warnings = ()

    @validates("priority")
    def _validate_priority(self, key, value):
        if value is not None and value not in (1, 2, 3):
            raise ValueError(f"{key} must be 1 (high), 2 (normal) or 3 (low), got {value}")
        return value

    @property
    def is_terminal(self) -> bool:
        return self.kot_status in TERMINAL_KOT_STATUSES

    @property
    def prep_time_minutes(self) -> Optional[int]:
        """Minutes between preparation start and completion, if both are known."""
        if self.preparation_start_time and self.completion_time:
            delta = self.completion_time - self.preparation_start_time
            return round(delta.total_seconds() / 60)
        return None

    @property
    def table_name(self) -> Optional[str]:
        return self.table.name if self.table else None


class KOTItem(Base):
    """Item on a kitchen ticket, with its own preparation status."""

    __tablename__ = "kot_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    kot_id: Mapped[int] = mapped_column(ForeignKey("kots.id", ondelete="CASCADE"), nullable=False, index=True)
    order_item_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("order_items.id", ondelete="SET NULL"), nullable=True,
    )

    dish_id: Mapped[int] = mapped_column(ForeignKey("dishes.id"), nullable=False)
    dish_name: Mapped[str] = mapped_column(String(200), nullable=False)
    variant_id: Mapped[Optional[int]] = mapped_column(ForeignKey("variants.id"), nullable=True)
    variant_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    # [{"add_on_id": 3, "name": "Extra cheese"}]
    add_ons: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    kot_status: Mapped[str] = mapped_column(String(20), default=KOTStatus.PENDING.value, nullable=False)

    kot: Mapped[KOT] = relationship(back_populates="kot_items")

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return positive(key, value)

    @validates("add_ons")
    def _validate_add_ons(self, key, value):
        return validate_list_of_dicts(key, value)


class KOTStatusEntry(Base):
    """Append-only KOT status audit log entry."""

    __tablename__ = "kot_status_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    kot_id: Mapped[int] = mapped_column(ForeignKey("kots.id", ondelete="CASCADE"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    kot: Mapped[KOT] = relationship(back_populates="status_history")
