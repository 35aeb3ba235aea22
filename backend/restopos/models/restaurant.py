"""Restaurant reference data that orders point at - tables, dishes, variants.

Orders keep a denormalized name snapshot of the dish and variant, so menu
changes never rewrite historical orders.
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from restopos.db.base import Base, TimestampMixin
from restopos.models.validators import non_negative, positive


class Table(Base, TimestampMixin):
    """Restaurant table for seating."""

    __tablename__ = "tables"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=4)
    status: Mapped[str] = mapped_column(String(20), default="available")  # available, occupied, reserved
    area: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    @validates("capacity")
    def _validate_capacity(self, key, value):
        return positive(key, value)


class Dish(Base, TimestampMixin):
    """Menu dish."""

    __tablename__ = "dishes"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    dietary_tag: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # veg, non_veg, egg
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    available: Mapped[bool] = mapped_column(Boolean, default=True)

    variants: Mapped[List["Variant"]] = relationship(back_populates="dish", cascade="all, delete-orphan")

    @validates("price")
    def _validate_price(self, key, value):
        return non_negative(key, value)


class Variant(Base):
    """Size/portion variant of a dish (e.g. Half, Full)."""

    __tablename__ = "variants"

    id: Mapped[int] = mapped_column(primary_key=True)
    dish_id: Mapped[int] = mapped_column(ForeignKey("dishes.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))

    dish: Mapped[Dish] = relationship(back_populates="variants")

    @validates("price")
    def _validate_price(self, key, value):
        return non_negative(key, value)
