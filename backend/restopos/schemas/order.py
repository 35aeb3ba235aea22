"""Customer order schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from restopos.models.order import (
    CustomerType,
    DiscountType,
    ItemStatus,
    OrderType,
    PaymentMethod,
    ThirdPartyProvider,
)
from restopos.schemas.pagination import PageEnvelope


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class AddOnIn(BaseModel):
    add_on_id: Optional[int] = None
    name: str = Field(min_length=1)
    price: Decimal = Field(default=Decimal("0"), ge=0)


class OrderItemIn(BaseModel):
    """Order line. Include ``id`` on update to edit an existing line in place."""

    id: Optional[int] = None
    dish_id: int
    dish_name: Optional[str] = None
    variant_id: Optional[int] = None
    variant_name: Optional[str] = None
    quantity: int = Field(ge=1)
    price: Decimal = Field(ge=0)
    add_ons: List[AddOnIn] = []
    special_instructions: Optional[str] = None
    item_status: Optional[ItemStatus] = None


class CustomerAddress(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    landmark: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class CustomerIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    phone: str = Field(min_length=1, max_length=30)
    email: Optional[str] = None
    address: Optional[CustomerAddress] = None
    customer_type: Optional[CustomerType] = None


class CustomerPatch(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[CustomerAddress] = None
    customer_type: Optional[CustomerType] = None


class OrderCreate(BaseModel):
    """Order creation schema. Pricing totals are always computed server-side."""

    order_number: Optional[str] = None
    order_type: OrderType
    third_party_provider: Optional[ThirdPartyProvider] = None
    third_party_order_id: Optional[str] = None
    customer: CustomerIn
    items: List[OrderItemIn] = Field(min_length=1)
    table_id: Optional[int] = None
    server_id: Optional[int] = None
    captain_id: Optional[int] = None
    discount_type: DiscountType = DiscountType.NONE
    discount_value: Decimal = Field(default=Decimal("0"), ge=0)
    discount_code: Optional[str] = None
    discount_reason: Optional[str] = None
    delivery_charge: Decimal = Field(default=Decimal("0"), ge=0)
    packaging_charge: Decimal = Field(default=Decimal("0"), ge=0)
    service_charge: Decimal = Field(default=Decimal("0"), ge=0)
    tip: Decimal = Field(default=Decimal("0"), ge=0)
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    order_date: Optional[datetime] = None


class OrderUpdate(BaseModel):
    """Partial order update.

    ``payment_status`` is accepted only so it can be rejected explicitly;
    it is derived from recorded payments.
    """

    version: Optional[int] = None
    order_status: Optional[str] = None
    status_notes: Optional[str] = None
    cancel_reason: Optional[str] = None
    payment_status: Optional[str] = None
    customer: Optional[CustomerPatch] = None
    items: Optional[List[OrderItemIn]] = None
    third_party_provider: Optional[ThirdPartyProvider] = None
    third_party_order_id: Optional[str] = None
    table_id: Optional[int] = None
    server_id: Optional[int] = None
    captain_id: Optional[int] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(default=None, ge=0)
    discount_code: Optional[str] = None
    discount_reason: Optional[str] = None
    delivery_charge: Optional[Decimal] = Field(default=None, ge=0)
    packaging_charge: Optional[Decimal] = Field(default=None, ge=0)
    service_charge: Optional[Decimal] = Field(default=None, ge=0)
    tip: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None
    tags: Optional[List[str]] = None


class OrderStatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = None


class PaymentCreate(BaseModel):
    method: PaymentMethod
    amount: Decimal = Field(gt=0)
    transaction_id: Optional[str] = None
    payment_date: Optional[datetime] = None
    notes: Optional[str] = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class OrderItemResponse(BaseModel):
    id: int
    position: int
    dish_id: int
    dish_name: str
    variant_id: Optional[int] = None
    variant_name: Optional[str] = None
    quantity: int
    price: Decimal
    add_ons: List[Dict[str, Any]] = []
    special_instructions: Optional[str] = None
    item_status: str
    kot_generated: bool
    item_total: Decimal

    model_config = {"from_attributes": True}


class TaxLineResponse(BaseModel):
    tax_name: str
    tax_rate: Decimal
    tax_amount: Decimal

    model_config = {"from_attributes": True}


class DiscountResponse(BaseModel):
    type: str
    value: Decimal
    code: Optional[str] = None
    reason: Optional[str] = None


class PricingResponse(BaseModel):
    subtotal: Decimal
    tax_breakdown: List[TaxLineResponse] = []
    total_tax: Decimal
    discount: DiscountResponse
    discount_amount: Decimal
    delivery_charge: Decimal
    packaging_charge: Decimal
    service_charge: Decimal
    tip: Decimal
    total: Decimal
    round_off: Decimal
    amount_due: Decimal


class CustomerResponse(BaseModel):
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[Dict[str, Any]] = None
    customer_type: Optional[str] = None


class PaymentResponse(BaseModel):
    id: int
    method: str
    amount: Decimal
    transaction_id: Optional[str] = None
    payment_date: datetime
    notes: Optional[str] = None
    received_by: Optional[int] = None

    model_config = {"from_attributes": True}


class StatusEntryResponse(BaseModel):
    status: str
    timestamp: datetime
    user_id: Optional[int] = None
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class OrderKOTSummary(BaseModel):
    id: int
    kot_number: str
    kot_status: str
    station: str

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    """Order response schema."""

    id: int
    order_number: str
    invoice_number: Optional[str] = None
    order_type: str
    third_party_provider: Optional[str] = None
    third_party_order_id: Optional[str] = None
    order_status: str
    payment_status: str
    order_date: datetime
    customer: CustomerResponse
    table_id: Optional[int] = None
    table_name: Optional[str] = None
    server_id: Optional[int] = None
    server_name: Optional[str] = None
    captain_id: Optional[int] = None
    captain_name: Optional[str] = None
    items: List[OrderItemResponse] = []
    pricing: PricingResponse
    amount_paid: Decimal
    outstanding_balance: Decimal
    payments: List[PaymentResponse] = []
    status_history: List[StatusEntryResponse] = []
    kots: List[OrderKOTSummary] = []
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    cancel_reason: Optional[str] = None
    cancelled_by: Optional[int] = None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrderListResponse(PageEnvelope):
    orders: List[OrderResponse]


class SalesSummaryRow(BaseModel):
    date: str
    total_sales: Decimal
    order_count: int
