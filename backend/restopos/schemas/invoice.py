"""Invoice schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from restopos.schemas.pagination import PageEnvelope


class InvoiceCreate(BaseModel):
    order_id: int


class InvoiceEmailRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)


class InvoiceItem(BaseModel):
    name: str
    quantity: int
    price: Decimal
    amount: Decimal


class TaxBreakup(BaseModel):
    tax_name: str
    tax_rate: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal


class PaymentDetails(BaseModel):
    subtotal: Decimal
    tax_total: Decimal
    discount: Decimal
    delivery_charge: Decimal
    packaging_charge: Decimal
    service_charge: Decimal
    tip: Decimal
    round_off: Decimal
    grand_total: Decimal
    amount_paid: Decimal
    change_returned: Decimal
    outstanding_amount: Decimal


class InvoicePaymentMethod(BaseModel):
    method: str
    amount: Decimal
    transaction_id: Optional[str] = None


class InvoiceResponse(BaseModel):
    """Invoice response schema."""

    id: int
    invoice_number: str
    order_id: int
    order_number: str
    invoice_date: datetime
    due_date: Optional[datetime] = None
    customer_details: Dict[str, Any]
    restaurant_details: Dict[str, Any]
    items: List[InvoiceItem]
    tax_breakup: List[TaxBreakup]
    payment_details: PaymentDetails
    payment_methods: List[InvoicePaymentMethod]
    additional_info: Dict[str, Any]
    status: str
    is_paid: bool
    paid_at: Optional[datetime] = None
    is_email_sent: bool
    email_sent_at: Optional[datetime] = None
    email_sent_to: Optional[str] = None
    is_printed: bool
    printed_at: Optional[datetime] = None
    print_count: int
    created_by: Optional[int] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class InvoiceListResponse(PageEnvelope):
    invoices: List[InvoiceResponse]
