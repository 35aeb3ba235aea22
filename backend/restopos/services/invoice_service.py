"""Invoice service - issue and track the billing snapshot of an order."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Mapping, Optional

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session, joinedload

from restopos.core.config import settings
from restopos.core.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from restopos.db.base import utcnow
from restopos.models.invoice import Invoice, InvoiceStatus
from restopos.models.order import Order, OrderStatus, PaymentStatus
from restopos.services.base import (
    EngineService,
    page_envelope,
    parse_datetime,
    parse_id,
    parse_pagination,
)
from restopos.services.numbering import SequenceGenerator
from restopos.services.order_service import ORDER_LOAD_OPTIONS
from restopos.services.pricing import round2

logger = logging.getLogger(__name__)

DUPLICATE_INVOICE_MESSAGE = "Invoice already exists for this order"


def _get(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def generate_item_name(item: Any) -> str:
    """Display name: ``Dish - Variant (Add-on, Add-on)``."""
    name = _get(item, "dish_name") or "Unknown Item"
    variant_name = _get(item, "variant_name")
    if variant_name:
        name += f" - {variant_name}"
    add_ons = _get(item, "add_ons") or []
    add_on_names = [str(_get(add_on, "name")) for add_on in add_ons if _get(add_on, "name")]
    if add_on_names:
        name += f" ({', '.join(add_on_names)})"
    return name


def _money(value: Any) -> str:
    return str(round2(value))


def _parse_bool(value: Any) -> Optional[bool]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    raise ValidationError(f"Invalid is_paid filter: {value!r}")


class InvoiceService(EngineService):
    """Issues one invoice per order and records print/email/payment events."""

    def __init__(
        self,
        db: Session,
        restaurant_details: Optional[Dict[str, Any]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(db)
        self.restaurant_details = restaurant_details or settings.restaurant_details()
        self.clock = clock or utcnow
        self.sequences = SequenceGenerator(db, clock=self.clock)

    generate_item_name = staticmethod(generate_item_name)

    def create_invoice(self, order_id: Any, user: Any = None) -> Invoice:
        """Snapshot a billable order into a new invoice.

        Raises:
            NotFoundError: order does not exist.
            InvalidStateError: order is cancelled.
            ConflictError: the order already has an invoice.
        """
        oid = parse_id(order_id, "order")
        order = self.db.query(Order).options(*ORDER_LOAD_OPTIONS).filter(Order.id == oid).first()
        if not order:
            raise NotFoundError("Order not found")
        if order.order_status == OrderStatus.CANCELLED.value:
            raise InvalidStateError("Cannot invoice a cancelled order")
        if self._has_invoice(order.id):
            raise ConflictError(DUPLICATE_INVOICE_MESSAGE)

        grand_total = round2(order.total)
        amount_paid = round2(order.amount_paid)
        is_paid = order.payment_status == PaymentStatus.PAID.value
        uid = self.acting_user_id(user)

        with self.unit_of_work(integrity_message=DUPLICATE_INVOICE_MESSAGE):
            invoice_number = self.sequences.generate_invoice_number()
            invoice = Invoice(
                invoice_number=invoice_number,
                order_id=order.id,
                order_number=order.order_number,
                invoice_date=self.clock(),
                customer_name=order.customer_name,
                customer_phone=order.customer_phone,
                customer_details={
                    "name": order.customer_name,
                    "phone": order.customer_phone,
                    "email": order.customer_email or "",
                    "address": order.customer_address or {},
                },
                restaurant_details=dict(self.restaurant_details),
                items=[
                    {
                        "name": generate_item_name(item),
                        "quantity": item.quantity,
                        "price": _money(item.price),
                        "amount": _money(item.item_total),
                    }
                    for item in order.items
                ],
                tax_breakup=[
                    {
                        "tax_name": tax.tax_name,
                        "tax_rate": str(tax.tax_rate),
                        "taxable_amount": _money(order.subtotal),
                        "tax_amount": _money(tax.tax_amount),
                    }
                    for tax in order.taxes
                ],
                payment_methods=[
                    {
                        "method": payment.method,
                        "amount": _money(payment.amount),
                        "transaction_id": payment.transaction_id,
                    }
                    for payment in order.payments
                ],
                additional_info={
                    "order_type": order.order_type,
                    "table_name": order.table_name or "",
                    "server_name": order.server_name or "",
                    "notes": order.notes or "",
                    "terms": settings.invoice_terms,
                    "footer": settings.invoice_footer,
                },
                subtotal=round2(order.subtotal),
                tax_total=round2(order.total_tax),
                discount=round2(order.discount_amount),
                delivery_charge=round2(order.delivery_charge),
                packaging_charge=round2(order.packaging_charge),
                service_charge=round2(order.service_charge),
                tip=round2(order.tip),
                round_off=round2(order.round_off),
                grand_total=grand_total,
                amount_paid=amount_paid,
                change_returned=max(Decimal("0.00"), round2(amount_paid - grand_total)),
                outstanding_amount=max(Decimal("0.00"), round2(grand_total - amount_paid)),
                status=InvoiceStatus.PAID.value if is_paid else InvoiceStatus.ISSUED.value,
                is_paid=is_paid,
                paid_at=self.clock() if is_paid else None,
                created_by=uid,
                updated_by=uid,
            )
            self.db.add(invoice)
            self.db.flush()

            self.db.execute(
                update(Order)
                .where(Order.id == order.id)
                .values(invoice_number=invoice_number, version=Order.version + 1)
                .execution_options(synchronize_session=False)
            )

        logger.info("Invoice %s issued for order %s (%s)", invoice_number, order.order_number, grand_total)
        return self.get_invoice_by_id(invoice.id)

    def _has_invoice(self, order_id: int) -> bool:
        return self.db.query(Invoice.id).filter(Invoice.order_id == order_id).first() is not None

    def get_invoice_by_id(self, invoice_id: Any) -> Invoice:
        iid = parse_id(invoice_id, "invoice")
        invoice = (
            self.db.query(Invoice)
            .options(joinedload(Invoice.order))
            .filter(Invoice.id == iid)
            .first()
        )
        if not invoice:
            raise NotFoundError("Invoice not found")
        return invoice

    def get_invoices(self, filters: Optional[Dict[str, Any]] = None, page: Any = 1, limit: Any = None) -> Dict[str, Any]:
        filters = filters or {}
        page, limit = parse_pagination(page, limit)

        query = self.db.query(Invoice)
        if filters.get("order_id") is not None:
            query = query.filter(Invoice.order_id == parse_id(filters["order_id"], "order"))
        if filters.get("status"):
            query = query.filter(Invoice.status == filters["status"])
        is_paid = _parse_bool(filters.get("is_paid"))
        if is_paid is not None:
            query = query.filter(Invoice.is_paid == is_paid)

        start = parse_datetime(filters.get("start_date"), "start_date")
        end = parse_datetime(filters.get("end_date"), "end_date", end_of_day=True)
        if start:
            query = query.filter(Invoice.invoice_date >= start)
        if end:
            query = query.filter(Invoice.invoice_date <= end)

        search = (filters.get("search") or "").strip()
        if search:
            term = search.lower()
            query = query.filter(or_(
                func.lower(Invoice.invoice_number).contains(term, autoescape=True),
                func.lower(Invoice.order_number).contains(term, autoescape=True),
                func.lower(Invoice.customer_name).contains(term, autoescape=True),
                func.lower(Invoice.customer_phone).contains(term, autoescape=True),
            ))

        total_count = query.count()
        invoices = (
            query.options(joinedload(Invoice.order))
            .order_by(Invoice.invoice_date.desc(), Invoice.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return page_envelope("invoices", invoices, total_count, page, limit)

    def mark_invoice_as_printed(self, invoice_id: Any, user: Any = None) -> Invoice:
        invoice = self.get_invoice_by_id(invoice_id)
        with self.unit_of_work():
            self.db.execute(
                update(Invoice)
                .where(Invoice.id == invoice.id)
                .values(
                    is_printed=True,
                    printed_at=self.clock(),
                    print_count=Invoice.print_count + 1,
                    updated_by=self.acting_user_id(user),
                )
                .execution_options(synchronize_session=False)
            )
        return self.get_invoice_by_id(invoice.id)

    def mark_invoice_as_emailed(self, invoice_id: Any, email: str, user: Any = None) -> Invoice:
        invoice = self.get_invoice_by_id(invoice_id)
        email = (email or "").strip()
        if "@" not in email:
            raise ValidationError("Invalid email address", [{"field": "email", "message": "must be an email address"}])

        with self.unit_of_work():
            invoice.is_email_sent = True
            invoice.email_sent_at = self.clock()
            invoice.email_sent_to = email
            invoice.updated_by = self.acting_user_id(user)
        logger.info("Invoice %s emailed to %s", invoice.invoice_number, email)
        return self.get_invoice_by_id(invoice.id)

    def mark_invoice_as_paid(self, invoice_id: Any, user: Any = None) -> Invoice:
        """Flag the invoice settled; the amounts snapshot is left untouched."""
        invoice = self.get_invoice_by_id(invoice_id)
        if invoice.status in (InvoiceStatus.VOID.value, InvoiceStatus.REFUNDED.value):
            raise InvalidStateError(f"Cannot mark a {invoice.status} invoice as paid")
        if invoice.is_paid:
            return invoice

        with self.unit_of_work():
            invoice.is_paid = True
            invoice.status = InvoiceStatus.PAID.value
            invoice.paid_at = self.clock()
            invoice.updated_by = self.acting_user_id(user)
        return self.get_invoice_by_id(invoice.id)
