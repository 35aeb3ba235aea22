"""Order service: creation, lookup, patching, status transitions and payments."""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload, selectinload

from restopos.core.config import settings
from restopos.core.errors import (
    ConflictError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from restopos.db.base import utcnow
from restopos.models.order import (
    CustomerType,
    DiscountType,
    ItemStatus,
    Order,
    OrderItem,
    OrderPayment,
    OrderStatus,
    OrderStatusEntry,
    OrderTax,
    OrderType,
    PaymentMethod,
    PaymentStatus,
    ThirdPartyProvider,
)
from restopos.models.restaurant import Dish, Table, Variant
from restopos.models.user import User
from restopos.services.base import (
    EngineService,
    page_envelope,
    parse_datetime,
    parse_id,
    parse_pagination,
)
from restopos.services.numbering import SequenceGenerator
from restopos.services.pricing import (
    OrderTotals,
    calculate_item_total,
    calculate_order_totals,
    round2,
)

logger = logging.getLogger(__name__)

ORDER_TRANSITIONS = {
    OrderStatus.PENDING.value: {
        OrderStatus.CONFIRMED.value, OrderStatus.PREPARING.value, OrderStatus.CANCELLED.value,
    },
    OrderStatus.CONFIRMED.value: {OrderStatus.PREPARING.value, OrderStatus.CANCELLED.value},
    OrderStatus.PREPARING.value: {OrderStatus.READY.value, OrderStatus.CANCELLED.value},
    OrderStatus.READY.value: {
        OrderStatus.SERVED.value, OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value,
    },
    OrderStatus.SERVED.value: {OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value},
    OrderStatus.COMPLETED.value: set(),
    OrderStatus.CANCELLED.value: set(),
}

ORDER_TYPES = {t.value for t in OrderType}
ORDER_STATUSES = {s.value for s in OrderStatus}
ITEM_STATUSES = {s.value for s in ItemStatus}
DISCOUNT_TYPES = {d.value for d in DiscountType}
PAYMENT_METHODS = {m.value for m in PaymentMethod}
CUSTOMER_TYPES = {c.value for c in CustomerType}
PROVIDERS = {p.value for p in ThirdPartyProvider}

PRICING_INPUT_FIELDS = (
    "discount_type", "discount_value", "delivery_charge", "packaging_charge", "service_charge", "tip",
)
CHARGE_FIELDS = ("delivery_charge", "packaging_charge", "service_charge", "tip")
PLAIN_PATCH_FIELDS = (
    "table_id", "server_id", "captain_id", "third_party_provider", "third_party_order_id",
    "notes", "tags", "discount_code", "discount_reason",
)

ORDER_LOAD_OPTIONS = (
    selectinload(Order.items),
    selectinload(Order.taxes),
    selectinload(Order.payments),
    selectinload(Order.status_history),
    selectinload(Order.kots),
    joinedload(Order.invoice),
    joinedload(Order.table),
    joinedload(Order.server),
    joinedload(Order.captain),
    joinedload(Order.creator),
)


def _decimal(value: Any, field: str, errors: List[Dict[str, str]], minimum: Decimal = Decimal("0")) -> Optional[Decimal]:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        errors.append({"field": field, "message": "must be a number"})
        return None
    if not result.is_finite() or result < minimum:
        errors.append({"field": field, "message": f"must be >= {minimum}"})
        return None
    return result


class OrderService(EngineService):
    """Owns the order aggregate.

    Args:
        db: Session for the current request; committed per public call.
        tax_rules: Objects or mappings with ``name``/``rate``; defaults to
            ``settings.tax_rules``.
        clock: Callable returning the current aware datetime, used for
            order numbering.
    """

    def __init__(self, db: Session, tax_rules: Optional[Iterable[Any]] = None, clock=None):
        super().__init__(db)
        self.tax_rules = list(tax_rules) if tax_rules is not None else list(settings.tax_rules)
        self.sequences = SequenceGenerator(db, clock=clock)

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def calculate_order_totals(self, items: List[Any], pricing_inputs: Optional[Dict[str, Any]] = None) -> OrderTotals:
        return calculate_order_totals(items, pricing_inputs, self.tax_rules)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_order(self, order_data: Dict[str, Any], user: Any = None) -> Order:
        """Validate, price and persist a new order in ``pending`` status."""
        data = dict(order_data or {})
        errors: List[Dict[str, str]] = []

        order_type = data.get("order_type")
        if order_type not in ORDER_TYPES:
            errors.append({"field": "order_type", "message": f"must be one of {sorted(ORDER_TYPES)}"})

        customer = data.get("customer") or {}
        if not isinstance(customer, dict):
            errors.append({"field": "customer", "message": "must be an object"})
            customer = {}
        if not str(customer.get("name") or "").strip():
            errors.append({"field": "customer.name", "message": "is required"})
        if not str(customer.get("phone") or "").strip():
            errors.append({"field": "customer.phone", "message": "is required"})
        customer_type = customer.get("customer_type") or CustomerType.NEW.value
        if customer_type not in CUSTOMER_TYPES:
            errors.append({"field": "customer.customer_type", "message": f"must be one of {sorted(CUSTOMER_TYPES)}"})

        provider = data.get("third_party_provider")
        if provider is not None and provider not in PROVIDERS:
            errors.append({"field": "third_party_provider", "message": f"must be one of {sorted(PROVIDERS)}"})

        items = self._normalize_items(data.get("items"), errors)
        pricing_inputs = self._normalize_pricing_inputs(data, errors)
        self._check_references(data, errors)

        if errors:
            raise ValidationError("Invalid order data", errors)

        self._resolve_catalog_names(items)
        totals = self.calculate_order_totals(items, pricing_inputs)
        uid = self.acting_user_id(user)

        with self.unit_of_work(integrity_message="Order number already exists"):
            order_number = data.get("order_number")
            if order_number:
                exists = self.db.query(Order.id).filter(Order.order_number == order_number).first()
                if exists:
                    raise ConflictError(f"Order number {order_number} already exists")
            else:
                order_number = self.sequences.generate_order_number()

            order = Order(
                order_number=order_number,
                order_type=order_type,
                third_party_provider=provider,
                third_party_order_id=data.get("third_party_order_id"),
                order_status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.UNPAID.value,
                order_date=parse_datetime(data.get("order_date"), "order_date") or utcnow(),
                customer_name=str(customer["name"]).strip(),
                customer_phone=str(customer["phone"]).strip(),
                customer_email=customer.get("email"),
                customer_address=customer.get("address"),
                customer_type=customer_type,
                table_id=data.get("table_id"),
                server_id=data.get("server_id"),
                captain_id=data.get("captain_id"),
                discount_code=data.get("discount_code"),
                discount_reason=data.get("discount_reason"),
                notes=data.get("notes"),
                tags=data.get("tags"),
                created_by=uid,
                updated_by=uid,
            )
            order.items = [self._build_item(item, position) for position, item in enumerate(items)]
            self._apply_totals(order, totals, pricing_inputs)
            order.status_history.append(
                OrderStatusEntry(status=OrderStatus.PENDING.value, user_id=uid, notes="Order created")
            )
            self.db.add(order)

        logger.info("Order %s created (%s, total %s)", order.order_number, order_type, totals.total)
        return self.get_order_by_id(order.id)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_order_by_id(self, order_id: Any) -> Order:
        oid = parse_id(order_id, "order")
        order = (
            self.db.query(Order)
            .options(*ORDER_LOAD_OPTIONS)
            .filter(Order.id == oid)
            .first()
        )
        if not order:
            raise NotFoundError("Order not found")
        return order

    def get_orders(self, filters: Optional[Dict[str, Any]] = None, page: Any = 1, limit: Any = None) -> Dict[str, Any]:
        """Filtered, newest-first page of orders.

        Supported filters: ``order_type``, ``order_status``,
        ``payment_status``, ``start_date``, ``end_date`` (inclusive) and
        ``search`` (order/invoice number, customer name or phone).
        """
        filters = filters or {}
        page, limit = parse_pagination(page, limit)

        query = self.db.query(Order)
        for field in ("order_type", "order_status", "payment_status"):
            value = filters.get(field)
            if value:
                query = query.filter(getattr(Order, field) == value)

        start = parse_datetime(filters.get("start_date"), "start_date")
        end = parse_datetime(filters.get("end_date"), "end_date", end_of_day=True)
        if start:
            query = query.filter(Order.order_date >= start)
        if end:
            query = query.filter(Order.order_date <= end)

        search = (filters.get("search") or "").strip()
        if search:
            term = search.lower()
            query = query.filter(or_(
                func.lower(Order.order_number).contains(term, autoescape=True),
                func.lower(Order.invoice_number).contains(term, autoescape=True),
                func.lower(Order.customer_name).contains(term, autoescape=True),
                func.lower(Order.customer_phone).contains(term, autoescape=True),
            ))

        total_count = query.count()
        orders = (
            query.options(*ORDER_LOAD_OPTIONS)
            .order_by(Order.order_date.desc(), Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return page_envelope("orders", orders, total_count, page, limit)

    def get_sales_summary(self, start_date: Any = None, end_date: Any = None) -> List[Dict[str, Any]]:
        """Completed-order revenue per calendar day (UTC), oldest first."""
        day = func.date(Order.order_date)
        query = (
            self.db.query(
                day.label("day"),
                func.sum(Order.total).label("total_sales"),
                func.count(Order.id).label("order_count"),
            )
            .filter(Order.order_status == OrderStatus.COMPLETED.value)
        )
        start = parse_datetime(start_date, "start_date")
        end = parse_datetime(end_date, "end_date", end_of_day=True)
        if start:
            query = query.filter(Order.order_date >= start)
        if end:
            query = query.filter(Order.order_date <= end)

        rows = query.group_by(day).order_by(day).all()
        return [
            {
                "date": str(row.day),
                "total_sales": round2(row.total_sales or 0),
                "order_count": row.order_count,
            }
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update_order(self, order_id: Any, patch: Dict[str, Any], user: Any = None) -> Order:
        """Apply a partial update to a non-terminal order.

        ``items`` replaces the whole item list (entries carrying an ``id``
        update that item in place).  Touching items, discount or charges
        re-runs the pricing calculator.  A status change appends exactly one
        history entry.
        """
        order = self.get_order_by_id(order_id)
        patch = dict(patch or {})

        if order.is_terminal:
            raise InvalidStateError(f"Cannot update order in {order.order_status} status")
        if "payment_status" in patch:
            raise ValidationError(
                "payment_status is derived from payments and cannot be set directly",
                [{"field": "payment_status", "message": "read-only"}],
            )
        try:
            order.check_version(patch.get("version"))
        except ValueError as exc:
            raise ConflictError(str(exc))

        errors: List[Dict[str, str]] = []

        new_status = patch.get("order_status")
        if new_status is not None and new_status not in ORDER_STATUSES:
            errors.append({"field": "order_status", "message": f"must be one of {sorted(ORDER_STATUSES)}"})
            new_status = None
        status_changed = new_status is not None and new_status != order.order_status

        customer_patch = patch.get("customer")
        if customer_patch is not None:
            if not isinstance(customer_patch, dict):
                errors.append({"field": "customer", "message": "must be an object"})
                customer_patch = None
            else:
                for key in ("name", "phone"):
                    if key in customer_patch and not str(customer_patch[key] or "").strip():
                        errors.append({"field": f"customer.{key}", "message": "is required"})
                ctype = customer_patch.get("customer_type")
                if ctype is not None and ctype not in CUSTOMER_TYPES:
                    errors.append({"field": "customer.customer_type", "message": f"must be one of {sorted(CUSTOMER_TYPES)}"})

        provider = patch.get("third_party_provider")
        if provider is not None and provider not in PROVIDERS:
            errors.append({"field": "third_party_provider", "message": f"must be one of {sorted(PROVIDERS)}"})

        items = None
        if "items" in patch:
            items = self._normalize_items(patch["items"], errors)
            existing_ids = {item.id for item in order.items}
            for index, item in enumerate(items):
                if item.get("id") is not None and item["id"] not in existing_ids:
                    errors.append({"field": f"items[{index}].id", "message": "does not belong to this order"})

        pricing_touched = items is not None or any(f in patch for f in PRICING_INPUT_FIELDS)
        merged_inputs = {f: getattr(order, f) for f in PRICING_INPUT_FIELDS}
        merged_inputs.update({f: patch[f] for f in PRICING_INPUT_FIELDS if f in patch})
        pricing_inputs = self._normalize_pricing_inputs(merged_inputs, errors)
        self._check_references(patch, errors)

        if errors:
            raise ValidationError("Invalid update data", errors)

        if status_changed and new_status not in ORDER_TRANSITIONS[order.order_status]:
            raise InvalidTransitionError(order.order_status, new_status)
        if items is not None:
            self._resolve_catalog_names(items)

        uid = self.acting_user_id(user)
        with self.unit_of_work():
            for field in PLAIN_PATCH_FIELDS:
                if field in patch:
                    setattr(order, field, patch[field])

            if customer_patch:
                for key, column in (
                    ("name", "customer_name"),
                    ("phone", "customer_phone"),
                    ("email", "customer_email"),
                    ("address", "customer_address"),
                    ("customer_type", "customer_type"),
                ):
                    if key in customer_patch:
                        value = customer_patch[key]
                        setattr(order, column, str(value).strip() if key in ("name", "phone") else value)

            if items is not None:
                self._replace_items(order, items)

            if pricing_touched:
                totals = self.calculate_order_totals(order.items, pricing_inputs)
                self._apply_totals(order, totals, pricing_inputs)

            if status_changed:
                order.order_status = new_status
                order.status_history.append(OrderStatusEntry(
                    status=new_status,
                    user_id=uid,
                    notes=patch.get("status_notes") or f"Status changed to {new_status}",
                ))
                if new_status == OrderStatus.CANCELLED.value:
                    order.cancel_reason = patch.get("cancel_reason") or "No reason provided"
                    order.cancelled_by = uid

            order.updated_by = uid

        if status_changed:
            logger.info("Order %s moved to %s", order.order_number, new_status)
        return self.get_order_by_id(order.id)

    def update_order_status(self, order_id: Any, status: str, user: Any = None, notes: Optional[str] = None) -> Order:
        """Move an order along the transition table."""
        order = self.get_order_by_id(order_id)
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid order status: {status}")
        if status not in ORDER_TRANSITIONS[order.order_status]:
            raise InvalidTransitionError(order.order_status, status)

        patch: Dict[str, Any] = {"order_status": status, "status_notes": notes}
        if status == OrderStatus.CANCELLED.value:
            patch["cancel_reason"] = notes
        return self.update_order(order.id, patch, user)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def add_payment(self, order_id: Any, payment_data: Dict[str, Any], user: Any = None) -> Order:
        """Record a payment and re-derive ``payment_status`` from the running total."""
        order = self.get_order_by_id(order_id)
        if order.order_status == OrderStatus.CANCELLED.value:
            raise InvalidStateError("Cannot add payment to a cancelled order")

        data = dict(payment_data or {})
        errors: List[Dict[str, str]] = []
        method = data.get("method")
        if method not in PAYMENT_METHODS:
            errors.append({"field": "method", "message": f"must be one of {sorted(PAYMENT_METHODS)}"})
        amount = _decimal(data.get("amount"), "amount", errors)
        if amount is not None and amount <= 0:
            errors.append({"field": "amount", "message": "must be positive"})
        if errors:
            raise ValidationError("Invalid payment data", errors)

        uid = self.acting_user_id(user)
        with self.unit_of_work():
            order.payments.append(OrderPayment(
                method=method,
                amount=round2(amount),
                transaction_id=data.get("transaction_id"),
                payment_date=parse_datetime(data.get("payment_date"), "payment_date") or utcnow(),
                notes=data.get("notes"),
                received_by=uid,
            ))
            order.payment_status = self._derive_payment_status(order)
            order.updated_by = uid

        logger.info("Payment of %s (%s) recorded on order %s", amount, method, order.order_number)
        return self.get_order_by_id(order.id)

    @staticmethod
    def _derive_payment_status(order: Order) -> str:
        paid = order.amount_paid
        if paid <= 0:
            return PaymentStatus.UNPAID.value
        if paid < Decimal(order.total):
            return PaymentStatus.PARTIALLY_PAID.value
        return PaymentStatus.PAID.value

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _normalize_items(self, raw_items: Any, errors: List[Dict[str, str]]) -> List[Dict[str, Any]]:
        if not isinstance(raw_items, list) or not raw_items:
            errors.append({"field": "items", "message": "at least one item is required"})
            return []

        items = []
        for index, raw in enumerate(raw_items):
            prefix = f"items[{index}]"
            if not isinstance(raw, dict):
                errors.append({"field": prefix, "message": "must be an object"})
                continue

            dish_id = raw.get("dish_id")
            if not isinstance(dish_id, int) or isinstance(dish_id, bool):
                errors.append({"field": f"{prefix}.dish_id", "message": "is required"})

            quantity = raw.get("quantity")
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
                errors.append({"field": f"{prefix}.quantity", "message": "must be an integer >= 1"})

            price = _decimal(raw.get("price"), f"{prefix}.price", errors)

            item_status = raw.get("item_status") or ItemStatus.PENDING.value
            if item_status not in ITEM_STATUSES:
                errors.append({"field": f"{prefix}.item_status", "message": f"must be one of {sorted(ITEM_STATUSES)}"})

            add_ons = []
            for a_index, add_on in enumerate(raw.get("add_ons") or []):
                a_prefix = f"{prefix}.add_ons[{a_index}]"
                if not isinstance(add_on, dict) or not add_on.get("name"):
                    errors.append({"field": a_prefix, "message": "requires a name"})
                    continue
                add_on_price = _decimal(add_on.get("price", 0), f"{a_prefix}.price", errors)
                add_ons.append({
                    "add_on_id": add_on.get("add_on_id"),
                    "name": add_on["name"],
                    "price": str(round2(add_on_price or 0)),
                })

            items.append({
                "id": raw.get("id"),
                "dish_id": dish_id,
                "dish_name": raw.get("dish_name"),
                "variant_id": raw.get("variant_id"),
                "variant_name": raw.get("variant_name"),
                "quantity": quantity,
                "price": price,
                "add_ons": add_ons,
                "special_instructions": raw.get("special_instructions"),
                "item_status": item_status,
            })
        return items

    def _normalize_pricing_inputs(self, data: Dict[str, Any], errors: List[Dict[str, str]]) -> Dict[str, Any]:
        discount_type = data.get("discount_type") or DiscountType.NONE.value
        if discount_type not in DISCOUNT_TYPES:
            errors.append({"field": "discount_type", "message": f"must be one of {sorted(DISCOUNT_TYPES)}"})
            discount_type = DiscountType.NONE.value

        inputs: Dict[str, Any] = {"discount_type": discount_type}
        discount_value = _decimal(data.get("discount_value") or 0, "discount_value", errors)
        if (
            discount_value is not None
            and discount_type == DiscountType.PERCENTAGE.value
            and discount_value > 100
        ):
            errors.append({"field": "discount_value", "message": "percentage cannot exceed 100"})
        inputs["discount_value"] = discount_value or Decimal("0")

        for field in CHARGE_FIELDS:
            inputs[field] = _decimal(data.get(field) or 0, field, errors) or Decimal("0")
        return inputs

    def _check_references(self, data: Dict[str, Any], errors: List[Dict[str, str]]) -> None:
        table_id = data.get("table_id")
        if table_id is not None and not self.db.get(Table, table_id):
            errors.append({"field": "table_id", "message": f"table {table_id} not found"})
        for field in ("server_id", "captain_id"):
            user_id = data.get(field)
            if user_id is not None and not self.db.get(User, user_id):
                errors.append({"field": field, "message": f"user {user_id} not found"})

    def _resolve_catalog_names(self, items: List[Dict[str, Any]]) -> None:
        """Check dish/variant references and fill in missing snapshot names."""
        dish_ids = {item["dish_id"] for item in items}
        dishes = {d.id: d for d in self.db.query(Dish).filter(Dish.id.in_(dish_ids)).all()}
        variant_ids = {item["variant_id"] for item in items if item.get("variant_id") is not None}
        variants = {}
        if variant_ids:
            variants = {v.id: v for v in self.db.query(Variant).filter(Variant.id.in_(variant_ids)).all()}

        errors = []
        for index, item in enumerate(items):
            dish = dishes.get(item["dish_id"])
            if dish is None:
                errors.append({"field": f"items[{index}].dish_id", "message": f"dish {item['dish_id']} not found"})
                continue
            if not item.get("dish_name"):
                item["dish_name"] = dish.name

            variant_id = item.get("variant_id")
            if variant_id is None:
                continue
            variant = variants.get(variant_id)
            if variant is None or variant.dish_id != dish.id:
                errors.append({"field": f"items[{index}].variant_id", "message": f"variant {variant_id} not found for dish"})
                continue
            if not item.get("variant_name"):
                item["variant_name"] = variant.name

        if errors:
            raise ValidationError("Invalid order items", errors)

    @staticmethod
    def _build_item(item: Dict[str, Any], position: int) -> OrderItem:
        return OrderItem(
            position=position,
            dish_id=item["dish_id"],
            dish_name=item["dish_name"],
            variant_id=item.get("variant_id"),
            variant_name=item.get("variant_name"),
            quantity=item["quantity"],
            price=round2(item["price"]),
            add_ons=item.get("add_ons") or [],
            special_instructions=item.get("special_instructions"),
            item_status=item.get("item_status") or ItemStatus.PENDING.value,
            item_total=calculate_item_total(item),
        )

    def _replace_items(self, order: Order, items: List[Dict[str, Any]]) -> None:
        existing = {item.id: item for item in order.items}
        replacement = []
        for position, data in enumerate(items):
            current = existing.get(data.get("id"))
            if current is None:
                replacement.append(self._build_item(data, position))
                continue
            # Updated in place so kot_generated survives the edit
            current.position = position
            current.dish_id = data["dish_id"]
            current.dish_name = data["dish_name"]
            current.variant_id = data.get("variant_id")
            current.variant_name = data.get("variant_name")
            current.quantity = data["quantity"]
            current.price = round2(data["price"])
            current.add_ons = data.get("add_ons") or []
            current.special_instructions = data.get("special_instructions")
            current.item_status = data.get("item_status") or current.item_status
            replacement.append(current)
        order.items = replacement

    @staticmethod
    def _apply_totals(order: Order, totals: OrderTotals, pricing_inputs: Dict[str, Any]) -> None:
        for item, item_total in zip(order.items, totals.item_totals):
            item.item_total = item_total

        order.discount_type = pricing_inputs["discount_type"]
        order.discount_value = round2(pricing_inputs["discount_value"])
        order.subtotal = totals.subtotal
        order.total_tax = totals.total_tax
        order.discount_amount = totals.discount_amount
        order.delivery_charge = totals.delivery_charge
        order.packaging_charge = totals.packaging_charge
        order.service_charge = totals.service_charge
        order.tip = totals.tip
        order.total = totals.total
        order.round_off = totals.round_off
        order.amount_due = totals.amount_due
        order.taxes = [
            OrderTax(tax_name=line.tax_name, tax_rate=line.tax_rate, tax_amount=line.tax_amount)
            for line in totals.tax_breakdown
        ]
