"""Tests for order creation, patching, status transitions and payments."""

from decimal import Decimal

import pytest

from restopos.core.errors import (
    ConflictError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from restopos.core.rbac import TokenData, UserRole
from restopos.models.order import Order, OrderItem
from restopos.models.sequence import SequenceCounter
from restopos.services.order_service import ORDER_TRANSITIONS, OrderService

GHOST = TokenData(user_id=9999, email="ghost@example.com", role=UserRole.STAFF)

# Shortest route from a fresh order to each status
PATH_FROM_PENDING = {
    "pending": [],
    "confirmed": ["confirmed"],
    "preparing": ["preparing"],
    "ready": ["preparing", "ready"],
    "served": ["preparing", "ready", "served"],
    "completed": ["preparing", "ready", "completed"],
    "cancelled": ["cancelled"],
}


@pytest.fixture
def service(db_session, tax_rules, clock):
    return OrderService(db_session, tax_rules=tax_rules, clock=clock)


@pytest.fixture
def order(service, order_payload, test_user):
    return service.create_order(order_payload, test_user)


def _fields(exc_info):
    return {e["field"] for e in exc_info.value.errors}


class TestCreateOrder:

    def test_creates_pending_priced_order(self, service, order_payload, test_user):
        order = service.create_order(order_payload, test_user)

        assert order.order_number == "ORD-260314-0001"
        assert order.order_status == "pending"
        assert order.payment_status == "unpaid"
        assert order.subtotal == Decimal("220.00")
        assert order.total_tax == Decimal("11.00")
        assert order.total == Decimal("231.00")
        assert order.amount_due == Decimal("231.00")
        assert [(t.tax_name, t.tax_amount) for t in order.taxes] == [
            ("CGST", Decimal("5.50")), ("SGST", Decimal("5.50")),
        ]
        assert order.created_by == test_user.id
        assert order.version == 1

    def test_initial_history_entry(self, order, test_user):
        assert len(order.status_history) == 1
        entry = order.status_history[0]
        assert entry.status == "pending"
        assert entry.notes == "Order created"
        assert entry.user_id == test_user.id

    def test_snapshots_dish_and_variant_names(self, service, menu):
        order = service.create_order({
            "order_type": "takeaway",
            "customer": {"name": "Ravi", "phone": "555"},
            "items": [{
                "dish_id": menu["biryani"].id,
                "variant_id": menu["full"].id,
                "quantity": 2,
                "price": "320.00",
                "add_ons": [{"name": "Raita", "price": "20"}],
            }],
        })
        item = order.items[0]
        assert item.dish_name == "Chicken Biryani"
        assert item.variant_name == "Full"
        assert item.item_total == Decimal("660.00")
        assert item.kot_generated is False

    def test_sequential_numbers(self, service, order_payload):
        first = service.create_order(order_payload)
        second = service.create_order(order_payload)
        assert first.order_number == "ORD-260314-0001"
        assert second.order_number == "ORD-260314-0002"

    def test_supplied_order_number_must_be_unique(self, service, order_payload):
        service.create_order({**order_payload, "order_number": "EXT-1"})
        with pytest.raises(ConflictError):
            service.create_order({**order_payload, "order_number": "EXT-1"})

    def test_collects_all_field_errors(self, service, menu):
        with pytest.raises(ValidationError) as exc_info:
            service.create_order({
                "order_type": "drive_through",
                "customer": {"name": "  "},
                "items": [{"dish_id": menu["paneer"].id, "quantity": 0, "price": "-1"}],
            })
        assert {"order_type", "customer.name", "customer.phone", "items[0].quantity", "items[0].price"} <= _fields(exc_info)

    def test_requires_items(self, service, order_payload):
        with pytest.raises(ValidationError) as exc_info:
            service.create_order({**order_payload, "items": []})
        assert "items" in _fields(exc_info)

    def test_percentage_discount_capped_at_100(self, service, order_payload):
        with pytest.raises(ValidationError) as exc_info:
            service.create_order({**order_payload, "discount_type": "percentage", "discount_value": "150"})
        assert "discount_value" in _fields(exc_info)

    def test_unknown_dish(self, service, order_payload):
        payload = {**order_payload, "items": [{"dish_id": 999, "quantity": 1, "price": "10"}]}
        with pytest.raises(ValidationError) as exc_info:
            service.create_order(payload)
        assert "items[0].dish_id" in _fields(exc_info)

    def test_variant_must_belong_to_dish(self, service, order_payload, menu):
        payload = {**order_payload}
        payload["items"] = [{"dish_id": menu["paneer"].id, "variant_id": menu["half"].id, "quantity": 1, "price": "10"}]
        with pytest.raises(ValidationError):
            service.create_order(payload)

    def test_unknown_table(self, service, order_payload):
        with pytest.raises(ValidationError) as exc_info:
            service.create_order({**order_payload, "table_id": 42})
        assert "table_id" in _fields(exc_info)

    def test_table_reference(self, service, order_payload, test_table):
        order = service.create_order({**order_payload, "table_id": test_table.id})
        assert order.table_name == "T1"


class TestReadOrders:

    def test_get_by_id(self, service, order):
        assert service.get_order_by_id(order.id).order_number == order.order_number

    @pytest.mark.parametrize("bad_id", ["abc", 0, -3, None])
    def test_malformed_id_is_not_found(self, service, bad_id):
        with pytest.raises(NotFoundError):
            service.get_order_by_id(bad_id)

    def test_missing_order(self, service):
        with pytest.raises(NotFoundError, match="Order not found"):
            service.get_order_by_id(9999)

    def test_pagination_and_filters(self, service, order_payload):
        for phone in ("111", "222", "333"):
            service.create_order({**order_payload, "customer": {"name": "Guest", "phone": phone}})

        page = service.get_orders({}, page=1, limit=2)
        assert page["total_count"] == 3
        assert page["page_count"] == 2
        assert len(page["orders"]) == 2
        # newest first
        assert page["orders"][0].customer_phone == "333"

        found = service.get_orders({"search": "222"})
        assert [o.customer_phone for o in found["orders"]] == ["222"]

        assert service.get_orders({"order_status": "completed"})["total_count"] == 0

    def test_date_range_is_inclusive(self, service, order_payload):
        service.create_order({**order_payload, "order_date": "2026-03-10T09:00:00+00:00"})
        service.create_order({**order_payload, "order_date": "2026-03-12T23:00:00+00:00"})

        result = service.get_orders({"start_date": "2026-03-10", "end_date": "2026-03-12"})
        assert result["total_count"] == 2
        result = service.get_orders({"start_date": "2026-03-11"})
        assert result["total_count"] == 1

    def test_invalid_date_filter(self, service):
        with pytest.raises(ValidationError):
            service.get_orders({"start_date": "yesterday"})


class TestUpdateOrder:

    def test_discount_patch_recalculates(self, service, order):
        updated = service.update_order(order.id, {"discount_type": "percentage", "discount_value": "10"})
        assert updated.discount_amount == Decimal("22.00")
        assert updated.total == Decimal("209.00")

    def test_replacing_items_keeps_kot_flag(self, service, order, menu, db_session):
        first = order.items[0]
        db_session.query(OrderItem).filter(OrderItem.id == first.id).update({"kot_generated": True})
        db_session.commit()

        updated = service.update_order(order.id, {"items": [
            {"id": first.id, "dish_id": menu["paneer"].id, "quantity": 2, "price": "220.00"},
            {"dish_id": menu["biryani"].id, "variant_id": menu["full"].id, "quantity": 1, "price": "320.00"},
        ]})

        assert [i.quantity for i in updated.items] == [2, 1]
        assert updated.items[0].id == first.id
        assert updated.items[0].kot_generated is True
        assert updated.items[1].kot_generated is False
        assert updated.subtotal == Decimal("760.00")
        assert updated.total_tax == Decimal("38.00")
        assert updated.total == Decimal("798.00")

    def test_foreign_item_id_rejected(self, service, order, menu):
        with pytest.raises(ValidationError):
            service.update_order(order.id, {"items": [
                {"id": 12345, "dish_id": menu["paneer"].id, "quantity": 1, "price": "1"},
            ]})

    def test_payment_status_is_read_only(self, service, order):
        with pytest.raises(ValidationError):
            service.update_order(order.id, {"payment_status": "paid"})

    def test_stale_version_conflicts(self, service, order):
        with pytest.raises(ConflictError):
            service.update_order(order.id, {"version": order.version + 5, "notes": "late"})

    def test_matching_version_applies(self, service, order):
        updated = service.update_order(order.id, {"version": 1, "order_status": "confirmed"})
        assert updated.order_status == "confirmed"
        assert updated.version == 2

    def test_status_patch_follows_transition_table(self, service, order):
        with pytest.raises(InvalidTransitionError):
            service.update_order(order.id, {"order_status": "completed"})

    def test_customer_patch(self, service, order):
        updated = service.update_order(order.id, {"customer": {"phone": " 999 ", "email": "a@b.in"}})
        assert updated.customer_phone == "999"
        assert updated.customer_email == "a@b.in"
        assert updated.customer_name == "Asha Rao"


class TestOrderStatus:

    def test_transition_appends_history(self, service, order, test_user):
        updated = service.update_order_status(order.id, "confirmed", test_user)
        assert updated.order_status == "confirmed"
        assert [e.status for e in updated.status_history] == ["pending", "confirmed"]
        assert updated.status_history[-1].notes == "Status changed to confirmed"

    def test_full_lifecycle(self, service, order):
        for status in ("preparing", "ready", "served", "completed"):
            order = service.update_order_status(order.id, status, notes=f"to {status}")
        assert order.order_status == "completed"
        assert order.status_history[-1].notes == "to completed"

    def test_invalid_transition(self, service, order):
        with pytest.raises(InvalidTransitionError) as exc_info:
            service.update_order_status(order.id, "served")
        assert exc_info.value.from_status == "pending"
        assert exc_info.value.to_status == "served"

    def test_same_status_rejected(self, service, order):
        with pytest.raises(InvalidTransitionError):
            service.update_order_status(order.id, "pending")

    def test_unknown_status(self, service, order):
        with pytest.raises(ValidationError):
            service.update_order_status(order.id, "teleported")

    def test_cancel_records_reason(self, service, order, test_user):
        cancelled = service.update_order_status(order.id, "cancelled", test_user, notes="Customer left")
        assert cancelled.cancel_reason == "Customer left"
        assert cancelled.cancelled_by == test_user.id

    def test_cancel_default_reason(self, service, order):
        assert service.update_order_status(order.id, "cancelled").cancel_reason == "No reason provided"

    def test_terminal_orders_are_frozen(self, service, order):
        service.update_order_status(order.id, "cancelled")
        with pytest.raises(InvalidStateError):
            service.update_order(order.id, {"notes": "too late"})
        with pytest.raises(InvalidTransitionError):
            service.update_order_status(order.id, "pending")

    def test_terminal_statuses_have_no_exits(self):
        assert ORDER_TRANSITIONS["completed"] == set()
        assert ORDER_TRANSITIONS["cancelled"] == set()

    @pytest.mark.parametrize(
        "from_status,to_status",
        [(f, t) for f in ORDER_TRANSITIONS for t in ORDER_TRANSITIONS],
    )
    def test_transition_table_is_closed(self, service, order, from_status, to_status):
        for step in PATH_FROM_PENDING[from_status]:
            order = service.update_order_status(order.id, step)
        assert order.order_status == from_status
        history_before = len(order.status_history)

        if to_status not in ORDER_TRANSITIONS[from_status]:
            with pytest.raises(InvalidTransitionError):
                service.update_order_status(order.id, to_status)
            assert service.get_order_by_id(order.id).order_status == from_status
            return

        moved = service.update_order_status(order.id, to_status)
        assert moved.order_status == to_status
        assert len(moved.status_history) == history_before + 1
        assert moved.status_history[-1].status == to_status


class TestPayments:

    def test_partial_then_full(self, service, order, test_user):
        partial = service.add_payment(order.id, {"method": "cash", "amount": "100"}, test_user)
        assert partial.payment_status == "partially_paid"
        assert partial.payments[0].received_by == test_user.id

        paid = service.add_payment(order.id, {"method": "upi", "amount": "131.00", "transaction_id": "UPI-9"})
        assert paid.payment_status == "paid"
        assert paid.amount_paid == Decimal("231.00")
        assert [p.method for p in paid.payments] == ["cash", "upi"]

    def test_overpayment_is_paid(self, service, order):
        assert service.add_payment(order.id, {"method": "cash", "amount": "500"}).payment_status == "paid"

    def test_invalid_payment(self, service, order):
        with pytest.raises(ValidationError) as exc_info:
            service.add_payment(order.id, {"method": "barter", "amount": "0"})
        assert {"method", "amount"} <= _fields(exc_info)

    def test_no_payments_on_cancelled_order(self, service, order):
        service.update_order_status(order.id, "cancelled")
        with pytest.raises(InvalidStateError):
            service.add_payment(order.id, {"method": "cash", "amount": "10"})


class TestIntegrityFailures:

    def test_unknown_acting_user_on_create(self, service, order_payload, db_session):
        with pytest.raises(ValidationError) as exc_info:
            service.create_order(order_payload, GHOST)
        assert _fields(exc_info) == {"user"}
        assert db_session.query(Order).count() == 0

    def test_unknown_acting_user_on_update(self, service, order):
        with pytest.raises(ValidationError):
            service.update_order(order.id, {"notes": "x"}, GHOST)
        assert service.get_order_by_id(order.id).notes is None

    def test_unknown_acting_user_on_payment(self, service, order):
        with pytest.raises(ValidationError):
            service.add_payment(order.id, {"method": "cash", "amount": "10"}, GHOST)
        assert service.get_order_by_id(order.id).payments == []

    def test_dangling_reference_is_not_a_conflict(self, service, order):
        with pytest.raises(ValidationError):
            with service.unit_of_work(integrity_message="Order number already exists"):
                order.table_id = 4242
        assert service.get_order_by_id(order.id).table_id is None

    def test_duplicate_key_is_a_conflict(self, service, order, db_session):
        with pytest.raises(ConflictError, match="Record already exists"):
            with service.unit_of_work():
                db_session.add(SequenceCounter(scope="ORD", day="260314", value=9))
        assert db_session.query(SequenceCounter).filter_by(scope="ORD").one().value == 1


class TestSalesSummary:

    def test_completed_orders_grouped_by_day(self, service, order_payload):
        for _ in range(2):
            order = service.create_order({**order_payload, "order_date": "2026-03-14T10:00:00+00:00"})
            for status in ("preparing", "ready", "completed"):
                service.update_order_status(order.id, status)
        # still open, not counted
        service.create_order({**order_payload, "order_date": "2026-03-14T11:00:00+00:00"})

        rows = service.get_sales_summary("2026-03-14", "2026-03-14")
        assert rows == [{"date": "2026-03-14", "total_sales": Decimal("462.00"), "order_count": 2}]
