"""Tests for kitchen order tickets and their effect on the parent order."""

from datetime import timedelta

import pytest

from restopos.core.errors import (
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from restopos.core.rbac import TokenData, UserRole
from restopos.models.order import Order
from restopos.services.kot_service import KOTService
from restopos.services.order_service import OrderService


@pytest.fixture
def orders(db_session, tax_rules, clock):
    return OrderService(db_session, tax_rules=tax_rules, clock=clock)


@pytest.fixture
def kots(db_session, clock):
    return KOTService(db_session, clock=clock)


@pytest.fixture
def order(orders, order_payload, menu, test_user):
    payload = dict(order_payload)
    payload["items"] = order_payload["items"] + [
        {"dish_id": menu["biryani"].id, "variant_id": menu["half"].id, "quantity": 2, "price": "180.00",
         "add_ons": [{"name": "Extra raita", "price": "20"}], "special_instructions": "less spicy"},
    ]
    return orders.create_order(payload, test_user)


def _order_row(db_session, order_id):
    db_session.expire_all()
    return db_session.get(Order, order_id)


class TestCreateKOT:

    def test_sends_all_unsent_items(self, kots, order, db_session, test_user):
        kot = kots.create_kot({"order_id": order.id}, test_user)

        assert kot.kot_number == "KOT-DI-260314-0001"
        assert kot.kot_status == "pending"
        assert kot.order_number == order.order_number
        assert kot.station == "kitchen"
        assert kot.priority == 2
        assert [i.dish_name for i in kot.kot_items] == ["Paneer Tikka", "Chicken Biryani"]
        assert kot.kot_items[1].variant_name == "Half"
        assert kot.kot_items[1].special_instructions == "less spicy"
        # kitchen copy drops add-on prices
        assert kot.kot_items[1].add_ons == [{"add_on_id": None, "name": "Extra raita"}]
        assert list(kot.warnings) == []
        assert [e.notes for e in kot.status_history] == ["KOT created"]

        refreshed = _order_row(db_session, order.id)
        assert all(item.kot_generated for item in refreshed.items)
        assert refreshed.version == 2

    def test_nothing_left_to_send(self, kots, order):
        kots.create_kot({"order_id": order.id})
        with pytest.raises(ValidationError) as exc_info:
            kots.create_kot({"order_id": order.id})
        assert exc_info.value.errors[0]["message"] == "KOT must contain at least one item"

    def test_selected_items_only(self, kots, order, db_session):
        first = order.items[0]
        kot = kots.create_kot({"order_id": order.id, "order_items": [first.id], "station": "bar", "priority": 1})

        assert len(kot.kot_items) == 1
        assert kot.station == "bar"
        assert kot.priority == 1
        flags = {i.id: i.kot_generated for i in _order_row(db_session, order.id).items}
        assert flags[first.id] is True
        assert list(flags.values()).count(True) == 1

        # the second ticket picks up only what is left
        follow_up = kots.create_kot({"order_id": order.id})
        assert [i.dish_name for i in follow_up.kot_items] == ["Chicken Biryani"]
        assert follow_up.kot_number == "KOT-DI-260314-0002"

    def test_unknown_item_id_is_a_warning(self, kots, order):
        kot = kots.create_kot({"order_id": order.id, "order_items": [order.items[0].id, 9999]})
        assert len(kot.kot_items) == 1
        assert list(kot.warnings) == ["Order item 9999 could not be marked as sent to kitchen"]

    def test_explicit_kot_items(self, kots, order, menu):
        kot = kots.create_kot({
            "order_id": order.id,
            "kot_items": [{"dish_id": menu["paneer"].id, "dish_name": "Paneer Tikka (remake)", "quantity": 1}],
        })
        assert kot.kot_items[0].order_item_id is None
        assert kot.kot_items[0].dish_name == "Paneer Tikka (remake)"

    def test_kot_items_fill_from_order_item(self, kots, order):
        source = order.items[1]
        kot = kots.create_kot({"order_id": order.id, "kot_items": [{"order_item_id": source.id, "quantity": 1}]})
        item = kot.kot_items[0]
        assert item.order_item_id == source.id
        assert item.dish_name == "Chicken Biryani"
        assert item.quantity == 1

    def test_order_required(self, kots):
        with pytest.raises(ValidationError):
            kots.create_kot({})
        with pytest.raises(NotFoundError):
            kots.create_kot({"order_id": 4040})

    def test_invalid_station_and_priority(self, kots, order):
        with pytest.raises(ValidationError) as exc_info:
            kots.create_kot({"order_id": order.id, "station": "pizza_oven", "priority": 7})
        assert {e["field"] for e in exc_info.value.errors} == {"station", "priority"}

    def test_cancelled_order_rejected(self, kots, orders, order):
        orders.update_order_status(order.id, "cancelled")
        with pytest.raises(InvalidStateError):
            kots.create_kot({"order_id": order.id})

    def test_type_code_follows_order_type(self, kots, orders, order_payload):
        delivery = orders.create_order({**order_payload, "order_type": "delivery"})
        assert kots.create_kot({"order_id": delivery.id}).kot_number == "KOT-DL-260314-0001"


class TestKOTStatus:

    def test_timing_fields(self, kots, order, clock):
        kot = kots.create_kot({"order_id": order.id})
        kot = kots.update_kot_status(kot.id, "preparing")
        assert kot.preparation_start_time is not None
        assert kot.completion_time is None

        clock.now = clock.now + timedelta(minutes=12)
        kot = kots.update_kot_status(kot.id, "ready")
        assert kot.completion_time is not None
        assert kot.prep_time_minutes == 12

    def test_history_and_notes(self, kots, order, test_user):
        kot = kots.create_kot({"order_id": order.id})
        kot = kots.update_kot_status(kot.id, "preparing", test_user, notes="On the tandoor")
        assert [e.status for e in kot.status_history] == ["pending", "preparing"]
        assert kot.status_history[-1].notes == "On the tandoor"
        assert kot.updated_by == test_user.id

    def test_same_status_is_noop(self, kots, order):
        kot = kots.create_kot({"order_id": order.id})
        again = kots.update_kot_status(kot.id, "pending")
        assert len(again.status_history) == 1

    def test_cannot_move_backwards(self, kots, order):
        kot = kots.create_kot({"order_id": order.id})
        kots.update_kot_status(kot.id, "ready")
        with pytest.raises(InvalidTransitionError):
            kots.update_kot_status(kot.id, "preparing")

    def test_terminal_kot_is_final(self, kots, order):
        kot = kots.create_kot({"order_id": order.id})
        kots.update_kot_status(kot.id, "completed")
        with pytest.raises(InvalidTransitionError):
            kots.update_kot_status(kot.id, "cancelled")

    def test_unknown_status(self, kots, order):
        kot = kots.create_kot({"order_id": order.id})
        with pytest.raises(ValidationError, match="Invalid KOT status"):
            kots.update_kot_status(kot.id, "burnt")

    def test_completion_marks_items(self, kots, order):
        kot = kots.create_kot({"order_id": order.id})
        kot = kots.update_kot_status(kot.id, "completed")
        assert {i.kot_status for i in kot.kot_items} == {"completed"}

    def test_unknown_acting_user(self, kots, order):
        kot = kots.create_kot({"order_id": order.id})
        ghost = TokenData(user_id=9999, email="ghost@example.com", role=UserRole.STAFF)
        with pytest.raises(ValidationError):
            kots.update_kot_status(kot.id, "preparing", ghost)
        assert kots.get_kot_by_id(kot.id).kot_status == "pending"


class TestOrderPromotion:

    def test_ready_kot_promotes_order(self, kots, order, db_session):
        kot = kots.create_kot({"order_id": order.id})
        kots.update_kot_status(kot.id, "ready")

        refreshed = _order_row(db_session, order.id)
        assert refreshed.order_status == "ready"
        assert refreshed.status_history[-1].notes == "Items ready for service"

    def test_all_kots_done(self, kots, order, db_session):
        first = kots.create_kot({"order_id": order.id, "order_items": [order.items[0].id]})
        second = kots.create_kot({"order_id": order.id})
        kots.update_kot_status(first.id, "completed")
        # one ticket still pending
        assert _order_row(db_session, order.id).order_status == "pending"

        kots.update_kot_status(second.id, "completed")
        refreshed = _order_row(db_session, order.id)
        assert refreshed.order_status == "ready"
        assert refreshed.status_history[-1].notes == "All KOTs completed"

    def test_preparing_kot_does_not_promote(self, kots, order, db_session):
        kot = kots.create_kot({"order_id": order.id})
        kots.update_kot_status(kot.id, "preparing")
        assert _order_row(db_session, order.id).order_status == "pending"

    def test_all_cancelled_still_promotes(self, kots, order, db_session):
        kot = kots.create_kot({"order_id": order.id})
        kots.update_kot_status(kot.id, "cancelled")
        assert _order_row(db_session, order.id).order_status == "ready"

    def test_served_order_is_not_demoted(self, kots, orders, order, db_session):
        kot = kots.create_kot({"order_id": order.id})
        for status in ("preparing", "ready", "served"):
            orders.update_order_status(order.id, status)

        kots.update_kot_status(kot.id, "ready")
        assert _order_row(db_session, order.id).order_status == "served"

    def test_order_without_kots(self, kots, order):
        assert kots.check_and_update_order_status(order.id) is False

    def test_promotion_bumps_version(self, kots, order, db_session):
        kot = kots.create_kot({"order_id": order.id})
        before = _order_row(db_session, order.id).version
        kots.update_kot_status(kot.id, "ready")
        assert _order_row(db_session, order.id).version == before + 1


class TestPrintAndList:

    def test_print_increments(self, kots, order, test_user):
        kot = kots.create_kot({"order_id": order.id})
        kots.mark_kot_as_printed(kot.id, test_user, "pass-1")
        kot = kots.mark_kot_as_printed(kot.id, test_user, "pass-1")
        assert kot.printed is True
        assert kot.print_count == 2
        assert kot.printer == "pass-1"
        assert kot.printed_by == test_user.id

    def test_filters(self, kots, order):
        bar = kots.create_kot({"order_id": order.id, "order_items": [order.items[0].id], "station": "bar"})
        kitchen = kots.create_kot({"order_id": order.id})
        kots.update_kot_status(kitchen.id, "preparing")

        assert [k.id for k in kots.get_kots({"station": "bar"})] == [bar.id]
        assert [k.id for k in kots.get_kots({"kot_status": "preparing"})] == [kitchen.id]
        assert len(kots.get_kots({"kot_status": ["pending", "preparing"]})) == 2
        assert len(kots.get_kots({"order_id": order.id})) == 2

    def test_missing_kot(self, kots):
        with pytest.raises(NotFoundError, match="KOT not found"):
            kots.get_kot_by_id(77)
        with pytest.raises(NotFoundError):
            kots.get_kot_by_id("x1")
