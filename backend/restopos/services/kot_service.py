"""Kitchen order ticket service.

Creates KOTs from an order's items, moves them through the kitchen
workflow and pushes the resulting readiness back onto the order.  Writes to
the order row are field-level UPDATEs that bump its version, never a full
object save, so they cannot clobber a concurrent order edit.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from restopos.core.errors import (
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from restopos.db.base import utcnow
from restopos.models.kot import (
    KOT,
    KOT_STATUS_RANK,
    KOTItem,
    KOTPriority,
    KOTStation,
    KOTStatus,
    KOTStatusEntry,
    TERMINAL_KOT_STATUSES,
)
from restopos.models.order import ItemStatus, Order, OrderItem, OrderStatus, OrderStatusEntry
from restopos.services.base import EngineService, parse_datetime, parse_id
from restopos.services.numbering import SequenceGenerator

logger = logging.getLogger(__name__)

KOT_STATUSES = {s.value for s in KOTStatus}
STATIONS = {s.value for s in KOTStation}

# Orders the kitchen may promote to ready; anything later is never demoted
PROMOTABLE_ORDER_STATUSES = (
    OrderStatus.PENDING.value,
    OrderStatus.CONFIRMED.value,
    OrderStatus.PREPARING.value,
)

KOT_LOAD_OPTIONS = (
    selectinload(KOT.kot_items),
    selectinload(KOT.status_history),
    joinedload(KOT.order),
    joinedload(KOT.table),
)


class KOTService(EngineService):
    """KOT lifecycle for one request session."""

    def __init__(self, db: Session, clock: Optional[Callable[[], datetime]] = None):
        super().__init__(db)
        self.clock = clock or utcnow
        self.sequences = SequenceGenerator(db, clock=self.clock)

    def create_kot(self, kot_data: Dict[str, Any], user: Any = None) -> KOT:
        """Create a ticket for some or all of an order's items.

        Items come from ``kot_items`` when given, else from the order items
        listed in ``order_items``, else from every order item not yet sent
        to the kitchen.  Referenced order items are flagged
        ``kot_generated``; ids that match nothing are reported on the
        returned KOT's ``warnings`` instead of failing the request.
        """
        data = dict(kot_data or {})
        if data.get("order_id") is None:
            raise ValidationError("Invalid KOT data", [{"field": "order_id", "message": "is required"}])
        order_id = parse_id(data["order_id"], "order")

        order = (
            self.db.query(Order)
            .options(selectinload(Order.items))
            .filter(Order.id == order_id)
            .first()
        )
        if not order:
            raise NotFoundError("Order not found")
        if order.is_terminal:
            raise InvalidStateError(f"Cannot create KOT for order in {order.order_status} status")

        errors: List[Dict[str, str]] = []
        priority = data.get("priority") or KOTPriority.NORMAL.value
        if priority not in (1, 2, 3):
            errors.append({"field": "priority", "message": "must be 1 (high), 2 (normal) or 3 (low)"})
        station = data.get("station") or KOTStation.KITCHEN.value
        if station not in STATIONS:
            errors.append({"field": "station", "message": f"must be one of {sorted(STATIONS)}"})

        order_items = {item.id: item for item in order.items}
        kot_items, referenced_ids = self._collect_items(data, order_items, errors)
        if not errors and not kot_items:
            errors.append({"field": "kot_items", "message": "KOT must contain at least one item"})
        if errors:
            raise ValidationError("Invalid KOT data", errors)

        uid = self.acting_user_id(user)
        with self.unit_of_work(integrity_message="KOT number already exists"):
            kot = KOT(
                kot_number=self.sequences.generate_kot_number(order.order_type),
                order_id=order.id,
                order_number=order.order_number,
                order_type=order.order_type,
                table_id=order.table_id,
                customer_name=order.customer_name,
                customer_phone=order.customer_phone,
                order_item_ids=referenced_ids,
                kot_status=KOTStatus.PENDING.value,
                priority=priority,
                station=station,
                estimated_completion_time=parse_datetime(
                    data.get("estimated_completion_time"), "estimated_completion_time"
                ),
                created_by=uid,
                updated_by=uid,
            )
            kot.kot_items = kot_items
            kot.status_history.append(
                KOTStatusEntry(status=KOTStatus.PENDING.value, user_id=uid, notes="KOT created")
            )
            self.db.add(kot)

        logger.info("KOT %s created for order %s (%d items)", kot.kot_number, order.order_number, len(kot_items))

        warnings = self._flag_order_items(order.id, referenced_ids)
        kot = self.get_kot_by_id(kot.id)
        kot.warnings = warnings
        return kot

    def get_kot_by_id(self, kot_id: Any) -> KOT:
        kid = parse_id(kot_id, "KOT")
        kot = self.db.query(KOT).options(*KOT_LOAD_OPTIONS).filter(KOT.id == kid).first()
        if not kot:
            raise NotFoundError("KOT not found")
        return kot

    def get_kots(self, filters: Optional[Dict[str, Any]] = None) -> List[KOT]:
        """Newest-first KOTs; ``kot_status`` may be a single value or a list."""
        filters = filters or {}
        query = self.db.query(KOT)

        if filters.get("order_id") is not None:
            query = query.filter(KOT.order_id == parse_id(filters["order_id"], "order"))

        kot_status = filters.get("kot_status")
        if isinstance(kot_status, (list, tuple, set)):
            if kot_status:
                query = query.filter(KOT.kot_status.in_(list(kot_status)))
        elif kot_status:
            query = query.filter(KOT.kot_status == kot_status)

        if filters.get("station"):
            query = query.filter(KOT.station == filters["station"])
        if filters.get("order_type"):
            query = query.filter(KOT.order_type == filters["order_type"])

        return (
            query.options(*KOT_LOAD_OPTIONS)
            .order_by(KOT.created_at.desc(), KOT.id.desc())
            .all()
        )

    def update_kot_status(self, kot_id: Any, status: str, user: Any = None, notes: Optional[str] = None) -> KOT:
        """Advance a KOT; cancelling is allowed from any non-terminal status."""
        kot = self.get_kot_by_id(kot_id)
        if status not in KOT_STATUSES:
            raise ValidationError("Invalid KOT status")

        current = kot.kot_status
        if status == current:
            return kot
        if current in TERMINAL_KOT_STATUSES:
            raise InvalidTransitionError(current, status)
        if status != KOTStatus.CANCELLED.value and KOT_STATUS_RANK[KOTStatus(status)] < KOT_STATUS_RANK[KOTStatus(current)]:
            raise InvalidTransitionError(current, status)

        uid = self.acting_user_id(user)
        with self.unit_of_work():
            now = self.clock()
            kot.kot_status = status
            kot.updated_by = uid
            if status == KOTStatus.PREPARING.value and kot.preparation_start_time is None:
                kot.preparation_start_time = now
            if status in (KOTStatus.READY.value, KOTStatus.COMPLETED.value) and kot.completion_time is None:
                kot.completion_time = now
            kot.status_history.append(KOTStatusEntry(
                status=status,
                user_id=uid,
                notes=notes or f"Status changed to {status}",
            ))
            if status in (KOTStatus.COMPLETED.value, KOTStatus.CANCELLED.value):
                for item in kot.kot_items:
                    item.kot_status = status

        logger.info("KOT %s moved from %s to %s", kot.kot_number, current, status)
        self.check_and_update_order_status(kot.order_id)
        return self.get_kot_by_id(kot.id)

    def mark_kot_as_printed(self, kot_id: Any, user: Any = None, printer: str = "default") -> KOT:
        kot = self.get_kot_by_id(kot_id)
        with self.unit_of_work():
            self.db.execute(
                update(KOT)
                .where(KOT.id == kot.id)
                .values(
                    printed=True,
                    printed_at=self.clock(),
                    printed_by=self.acting_user_id(user),
                    printer=printer or "default",
                    print_count=KOT.print_count + 1,
                )
                .execution_options(synchronize_session=False)
            )
        return self.get_kot_by_id(kot.id)

    def check_and_update_order_status(self, order_id: int) -> bool:
        """Promote the order to ``ready`` when its KOTs say so.

        All KOTs completed or cancelled -> "All KOTs completed"; otherwise
        any KOT ready -> "Items ready for service".  Only pending, confirmed
        and preparing orders are promoted.  Never raises; returns whether
        the order changed.
        """
        try:
            statuses = [
                row[0] for row in self.db.query(KOT.kot_status).filter(KOT.order_id == order_id).all()
            ]
            if not statuses:
                return False

            if all(s in TERMINAL_KOT_STATUSES for s in statuses):
                note = "All KOTs completed"
            elif any(s == KOTStatus.READY.value for s in statuses):
                note = "Items ready for service"
            else:
                return False

            result = self.db.execute(
                update(Order)
                .where(Order.id == order_id, Order.order_status.in_(PROMOTABLE_ORDER_STATUSES))
                .values(order_status=OrderStatus.READY.value, version=Order.version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.db.rollback()
                return False

            self.db.add(OrderStatusEntry(order_id=order_id, status=OrderStatus.READY.value, notes=note))
            self.db.commit()
            logger.info("Order %s promoted to ready: %s", order_id, note)
            return True
        except Exception:
            self.db.rollback()
            logger.exception("Failed to sync status of order %s from its KOTs", order_id)
            return False

    # ------------------------------------------------------------------

    def _collect_items(
        self,
        data: Dict[str, Any],
        order_items: Dict[int, OrderItem],
        errors: List[Dict[str, str]],
    ):
        """Build KOTItem rows and the list of order item ids they came from."""
        explicit = data.get("kot_items")
        if explicit:
            kot_items, referenced = [], []
            for index, raw in enumerate(explicit):
                prefix = f"kot_items[{index}]"
                if not isinstance(raw, dict):
                    errors.append({"field": prefix, "message": "must be an object"})
                    continue
                source = order_items.get(raw.get("order_item_id"))
                if raw.get("order_item_id") is not None:
                    referenced.append(raw["order_item_id"])

                dish_id = raw.get("dish_id") or (source.dish_id if source else None)
                dish_name = raw.get("dish_name") or (source.dish_name if source else None)
                quantity = raw.get("quantity") or (source.quantity if source else None)
                if not dish_id or not dish_name:
                    errors.append({"field": f"{prefix}.dish_id", "message": "dish_id and dish_name are required"})
                    continue
                if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
                    errors.append({"field": f"{prefix}.quantity", "message": "must be an integer >= 1"})
                    continue

                add_ons = raw.get("add_ons")
                if add_ons is None and source is not None:
                    add_ons = source.add_ons
                kot_items.append(KOTItem(
                    order_item_id=source.id if source else None,
                    dish_id=dish_id,
                    dish_name=dish_name,
                    variant_id=raw.get("variant_id") or (source.variant_id if source else None),
                    variant_name=raw.get("variant_name") or (source.variant_name if source else None),
                    quantity=quantity,
                    add_ons=[
                        {"add_on_id": a.get("add_on_id"), "name": a.get("name")}
                        for a in (add_ons or []) if isinstance(a, dict)
                    ],
                    special_instructions=raw.get("special_instructions") or (
                        source.special_instructions if source else None
                    ),
                ))
            return kot_items, referenced

        requested = data.get("order_items")
        if requested:
            sources, referenced = [], []
            for item_id in requested:
                referenced.append(item_id)
                if item_id in order_items:
                    sources.append(order_items[item_id])
        else:
            sources = [
                item for item in order_items.values()
                if not item.kot_generated and item.item_status != ItemStatus.CANCELLED.value
            ]
            sources.sort(key=lambda item: item.position)
            referenced = [item.id for item in sources]

        return [self._from_order_item(item) for item in sources], referenced

    @staticmethod
    def _from_order_item(item: OrderItem) -> KOTItem:
        return KOTItem(
            order_item_id=item.id,
            dish_id=item.dish_id,
            dish_name=item.dish_name,
            variant_id=item.variant_id,
            variant_name=item.variant_name,
            quantity=item.quantity,
            add_ons=[{"add_on_id": a.get("add_on_id"), "name": a.get("name")} for a in (item.add_ons or [])],
            special_instructions=item.special_instructions,
        )

    def _flag_order_items(self, order_id: int, item_ids: List[Any]) -> List[str]:
        """Set kot_generated on each referenced order item; return warnings."""
        warnings: List[str] = []
        if not item_ids:
            return warnings
        try:
            flagged = 0
            for item_id in item_ids:
                result = self.db.execute(
                    update(OrderItem)
                    .where(OrderItem.id == item_id, OrderItem.order_id == order_id)
                    .values(kot_generated=True)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    logger.warning("Order item %s not found on order %s; not flagged", item_id, order_id)
                    warnings.append(f"Order item {item_id} could not be marked as sent to kitchen")
                else:
                    flagged += result.rowcount
            if flagged:
                self.db.execute(
                    update(Order)
                    .where(Order.id == order_id)
                    .values(version=Order.version + 1)
                    .execution_options(synchronize_session=False)
                )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to flag items of order %s as sent to kitchen: %s", order_id, exc)
            warnings.append("Order items could not be marked as sent to kitchen")
        return warnings

