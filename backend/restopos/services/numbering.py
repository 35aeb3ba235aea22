"""
Human-readable document numbers.

    ORD-YYMMDD-NNNN          orders
    KOT-<TYPE>-YYMMDD-NNNN   kitchen tickets, sequence per order type
    INV-YYMMDD-NNNN          invoices

Sequences restart every business day (in the configured timezone) and are
drawn from ``sequence_counters`` rows with a single atomic increment, so two
writers can never be handed the same number.
"""

import logging
from datetime import datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from restopos.core.config import settings
from restopos.db.base import utcnow
from restopos.models.order import OrderType
from restopos.models.sequence import SequenceCounter

logger = logging.getLogger(__name__)

KOT_TYPE_CODES = {
    OrderType.DINE_IN.value: "DI",
    OrderType.TAKEAWAY.value: "TA",
    OrderType.DELIVERY.value: "DL",
    OrderType.QR_ORDER.value: "QR",
    OrderType.DIRECT_TAKEAWAY.value: "DT",
    OrderType.DIRECT_DELIVERY.value: "DD",
    OrderType.THIRD_PARTY.value: "TP",
}


class SequenceGenerator:
    """Issue order, KOT and invoice numbers inside the caller's transaction."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Callable[[], datetime]] = None,
        timezone: Optional[str] = None,
    ):
        self.db = db
        self.clock = clock or utcnow
        self.tz = ZoneInfo(timezone or settings.timezone)

    def business_day(self) -> str:
        return self.clock().astimezone(self.tz).strftime("%y%m%d")

    def next_value(self, scope: str, day: str) -> int:
        """Increment and return the counter for (scope, day)."""
        bump = (
            update(SequenceCounter)
            .where(SequenceCounter.scope == scope, SequenceCounter.day == day)
            .values(value=SequenceCounter.value + 1)
            .execution_options(synchronize_session=False)
        )
        if self.db.execute(bump).rowcount == 0:
            try:
                with self.db.begin_nested():
                    self.db.add(SequenceCounter(scope=scope, day=day, value=1))
                return 1
            except IntegrityError:
                # Another transaction created today's row first
                logger.debug("Sequence row %s/%s created concurrently, retrying", scope, day)
                self.db.execute(bump)

        return self.db.execute(
            select(SequenceCounter.value).where(
                SequenceCounter.scope == scope, SequenceCounter.day == day
            )
        ).scalar_one()

    def _format(self, prefix: str) -> str:
        day = self.business_day()
        value = self.next_value(prefix, day)
        return f"{prefix}-{day}-{value:04d}"

    def generate_order_number(self) -> str:
        return self._format("ORD")

    def generate_kot_number(self, order_type: str) -> str:
        code = KOT_TYPE_CODES.get(getattr(order_type, "value", order_type))
        if code is None:
            raise ValueError(f"Unknown order type for KOT numbering: {order_type}")
        return self._format(f"KOT-{code}")

    def generate_invoice_number(self) -> str:
        return self._format("INV")
