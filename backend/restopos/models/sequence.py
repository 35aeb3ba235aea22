"""Per-day sequence counters backing order, KOT and invoice numbers."""

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from restopos.db.base import Base


class SequenceCounter(Base):
    """Last issued value for one (scope, day) pair, e.g. ("KOT-DI", "241015")."""

    __tablename__ = "sequence_counters"
    __table_args__ = (
        UniqueConstraint("scope", "day", name="uq_sequence_counters_scope_day"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    scope: Mapped[str] = mapped_column(String(20), nullable=False)
    day: Mapped[str] = mapped_column(String(8), nullable=False)
    value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
