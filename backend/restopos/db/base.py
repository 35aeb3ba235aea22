"""SQLAlchemy declarative base and common utilities."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


class VersionMixin:
    """Optimistic locking via a version counter.

    Models using this mixin declare a ``version`` column and register it as
    the mapper's ``version_id_col``; SQLAlchemy then increments it on every
    ORM UPDATE and raises ``StaleDataError`` when the row changed underneath
    the session.  Field-level UPDATE statements issued outside the ORM must
    bump it themselves.  Call ``check_version()`` to compare a version the
    client last saw against the current row.
    """

    def check_version(self, expected: Optional[int]) -> None:
        """Raise ValueError if *expected* doesn't match current version."""
        if expected is not None and expected != self.version:
            raise ValueError(
                f"Version conflict: expected {expected}, current {self.version}"
            )
