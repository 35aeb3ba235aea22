"""Shared plumbing for the order engine services."""

import logging
from contextlib import contextmanager
from datetime import date, datetime, time, timezone
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from restopos.core.config import settings
from restopos.core.errors import ConflictError, NotFoundError, ValidationError
from restopos.models.user import User

logger = logging.getLogger(__name__)


def user_id_of(user: Any) -> Optional[int]:
    """Audit id for the acting user (token data or ORM user), or None."""
    return getattr(user, "id", None) if user is not None else None


def is_unique_violation(exc: IntegrityError) -> bool:
    """True when the driver reports a duplicate key rather than a broken reference."""
    orig = exc.orig
    if getattr(orig, "pgcode", None) == "23505" or getattr(orig, "sqlstate", None) == "23505":
        return True
    message = str(orig).lower()
    return "unique" in message or "duplicate" in message


def parse_id(raw: Any, label: str) -> int:
    """Coerce a path/filter id to int; malformed ids are reported as not found."""
    if isinstance(raw, bool):
        raise NotFoundError(f"Invalid {label} ID")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise NotFoundError(f"Invalid {label} ID")
    if value < 1:
        raise NotFoundError(f"Invalid {label} ID")
    return value


def parse_datetime(value: Any, field: str, end_of_day: bool = False) -> Optional[datetime]:
    """Normalize a date filter to an aware UTC datetime.

    A bare date (``date`` instance or ``YYYY-MM-DD`` string) means the start
    of that day, or its last microsecond when ``end_of_day`` is set.  Naive
    datetimes are taken as UTC.
    """
    if value is None or value == "":
        return None

    bare_date = False
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
        bare_date = True
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"Invalid {field}: {value!r}")
        bare_date = len(value.strip()) == 10
    else:
        raise ValidationError(f"Invalid {field}: {value!r}")

    if bare_date and end_of_day:
        parsed = datetime.combine(parsed.date(), time.max)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_pagination(page: Any, limit: Any) -> Tuple[int, int]:
    try:
        page = int(page) if page is not None else 1
        limit = int(limit) if limit is not None else settings.default_page_size
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers")
    page = max(page, 1)
    limit = min(max(limit, 1), settings.max_page_size)
    return page, limit


def page_envelope(key: str, rows: list, total_count: int, page: int, limit: int) -> Dict[str, Any]:
    return {
        key: rows,
        "total_count": total_count,
        "page_count": (total_count + limit - 1) // limit,
        "current_page": page,
        "limit": limit,
    }


class EngineService:
    """Base for services that own one SQLAlchemy session per request."""

    def __init__(self, db: Session):
        self.db = db

    def acting_user_id(self, user: Any) -> Optional[int]:
        """Audit id for the acting user; a token whose user row is gone is rejected."""
        uid = user_id_of(user)
        if uid is not None and self.db.get(User, uid) is None:
            raise ValidationError(
                "Acting user does not exist",
                [{"field": "user", "message": f"user {uid} not found"}],
            )
        return uid

    @contextmanager
    def unit_of_work(self, integrity_message: Optional[str] = None):
        """Commit on success, roll back on any error.

        Stale optimistic-lock versions and duplicate keys surface as
        ``ConflictError`` (with ``integrity_message`` when given). Any other
        integrity failure, such as a dangling foreign key, is a
        ``ValidationError``.
        """
        try:
            yield
            self.db.commit()
        except StaleDataError as exc:
            self.db.rollback()
            logger.warning("Concurrent modification detected: %s", exc)
            raise ConflictError("Record was modified by another request; reload and retry")
        except IntegrityError as exc:
            self.db.rollback()
            if is_unique_violation(exc):
                logger.warning("Integrity conflict: %s", exc.orig)
                raise ConflictError(integrity_message or "Record already exists")
            logger.warning("Integrity violation: %s", exc.orig)
            raise ValidationError("Data references a record that does not exist or is incomplete")
        except Exception:
            self.db.rollback()
            raise
