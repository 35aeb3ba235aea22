"""ORM-level guards for money, quantity and JSON line columns.

Attached with ``@validates`` so a bad value is rejected on assignment,
whichever service performs it.
"""

from decimal import Decimal


def _as_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def non_negative(key: str, value):
    """Amounts such as charges and discounts may be zero but never below."""
    if value is not None and _as_decimal(value) < 0:
        raise ValueError(f"{key} cannot be negative, got {value}")
    return value


def positive(key: str, value):
    """Quantities and capacities start at one."""
    if value is not None and _as_decimal(value) <= 0:
        raise ValueError(f"{key} must be positive, got {value}")
    return value


def validate_list_of_dicts(key: str, value):
    """Add-on lists are stored as JSON arrays of objects."""
    if value is None:
        return value
    if not isinstance(value, list):
        raise ValueError(f"{key} must be a list, got {type(value).__name__}")
    for index, entry in enumerate(value):
        if not isinstance(entry, dict):
            raise ValueError(f"{key}[{index}] must be an object, got {type(entry).__name__}")
    return value
