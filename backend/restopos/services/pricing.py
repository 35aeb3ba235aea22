"""
Order pricing and tax calculation.

Pure functions over Decimals: no database access and no clock, so the same
inputs always produce the same totals.  Every derived amount is rounded to
two places with ROUND_HALF_UP exactly once, at the step that produces it.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from restopos.models.order import DiscountType

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


@dataclass
class TaxLine:
    """One computed tax on the order subtotal."""
    tax_name: str
    tax_rate: Decimal
    tax_amount: Decimal


@dataclass
class TaxCalculation:
    tax_breakdown: List[TaxLine] = field(default_factory=list)
    total_tax: Decimal = ZERO


@dataclass
class OrderTotals:
    """Every derived pricing field of an order."""
    item_totals: List[Decimal] = field(default_factory=list)
    subtotal: Decimal = ZERO
    tax_breakdown: List[TaxLine] = field(default_factory=list)
    total_tax: Decimal = ZERO
    discount_amount: Decimal = ZERO
    delivery_charge: Decimal = ZERO
    packaging_charge: Decimal = ZERO
    service_charge: Decimal = ZERO
    tip: Decimal = ZERO
    total: Decimal = ZERO
    round_off: Decimal = ZERO
    amount_due: Decimal = ZERO


def to_decimal(value: Any) -> Decimal:
    """Coerce ints, floats, strings and None to Decimal (None -> 0)."""
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() keeps floats like 0.1 from expanding to binary noise
    return Decimal(str(value))


def round2(value: Any) -> Decimal:
    """Round to two decimal places, halves away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def calculate_taxes(subtotal: Any, tax_rules: Optional[Iterable[Any]]) -> TaxCalculation:
    """Apply each tax rule to the subtotal.

    Args:
        subtotal: Taxable amount.
        tax_rules: Objects or mappings with ``name`` and ``rate`` (percent).

    Returns:
        TaxCalculation whose ``total_tax`` is the sum of the already rounded
        per-rule amounts.
    """
    base = to_decimal(subtotal)
    breakdown = []
    for rule in tax_rules or []:
        rate = to_decimal(_field(rule, "rate"))
        breakdown.append(TaxLine(
            tax_name=_field(rule, "name"),
            tax_rate=rate,
            tax_amount=round2(base * rate / 100),
        ))
    total_tax = sum((line.tax_amount for line in breakdown), ZERO)
    return TaxCalculation(tax_breakdown=breakdown, total_tax=round2(total_tax))


def calculate_item_total(item: Any) -> Decimal:
    """price * quantity plus the flat price of each add-on."""
    price = to_decimal(_field(item, "price"))
    quantity = to_decimal(_field(item, "quantity", 0))
    add_ons_total = sum(
        (to_decimal(_field(add_on, "price")) for add_on in (_field(item, "add_ons") or [])),
        Decimal("0"),
    )
    return round2(price * quantity + add_ons_total)


def calculate_discount(subtotal: Decimal, discount_type: Optional[str], discount_value: Any) -> Decimal:
    value = to_decimal(discount_value)
    if value <= 0:
        return ZERO
    if discount_type == DiscountType.PERCENTAGE.value:
        return round2(subtotal * value / 100)
    if discount_type == DiscountType.FIXED.value:
        return round2(value)
    return ZERO


def calculate_order_totals(
    items: Sequence[Any],
    pricing_inputs: Optional[Mapping[str, Any]] = None,
    tax_rules: Optional[Iterable[Any]] = None,
) -> OrderTotals:
    """Compute every derived pricing field of an order.

    ``pricing_inputs`` may carry ``discount_type``, ``discount_value``,
    ``delivery_charge``, ``packaging_charge``, ``service_charge`` and
    ``tip``; anything missing counts as zero.  An empty item list yields
    all-zero totals.
    """
    inputs = pricing_inputs or {}

    item_totals = [calculate_item_total(item) for item in items]
    subtotal = round2(sum(item_totals, Decimal("0")))

    taxes = calculate_taxes(subtotal, tax_rules)

    discount_amount = calculate_discount(
        subtotal,
        inputs.get("discount_type") or DiscountType.NONE.value,
        inputs.get("discount_value"),
    )

    delivery_charge = round2(inputs.get("delivery_charge"))
    packaging_charge = round2(inputs.get("packaging_charge"))
    service_charge = round2(inputs.get("service_charge"))
    tip = round2(inputs.get("tip"))

    total = round2(
        subtotal
        + taxes.total_tax
        + delivery_charge
        + packaging_charge
        + service_charge
        + tip
        - discount_amount
    )
    # nearest whole rupee, halves toward +infinity (-10.50 becomes -10)
    round_off = round2((total + Decimal("0.5")).to_integral_value(rounding=ROUND_FLOOR) - total)
    amount_due = round2(total + round_off)

    return OrderTotals(
        item_totals=item_totals,
        subtotal=subtotal,
        tax_breakdown=taxes.tax_breakdown,
        total_tax=taxes.total_tax,
        discount_amount=discount_amount,
        delivery_charge=delivery_charge,
        packaging_charge=packaging_charge,
        service_charge=service_charge,
        tip=tip,
        total=total,
        round_off=round_off,
        amount_due=amount_due,
    )
