"""Pricing for table orders.

Pure functions over :class:`decimal.Decimal`. Values keep full precision
through subtotal, discount, adjustments and grand total; rounding only
happens in :func:`quantize_money`, which callers use for display.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class PricingBreakdown:
    subtotal: Decimal
    discount: Decimal
    adjustment_a_amount: Decimal
    adjustment_b_amount: Decimal
    grand_total: Decimal


def to_decimal(value: Any) -> Decimal:
    """Converts through ``str`` so binary float noise never enters a total."""
    if isinstance(value, Decimal):
        return value
    if value is None or value == "":
        return ZERO
    return Decimal(str(value))


def quantize_money(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _field(item: Any, *names: str) -> Any:
    for name in names:
        if isinstance(item, Mapping):
            if name in item and item[name] is not None:
                return item[name]
        elif getattr(item, name, None) is not None:
            return getattr(item, name)
    return None


def line_total(item: Any) -> Decimal:
    price = to_decimal(_field(item, "unit_price", "price"))
    quantity = to_decimal(_field(item, "quantity", "qty") or 0)
    return price * quantity


def calculate_subtotal(items: Iterable[Any]) -> Decimal:
    return sum((line_total(item) for item in items), ZERO)


def effective_discount(subtotal: Any, requested_discount: Any) -> Decimal:
    subtotal = to_decimal(subtotal)
    requested = to_decimal(requested_discount)
    if requested <= ZERO:
        return ZERO
    return min(requested, subtotal)


def adjustment_amount(subtotal: Any, discount: Any, percentage: Any) -> Decimal:
    percentage = to_decimal(percentage)
    if percentage == ZERO:
        return ZERO
    base = to_decimal(subtotal) - to_decimal(discount)
    return base * (percentage / HUNDRED)


def calculate_breakdown(
    items: Iterable[Any],
    adjustment_a_percentage: Any = 0,
    adjustment_b_percentage: Any = 0,
    discount_amount: Any = 0,
) -> PricingBreakdown:
    subtotal = calculate_subtotal(items)
    discount = effective_discount(subtotal, discount_amount)
    adjustment_a = adjustment_amount(subtotal, discount, adjustment_a_percentage)
    adjustment_b = adjustment_amount(subtotal, discount, adjustment_b_percentage)
    return PricingBreakdown(
        subtotal=subtotal,
        discount=discount,
        adjustment_a_amount=adjustment_a,
        adjustment_b_amount=adjustment_b,
        grand_total=subtotal + adjustment_a + adjustment_b - discount,
    )
