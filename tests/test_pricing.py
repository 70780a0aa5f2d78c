import random
from decimal import Decimal
from types import SimpleNamespace

from hotel_billing.services.pricing import (
    adjustment_amount,
    calculate_breakdown,
    calculate_subtotal,
    effective_discount,
    quantize_money,
    to_decimal,
)
from tests.fixtures_data import SCENARIO_BILLING, SCENARIO_EXPECTED, SCENARIO_ITEMS


def test_subtotal_of_empty_order_is_zero():
    assert calculate_subtotal([]) == Decimal("0")


def test_subtotal_sums_price_times_quantity():
    items = [
        {"unit_price": "2.50", "quantity": 4},
        SimpleNamespace(price=1.1, qty=3),
        {"price": 0, "quantity": 7},
    ]

    assert calculate_subtotal(items) == Decimal("13.3")


def test_float_inputs_do_not_leak_binary_noise():
    assert to_decimal(0.1) + to_decimal(0.2) == Decimal("0.3")
    assert calculate_subtotal([{"unit_price": 0.1, "quantity": 3}]) == Decimal("0.3")


def test_discount_is_clamped_to_subtotal():
    assert effective_discount(Decimal("12.00"), Decimal("50")) == Decimal("12.00")
    assert effective_discount(Decimal("12.00"), Decimal("2.5")) == Decimal("2.5")
    assert effective_discount(Decimal("12.00"), Decimal("-3")) == Decimal("0")


def test_zero_percentage_yields_exact_zero():
    amount = adjustment_amount(Decimal("40.48"), Decimal("5"), 0)

    assert amount == Decimal("0")
    assert amount.as_tuple().exponent == 0


def test_discount_larger_than_subtotal_zeroes_the_bill():
    breakdown = calculate_breakdown([{"unit_price": "9.99", "quantity": 1}], 18, 10, 100)

    assert breakdown.discount == Decimal("9.99")
    assert breakdown.adjustment_a_amount == Decimal("0")
    assert breakdown.adjustment_b_amount == Decimal("0")
    assert breakdown.grand_total == Decimal("0")


def test_reference_scenario_breakdown():
    breakdown = calculate_breakdown(
        SCENARIO_ITEMS,
        SCENARIO_BILLING["adjustment_a_percentage"],
        SCENARIO_BILLING["adjustment_b_percentage"],
        SCENARIO_BILLING["discount_amount"],
    )

    assert breakdown.subtotal == Decimal(SCENARIO_EXPECTED["subtotal"])
    assert breakdown.discount == Decimal(SCENARIO_EXPECTED["discount"])
    assert breakdown.adjustment_a_amount == Decimal(SCENARIO_EXPECTED["adjustment_a_amount"])
    assert breakdown.adjustment_b_amount == Decimal(SCENARIO_EXPECTED["adjustment_b_amount"])
    assert breakdown.grand_total == Decimal(SCENARIO_EXPECTED["grand_total"])
    assert quantize_money(breakdown.grand_total) == Decimal("40.80")


def test_grand_total_identity_holds_for_random_orders():
    rng = random.Random(20261019)

    for _ in range(250):
        items = [
            {
                "unit_price": f"{rng.randint(0, 50000) / 100:.2f}",
                "quantity": rng.randint(1, 9),
            }
            for _ in range(rng.randint(0, 8))
        ]
        pct_a = rng.choice([0, 5, 12, 18, 28, rng.randint(0, 3000) / 100])
        pct_b = rng.choice([0, 5, 10, rng.randint(0, 2000) / 100])
        discount = rng.choice([0, rng.randint(0, 100000) / 100])

        breakdown = calculate_breakdown(items, pct_a, pct_b, discount)

        assert breakdown.subtotal == calculate_subtotal(items)
        assert Decimal("0") <= breakdown.discount <= breakdown.subtotal
        base = breakdown.subtotal - breakdown.discount
        assert breakdown.adjustment_a_amount == (base * (to_decimal(pct_a) / 100) if pct_a else 0)
        assert breakdown.adjustment_b_amount == (base * (to_decimal(pct_b) / 100) if pct_b else 0)
        assert breakdown.grand_total == (
            breakdown.subtotal
            + breakdown.adjustment_a_amount
            + breakdown.adjustment_b_amount
            - breakdown.discount
        )
        assert breakdown.grand_total >= 0
