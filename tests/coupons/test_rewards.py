from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest

from promo_engine.coupons.rewards import (
    calculate_reward_discount,
    compute_reward_lines,
    describe_lines,
    total_discount,
)
from promo_engine.coupons.types import CartItem


def _reward(**overrides: object) -> SimpleNamespace:
    base: dict[str, object] = {
        "id": 1,
        "applies_to": "order",
        "discount_type": "percentage",
        "discount_value": Decimal("20"),
        "max_discount": None,
        "target_product_id": None,
        "target_service_id": None,
        "target_product_category_id": None,
        "target_service_category_id": None,
    }
    base.update(overrides)
    return SimpleNamespace(**base)


def _service(target_id: int, price: str, name: str, *, category_id: int | None = None) -> CartItem:
    return CartItem(
        item_type="service",
        target_id=target_id,
        target_category_id=category_id,
        unit_price=Decimal(price),
        quantity=1,
        name=name,
    )


def _product(target_id: int, price: str, name: str, *, quantity: int = 1) -> CartItem:
    return CartItem(
        item_type="product",
        target_id=target_id,
        target_category_id=None,
        unit_price=Decimal(price),
        quantity=quantity,
        name=name,
    )


def test_percentage_reward_on_order() -> None:
    assert calculate_reward_discount(_reward(), Decimal("50.00")) == Decimal("10.00")


def test_percentage_reward_respects_max_discount() -> None:
    reward = _reward(discount_value=Decimal("50"), max_discount=Decimal("15.00"))
    assert calculate_reward_discount(reward, Decimal("100.00")) == Decimal("15.00")


def test_percentage_rounds_half_up_to_cent() -> None:
    reward = _reward(discount_value=Decimal("15"))
    assert calculate_reward_discount(reward, Decimal("10.03")) == Decimal("1.50")
    assert calculate_reward_discount(reward, Decimal("0.10")) == Decimal("0.02")


def test_flat_reward_is_clamped_to_basis() -> None:
    reward = _reward(discount_type="flat", discount_value=Decimal("30.00"))
    assert calculate_reward_discount(reward, Decimal("12.50")) == Decimal("12.50")


def test_free_reward_equals_basis() -> None:
    reward = _reward(discount_type="free", discount_value=Decimal("0"))
    assert calculate_reward_discount(reward, Decimal("25.00")) == Decimal("25.00")


@pytest.mark.parametrize("basis", [Decimal("0"), Decimal("-5.00")])
def test_non_positive_basis_yields_zero(basis: Decimal) -> None:
    assert calculate_reward_discount(_reward(discount_type="free"), basis) == Decimal("0.00")


def test_unknown_discount_type_yields_zero() -> None:
    reward = _reward(discount_type="bogo")
    assert calculate_reward_discount(reward, Decimal("40.00")) == Decimal("0.00")


@pytest.mark.parametrize(
    ("discount_type", "value", "cap"),
    [
        ("percentage", "250", None),
        ("percentage", "33.33", "5.00"),
        ("flat", "999.99", None),
        ("flat", "-4.00", None),
        ("free", "0", None),
    ],
)
def test_discount_always_within_zero_and_basis(discount_type: str, value: str, cap: str | None) -> None:
    reward = _reward(
        discount_type=discount_type,
        discount_value=Decimal(value),
        max_discount=Decimal(cap) if cap is not None else None,
    )
    for basis in (Decimal("0.01"), Decimal("9.99"), Decimal("120.00")):
        discount = calculate_reward_discount(reward, basis)
        assert Decimal("0") <= discount <= basis


def test_free_service_reward_matches_target_item_only() -> None:
    reward = _reward(
        applies_to="service",
        discount_type="free",
        discount_value=Decimal("0"),
        target_service_id=7,
    )
    cart = [_service(7, "25.00", "Basic Wash"), _product(3, "10.00", "Air Freshener")]

    lines = compute_reward_lines([reward], cart, Decimal("35.00"))

    assert len(lines) == 1
    assert lines[0].discount == Decimal("25.00")
    assert describe_lines(lines) == "Free Basic Wash"


def test_product_reward_uses_extended_price_of_matches() -> None:
    reward = _reward(
        applies_to="product",
        discount_type="percentage",
        discount_value=Decimal("10"),
    )
    cart = [_product(1, "4.00", "Wax", quantity=3), _service(2, "20.00", "Rinse")]

    lines = compute_reward_lines([reward], cart, Decimal("32.00"))

    assert lines[0].target_name == "Products"
    assert lines[0].discount == Decimal("1.20")
    assert describe_lines(lines) == "Products $1.20 off"


def test_category_reward_is_named_after_category() -> None:
    reward = _reward(
        applies_to="service",
        discount_type="flat",
        discount_value=Decimal("5.00"),
        target_service_category_id=4,
    )
    cart = [_service(9, "30.00", "Deluxe Wash", category_id=4)]

    lines = compute_reward_lines(
        [reward],
        cart,
        Decimal("30.00"),
        category_names={("service_category", 4): "Washes"},
    )

    assert describe_lines(lines) == "Washes $5.00 off"


def test_unmatched_item_reward_is_skipped() -> None:
    reward = _reward(applies_to="service", discount_type="free", target_service_id=99)
    lines = compute_reward_lines([reward], [_product(1, "10.00", "Wax")], Decimal("10.00"))
    assert lines == []
    assert describe_lines(lines) == "Coupon applied"


def test_total_discount_never_exceeds_subtotal() -> None:
    rewards = [
        _reward(id=1, discount_type="flat", discount_value=Decimal("30.00")),
        _reward(id=2, discount_type="percentage", discount_value=Decimal("90")),
    ]
    subtotal = Decimal("40.00")

    lines = compute_reward_lines(rewards, [], subtotal)

    assert sum(line.discount for line in lines) > subtotal
    assert total_discount(lines, subtotal) == subtotal
    assert describe_lines(lines) == "Order $30.00 off + Order $36.00 off"


def test_zero_discount_rewards_are_left_out() -> None:
    rewards = [
        _reward(id=1, discount_value=Decimal("0")),
        _reward(id=2, applies_to="product", discount_type="flat", discount_value=Decimal("3.00")),
    ]

    lines = compute_reward_lines(rewards, [_product(1, "10.00", "Wax")], Decimal("10.00"))

    assert [line.reward_id for line in lines] == [2]
    assert describe_lines(lines) == "Products $3.00 off"
