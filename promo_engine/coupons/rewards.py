from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from typing import Protocol

from promo_engine.core.money import ZERO, to_money
from promo_engine.coupons.types import (
    ITEM_TYPE_PRODUCT,
    ITEM_TYPE_SERVICE,
    CartItem,
    RewardLine,
)

ORDER_TARGET_NAME = "Order"
ALL_ITEMS_TARGET_NAME = {ITEM_TYPE_PRODUCT: "Products", ITEM_TYPE_SERVICE: "Services"}


class RewardLike(Protocol):
    id: int | None
    applies_to: str
    discount_type: str
    discount_value: Decimal
    max_discount: Decimal | None
    target_product_id: int | None
    target_service_id: int | None
    target_product_category_id: int | None
    target_service_category_id: int | None


def calculate_reward_discount(reward: RewardLike, applicable_price: object) -> Decimal:
    """Discount for one reward against a price basis, always within ``[0, basis]``."""
    basis = to_money(applicable_price)
    if basis <= ZERO:
        return ZERO

    value = to_money(reward.discount_value)
    if reward.discount_type == "percentage":
        if value <= ZERO:
            return ZERO
        discount = to_money(basis * value / Decimal(100))
        if reward.max_discount is not None:
            discount = min(discount, max(ZERO, to_money(reward.max_discount)))
    elif reward.discount_type == "flat":
        discount = min(max(ZERO, value), basis)
    elif reward.discount_type == "free":
        discount = basis
    else:
        return ZERO

    return min(max(ZERO, discount), basis)


def reward_target(reward: RewardLike) -> tuple[int | None, int | None]:
    if reward.applies_to == ITEM_TYPE_PRODUCT:
        return reward.target_product_id, reward.target_product_category_id
    if reward.applies_to == ITEM_TYPE_SERVICE:
        return reward.target_service_id, reward.target_service_category_id
    return None, None


def matching_items(reward: RewardLike, cart_items: Iterable[CartItem]) -> list[CartItem]:
    target_id, target_category_id = reward_target(reward)
    matched: list[CartItem] = []
    for item in cart_items:
        if item.item_type != reward.applies_to:
            continue
        if target_id is not None:
            if item.target_id == target_id:
                matched.append(item)
            continue
        if target_category_id is not None:
            if item.target_category_id == target_category_id:
                matched.append(item)
            continue
        matched.append(item)
    return matched


def reward_matches_cart(reward: RewardLike, cart_items: Iterable[CartItem]) -> bool:
    if reward.applies_to == "order":
        return True
    if reward.applies_to not in ALL_ITEMS_TARGET_NAME:
        return False
    return bool(matching_items(reward, cart_items))


def _target_name(
    reward: RewardLike,
    matched: Sequence[CartItem],
    category_names: Mapping[tuple[str, int], str],
) -> str:
    target_id, target_category_id = reward_target(reward)
    if target_id is not None:
        return matched[0].name
    if target_category_id is not None:
        return category_names.get(
            (f"{reward.applies_to}_category", target_category_id),
            matched[0].name,
        )
    return ALL_ITEMS_TARGET_NAME[reward.applies_to]


def compute_reward_lines(
    rewards: Iterable[RewardLike],
    cart_items: Sequence[CartItem],
    subtotal: object,
    *,
    category_names: Mapping[tuple[str, int], str] | None = None,
) -> list[RewardLine]:
    """Reward lines for every reward whose target is present in the cart.

    Item-scoped rewards use the sum of matching items' extended prices as the
    basis. Rewards whose target has no matching cart item, and rewards that
    work out to no discount, are left out.
    """
    names = category_names or {}
    lines: list[RewardLine] = []
    for reward in rewards:
        if reward.applies_to == "order":
            basis = to_money(subtotal)
            target_name = ORDER_TARGET_NAME
        elif reward.applies_to in ALL_ITEMS_TARGET_NAME:
            matched = matching_items(reward, cart_items)
            if not matched:
                continue
            basis = to_money(sum((item.extended_price for item in matched), ZERO))
            target_name = _target_name(reward, matched, names)
        else:
            continue

        discount = calculate_reward_discount(reward, basis)
        if discount <= ZERO:
            continue
        lines.append(
            RewardLine(
                reward_id=getattr(reward, "id", None),
                applies_to=reward.applies_to,
                discount_type=reward.discount_type,
                target_name=target_name,
                discount=discount,
            )
        )
    return lines


def total_discount(lines: Iterable[RewardLine], subtotal: object) -> Decimal:
    cap = max(ZERO, to_money(subtotal))
    summed = to_money(sum((line.discount for line in lines), ZERO))
    return to_money(min(max(ZERO, summed), cap))


def describe_lines(lines: Sequence[RewardLine]) -> str:
    return " + ".join(line.describe() for line in lines) or "Coupon applied"
