from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from promo_engine.coupons.errors import CouponNotEligibleError
from promo_engine.coupons.types import CustomerContext

ASSIGNED_TO_OTHER_MESSAGE = "This coupon is assigned to a different customer"
ACCOUNT_REQUIRED_MESSAGE = "A customer account is required to use this coupon"
NOT_ELIGIBLE_MESSAGE = "You are not eligible for this coupon"


class TargetedCoupon(Protocol):
    customer_id: int | None
    customer_tags: Sequence[str] | None
    tag_match_mode: str
    target_customer_type: str | None


def tags_match(required: Sequence[str], present: Sequence[str], *, mode: str) -> bool:
    present_set = set(present)
    if mode == "all":
        return all(tag in present_set for tag in required)
    return any(tag in present_set for tag in required)


def _customer_type_label(customer_type: str) -> str:
    return customer_type.replace("_", " ").title()


def check_customer_targeting(
    coupon: TargetedCoupon,
    customer: CustomerContext | None,
    *,
    customer_type_enforcement: str = "soft",
) -> str | None:
    """Raise ``CouponNotEligibleError`` when the customer is not targeted.

    Returns a non-blocking warning when the coupon is meant for another
    customer type and enforcement is ``soft``.
    """
    if coupon.customer_id is not None:
        if customer is None or customer.id != coupon.customer_id:
            raise CouponNotEligibleError(ASSIGNED_TO_OTHER_MESSAGE)

    required_tags = list(coupon.customer_tags or [])
    if required_tags:
        if customer is None:
            raise CouponNotEligibleError(ACCOUNT_REQUIRED_MESSAGE)
        if not tags_match(required_tags, customer.tags, mode=coupon.tag_match_mode or "any"):
            raise CouponNotEligibleError(NOT_ELIGIBLE_MESSAGE)

    target_type = coupon.target_customer_type
    if not target_type:
        return None
    if customer is not None and customer.customer_type == target_type:
        return None
    if customer_type_enforcement == "hard":
        if customer is None:
            raise CouponNotEligibleError(ACCOUNT_REQUIRED_MESSAGE)
        raise CouponNotEligibleError(NOT_ELIGIBLE_MESSAGE)
    return f"This coupon is intended for {_customer_type_label(target_type)} customers"
