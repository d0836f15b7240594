from __future__ import annotations

from types import SimpleNamespace

import pytest

from promo_engine.coupons.errors import CouponNotEligibleError
from promo_engine.coupons.targeting import check_customer_targeting, tags_match
from promo_engine.coupons.types import CustomerContext


def _coupon(**overrides: object) -> SimpleNamespace:
    base: dict[str, object] = {
        "customer_id": None,
        "customer_tags": None,
        "tag_match_mode": "any",
        "target_customer_type": None,
    }
    base.update(overrides)
    return SimpleNamespace(**base)


def test_all_mode_accepts_superset_of_tags() -> None:
    coupon = _coupon(customer_tags=["vip"], tag_match_mode="all")
    customer = CustomerContext(id=1, tags=("vip", "new"))
    assert check_customer_targeting(coupon, customer) is None


def test_all_mode_rejects_missing_tag() -> None:
    coupon = _coupon(customer_tags=["vip"], tag_match_mode="all")
    with pytest.raises(CouponNotEligibleError) as exc_info:
        check_customer_targeting(coupon, CustomerContext(id=1, tags=("new",)))
    assert exc_info.value.message == "You are not eligible for this coupon"


def test_tag_targeting_requires_customer_account() -> None:
    with pytest.raises(CouponNotEligibleError) as exc_info:
        check_customer_targeting(_coupon(customer_tags=["vip"]), None)
    assert exc_info.value.message == "A customer account is required to use this coupon"


def test_assigned_coupon_rejects_other_customer() -> None:
    with pytest.raises(CouponNotEligibleError) as exc_info:
        check_customer_targeting(_coupon(customer_id=10), CustomerContext(id=11))
    assert exc_info.value.message == "This coupon is assigned to a different customer"


def test_assigned_coupon_rejects_anonymous_checkout() -> None:
    with pytest.raises(CouponNotEligibleError):
        check_customer_targeting(_coupon(customer_id=10), None)


def test_customer_type_soft_mode_only_warns() -> None:
    coupon = _coupon(target_customer_type="fleet_account")
    warning = check_customer_targeting(
        coupon,
        CustomerContext(id=1, customer_type="retail"),
        customer_type_enforcement="soft",
    )
    assert warning == "This coupon is intended for Fleet Account customers"


def test_customer_type_hard_mode_rejects() -> None:
    coupon = _coupon(target_customer_type="fleet_account")
    with pytest.raises(CouponNotEligibleError):
        check_customer_targeting(
            coupon,
            CustomerContext(id=1, customer_type="retail"),
            customer_type_enforcement="hard",
        )


def test_tags_match_any_and_all() -> None:
    assert tags_match(["a", "b"], ["b"], mode="any")
    assert not tags_match(["a", "b"], ["b"], mode="all")
    assert tags_match(["a", "b"], ["b", "a", "c"], mode="all")
