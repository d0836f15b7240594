from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

from promo_engine.coupons.conditions import (
    MAX_VISITS,
    MIN_PURCHASE,
    REQUIRES_SERVICE,
    build_failure_message,
    evaluate_conditions,
    required_name_ids,
)
from promo_engine.coupons.types import CartItem, CustomerContext


def _coupon(**overrides: object) -> SimpleNamespace:
    base: dict[str, object] = {
        "condition_logic": "and",
        "min_purchase": None,
        "max_customer_visits": None,
        "requires_product_ids": None,
        "requires_service_ids": None,
        "requires_product_category_ids": None,
        "requires_service_category_ids": None,
    }
    base.update(overrides)
    return SimpleNamespace(**base)


def _service(target_id: int, *, category_id: int | None = None) -> CartItem:
    return CartItem(
        item_type="service",
        target_id=target_id,
        target_category_id=category_id,
        unit_price=Decimal("20.00"),
        quantity=1,
        name=f"Service {target_id}",
    )


def test_coupon_without_conditions_passes() -> None:
    result = evaluate_conditions(_coupon(), [], Decimal("0"), None)
    assert result.passed
    assert result.checks == ()


def test_min_purchase_is_inclusive() -> None:
    coupon = _coupon(min_purchase=Decimal("50.00"))
    assert evaluate_conditions(coupon, [], Decimal("50.00"), None).passed
    failed = evaluate_conditions(coupon, [], Decimal("49.99"), None)
    assert not failed.passed
    assert build_failure_message(failed) == "Coupon requires minimum purchase of $50.00"


def test_new_customers_only_rejects_returning_customer() -> None:
    coupon = _coupon(max_customer_visits=0)
    customer = CustomerContext(id=5, visit_count=3)

    result = evaluate_conditions(coupon, [], Decimal("10.00"), customer)

    assert not result.passed
    assert "new customers only" in build_failure_message(result)


def test_unresolved_customer_counts_as_zero_visits() -> None:
    coupon = _coupon(max_customer_visits=0)
    assert evaluate_conditions(coupon, [], Decimal("10.00"), None).passed


def test_visit_cap_message_names_threshold() -> None:
    coupon = _coupon(max_customer_visits=2)
    result = evaluate_conditions(coupon, [], Decimal("10.00"), CustomerContext(id=1, visit_count=4))
    assert build_failure_message(result) == "Coupon requires customers with 2 or fewer visits"


def test_required_service_message_uses_catalog_names() -> None:
    coupon = _coupon(requires_service_ids=[7, 8])
    result = evaluate_conditions(coupon, [_service(1)], Decimal("20.00"), None)

    assert required_name_ids(result) == {REQUIRES_SERVICE: {7, 8}}
    message = build_failure_message(
        result,
        {(REQUIRES_SERVICE, 7): "Basic Wash", (REQUIRES_SERVICE, 8): "Deluxe Wash"},
    )
    assert message == "Coupon requires purchase of one of: Basic Wash, Deluxe Wash"


def test_required_service_category_matches_by_category() -> None:
    coupon = _coupon(requires_service_category_ids=[3])
    assert evaluate_conditions(coupon, [_service(1, category_id=3)], Decimal("20.00"), None).passed


def test_and_logic_lists_every_unmet_part() -> None:
    coupon = _coupon(min_purchase=Decimal("100.00"), max_customer_visits=0)
    result = evaluate_conditions(
        coupon,
        [],
        Decimal("20.00"),
        CustomerContext(id=1, visit_count=1),
    )

    assert [check.kind for check in result.unmet] == [MIN_PURCHASE, MAX_VISITS]
    assert build_failure_message(result) == (
        "Coupon requires minimum purchase of $100.00 and new customers only (no previous visits)"
    )


def test_or_logic_passes_when_any_condition_met() -> None:
    coupon = _coupon(
        condition_logic="or",
        min_purchase=Decimal("100.00"),
        requires_service_ids=[1],
    )
    assert evaluate_conditions(coupon, [_service(1)], Decimal("20.00"), None).passed

    failed = evaluate_conditions(coupon, [], Decimal("20.00"), None)
    assert build_failure_message(failed) == (
        "Coupon requires purchase of a specific service or minimum purchase of $100.00"
    )
