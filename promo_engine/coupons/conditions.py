from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from promo_engine.core.money import format_money, to_money
from promo_engine.coupons.types import (
    ITEM_TYPE_PRODUCT,
    ITEM_TYPE_SERVICE,
    CartItem,
    CustomerContext,
)

REQUIRES_PRODUCT = "product"
REQUIRES_SERVICE = "service"
REQUIRES_PRODUCT_CATEGORY = "product_category"
REQUIRES_SERVICE_CATEGORY = "service_category"
MIN_PURCHASE = "min_purchase"
MAX_VISITS = "max_visits"

ITEM_REQUIREMENTS = (
    REQUIRES_PRODUCT,
    REQUIRES_SERVICE,
    REQUIRES_PRODUCT_CATEGORY,
    REQUIRES_SERVICE_CATEGORY,
)
_FALLBACK_NAMES = {
    REQUIRES_PRODUCT: "a specific product",
    REQUIRES_SERVICE: "a specific service",
    REQUIRES_PRODUCT_CATEGORY: "a required product category",
    REQUIRES_SERVICE_CATEGORY: "a required service category",
}


class ConditionedCoupon(Protocol):
    condition_logic: str
    min_purchase: Decimal | None
    max_customer_visits: int | None
    requires_product_ids: Sequence[int] | None
    requires_service_ids: Sequence[int] | None
    requires_product_category_ids: Sequence[int] | None
    requires_service_category_ids: Sequence[int] | None


@dataclass(frozen=True, slots=True)
class ConditionCheck:
    kind: str
    met: bool
    required_ids: tuple[int, ...] = ()
    threshold: Decimal | int | None = None


@dataclass(frozen=True, slots=True)
class ConditionsResult:
    logic: str
    checks: tuple[ConditionCheck, ...]

    @property
    def passed(self) -> bool:
        if not self.checks:
            return True
        if self.logic == "or":
            return any(check.met for check in self.checks)
        return all(check.met for check in self.checks)

    @property
    def unmet(self) -> tuple[ConditionCheck, ...]:
        return tuple(check for check in self.checks if not check.met)


def _has_item(
    cart_items: Sequence[CartItem],
    *,
    item_type: str,
    ids: Sequence[int],
    by_category: bool,
) -> bool:
    wanted = set(ids)
    for item in cart_items:
        if item.item_type != item_type:
            continue
        candidate = item.target_category_id if by_category else item.target_id
        if candidate is not None and candidate in wanted:
            return True
    return False


def evaluate_conditions(
    coupon: ConditionedCoupon,
    cart_items: Sequence[CartItem],
    subtotal: object,
    customer: CustomerContext | None,
) -> ConditionsResult:
    checks: list[ConditionCheck] = []

    item_requirements = (
        (REQUIRES_PRODUCT, coupon.requires_product_ids, ITEM_TYPE_PRODUCT, False),
        (REQUIRES_SERVICE, coupon.requires_service_ids, ITEM_TYPE_SERVICE, False),
        (REQUIRES_PRODUCT_CATEGORY, coupon.requires_product_category_ids, ITEM_TYPE_PRODUCT, True),
        (REQUIRES_SERVICE_CATEGORY, coupon.requires_service_category_ids, ITEM_TYPE_SERVICE, True),
    )
    for kind, raw_ids, item_type, by_category in item_requirements:
        ids = tuple(int(value) for value in (raw_ids or []))
        if not ids:
            continue
        checks.append(
            ConditionCheck(
                kind=kind,
                met=_has_item(cart_items, item_type=item_type, ids=ids, by_category=by_category),
                required_ids=ids,
            )
        )

    if coupon.min_purchase is not None:
        minimum = to_money(coupon.min_purchase)
        checks.append(
            ConditionCheck(
                kind=MIN_PURCHASE,
                met=to_money(subtotal) >= minimum,
                threshold=minimum,
            )
        )

    if coupon.max_customer_visits is not None:
        # A first-time booker has no customer record yet and counts as zero visits.
        visits = customer.visit_count if customer is not None else 0
        checks.append(
            ConditionCheck(
                kind=MAX_VISITS,
                met=visits <= coupon.max_customer_visits,
                threshold=int(coupon.max_customer_visits),
            )
        )

    return ConditionsResult(logic=coupon.condition_logic or "and", checks=tuple(checks))


def _names_phrase(kind: str, ids: Sequence[int], names: Mapping[tuple[str, int], str]) -> str:
    resolved = [names[(kind, item_id)] for item_id in ids if (kind, item_id) in names]
    if len(resolved) > 1:
        return f"one of: {', '.join(resolved)}"
    if resolved:
        return resolved[0]
    return _FALLBACK_NAMES[kind]


def describe_unmet(check: ConditionCheck, names: Mapping[tuple[str, int], str]) -> str:
    if check.kind == MIN_PURCHASE:
        return f"minimum purchase of {format_money(Decimal(check.threshold or 0))}"
    if check.kind == MAX_VISITS:
        if check.threshold == 0:
            return "new customers only (no previous visits)"
        return f"customers with {check.threshold} or fewer visits"
    phrase = _names_phrase(check.kind, check.required_ids, names)
    if check.kind == REQUIRES_PRODUCT_CATEGORY:
        return f"a product from {phrase}"
    if check.kind == REQUIRES_SERVICE_CATEGORY:
        return f"a service from {phrase}"
    return f"purchase of {phrase}"


def build_failure_message(
    result: ConditionsResult,
    names: Mapping[tuple[str, int], str] | None = None,
) -> str:
    joiner = " or " if result.logic == "or" else " and "
    parts = [describe_unmet(check, names or {}) for check in result.unmet]
    return f"Coupon requires {joiner.join(parts)}"


def required_name_ids(result: ConditionsResult) -> dict[str, set[int]]:
    """Catalog ids whose display names the failure message needs, per requirement kind."""
    wanted: dict[str, set[int]] = {}
    for check in result.unmet:
        if check.kind in ITEM_REQUIREMENTS:
            wanted.setdefault(check.kind, set()).update(check.required_ids)
    return wanted
