from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from promo_engine.core.money import ZERO, to_money

ITEM_TYPE_PRODUCT = "product"
ITEM_TYPE_SERVICE = "service"


@dataclass(frozen=True, slots=True)
class CartItem:
    item_type: str
    target_id: int | None
    target_category_id: int | None
    unit_price: Decimal
    quantity: int
    name: str

    @property
    def extended_price(self) -> Decimal:
        return to_money(to_money(self.unit_price) * max(0, int(self.quantity)))


@dataclass(frozen=True, slots=True)
class CustomerContext:
    id: int
    tags: tuple[str, ...] = ()
    customer_type: str | None = None
    visit_count: int = 0


@dataclass(frozen=True, slots=True)
class RewardLine:
    reward_id: int | None
    applies_to: str
    discount_type: str
    target_name: str
    discount: Decimal

    def describe(self) -> str:
        if self.discount_type == "free":
            return f"Free {self.target_name}"
        return f"{self.target_name} ${self.discount:.2f} off"


@dataclass(frozen=True, slots=True)
class CouponRejection:
    kind: str
    message: str


@dataclass(frozen=True, slots=True)
class CouponEvaluation:
    ok: bool
    discount: Decimal = ZERO
    breakdown: tuple[RewardLine, ...] = field(default_factory=tuple)
    description: str = ""
    coupon_id: int | None = None
    code: str | None = None
    name: str | None = None
    warning: str | None = None
    error: CouponRejection | None = None

    @classmethod
    def rejected(cls, *, kind: str, message: str) -> CouponEvaluation:
        return cls(ok=False, error=CouponRejection(kind=kind, message=message))
