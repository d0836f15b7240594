from promo_engine.coupons.checkout import (
    BookedService,
    BookingCouponCheckout,
    BookingCouponRequest,
    CouponCheckout,
    PosCouponCheckout,
    PosCouponRequest,
)
from promo_engine.coupons.rewards import calculate_reward_discount
from promo_engine.coupons.service import CouponEvaluator
from promo_engine.coupons.types import CartItem, CouponEvaluation, CouponRejection, CustomerContext
from promo_engine.coupons.usage import CouponUsageService

__all__ = [
    "BookedService",
    "BookingCouponCheckout",
    "BookingCouponRequest",
    "CartItem",
    "CouponCheckout",
    "CouponEvaluation",
    "CouponEvaluator",
    "CouponRejection",
    "CouponUsageService",
    "CustomerContext",
    "PosCouponCheckout",
    "PosCouponRequest",
    "calculate_reward_discount",
]
