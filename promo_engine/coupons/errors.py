class CouponError(Exception):
    kind = "coupon_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class CouponNotFoundError(CouponError):
    kind = "not_found"

    def __init__(self, message: str = "Invalid coupon code") -> None:
        super().__init__(message)


class CouponInactiveError(CouponError):
    kind = "inactive"


class CouponAlreadyUsedError(CouponError):
    kind = "already_used"

    def __init__(self, message: str = "You have already used this coupon") -> None:
        super().__init__(message)


class CouponNotEligibleError(CouponError):
    kind = "not_eligible"


class CouponNoMatchingItemsError(CouponError):
    kind = "no_matching_items"
