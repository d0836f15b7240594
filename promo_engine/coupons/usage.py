from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from promo_engine.coupons.errors import CouponInactiveError, CouponNotFoundError
from promo_engine.db.repo.coupons_repo import CouponsRepo

logger = structlog.get_logger(__name__)


class CouponUsageService:
    @staticmethod
    async def consume(
        session: AsyncSession,
        coupon_id: int,
        *,
        now_utc: datetime | None = None,
    ) -> int:
        """Record one use of a coupon at checkout completion; returns the new use count."""
        now = now_utc or datetime.now(timezone.utc)
        use_count = await CouponsRepo.increment_use_count(
            session,
            coupon_id=coupon_id,
            now_utc=now,
        )
        if use_count is None:
            coupon = await CouponsRepo.get_by_id(session, coupon_id)
            if coupon is None:
                raise CouponNotFoundError
            if coupon.status != "active":
                raise CouponInactiveError(f"Coupon is {coupon.status}")
            raise CouponInactiveError("Coupon usage limit reached")

        logger.info("coupon_consumed", coupon_id=coupon_id, use_count=int(use_count))
        return int(use_count)
