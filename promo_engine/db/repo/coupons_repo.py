from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from promo_engine.db.models.coupons import Coupon, CouponReward
from promo_engine.db.models.transactions import Transaction

COMPLETED_TRANSACTION_STATUS = "completed"


class CouponsRepo:
    @staticmethod
    async def get_by_code(session: AsyncSession, normalized_code: str) -> Coupon | None:
        stmt = select(Coupon).where(func.upper(Coupon.code) == normalized_code)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_id(session: AsyncSession, coupon_id: int) -> Coupon | None:
        return await session.get(Coupon, coupon_id)

    @staticmethod
    async def list_rewards(session: AsyncSession, coupon_id: int) -> list[CouponReward]:
        stmt = (
            select(CouponReward)
            .where(CouponReward.coupon_id == coupon_id)
            .order_by(CouponReward.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def has_completed_use(
        session: AsyncSession,
        *,
        coupon_id: int,
        customer_id: int,
    ) -> bool:
        stmt = select(
            exists().where(
                Transaction.coupon_id == coupon_id,
                Transaction.customer_id == customer_id,
                Transaction.status == COMPLETED_TRANSACTION_STATUS,
            )
        )
        result = await session.execute(stmt)
        return bool(result.scalar_one())

    @staticmethod
    async def create(session: AsyncSession, *, coupon: Coupon) -> Coupon:
        session.add(coupon)
        await session.flush()
        return coupon

    @staticmethod
    async def add_rewards(session: AsyncSession, rewards: Sequence[CouponReward]) -> None:
        session.add_all(list(rewards))
        await session.flush()

    @staticmethod
    async def increment_use_count(
        session: AsyncSession,
        *,
        coupon_id: int,
        now_utc: datetime,
    ) -> int | None:
        stmt = (
            update(Coupon)
            .where(
                Coupon.id == coupon_id,
                Coupon.status == "active",
                or_(Coupon.max_uses.is_(None), Coupon.use_count < Coupon.max_uses),
            )
            .values(use_count=Coupon.use_count + 1, updated_at=now_utc)
            .returning(Coupon.use_count)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def expire_active_coupons(session: AsyncSession, *, now_utc: datetime) -> int:
        stmt = (
            update(Coupon)
            .where(
                Coupon.status == "active",
                Coupon.expires_at.is_not(None),
                Coupon.expires_at <= now_utc,
            )
            .values(status="expired", updated_at=now_utc)
        )
        result = await session.execute(stmt)
        return int(getattr(result, "rowcount", 0) or 0)
