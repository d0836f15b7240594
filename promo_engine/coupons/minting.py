from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from promo_engine.db.models.coupons import Coupon, CouponReward
from promo_engine.db.repo.coupons_repo import CouponsRepo
from promo_engine.services.coupon_codes import generate_coupon_code

logger = structlog.get_logger(__name__)

MAX_CODE_ATTEMPTS = 5


class CouponCodeExhaustedError(RuntimeError):
    pass


def _clone_coupon(
    template: Coupon,
    *,
    code: str,
    customer_id: int,
    campaign_id: int,
    now_utc: datetime,
) -> Coupon:
    return Coupon(
        code=code,
        name=template.name,
        status="active",
        expires_at=template.expires_at,
        max_uses=1,
        use_count=0,
        is_single_use=True,
        min_purchase=template.min_purchase,
        max_customer_visits=template.max_customer_visits,
        customer_id=customer_id,
        customer_tags=None,
        tag_match_mode="any",
        target_customer_type=template.target_customer_type,
        requires_product_ids=template.requires_product_ids,
        requires_service_ids=template.requires_service_ids,
        requires_product_category_ids=template.requires_product_category_ids,
        requires_service_category_ids=template.requires_service_category_ids,
        condition_logic=template.condition_logic or "and",
        campaign_id=campaign_id,
        created_at=now_utc,
        updated_at=now_utc,
    )


def _clone_rewards(rewards: Sequence[CouponReward], *, coupon_id: int) -> list[CouponReward]:
    return [
        CouponReward(
            coupon_id=coupon_id,
            applies_to=reward.applies_to,
            discount_type=reward.discount_type,
            discount_value=reward.discount_value,
            max_discount=reward.max_discount,
            target_product_id=reward.target_product_id,
            target_service_id=reward.target_service_id,
            target_product_category_id=reward.target_product_category_id,
            target_service_category_id=reward.target_service_category_id,
        )
        for reward in rewards
    ]


async def mint_customer_coupon(
    session: AsyncSession,
    *,
    template: Coupon,
    template_rewards: Sequence[CouponReward],
    customer_id: int,
    campaign_id: int,
    now_utc: datetime,
    code_factory: Callable[[], str] = generate_coupon_code,
) -> Coupon:
    """Clone ``template`` into a single-use coupon pinned to one customer.

    Each attempt runs in a savepoint so a code collision on the unique
    ``upper(code)`` index only rolls back that attempt.
    """
    for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
        code = code_factory()
        try:
            async with session.begin_nested():
                coupon = await CouponsRepo.create(
                    session,
                    coupon=_clone_coupon(
                        template,
                        code=code,
                        customer_id=customer_id,
                        campaign_id=campaign_id,
                        now_utc=now_utc,
                    ),
                )
                await CouponsRepo.add_rewards(
                    session,
                    _clone_rewards(template_rewards, coupon_id=coupon.id),
                )
        except IntegrityError:
            logger.warning(
                "coupon_code_collision",
                attempt=attempt,
                campaign_id=campaign_id,
                customer_id=customer_id,
            )
            continue
        return coupon

    raise CouponCodeExhaustedError("unable to generate a unique coupon code")
