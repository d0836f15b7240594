from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from promo_engine.core.config import get_settings
from promo_engine.core.money import to_money
from promo_engine.coupons.conditions import (
    REQUIRES_PRODUCT,
    REQUIRES_PRODUCT_CATEGORY,
    REQUIRES_SERVICE,
    REQUIRES_SERVICE_CATEGORY,
    build_failure_message,
    evaluate_conditions,
    required_name_ids,
)
from promo_engine.coupons.errors import (
    CouponAlreadyUsedError,
    CouponError,
    CouponInactiveError,
    CouponNoMatchingItemsError,
    CouponNotEligibleError,
    CouponNotFoundError,
)
from promo_engine.coupons.rewards import (
    compute_reward_lines,
    describe_lines,
    reward_matches_cart,
    reward_target,
    total_discount,
)
from promo_engine.coupons.targeting import check_customer_targeting
from promo_engine.coupons.types import CartItem, CouponEvaluation, CustomerContext
from promo_engine.db.models.coupons import Coupon, CouponReward
from promo_engine.db.repo.catalog_repo import CatalogRepo
from promo_engine.db.repo.coupons_repo import CouponsRepo
from promo_engine.services.coupon_codes import normalize_coupon_code

logger = structlog.get_logger(__name__)

CatalogNames = dict[tuple[str, int], str]

_NAME_LOADERS = {
    REQUIRES_PRODUCT: "product_names",
    REQUIRES_SERVICE: "service_names",
    REQUIRES_PRODUCT_CATEGORY: "product_category_names",
    REQUIRES_SERVICE_CATEGORY: "service_category_names",
}


def _reward_name_key(reward: CouponReward) -> tuple[str, int] | None:
    target_id, target_category_id = reward_target(reward)
    if target_id is not None:
        return reward.applies_to, int(target_id)
    if target_category_id is not None:
        return f"{reward.applies_to}_category", int(target_category_id)
    return None


def _missing_reward_phrase(reward: CouponReward, names: Mapping[tuple[str, int], str]) -> str:
    key = _reward_name_key(reward)
    if key is None:
        return f"a {reward.applies_to}"
    kind, _ = key
    name = names.get(key)
    if kind.endswith("_category"):
        return f"a {reward.applies_to} from {name or 'a required category'}"
    return name or f"a specific {reward.applies_to}"


class CouponEvaluator:
    @staticmethod
    async def _resolve_names(
        session: AsyncSession,
        wanted: Mapping[str, Iterable[int]],
    ) -> CatalogNames:
        names: CatalogNames = {}
        for kind, ids in wanted.items():
            id_list = [int(item_id) for item_id in ids]
            if not id_list:
                continue
            loader = getattr(CatalogRepo, _NAME_LOADERS[kind])
            loaded = await loader(session, id_list)
            names.update({(kind, item_id): name for item_id, name in loaded.items()})
        return names

    @staticmethod
    async def _load_usable_coupon(
        session: AsyncSession,
        *,
        code: str,
        now_utc: datetime,
    ) -> Coupon:
        normalized_code = normalize_coupon_code(code)
        if not normalized_code:
            raise CouponNotFoundError

        coupon = await CouponsRepo.get_by_code(session, normalized_code)
        if coupon is None:
            raise CouponNotFoundError
        if coupon.status != "active":
            raise CouponInactiveError(f"Coupon is {coupon.status}")
        if coupon.expires_at is not None and coupon.expires_at < now_utc:
            raise CouponInactiveError("Coupon has expired")
        if coupon.max_uses is not None and coupon.use_count >= coupon.max_uses:
            raise CouponInactiveError("Coupon usage limit reached")
        return coupon

    @staticmethod
    async def _check_single_use(
        session: AsyncSession,
        *,
        coupon: Coupon,
        customer: CustomerContext | None,
    ) -> None:
        # Without a resolved identity the per-customer check cannot run.
        if not coupon.is_single_use or customer is None:
            return
        if await CouponsRepo.has_completed_use(
            session,
            coupon_id=coupon.id,
            customer_id=customer.id,
        ):
            raise CouponAlreadyUsedError

    @staticmethod
    async def _check_conditions(
        session: AsyncSession,
        *,
        coupon: Coupon,
        cart_items: Sequence[CartItem],
        subtotal: Decimal,
        customer: CustomerContext | None,
    ) -> None:
        result = evaluate_conditions(coupon, cart_items, subtotal, customer)
        if result.passed:
            return
        names = await CouponEvaluator._resolve_names(session, required_name_ids(result))
        raise CouponNotEligibleError(build_failure_message(result, names))

    @staticmethod
    async def _reward_names(
        session: AsyncSession,
        rewards: Sequence[CouponReward],
        *,
        include_items: bool,
    ) -> CatalogNames:
        wanted: dict[str, set[int]] = {}
        for reward in rewards:
            key = _reward_name_key(reward)
            if key is None:
                continue
            kind, item_id = key
            if not include_items and not kind.endswith("_category"):
                continue
            wanted.setdefault(kind, set()).add(item_id)
        if not wanted:
            return {}
        return await CouponEvaluator._resolve_names(session, wanted)

    @staticmethod
    async def evaluate(
        session: AsyncSession,
        *,
        code: str,
        subtotal: object,
        cart_items: Sequence[CartItem],
        customer: CustomerContext | None,
        now_utc: datetime | None = None,
        customer_type_enforcement: str | None = None,
    ) -> CouponEvaluation:
        """Validate ``code`` for a cart and compute its discount.

        Business rejections come back as ``CouponEvaluation(ok=False)`` with the
        user-facing message; only data-access failures propagate.
        """
        now = now_utc or datetime.now(timezone.utc)
        enforcement = customer_type_enforcement or get_settings().coupon_customer_type_enforcement
        basis = to_money(subtotal)
        try:
            coupon = await CouponEvaluator._load_usable_coupon(session, code=code, now_utc=now)
            await CouponEvaluator._check_single_use(session, coupon=coupon, customer=customer)
            warning = check_customer_targeting(
                coupon,
                customer,
                customer_type_enforcement=enforcement,
            )
            await CouponEvaluator._check_conditions(
                session,
                coupon=coupon,
                cart_items=cart_items,
                subtotal=basis,
                customer=customer,
            )

            rewards = await CouponsRepo.list_rewards(session, coupon.id)
            category_names = await CouponEvaluator._reward_names(
                session,
                rewards,
                include_items=False,
            )
            lines = compute_reward_lines(
                rewards,
                cart_items,
                basis,
                category_names=category_names,
            )
            if rewards and not any(reward_matches_cart(reward, cart_items) for reward in rewards):
                names = await CouponEvaluator._reward_names(session, rewards, include_items=True)
                phrases = list(dict.fromkeys(_missing_reward_phrase(r, names) for r in rewards))
                raise CouponNoMatchingItemsError(
                    f"Coupon requires {' or '.join(phrases)} in the cart"
                )
        except CouponError as exc:
            logger.info(
                "coupon_evaluation_rejected",
                kind=exc.kind,
                reason=exc.message,
                customer_id=(customer.id if customer is not None else None),
            )
            return CouponEvaluation.rejected(kind=exc.kind, message=exc.message)

        discount = total_discount(lines, basis)
        logger.info(
            "coupon_evaluation_accepted",
            coupon_id=coupon.id,
            discount=str(discount),
            reward_lines=len(lines),
            customer_id=(customer.id if customer is not None else None),
        )
        return CouponEvaluation(
            ok=True,
            discount=discount,
            breakdown=tuple(lines),
            description=describe_lines(lines),
            coupon_id=coupon.id,
            code=coupon.code,
            name=coupon.name,
            warning=warning,
        )
