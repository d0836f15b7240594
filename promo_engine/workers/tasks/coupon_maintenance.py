from __future__ import annotations

from datetime import datetime, timezone

import structlog

from promo_engine.db.repo.coupons_repo import CouponsRepo
from promo_engine.db.session import SessionLocal
from promo_engine.workers.asyncio_runner import run_async_job
from promo_engine.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)


async def run_coupon_status_rollover_async() -> dict[str, int]:
    now_utc = datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        expired_count = await CouponsRepo.expire_active_coupons(session, now_utc=now_utc)

    result = {"expired_coupons": expired_count}
    logger.info("coupon_status_rollover_finished", **result)
    return result


@celery_app.task(name="promo_engine.workers.tasks.coupon_maintenance.run_coupon_status_rollover")
def run_coupon_status_rollover() -> dict[str, int]:
    return run_async_job(run_coupon_status_rollover_async)


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "coupon-status-rollover-every-10-minutes": {
            "task": "promo_engine.workers.tasks.coupon_maintenance.run_coupon_status_rollover",
            "schedule": 600.0,
            "options": {"queue": "q_normal"},
        },
    }
)
