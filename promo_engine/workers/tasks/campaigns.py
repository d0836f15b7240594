from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog

from promo_engine.campaigns.dispatch import CampaignDispatcher
from promo_engine.db.repo.campaigns_repo import CampaignsRepo
from promo_engine.db.session import SessionLocal
from promo_engine.services.alerts import send_ops_alert
from promo_engine.workers.asyncio_runner import run_async_job
from promo_engine.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)
STUCK_SENDING_THRESHOLD = timedelta(minutes=30)


async def run_campaign_dispatch_async(campaign_id: int) -> dict[str, int]:
    summary = await CampaignDispatcher().run_claimed(campaign_id)
    return {
        "campaign_id": summary.campaign_id,
        "recipient_count": summary.recipient_count,
        "delivered_count": summary.delivered_count,
    }


async def run_due_campaigns_async() -> dict[str, int]:
    result = await CampaignDispatcher().process_due(now_utc=datetime.now(timezone.utc))
    logger.info("campaign_due_dispatch_finished", **result)
    return result


async def run_stuck_campaign_monitor_async() -> dict[str, int]:
    now_utc = datetime.now(timezone.utc)
    async with SessionLocal() as session:
        stuck = await CampaignsRepo.list_stuck_sending(
            session,
            started_before_utc=now_utc - STUCK_SENDING_THRESHOLD,
        )

    result = {"stuck_campaigns": len(stuck)}
    if stuck:
        await send_ops_alert(
            event="campaign_stuck_sending",
            payload={
                "stuck_campaigns": len(stuck),
                "campaign_ids": [campaign.id for campaign in stuck],
                "threshold_minutes": int(STUCK_SENDING_THRESHOLD.total_seconds() // 60),
            },
        )
        logger.warning("campaign_stuck_sending_detected", **result)
    else:
        logger.info("campaign_stuck_monitor_finished", **result)
    return result


@celery_app.task(name="promo_engine.workers.tasks.campaigns.run_campaign_dispatch")
def run_campaign_dispatch(campaign_id: int) -> dict[str, int]:
    return run_async_job(lambda: run_campaign_dispatch_async(campaign_id))


@celery_app.task(name="promo_engine.workers.tasks.campaigns.run_due_campaigns")
def run_due_campaigns() -> dict[str, int]:
    return run_async_job(run_due_campaigns_async)


@celery_app.task(name="promo_engine.workers.tasks.campaigns.run_stuck_campaign_monitor")
def run_stuck_campaign_monitor() -> dict[str, int]:
    return run_async_job(run_stuck_campaign_monitor_async)


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "campaign-due-dispatch-every-minute": {
            "task": "promo_engine.workers.tasks.campaigns.run_due_campaigns",
            "schedule": 60.0,
            "options": {"queue": "q_normal"},
        },
        "campaign-stuck-monitor-every-10-minutes": {
            "task": "promo_engine.workers.tasks.campaigns.run_stuck_campaign_monitor",
            "schedule": 600.0,
            "options": {"queue": "q_normal"},
        },
    }
)
