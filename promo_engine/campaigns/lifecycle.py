from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from promo_engine.campaigns.errors import CampaignNotDispatchableError, CampaignNotFoundError
from promo_engine.db.repo.campaign_recipients_repo import CampaignRecipientsRepo
from promo_engine.db.repo.campaigns_repo import CampaignsRepo

logger = structlog.get_logger(__name__)

SCHEDULABLE_STATUSES = ("draft", "scheduled")
CANCELLABLE_STATUSES = ("draft", "scheduled")


class CampaignLifecycle:
    @staticmethod
    async def _require_campaign(session: AsyncSession, campaign_id: int) -> str:
        campaign = await CampaignsRepo.get_by_id(session, campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(f"campaign {campaign_id} not found")
        return campaign.status

    @staticmethod
    async def schedule(
        session: AsyncSession,
        *,
        campaign_id: int,
        scheduled_at: datetime,
        now_utc: datetime | None = None,
    ) -> None:
        now = now_utc or datetime.now(timezone.utc)
        if scheduled_at.tzinfo is None:
            scheduled_at = scheduled_at.replace(tzinfo=timezone.utc)

        status = await CampaignLifecycle._require_campaign(session, campaign_id)
        moved = await CampaignsRepo.transition_status(
            session,
            campaign_id=campaign_id,
            from_statuses=SCHEDULABLE_STATUSES,
            to_status="scheduled",
            now_utc=now,
            values={"scheduled_at": scheduled_at},
        )
        if not moved:
            raise CampaignNotDispatchableError(f"campaign {campaign_id} cannot be scheduled from {status}")
        logger.info(
            "campaign_scheduled",
            campaign_id=campaign_id,
            scheduled_at=scheduled_at.isoformat(),
        )

    @staticmethod
    async def cancel(
        session: AsyncSession,
        *,
        campaign_id: int,
        now_utc: datetime | None = None,
    ) -> None:
        now = now_utc or datetime.now(timezone.utc)
        status = await CampaignLifecycle._require_campaign(session, campaign_id)
        moved = await CampaignsRepo.transition_status(
            session,
            campaign_id=campaign_id,
            from_statuses=CANCELLABLE_STATUSES,
            to_status="cancelled",
            now_utc=now,
        )
        if not moved:
            raise CampaignNotDispatchableError(f"campaign {campaign_id} cannot be cancelled from {status}")
        logger.info("campaign_cancelled", campaign_id=campaign_id)

    @staticmethod
    async def release_stuck(
        session: AsyncSession,
        *,
        campaign_id: int,
        now_utc: datetime | None = None,
    ) -> None:
        """Return an aborted ``sending`` campaign to ``draft`` so it can be dispatched again.

        Recipient rows written before the abort are kept; the next dispatch
        skips those customers.
        """
        now = now_utc or datetime.now(timezone.utc)
        status = await CampaignLifecycle._require_campaign(session, campaign_id)
        moved = await CampaignsRepo.transition_status(
            session,
            campaign_id=campaign_id,
            from_statuses=("sending",),
            to_status="draft",
            now_utc=now,
            values={"sending_started_at": None, "scheduled_at": None},
        )
        if not moved:
            raise CampaignNotDispatchableError(f"campaign {campaign_id} is {status}, not sending")
        logger.warning("campaign_released_from_sending", campaign_id=campaign_id)

    @staticmethod
    async def record_click(
        session: AsyncSession,
        *,
        campaign_id: int,
        customer_id: int,
        clicked_at: datetime | None = None,
    ) -> bool:
        recorded = await CampaignRecipientsRepo.mark_clicked(
            session,
            campaign_id=campaign_id,
            customer_id=customer_id,
            clicked_at=clicked_at or datetime.now(timezone.utc),
        )
        if recorded:
            logger.info("campaign_click_recorded", campaign_id=campaign_id, customer_id=customer_id)
        return recorded
