from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from promo_engine.db.models.campaigns import Campaign, CampaignVariant

DISPATCHABLE_STATUSES = ("draft", "scheduled")


class CampaignsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, campaign_id: int) -> Campaign | None:
        return await session.get(Campaign, campaign_id)

    @staticmethod
    async def claim_for_sending(
        session: AsyncSession,
        *,
        campaign_id: int,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(Campaign)
            .where(
                Campaign.id == campaign_id,
                Campaign.status.in_(DISPATCHABLE_STATUSES),
                or_(
                    Campaign.status == "draft",
                    Campaign.scheduled_at.is_(None),
                    Campaign.scheduled_at <= now_utc,
                ),
            )
            .values(status="sending", sending_started_at=now_utc, updated_at=now_utc)
            .returning(Campaign.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def transition_status(
        session: AsyncSession,
        *,
        campaign_id: int,
        from_statuses: Sequence[str],
        to_status: str,
        now_utc: datetime,
        values: dict[str, object] | None = None,
    ) -> bool:
        stmt = (
            update(Campaign)
            .where(Campaign.id == campaign_id, Campaign.status.in_(tuple(from_statuses)))
            .values(status=to_status, updated_at=now_utc, **(values or {}))
            .returning(Campaign.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def mark_sent(
        session: AsyncSession,
        *,
        campaign_id: int,
        recipient_count: int,
        delivered_count: int,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(Campaign)
            .where(Campaign.id == campaign_id, Campaign.status == "sending")
            .values(
                status="sent",
                sent_at=now_utc,
                recipient_count=recipient_count,
                delivered_count=delivered_count,
                updated_at=now_utc,
            )
            .returning(Campaign.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def list_due_ids(
        session: AsyncSession,
        *,
        now_utc: datetime,
        limit: int = 50,
    ) -> list[int]:
        stmt = (
            select(Campaign.id)
            .where(
                Campaign.status == "scheduled",
                Campaign.scheduled_at.is_not(None),
                Campaign.scheduled_at <= now_utc,
            )
            .order_by(Campaign.scheduled_at.asc(), Campaign.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [int(campaign_id) for campaign_id in result.scalars().all()]

    @staticmethod
    async def list_stuck_sending(
        session: AsyncSession,
        *,
        started_before_utc: datetime,
        limit: int = 50,
    ) -> list[Campaign]:
        stmt = (
            select(Campaign)
            .where(
                Campaign.status == "sending",
                Campaign.sending_started_at.is_not(None),
                Campaign.sending_started_at <= started_before_utc,
            )
            .order_by(Campaign.sending_started_at.asc(), Campaign.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_variants(session: AsyncSession, campaign_id: int) -> list[CampaignVariant]:
        stmt = (
            select(CampaignVariant)
            .where(CampaignVariant.campaign_id == campaign_id)
            .order_by(CampaignVariant.label.asc(), CampaignVariant.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def set_winner(
        session: AsyncSession,
        *,
        campaign_id: int,
        variant_id: int,
    ) -> None:
        await session.execute(
            update(CampaignVariant)
            .where(CampaignVariant.campaign_id == campaign_id)
            .values(is_winner=CampaignVariant.id == variant_id)
        )
