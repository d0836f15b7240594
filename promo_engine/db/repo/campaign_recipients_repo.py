from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from promo_engine.db.models.campaigns import CampaignRecipient


class CampaignRecipientsRepo:
    @staticmethod
    async def create_once(
        session: AsyncSession,
        *,
        campaign_id: int,
        customer_id: int,
        channel: str,
        variant_id: int | None,
        sent_at: datetime,
    ) -> int | None:
        stmt = (
            insert(CampaignRecipient)
            .values(
                campaign_id=campaign_id,
                customer_id=customer_id,
                channel=channel,
                variant_id=variant_id,
                delivered=False,
                sent_at=sent_at,
            )
            .on_conflict_do_nothing(
                index_elements=[CampaignRecipient.campaign_id, CampaignRecipient.customer_id]
            )
            .returning(CampaignRecipient.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def set_coupon_code(
        session: AsyncSession,
        *,
        recipient_id: int,
        coupon_code: str,
    ) -> None:
        await session.execute(
            update(CampaignRecipient)
            .where(CampaignRecipient.id == recipient_id)
            .values(coupon_code=coupon_code)
        )

    @staticmethod
    async def mark_delivered(
        session: AsyncSession,
        *,
        recipient_id: int,
        delivered: bool,
    ) -> None:
        await session.execute(
            update(CampaignRecipient)
            .where(CampaignRecipient.id == recipient_id)
            .values(delivered=delivered)
        )

    @staticmethod
    async def mark_clicked(
        session: AsyncSession,
        *,
        campaign_id: int,
        customer_id: int,
        clicked_at: datetime,
    ) -> bool:
        stmt = (
            update(CampaignRecipient)
            .where(
                CampaignRecipient.campaign_id == campaign_id,
                CampaignRecipient.customer_id == customer_id,
                CampaignRecipient.clicked_at.is_(None),
            )
            .values(clicked_at=clicked_at)
            .returning(CampaignRecipient.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def count_for_campaign(session: AsyncSession, campaign_id: int) -> tuple[int, int]:
        stmt = select(
            func.count(CampaignRecipient.id),
            func.count(CampaignRecipient.id).filter(CampaignRecipient.delivered.is_(True)),
        ).where(CampaignRecipient.campaign_id == campaign_id)
        result = await session.execute(stmt)
        total, delivered = result.one()
        return int(total or 0), int(delivered or 0)

    @staticmethod
    async def list_for_campaign(
        session: AsyncSession,
        campaign_id: int,
        *,
        variant_id: int | None = None,
    ) -> list[CampaignRecipient]:
        stmt = (
            select(CampaignRecipient)
            .where(CampaignRecipient.campaign_id == campaign_id)
            .order_by(CampaignRecipient.customer_id.asc())
        )
        if variant_id is not None:
            stmt = stmt.where(CampaignRecipient.variant_id == variant_id)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_sent_between(
        session: AsyncSession,
        *,
        from_utc: datetime,
        to_utc: datetime,
    ) -> list[tuple[int, datetime]]:
        stmt = (
            select(CampaignRecipient.customer_id, CampaignRecipient.sent_at)
            .where(
                CampaignRecipient.sent_at >= from_utc,
                CampaignRecipient.sent_at <= to_utc,
            )
            .order_by(CampaignRecipient.sent_at.asc(), CampaignRecipient.id.asc())
        )
        result = await session.execute(stmt)
        return [(int(customer_id), sent_at) for customer_id, sent_at in result.all()]

    @staticmethod
    async def variant_counts(
        session: AsyncSession,
        campaign_id: int,
    ) -> dict[int | None, tuple[int, int, int]]:
        stmt = (
            select(
                CampaignRecipient.variant_id,
                func.count(CampaignRecipient.id),
                func.count(CampaignRecipient.id).filter(CampaignRecipient.delivered.is_(True)),
                func.count(CampaignRecipient.clicked_at),
            )
            .where(CampaignRecipient.campaign_id == campaign_id)
            .group_by(CampaignRecipient.variant_id)
        )
        result = await session.execute(stmt)
        return {
            (int(variant_id) if variant_id is not None else None): (
                int(sent or 0),
                int(delivered or 0),
                int(clicked or 0),
            )
            for variant_id, sent, delivered, clicked in result.all()
        }
