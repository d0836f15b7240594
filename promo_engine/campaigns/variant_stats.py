from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from promo_engine.campaigns.attribution import AttributionEngine
from promo_engine.campaigns.variants import VariantStats, pick_winner
from promo_engine.db.repo.campaign_recipients_repo import CampaignRecipientsRepo
from promo_engine.db.repo.campaigns_repo import CampaignsRepo

logger = structlog.get_logger(__name__)


async def collect_variant_stats(
    session: AsyncSession,
    campaign_id: int,
    *,
    window_days: int | None = None,
) -> list[VariantStats]:
    variants = await CampaignsRepo.list_variants(session, campaign_id)
    counts = await CampaignRecipientsRepo.variant_counts(session, campaign_id)

    stats: list[VariantStats] = []
    for variant in variants:
        sent, delivered, clicked = counts.get(variant.id, (0, 0, 0))
        attribution = await AttributionEngine.attribute(
            session,
            campaign_id,
            window_days,
            variant_id=variant.id,
        )
        stats.append(
            VariantStats(
                variant_id=variant.id,
                label=variant.label,
                sent=sent,
                delivered=delivered,
                clicked=clicked,
                conversions=attribution.unique_customers,
                revenue=attribution.revenue,
                is_winner=bool(variant.is_winner),
            )
        )
    return stats


async def determine_winner(session: AsyncSession, campaign_id: int) -> int | None:
    stats = await collect_variant_stats(session, campaign_id)
    winner_id = pick_winner(stats)
    if winner_id is None:
        return None

    await CampaignsRepo.set_winner(session, campaign_id=campaign_id, variant_id=winner_id)
    logger.info("campaign_variant_winner_selected", campaign_id=campaign_id, variant_id=winner_id)
    return winner_id
