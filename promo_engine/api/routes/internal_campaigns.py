from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from promo_engine.api.routes.internal_access import assert_internal_access
from promo_engine.campaigns.attribution import AttributionEngine
from promo_engine.campaigns.audience import CAMPAIGN_CHANNELS, AudienceSelector
from promo_engine.campaigns.dispatch import CampaignDispatcher
from promo_engine.campaigns.errors import (
    CampaignAlreadyDispatchingError,
    CampaignNotDispatchableError,
    CampaignNotDueError,
    CampaignNotFoundError,
    InvalidAudienceFilterError,
)
from promo_engine.campaigns.lifecycle import CampaignLifecycle
from promo_engine.campaigns.variant_stats import collect_variant_stats, determine_winner
from promo_engine.db.repo.campaigns_repo import CampaignsRepo
from promo_engine.db.session import SessionLocal
from promo_engine.workers.tasks.campaigns import run_campaign_dispatch

router = APIRouter(tags=["internal", "campaigns"])
logger = structlog.get_logger(__name__)

CHANNEL_PATTERN = "^(" + "|".join(CAMPAIGN_CHANNELS) + ")$"


class AudiencePreviewRequest(BaseModel):
    filters: dict[str, Any] | None = None
    channel: str = Field(pattern=CHANNEL_PATTERN)


class AudiencePreviewResponse(BaseModel):
    total_match: int = Field(ge=0)
    consent_eligible: int = Field(ge=0)


class CampaignScheduleRequest(BaseModel):
    scheduled_at: datetime


class CampaignStatusResponse(BaseModel):
    campaign_id: int
    status: str
    scheduled_at: datetime | None = None


class CampaignDispatchResponse(BaseModel):
    campaign_id: int
    status: str
    task_id: str | None = None


class CampaignClickResponse(BaseModel):
    campaign_id: int
    customer_id: int
    recorded: bool


class CampaignAttributionResponse(BaseModel):
    campaign_id: int
    window_days: int
    revenue: Decimal
    transaction_count: int = Field(ge=0)
    unique_customers: int = Field(ge=0)


class VariantStatsOut(BaseModel):
    variant_id: int
    label: str
    sent: int = Field(ge=0)
    delivered: int = Field(ge=0)
    clicked: int = Field(ge=0)
    conversions: int = Field(ge=0)
    revenue: Decimal
    click_through_rate: float = Field(ge=0.0)
    delivery_rate: float = Field(ge=0.0)
    is_winner: bool


class VariantStatsResponse(BaseModel):
    campaign_id: int
    variants: list[VariantStatsOut]


def _assert_access(request: Request) -> None:
    assert_internal_access(request, log_event="internal_campaigns_auth_failed")


async def _status_response(campaign_id: int) -> CampaignStatusResponse:
    async with SessionLocal() as session:
        campaign = await CampaignsRepo.get_by_id(session, campaign_id)
    if campaign is None:
        raise HTTPException(status_code=404, detail={"code": "E_CAMPAIGN_NOT_FOUND"})
    return CampaignStatusResponse(
        campaign_id=campaign_id,
        status=campaign.status,
        scheduled_at=campaign.scheduled_at,
    )


@router.post("/internal/campaigns/audience/preview", response_model=AudiencePreviewResponse)
async def preview_audience(
    payload: AudiencePreviewRequest,
    request: Request,
) -> AudiencePreviewResponse:
    _assert_access(request)

    try:
        async with SessionLocal() as session:
            preview = await AudienceSelector.preview(session, payload.filters, payload.channel)
    except InvalidAudienceFilterError as exc:
        raise HTTPException(
            status_code=422,
            detail={"code": "E_AUDIENCE_FILTER_INVALID", "message": str(exc)},
        ) from exc

    return AudiencePreviewResponse(
        total_match=preview.total_match,
        consent_eligible=preview.consent_eligible,
    )


@router.post("/internal/campaigns/{campaign_id}/schedule", response_model=CampaignStatusResponse)
async def schedule_campaign(
    campaign_id: int,
    payload: CampaignScheduleRequest,
    request: Request,
) -> CampaignStatusResponse:
    _assert_access(request)

    now_utc = datetime.now(timezone.utc)
    scheduled_at = payload.scheduled_at
    if scheduled_at.tzinfo is None:
        scheduled_at = scheduled_at.replace(tzinfo=timezone.utc)
    if scheduled_at <= now_utc:
        raise HTTPException(status_code=422, detail={"code": "E_CAMPAIGN_SCHEDULE_IN_PAST"})

    try:
        async with SessionLocal.begin() as session:
            await CampaignLifecycle.schedule(
                session,
                campaign_id=campaign_id,
                scheduled_at=scheduled_at,
                now_utc=now_utc,
            )
    except CampaignNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "E_CAMPAIGN_NOT_FOUND"}) from exc
    except CampaignNotDispatchableError as exc:
        raise HTTPException(status_code=409, detail={"code": "E_CAMPAIGN_STATUS_CONFLICT"}) from exc

    return await _status_response(campaign_id)


@router.post("/internal/campaigns/{campaign_id}/cancel", response_model=CampaignStatusResponse)
async def cancel_campaign(campaign_id: int, request: Request) -> CampaignStatusResponse:
    _assert_access(request)

    try:
        async with SessionLocal.begin() as session:
            await CampaignLifecycle.cancel(session, campaign_id=campaign_id)
    except CampaignNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "E_CAMPAIGN_NOT_FOUND"}) from exc
    except CampaignNotDispatchableError as exc:
        raise HTTPException(status_code=409, detail={"code": "E_CAMPAIGN_STATUS_CONFLICT"}) from exc

    return await _status_response(campaign_id)


@router.post(
    "/internal/campaigns/{campaign_id}/dispatch",
    response_model=CampaignDispatchResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def dispatch_campaign(campaign_id: int, request: Request) -> CampaignDispatchResponse:
    _assert_access(request)

    try:
        await CampaignDispatcher().claim(campaign_id)
    except CampaignNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "E_CAMPAIGN_NOT_FOUND"}) from exc
    except CampaignAlreadyDispatchingError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "E_CAMPAIGN_ALREADY_DISPATCHING"},
        ) from exc
    except CampaignNotDueError as exc:
        raise HTTPException(status_code=409, detail={"code": "E_CAMPAIGN_NOT_DUE"}) from exc
    except CampaignNotDispatchableError as exc:
        raise HTTPException(status_code=409, detail={"code": "E_CAMPAIGN_STATUS_CONFLICT"}) from exc

    async_result = run_campaign_dispatch.delay(campaign_id)
    logger.info("campaign_dispatch_enqueued", campaign_id=campaign_id, task_id=async_result.id)
    return CampaignDispatchResponse(
        campaign_id=campaign_id,
        status="sending",
        task_id=async_result.id,
    )


@router.post(
    "/internal/campaigns/{campaign_id}/recipients/{customer_id}/click",
    response_model=CampaignClickResponse,
)
async def record_campaign_click(
    campaign_id: int,
    customer_id: int,
    request: Request,
) -> CampaignClickResponse:
    _assert_access(request)

    async with SessionLocal.begin() as session:
        recorded = await CampaignLifecycle.record_click(
            session,
            campaign_id=campaign_id,
            customer_id=customer_id,
        )
    return CampaignClickResponse(campaign_id=campaign_id, customer_id=customer_id, recorded=recorded)


@router.get(
    "/internal/campaigns/{campaign_id}/attribution",
    response_model=CampaignAttributionResponse,
)
async def get_campaign_attribution(
    campaign_id: int,
    request: Request,
    window_days: int = Query(default=7, ge=0, le=365),
) -> CampaignAttributionResponse:
    _assert_access(request)

    async with SessionLocal() as session:
        campaign = await CampaignsRepo.get_by_id(session, campaign_id)
        if campaign is None:
            raise HTTPException(status_code=404, detail={"code": "E_CAMPAIGN_NOT_FOUND"})
        result = await AttributionEngine.attribute(session, campaign_id, window_days)

    return CampaignAttributionResponse(
        campaign_id=campaign_id,
        window_days=window_days,
        revenue=result.revenue,
        transaction_count=result.transaction_count,
        unique_customers=result.unique_customers,
    )


@router.get(
    "/internal/campaigns/{campaign_id}/variants/stats",
    response_model=VariantStatsResponse,
)
async def get_variant_stats(
    campaign_id: int,
    request: Request,
    window_days: int | None = Query(default=None, ge=0, le=365),
) -> VariantStatsResponse:
    _assert_access(request)

    async with SessionLocal() as session:
        campaign = await CampaignsRepo.get_by_id(session, campaign_id)
        if campaign is None:
            raise HTTPException(status_code=404, detail={"code": "E_CAMPAIGN_NOT_FOUND"})
        stats = await collect_variant_stats(session, campaign_id, window_days=window_days)

    return VariantStatsResponse(
        campaign_id=campaign_id,
        variants=[
            VariantStatsOut(
                variant_id=stat.variant_id,
                label=stat.label,
                sent=stat.sent,
                delivered=stat.delivered,
                clicked=stat.clicked,
                conversions=stat.conversions,
                revenue=stat.revenue,
                click_through_rate=stat.click_through_rate,
                delivery_rate=stat.delivery_rate,
                is_winner=stat.is_winner,
            )
            for stat in stats
        ],
    )


class VariantWinnerResponse(BaseModel):
    campaign_id: int
    winner_variant_id: int | None = None


@router.post(
    "/internal/campaigns/{campaign_id}/variants/winner",
    response_model=VariantWinnerResponse,
)
async def select_variant_winner(campaign_id: int, request: Request) -> VariantWinnerResponse:
    _assert_access(request)

    async with SessionLocal.begin() as session:
        campaign = await CampaignsRepo.get_by_id(session, campaign_id)
        if campaign is None:
            raise HTTPException(status_code=404, detail={"code": "E_CAMPAIGN_NOT_FOUND"})
        winner_variant_id = await determine_winner(session, campaign_id)

    return VariantWinnerResponse(campaign_id=campaign_id, winner_variant_id=winner_variant_id)
