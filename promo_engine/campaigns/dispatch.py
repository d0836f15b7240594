from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from promo_engine.campaigns.audience import CHANNEL_BOTH, AudienceSelector, reachable_channels
from promo_engine.campaigns.errors import (
    AudienceResolutionError,
    CampaignAlreadyDispatchingError,
    CampaignNotDispatchableError,
    CampaignNotDueError,
    CampaignNotFoundError,
    CampaignPersistenceError,
    InvalidAudienceFilterError,
    VariantAllocationError,
)
from promo_engine.campaigns.senders import ChannelSender, build_default_senders
from promo_engine.campaigns.templates import (
    BusinessProfile,
    build_template_variables,
    render_template,
)
from promo_engine.campaigns.variants import assign_variants
from promo_engine.core.config import get_settings
from promo_engine.coupons.minting import mint_customer_coupon
from promo_engine.db.models.campaigns import Campaign, CampaignVariant
from promo_engine.db.models.coupons import Coupon, CouponReward
from promo_engine.db.models.customers import Customer
from promo_engine.db.repo.campaign_recipients_repo import CampaignRecipientsRepo
from promo_engine.db.repo.campaigns_repo import DISPATCHABLE_STATUSES, CampaignsRepo
from promo_engine.db.repo.coupons_repo import CouponsRepo
from promo_engine.db.repo.customers_repo import CustomersRepo
from promo_engine.db.session import SessionLocal
from promo_engine.services.alerts import send_ops_alert

logger = structlog.get_logger(__name__)

AlertSender = Callable[..., Awaitable[bool]]


@dataclass(frozen=True, slots=True)
class DispatchSummary:
    campaign_id: int
    recipient_count: int
    delivered_count: int


@dataclass(frozen=True, slots=True)
class RecipientOutcome:
    customer_id: int
    created: bool
    delivered: bool


@dataclass(frozen=True, slots=True)
class DispatchPlan:
    campaign: Campaign
    customers: tuple[Customer, ...]
    variants_by_id: Mapping[int, CampaignVariant]
    assignment: Mapping[int, int | None]
    coupon_template: Coupon | None
    coupon_rewards: tuple[CouponReward, ...]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _recipient_channel(channels: Sequence[str]) -> str:
    return CHANNEL_BOTH if len(channels) > 1 else channels[0]


class CampaignDispatcher:
    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        senders: Mapping[str, ChannelSender] | None = None,
        concurrency: int | None = None,
        business: BusinessProfile | None = None,
        alert_sender: AlertSender = send_ops_alert,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        settings = get_settings()
        self._session_factory = session_factory if session_factory is not None else SessionLocal
        self._senders = senders if senders is not None else build_default_senders(settings)
        self._concurrency = concurrency or settings.campaign_dispatch_concurrency
        self._business = business or BusinessProfile.from_settings(settings)
        self._alert_sender = alert_sender
        self._clock = clock

    async def dispatch(self, campaign_id: int, *, now_utc: datetime | None = None) -> DispatchSummary:
        await self.claim(campaign_id, now_utc=now_utc)
        return await self.run_claimed(campaign_id, now_utc=now_utc)

    async def claim(self, campaign_id: int, *, now_utc: datetime | None = None) -> None:
        """Move the campaign to ``sending``; exactly one concurrent caller wins."""
        now = now_utc or self._clock()
        async with self._session_factory.begin() as session:
            campaign = await CampaignsRepo.get_by_id(session, campaign_id)
            if campaign is None:
                raise CampaignNotFoundError(f"campaign {campaign_id} not found")
            if campaign.status == "sending":
                raise CampaignAlreadyDispatchingError(f"campaign {campaign_id} is already sending")
            if campaign.status not in DISPATCHABLE_STATUSES:
                raise CampaignNotDispatchableError(
                    f"campaign {campaign_id} has status {campaign.status}"
                )
            if (
                campaign.status == "scheduled"
                and campaign.scheduled_at is not None
                and campaign.scheduled_at > now
            ):
                raise CampaignNotDueError(f"campaign {campaign_id} is scheduled for later")

            claimed = await CampaignsRepo.claim_for_sending(
                session,
                campaign_id=campaign_id,
                now_utc=now,
            )
            if not claimed:
                raise CampaignAlreadyDispatchingError(f"campaign {campaign_id} is already sending")

        logger.info("campaign_dispatch_claimed", campaign_id=campaign_id)

    async def run_claimed(
        self,
        campaign_id: int,
        *,
        now_utc: datetime | None = None,
    ) -> DispatchSummary:
        structlog.contextvars.bind_contextvars(campaign_id=campaign_id)
        try:
            today = (now_utc or self._clock()).date()
            plan = await self._build_plan(campaign_id, today=today)
            outcomes = await self._fan_out(plan, today=today)
            return await self._finalize(campaign_id, outcomes=outcomes)
        finally:
            structlog.contextvars.unbind_contextvars("campaign_id")

    async def _build_plan(self, campaign_id: int, *, today: date) -> DispatchPlan:
        try:
            async with self._session_factory() as session:
                campaign = await CampaignsRepo.get_by_id(session, campaign_id)
                if campaign is None:
                    raise CampaignNotFoundError(f"campaign {campaign_id} not found")
                if campaign.status != "sending":
                    raise CampaignNotDispatchableError(
                        f"campaign {campaign_id} must be claimed before it runs"
                    )

                customer_ids = await AudienceSelector.select(
                    session,
                    campaign.audience_filters,
                    campaign.channel,
                    today=today,
                )
                customers = await CustomersRepo.list_by_ids(session, customer_ids)
                variants = await CampaignsRepo.list_variants(session, campaign_id)
                assignment = assign_variants(customer_ids, variants) if variants else {}

                coupon_template: Coupon | None = None
                coupon_rewards: list[CouponReward] = []
                if campaign.coupon_id is not None:
                    coupon_template = await CouponsRepo.get_by_id(session, campaign.coupon_id)
                    if coupon_template is not None:
                        coupon_rewards = await CouponsRepo.list_rewards(session, coupon_template.id)
        except (InvalidAudienceFilterError, VariantAllocationError, SQLAlchemyError) as exc:
            await self._abort(campaign_id, reason="audience_resolution_failed", exc=exc)
            raise AudienceResolutionError(f"campaign {campaign_id}: {exc}") from exc

        if campaign.coupon_id is not None and coupon_template is None:
            missing = LookupError(f"template coupon {campaign.coupon_id} not found")
            await self._abort(campaign_id, reason="template_coupon_missing", exc=missing)
            raise AudienceResolutionError(f"campaign {campaign_id}: {missing}") from missing

        logger.info(
            "campaign_dispatch_planned",
            recipients=len(customers),
            variants=len(variants),
            has_coupon_template=coupon_template is not None,
        )
        return DispatchPlan(
            campaign=campaign,
            customers=tuple(customers),
            variants_by_id={variant.id: variant for variant in variants},
            assignment=assignment,
            coupon_template=coupon_template,
            coupon_rewards=tuple(coupon_rewards),
        )

    async def _fan_out(self, plan: DispatchPlan, *, today: date) -> list[RecipientOutcome]:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _bounded(customer: Customer) -> RecipientOutcome:
            async with semaphore:
                return await self._process_recipient(plan, customer, today=today)

        results = await asyncio.gather(
            *(_bounded(customer) for customer in plan.customers),
            return_exceptions=True,
        )

        outcomes: list[RecipientOutcome] = []
        failures: list[BaseException] = []
        for result in results:
            if isinstance(result, BaseException):
                failures.append(result)
            else:
                outcomes.append(result)

        if failures:
            first = failures[0]
            await self._abort(
                plan.campaign.id,
                reason="recipient_persistence_failed",
                exc=first,
                extra={"failed_recipients": len(failures)},
            )
            raise CampaignPersistenceError(
                f"campaign {plan.campaign.id}: {len(failures)} recipient writes failed"
            ) from first
        return outcomes

    async def _process_recipient(
        self,
        plan: DispatchPlan,
        customer: Customer,
        *,
        today: date,
    ) -> RecipientOutcome:
        campaign = plan.campaign
        channels = reachable_channels(customer, campaign.channel)
        if not channels:
            return RecipientOutcome(customer_id=customer.id, created=False, delivered=False)

        variant_id = plan.assignment.get(customer.id)
        variant = plan.variants_by_id.get(variant_id) if variant_id is not None else None

        coupon_code: str | None = None
        async with self._session_factory.begin() as session:
            recipient_id = await CampaignRecipientsRepo.create_once(
                session,
                campaign_id=campaign.id,
                customer_id=customer.id,
                channel=_recipient_channel(channels),
                variant_id=variant_id,
                sent_at=self._clock(),
            )
            if recipient_id is None:
                logger.info("campaign_recipient_already_recorded", customer_id=customer.id)
                return RecipientOutcome(customer_id=customer.id, created=False, delivered=False)

            if plan.coupon_template is not None:
                coupon = await mint_customer_coupon(
                    session,
                    template=plan.coupon_template,
                    template_rewards=plan.coupon_rewards,
                    customer_id=customer.id,
                    campaign_id=campaign.id,
                    now_utc=self._clock(),
                )
                coupon_code = coupon.code
                await CampaignRecipientsRepo.set_coupon_code(
                    session,
                    recipient_id=recipient_id,
                    coupon_code=coupon_code,
                )

        delivered = await self._send_to_customer(
            campaign,
            customer,
            channels=channels,
            variant=variant,
            coupon_code=coupon_code,
            today=today,
        )

        if delivered:
            async with self._session_factory.begin() as session:
                await CampaignRecipientsRepo.mark_delivered(
                    session,
                    recipient_id=recipient_id,
                    delivered=True,
                )
        return RecipientOutcome(customer_id=customer.id, created=True, delivered=delivered)

    def _render(
        self,
        campaign: Campaign,
        variant: CampaignVariant | None,
        channel: str,
        variables: Mapping[str, str],
    ) -> tuple[str | None, str | None]:
        """Returns ``(subject, body)``; ``body`` is ``None`` when the channel has no template."""
        override_body = variant.message_body if variant is not None else None
        if channel == "sms":
            template = override_body or campaign.sms_template
            return None, render_template(template, variables) if template else None

        subject_template = (variant.email_subject if variant is not None else None) or (
            campaign.email_subject
        )
        body_template = override_body or campaign.email_template
        if not subject_template or not body_template:
            return None, None
        return render_template(subject_template, variables), render_template(
            body_template, variables
        )

    async def _send_to_customer(
        self,
        campaign: Campaign,
        customer: Customer,
        *,
        channels: Sequence[str],
        variant: CampaignVariant | None,
        coupon_code: str | None,
        today: date,
    ) -> bool:
        delivered = False
        for channel in channels:
            sender = self._senders.get(channel)
            if sender is None:
                continue
            variables = build_template_variables(
                customer,
                business=self._business,
                campaign_id=campaign.id,
                channel=channel,
                coupon_code=coupon_code,
                today=today,
                variant_label=(variant.label if variant is not None else None),
            )
            subject, body = self._render(campaign, variant, channel, variables)
            if body is None:
                continue

            destination = customer.phone if channel == "sms" else customer.email
            metadata: dict[str, object] = {
                "campaign_id": campaign.id,
                "customer_id": customer.id,
                "variant_id": (variant.id if variant is not None else None),
            }
            if subject is not None:
                metadata["subject"] = subject
            try:
                result = await sender.send(str(destination), body, metadata)
            except Exception:
                logger.exception(
                    "campaign_recipient_send_failed",
                    customer_id=customer.id,
                    channel=channel,
                )
                continue

            if result.success:
                delivered = True
            else:
                logger.warning(
                    "campaign_recipient_send_rejected",
                    customer_id=customer.id,
                    channel=channel,
                )
        return delivered

    async def _finalize(
        self,
        campaign_id: int,
        *,
        outcomes: Sequence[RecipientOutcome],
    ) -> DispatchSummary:
        now = self._clock()
        try:
            async with self._session_factory.begin() as session:
                recipient_count, delivered_count = await CampaignRecipientsRepo.count_for_campaign(
                    session,
                    campaign_id,
                )
                marked = await CampaignsRepo.mark_sent(
                    session,
                    campaign_id=campaign_id,
                    recipient_count=recipient_count,
                    delivered_count=delivered_count,
                    now_utc=now,
                )
                if not marked:
                    raise CampaignNotDispatchableError(
                        f"campaign {campaign_id} left sending before finalization"
                    )
        except SQLAlchemyError as exc:
            await self._abort(campaign_id, reason="finalize_failed", exc=exc)
            raise CampaignPersistenceError(f"campaign {campaign_id}: {exc}") from exc

        logger.info(
            "campaign_dispatch_finished",
            recipient_count=recipient_count,
            delivered_count=delivered_count,
            created_this_run=sum(1 for outcome in outcomes if outcome.created),
        )
        await self._alert_sender(
            event="campaign_sent",
            payload={
                "campaign_id": campaign_id,
                "recipient_count": recipient_count,
                "delivered_count": delivered_count,
            },
        )
        return DispatchSummary(
            campaign_id=campaign_id,
            recipient_count=recipient_count,
            delivered_count=delivered_count,
        )

    async def _abort(
        self,
        campaign_id: int,
        *,
        reason: str,
        exc: BaseException,
        extra: Mapping[str, object] | None = None,
    ) -> None:
        logger.error(
            "campaign_dispatch_aborted",
            campaign_id=campaign_id,
            reason=reason,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        payload: dict[str, object] = {
            "campaign_id": campaign_id,
            "reason": reason,
            "error_type": type(exc).__name__,
        }
        payload.update(extra or {})
        await self._alert_sender(event="campaign_dispatch_aborted", payload=payload)

    async def process_due(self, *, now_utc: datetime | None = None, limit: int = 50) -> dict[str, int]:
        """Dispatch every scheduled campaign whose time has come."""
        now = now_utc or self._clock()
        async with self._session_factory() as session:
            due_ids = await CampaignsRepo.list_due_ids(session, now_utc=now, limit=limit)

        result = {"due": len(due_ids), "dispatched": 0, "skipped": 0, "failed": 0}
        for campaign_id in due_ids:
            try:
                await self.dispatch(campaign_id, now_utc=now)
            except (
                CampaignAlreadyDispatchingError,
                CampaignNotDispatchableError,
                CampaignNotDueError,
                CampaignNotFoundError,
            ) as exc:
                result["skipped"] += 1
                logger.info(
                    "campaign_due_dispatch_skipped",
                    campaign_id=campaign_id,
                    reason=type(exc).__name__,
                )
            except (AudienceResolutionError, CampaignPersistenceError):
                result["failed"] += 1
            else:
                result["dispatched"] += 1
        return result


__all__ = [
    "CampaignDispatcher",
    "DispatchSummary",
    "RecipientOutcome",
]
