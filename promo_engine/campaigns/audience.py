from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone

import structlog
from sqlalchemy import ColumnElement, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from promo_engine.campaigns.errors import InvalidAudienceFilterError
from promo_engine.campaigns.filters import parse_audience_filters
from promo_engine.db.models.customers import Customer
from promo_engine.db.repo.customers_repo import CustomersRepo

logger = structlog.get_logger(__name__)

CHANNEL_SMS = "sms"
CHANNEL_EMAIL = "email"
CHANNEL_BOTH = "both"
CAMPAIGN_CHANNELS = (CHANNEL_SMS, CHANNEL_EMAIL, CHANNEL_BOTH)


@dataclass(frozen=True, slots=True)
class AudiencePreview:
    total_match: int
    consent_eligible: int


def _sms_reachable_clause() -> ColumnElement[bool]:
    return and_(Customer.sms_consent.is_(True), Customer.phone.is_not(None), Customer.phone != "")


def _email_reachable_clause() -> ColumnElement[bool]:
    return and_(
        Customer.email_consent.is_(True),
        Customer.email.is_not(None),
        Customer.email != "",
    )


def consent_clause(channel: str) -> ColumnElement[bool]:
    if channel == CHANNEL_SMS:
        return _sms_reachable_clause()
    if channel == CHANNEL_EMAIL:
        return _email_reachable_clause()
    if channel == CHANNEL_BOTH:
        return or_(_sms_reachable_clause(), _email_reachable_clause())
    raise InvalidAudienceFilterError(f"unknown campaign channel: {channel}")


def reachable_channels(customer: object, campaign_channel: str) -> tuple[str, ...]:
    """Channels this customer can receive for a campaign, decided per customer."""
    sms_ok = bool(getattr(customer, "sms_consent", False)) and bool(getattr(customer, "phone", None))
    email_ok = bool(getattr(customer, "email_consent", False)) and bool(
        getattr(customer, "email", None)
    )
    channels: list[str] = []
    if campaign_channel in (CHANNEL_SMS, CHANNEL_BOTH) and sms_ok:
        channels.append(CHANNEL_SMS)
    if campaign_channel in (CHANNEL_EMAIL, CHANNEL_BOTH) and email_ok:
        channels.append(CHANNEL_EMAIL)
    return tuple(channels)


def _today(today: date | None) -> date:
    return today or datetime.now(timezone.utc).date()


class AudienceSelector:
    @staticmethod
    async def select(
        session: AsyncSession,
        filters: object,
        channel: str,
        *,
        today: date | None = None,
    ) -> list[int]:
        """Customer ids matching ``filters`` and reachable on ``channel``, ordered by id."""
        predicate = parse_audience_filters(filters)
        customer_ids = await CustomersRepo.list_ids_matching(
            session,
            predicate.to_clause(_today(today)),
            consent_clause(channel),
        )
        unique_ids = list(dict.fromkeys(customer_ids))
        logger.info("campaign_audience_selected", channel=channel, recipients=len(unique_ids))
        return unique_ids

    @staticmethod
    async def preview(
        session: AsyncSession,
        filters: object,
        channel: str,
        *,
        today: date | None = None,
    ) -> AudiencePreview:
        predicate = parse_audience_filters(filters)
        clause = predicate.to_clause(_today(today))
        total_match = await CustomersRepo.count_matching(session, clause)
        consent_eligible = await CustomersRepo.count_matching(session, clause, consent_clause(channel))
        return AudiencePreview(total_match=total_match, consent_eligible=consent_eligible)
