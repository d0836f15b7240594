from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from promo_engine.core.config import get_settings
from promo_engine.core.money import ZERO, to_money
from promo_engine.db.repo.campaign_recipients_repo import CampaignRecipientsRepo
from promo_engine.db.repo.transactions_repo import TransactionsRepo

logger = structlog.get_logger(__name__)

CUSTOMER_BATCH_SIZE = 100


@dataclass(frozen=True, slots=True)
class AttributionResult:
    revenue: Decimal
    transaction_count: int
    unique_customers: int

    @classmethod
    def empty(cls) -> AttributionResult:
        return cls(revenue=ZERO, transaction_count=0, unique_customers=0)


def _chunks(values: Sequence[int], size: int) -> Iterable[Sequence[int]]:
    for offset in range(0, len(values), size):
        yield values[offset : offset + size]


def attribute_transactions(
    sent_at_by_customer: Mapping[int, datetime],
    transactions: Iterable[object],
    *,
    window_days: int,
) -> AttributionResult:
    """Credit completed transactions inside ``[sent_at, sent_at + window_days]``.

    Transactions are expected to be completed already; each qualifying one
    adds its ``total_amount`` and a customer converts on the first of them.
    """
    window = timedelta(days=window_days)
    revenue = ZERO
    transaction_count = 0
    converted: set[int] = set()
    for transaction in transactions:
        customer_id = getattr(transaction, "customer_id", None)
        if customer_id is None or customer_id not in sent_at_by_customer:
            continue
        sent_at = sent_at_by_customer[customer_id]
        occurred_at: datetime = getattr(transaction, "transaction_date")
        if occurred_at < sent_at or occurred_at > sent_at + window:
            continue
        revenue += Decimal(str(getattr(transaction, "total_amount")))
        transaction_count += 1
        converted.add(int(customer_id))

    return AttributionResult(
        revenue=to_money(revenue),
        transaction_count=transaction_count,
        unique_customers=len(converted),
    )


def resolve_window_days(window_days: int | None) -> int:
    days = get_settings().campaign_attribution_window_days if window_days is None else window_days
    if days < 0:
        raise ValueError(f"attribution window must not be negative: {days}")
    return days


class AttributionEngine:
    @staticmethod
    async def _attribute_sends(
        session: AsyncSession,
        sent_at_by_customer: Mapping[int, datetime],
        *,
        window_days: int,
    ) -> AttributionResult:
        if not sent_at_by_customer:
            return AttributionResult.empty()

        window = timedelta(days=window_days)
        customer_ids = sorted(sent_at_by_customer)
        revenue = ZERO
        transaction_count = 0
        unique_customers = 0
        for batch in _chunks(customer_ids, CUSTOMER_BATCH_SIZE):
            batch_sends = {customer_id: sent_at_by_customer[customer_id] for customer_id in batch}
            transactions = await TransactionsRepo.list_completed_for_customers(
                session,
                customer_ids=batch,
                from_utc=min(batch_sends.values()),
                to_utc=max(batch_sends.values()) + window,
            )
            partial = attribute_transactions(batch_sends, transactions, window_days=window_days)
            revenue += partial.revenue
            transaction_count += partial.transaction_count
            unique_customers += partial.unique_customers

        return AttributionResult(
            revenue=to_money(revenue),
            transaction_count=transaction_count,
            unique_customers=unique_customers,
        )

    @staticmethod
    async def attribute(
        session: AsyncSession,
        campaign_id: int,
        window_days: int | None = None,
        *,
        variant_id: int | None = None,
    ) -> AttributionResult:
        days = resolve_window_days(window_days)
        recipients = await CampaignRecipientsRepo.list_for_campaign(
            session,
            campaign_id,
            variant_id=variant_id,
        )
        sends = {recipient.customer_id: recipient.sent_at for recipient in recipients}
        result = await AttributionEngine._attribute_sends(session, sends, window_days=days)
        logger.info(
            "campaign_attribution_computed",
            campaign_id=campaign_id,
            variant_id=variant_id,
            window_days=days,
            recipients=len(sends),
            revenue=str(result.revenue),
            transaction_count=result.transaction_count,
            unique_customers=result.unique_customers,
        )
        return result

    @staticmethod
    async def attribute_period(
        session: AsyncSession,
        period_start: datetime,
        period_end: datetime,
        window_days: int | None = None,
    ) -> AttributionResult:
        """Attribution across every campaign sent in the period, one credit window per customer."""
        days = resolve_window_days(window_days)
        sends = await CampaignRecipientsRepo.list_sent_between(
            session,
            from_utc=period_start,
            to_utc=period_end,
        )
        earliest: dict[int, datetime] = {}
        for customer_id, sent_at in sends:
            if customer_id not in earliest or sent_at < earliest[customer_id]:
                earliest[customer_id] = sent_at
        return await AttributionEngine._attribute_sends(session, earliest, window_days=days)
