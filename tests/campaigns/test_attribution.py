from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from promo_engine.campaigns import attribution
from promo_engine.campaigns.attribution import AttributionEngine, attribute_transactions

SENT_AT = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def _txn(customer_id: int | None, amount: str, *, after: timedelta) -> SimpleNamespace:
    return SimpleNamespace(
        customer_id=customer_id,
        total_amount=Decimal(amount),
        transaction_date=SENT_AT + after,
    )


def test_window_is_inclusive_on_both_ends() -> None:
    sends = {1: SENT_AT}
    transactions = [
        _txn(1, "10.00", after=timedelta(0)),
        _txn(1, "20.00", after=timedelta(days=7)),
        _txn(1, "40.00", after=timedelta(days=7, seconds=1)),
        _txn(1, "80.00", after=timedelta(seconds=-1)),
    ]

    result = attribute_transactions(sends, transactions, window_days=7)

    assert result.revenue == Decimal("30.00")
    assert result.transaction_count == 2
    assert result.unique_customers == 1


@pytest.mark.asyncio
async def test_explicit_zero_window_is_not_replaced_by_default(monkeypatch) -> None:
    _patch_recipients(monkeypatch, [1])
    monkeypatch.setattr(
        attribution,
        "get_settings",
        lambda: SimpleNamespace(campaign_attribution_window_days=7),
    )
    requested: list[datetime] = []

    async def _list_completed(session, *, customer_ids, from_utc, to_utc):  # noqa: ANN001
        requested.append(to_utc)
        return [_txn(1, "50.00", after=timedelta(days=3))]

    monkeypatch.setattr(attribution.TransactionsRepo, "list_completed_for_customers", _list_completed)

    result = await AttributionEngine.attribute(None, 1, 0)

    assert result == attribute_transactions({}, [], window_days=0)
    assert requested == [SENT_AT]


@pytest.mark.asyncio
async def test_negative_window_is_rejected(monkeypatch) -> None:
    _patch_recipients(monkeypatch, [1])

    with pytest.raises(ValueError, match="must not be negative"):
        await AttributionEngine.attribute(None, 1, -1)


def test_unknown_and_anonymous_customers_are_ignored() -> None:
    result = attribute_transactions(
        {1: SENT_AT},
        [_txn(None, "15.00", after=timedelta(hours=1)), _txn(2, "15.00", after=timedelta(hours=1))],
        window_days=7,
    )

    assert result == attribute_transactions({}, [], window_days=7)
    assert result.revenue == Decimal("0.00")


def _patch_recipients(monkeypatch: pytest.MonkeyPatch, customer_ids: list[int]) -> None:
    async def _list_for_campaign(session, campaign_id: int, *, variant_id=None):  # noqa: ANN001
        return [SimpleNamespace(customer_id=customer_id, sent_at=SENT_AT) for customer_id in customer_ids]

    monkeypatch.setattr(attribution.CampaignRecipientsRepo, "list_for_campaign", _list_for_campaign)


@pytest.mark.asyncio
async def test_campaign_with_twelve_converting_customers(monkeypatch) -> None:
    customer_ids = list(range(1, 13))
    _patch_recipients(monkeypatch, customer_ids)
    windows: list[tuple[datetime, datetime]] = []

    async def _list_completed(session, *, customer_ids, from_utc, to_utc):  # noqa: ANN001
        windows.append((from_utc, to_utc))
        return [_txn(customer_id, "70.00", after=timedelta(days=2)) for customer_id in customer_ids]

    monkeypatch.setattr(
        attribution.TransactionsRepo,
        "list_completed_for_customers",
        _list_completed,
    )

    result = await AttributionEngine.attribute(SimpleNamespace(), 9, 7)

    assert result.revenue == Decimal("840.00")
    assert result.transaction_count == 12
    assert result.unique_customers == 12
    assert windows == [(SENT_AT, SENT_AT + timedelta(days=7))]


@pytest.mark.asyncio
async def test_large_audiences_are_queried_in_batches(monkeypatch) -> None:
    customer_ids = list(range(1, attribution.CUSTOMER_BATCH_SIZE * 2 + 6))
    _patch_recipients(monkeypatch, customer_ids)
    batch_sizes: list[int] = []

    async def _list_completed(session, *, customer_ids, from_utc, to_utc):  # noqa: ANN001
        batch_sizes.append(len(customer_ids))
        return []

    monkeypatch.setattr(
        attribution.TransactionsRepo,
        "list_completed_for_customers",
        _list_completed,
    )

    result = await AttributionEngine.attribute(SimpleNamespace(), 9, 7)

    assert batch_sizes == [attribution.CUSTOMER_BATCH_SIZE, attribution.CUSTOMER_BATCH_SIZE, 5]
    assert result.unique_customers == 0


@pytest.mark.asyncio
async def test_campaign_without_recipients_skips_transaction_lookup(monkeypatch) -> None:
    _patch_recipients(monkeypatch, [])

    async def _list_completed(session, **kwargs):  # noqa: ANN001
        raise AssertionError("no lookup expected")

    monkeypatch.setattr(
        attribution.TransactionsRepo,
        "list_completed_for_customers",
        _list_completed,
    )

    result = await AttributionEngine.attribute(SimpleNamespace(), 9, 7)

    assert result.revenue == Decimal("0.00")
    assert result.transaction_count == 0


@pytest.mark.asyncio
async def test_period_attribution_uses_earliest_send_per_customer(monkeypatch) -> None:
    later = SENT_AT + timedelta(days=3)

    async def _list_sent_between(session, *, from_utc, to_utc):  # noqa: ANN001
        return [(1, later), (1, SENT_AT), (2, later)]

    async def _list_completed(session, *, customer_ids, from_utc, to_utc):  # noqa: ANN001
        return [
            _txn(1, "25.00", after=timedelta(days=1)),
            _txn(2, "30.00", after=timedelta(days=1)),
        ]

    monkeypatch.setattr(attribution.CampaignRecipientsRepo, "list_sent_between", _list_sent_between)
    monkeypatch.setattr(
        attribution.TransactionsRepo,
        "list_completed_for_customers",
        _list_completed,
    )

    result = await AttributionEngine.attribute_period(
        SimpleNamespace(),
        SENT_AT - timedelta(days=1),
        SENT_AT + timedelta(days=5),
        7,
    )

    assert result.revenue == Decimal("25.00")
    assert result.unique_customers == 1
