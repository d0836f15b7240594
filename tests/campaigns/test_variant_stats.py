from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest

from promo_engine.campaigns import variant_stats
from promo_engine.campaigns.attribution import AttributionResult
from promo_engine.campaigns.variant_stats import collect_variant_stats, determine_winner


def _install(monkeypatch: pytest.MonkeyPatch) -> list[int]:
    winners: list[int] = []

    async def _list_variants(session, campaign_id: int):  # noqa: ANN001
        return [
            SimpleNamespace(id=1, label="A", is_winner=False),
            SimpleNamespace(id=2, label="B", is_winner=None),
            SimpleNamespace(id=3, label="C", is_winner=False),
        ]

    async def _variant_counts(session, campaign_id: int):  # noqa: ANN001
        return {1: (100, 90, 9), 2: (100, 80, 16)}

    async def _attribute(session, campaign_id, window_days=None, *, variant_id=None):  # noqa: ANN001
        if variant_id == 2:
            return AttributionResult(
                revenue=Decimal("140.00"),
                transaction_count=3,
                unique_customers=2,
            )
        return AttributionResult.empty()

    async def _set_winner(session, *, campaign_id: int, variant_id: int) -> None:  # noqa: ANN001
        winners.append(variant_id)

    monkeypatch.setattr(variant_stats.CampaignsRepo, "list_variants", _list_variants)
    monkeypatch.setattr(variant_stats.CampaignsRepo, "set_winner", _set_winner)
    monkeypatch.setattr(variant_stats.CampaignRecipientsRepo, "variant_counts", _variant_counts)
    monkeypatch.setattr(variant_stats.AttributionEngine, "attribute", _attribute)
    return winners


@pytest.mark.asyncio
async def test_collect_variant_stats_combines_counts_and_revenue(monkeypatch) -> None:
    _install(monkeypatch)

    stats = await collect_variant_stats(SimpleNamespace(), 9)

    assert [stat.variant_id for stat in stats] == [1, 2, 3]
    assert stats[1].revenue == Decimal("140.00")
    assert stats[1].conversions == 2
    assert stats[1].click_through_rate == pytest.approx(0.2)
    assert stats[1].is_winner is False
    assert (stats[2].sent, stats[2].delivered, stats[2].clicked) == (0, 0, 0)


@pytest.mark.asyncio
async def test_determine_winner_persists_best_variant(monkeypatch) -> None:
    winners = _install(monkeypatch)

    winner = await determine_winner(SimpleNamespace(), 9)

    assert winner == 2
    assert winners == [2]
