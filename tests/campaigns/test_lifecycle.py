from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any

import pytest

from promo_engine.campaigns import lifecycle
from promo_engine.campaigns.errors import CampaignNotDispatchableError, CampaignNotFoundError
from promo_engine.campaigns.lifecycle import CampaignLifecycle

NOW_UTC = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def _patch_campaign(monkeypatch: pytest.MonkeyPatch, status: str | None) -> list[dict[str, Any]]:
    transitions: list[dict[str, Any]] = []

    async def _get_by_id(session, campaign_id: int):  # noqa: ANN001
        return None if status is None else SimpleNamespace(id=campaign_id, status=status)

    async def _transition_status(session, **kwargs) -> bool:  # noqa: ANN001
        transitions.append(kwargs)
        return status in kwargs["from_statuses"]

    monkeypatch.setattr(lifecycle.CampaignsRepo, "get_by_id", _get_by_id)
    monkeypatch.setattr(lifecycle.CampaignsRepo, "transition_status", _transition_status)
    return transitions


@pytest.mark.asyncio
async def test_schedule_draft_campaign(monkeypatch) -> None:
    transitions = _patch_campaign(monkeypatch, "draft")
    naive_time = datetime(2026, 3, 5, 9, 0)

    await CampaignLifecycle.schedule(
        SimpleNamespace(),
        campaign_id=9,
        scheduled_at=naive_time,
        now_utc=NOW_UTC,
    )

    assert transitions[0]["to_status"] == "scheduled"
    assert transitions[0]["values"] == {
        "scheduled_at": datetime(2026, 3, 5, 9, 0, tzinfo=timezone.utc),
    }


@pytest.mark.asyncio
async def test_schedule_sent_campaign_is_rejected(monkeypatch) -> None:
    _patch_campaign(monkeypatch, "sent")

    with pytest.raises(CampaignNotDispatchableError):
        await CampaignLifecycle.schedule(
            SimpleNamespace(),
            campaign_id=9,
            scheduled_at=NOW_UTC + timedelta(days=1),
            now_utc=NOW_UTC,
        )


@pytest.mark.asyncio
async def test_cancel_missing_campaign(monkeypatch) -> None:
    _patch_campaign(monkeypatch, None)

    with pytest.raises(CampaignNotFoundError):
        await CampaignLifecycle.cancel(SimpleNamespace(), campaign_id=9)


@pytest.mark.asyncio
@pytest.mark.parametrize(("status", "allowed"), [("scheduled", True), ("sending", False)])
async def test_cancel_only_before_sending(monkeypatch, status, allowed) -> None:
    transitions = _patch_campaign(monkeypatch, status)

    if allowed:
        await CampaignLifecycle.cancel(SimpleNamespace(), campaign_id=9, now_utc=NOW_UTC)
        assert transitions[0]["to_status"] == "cancelled"
    else:
        with pytest.raises(CampaignNotDispatchableError):
            await CampaignLifecycle.cancel(SimpleNamespace(), campaign_id=9, now_utc=NOW_UTC)


@pytest.mark.asyncio
async def test_release_stuck_returns_campaign_to_draft(monkeypatch) -> None:
    transitions = _patch_campaign(monkeypatch, "sending")

    await CampaignLifecycle.release_stuck(SimpleNamespace(), campaign_id=9, now_utc=NOW_UTC)

    assert transitions[0]["from_statuses"] == ("sending",)
    assert transitions[0]["to_status"] == "draft"
    assert transitions[0]["values"] == {"sending_started_at": None, "scheduled_at": None}


@pytest.mark.asyncio
async def test_release_stuck_requires_sending(monkeypatch) -> None:
    _patch_campaign(monkeypatch, "draft")

    with pytest.raises(CampaignNotDispatchableError):
        await CampaignLifecycle.release_stuck(SimpleNamespace(), campaign_id=9)


@pytest.mark.asyncio
async def test_record_click(monkeypatch) -> None:
    clicks: list[dict[str, Any]] = []

    async def _mark_clicked(session, **kwargs) -> bool:  # noqa: ANN001
        clicks.append(kwargs)
        return kwargs["customer_id"] == 4

    monkeypatch.setattr(lifecycle.CampaignRecipientsRepo, "mark_clicked", _mark_clicked)

    recorded = await CampaignLifecycle.record_click(
        SimpleNamespace(),
        campaign_id=9,
        customer_id=4,
        clicked_at=NOW_UTC,
    )
    missing = await CampaignLifecycle.record_click(SimpleNamespace(), campaign_id=9, customer_id=5)

    assert recorded is True
    assert missing is False
    assert clicks[0]["clicked_at"] == NOW_UTC
