from __future__ import annotations

from types import SimpleNamespace

import pytest
from sqlalchemy.dialects import postgresql

from promo_engine.campaigns import audience
from promo_engine.campaigns.audience import AudienceSelector, consent_clause, reachable_channels
from promo_engine.campaigns.errors import InvalidAudienceFilterError


def _customer(**overrides: object) -> SimpleNamespace:
    base: dict[str, object] = {
        "sms_consent": True,
        "email_consent": True,
        "phone": "+15550102000",
        "email": "driver@example.com",
    }
    base.update(overrides)
    return SimpleNamespace(**base)


def test_reachable_channels_follow_consent_and_contact() -> None:
    assert reachable_channels(_customer(), "both") == ("sms", "email")
    assert reachable_channels(_customer(sms_consent=False), "both") == ("email",)
    assert reachable_channels(_customer(email=""), "both") == ("sms",)
    assert reachable_channels(_customer(phone=None), "sms") == ()
    assert reachable_channels(_customer(), "email") == ("email",)


def test_consent_clause_for_both_accepts_either_channel() -> None:
    sql = str(consent_clause("both").compile(dialect=postgresql.dialect()))

    assert "customers.sms_consent" in sql
    assert "customers.email_consent" in sql
    assert " OR " in sql


def test_consent_clause_rejects_unknown_channel() -> None:
    with pytest.raises(InvalidAudienceFilterError):
        consent_clause("carrier_pigeon")


@pytest.mark.asyncio
async def test_select_deduplicates_ids(monkeypatch) -> None:
    async def _list_ids_matching(session, *clauses):  # noqa: ANN001
        assert len(clauses) == 2
        return [3, 1, 3, 2]

    monkeypatch.setattr(audience.CustomersRepo, "list_ids_matching", _list_ids_matching)

    ids = await AudienceSelector.select(SimpleNamespace(), {"tags": ["vip"]}, "sms")

    assert ids == [3, 1, 2]


@pytest.mark.asyncio
async def test_preview_counts_match_and_consent(monkeypatch) -> None:
    async def _count_matching(session, *clauses):  # noqa: ANN001
        return 40 if len(clauses) == 1 else 25

    monkeypatch.setattr(audience.CustomersRepo, "count_matching", _count_matching)

    preview = await AudienceSelector.preview(SimpleNamespace(), None, "email")

    assert preview.total_match == 40
    assert preview.consent_eligible == 25


@pytest.mark.asyncio
async def test_select_rejects_invalid_filters_before_querying(monkeypatch) -> None:
    async def _list_ids_matching(session, *clauses):  # noqa: ANN001
        raise AssertionError("should not query")

    monkeypatch.setattr(audience.CustomersRepo, "list_ids_matching", _list_ids_matching)

    with pytest.raises(InvalidAudienceFilterError):
        await AudienceSelector.select(SimpleNamespace(), {"zip_code": "94107"}, "sms")
