from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.dialects import postgresql

from promo_engine.campaigns.errors import InvalidAudienceFilterError
from promo_engine.campaigns.filters import (
    AllOf,
    CustomerSnapshot,
    DaysSinceVisitBetween,
    TagsAll,
    VehicleType,
    parse_audience_filters,
)

TODAY = date(2026, 3, 2)


def _snapshot(**overrides: object) -> CustomerSnapshot:
    base: dict[str, object] = {
        "id": 1,
        "tags": ("vip",),
        "visit_count": 4,
        "last_visit_date": date(2026, 1, 1),
        "lifetime_spend": Decimal("320.00"),
        "loyalty_points_balance": 150,
        "email": "driver@example.com",
        "phone": "+15550102000",
        "purchased_service_ids": frozenset({7}),
        "vehicle_types": frozenset({"sedan"}),
    }
    base.update(overrides)
    return CustomerSnapshot(**base)


def _compile(clause) -> str:  # noqa: ANN001
    return str(clause.compile(dialect=postgresql.dialect()))


@pytest.mark.parametrize("raw", [None, {}])
def test_missing_filters_select_everyone(raw) -> None:
    predicate = parse_audience_filters(raw)

    assert isinstance(predicate, AllOf)
    assert predicate.matches(_snapshot(tags=()), TODAY) is True


def test_legacy_flat_filters_are_converted() -> None:
    predicate = parse_audience_filters(
        {
            "days_since_visit_min": 30,
            "days_since_visit_max": 90,
            "min_spend": "200",
            "tags": ["vip"],
            "has_email": True,
            "last_service": 7,
        }
    )

    assert isinstance(predicate, AllOf)
    assert [node.type for node in predicate.filters] == [
        "days_since_visit_between",
        "lifetime_spend_gte",
        "tags_all",
        "has_email",
        "purchased_service",
    ]
    assert predicate.matches(_snapshot(), TODAY) is True
    assert predicate.matches(_snapshot(last_visit_date=date(2026, 2, 20)), TODAY) is False


def test_legacy_vehicle_type_targets_vehicle_owners() -> None:
    predicate = parse_audience_filters({"vehicle_type": "suv", "min_spend": 100})

    assert isinstance(predicate, AllOf)
    assert [node.type for node in predicate.filters] == ["lifetime_spend_gte", "vehicle_type"]
    assert predicate.matches(_snapshot(vehicle_types=frozenset({"suv", "sedan"})), TODAY) is True
    assert predicate.matches(_snapshot(), TODAY) is False
    assert predicate.matches(_snapshot(vehicle_types=frozenset()), TODAY) is False


def test_legacy_filters_reject_unknown_keys() -> None:
    with pytest.raises(InvalidAudienceFilterError, match="zip_code"):
        parse_audience_filters({"tags": ["vip"], "zip_code": "94107"})


def test_typed_tree_with_negation() -> None:
    predicate = parse_audience_filters(
        {
            "type": "all_of",
            "filters": [
                {"type": "tags_any", "tags": ["vip", "fleet"]},
                {"type": "not", "filter": {"type": "loyalty_points_gte", "points": 500}},
                {
                    "type": "any_of",
                    "filters": [
                        {"type": "has_phone"},
                        {"type": "visit_count_between", "min": 10},
                    ],
                },
            ],
        }
    )

    assert predicate.matches(_snapshot(), TODAY) is True
    assert predicate.matches(_snapshot(loyalty_points_balance=900), TODAY) is False
    assert predicate.matches(_snapshot(phone=None, visit_count=2), TODAY) is False


def test_missing_last_visit_never_matches_visit_windows() -> None:
    never_visited = _snapshot(last_visit_date=None)

    assert DaysSinceVisitBetween(min=0).matches(never_visited, TODAY) is False
    assert parse_audience_filters(
        {"type": "last_visit_between", "start": "2025-01-01"}
    ).matches(never_visited, TODAY) is False


@pytest.mark.parametrize(
    "raw",
    [
        {"type": "tags_all", "tags": []},
        {"type": "visit_count_between", "min": -1},
        {"type": "shoe_size_gte", "value": 10},
        {"type": "has_email", "unexpected": True},
        ["tags_all"],
    ],
)
def test_invalid_filters_raise(raw) -> None:
    with pytest.raises(InvalidAudienceFilterError):
        parse_audience_filters(raw)


def test_filters_compile_to_customer_predicates() -> None:
    tags_sql = _compile(TagsAll(tags=["vip"]).to_clause(TODAY))
    window_sql = _compile(DaysSinceVisitBetween(min=30, max=90).to_clause(TODAY))
    service_sql = _compile(
        parse_audience_filters({"type": "purchased_service", "service_id": 7}).to_clause(TODAY)
    )

    assert "@>" in tags_sql
    assert "customers.last_visit_date IS NOT NULL" in window_sql
    assert "transaction_items" in service_sql
    vehicle_sql = _compile(VehicleType(vehicle_type="suv").to_clause(TODAY))
    assert "vehicles.vehicle_type" in vehicle_sql
    assert "customers.id IN" in vehicle_sql
