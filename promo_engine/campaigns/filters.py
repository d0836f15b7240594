"""Audience filter predicate tree.

Every node compiles to a SQLAlchemy clause over ``customers`` and evaluates
in memory against a ``CustomerSnapshot``. Both paths treat a missing
``last_visit_date`` as "no match" so negation behaves the same in SQL and in
Python.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from sqlalchemy import ColumnElement, and_, false, not_, or_, select, true

from promo_engine.campaigns.errors import InvalidAudienceFilterError
from promo_engine.core.money import to_money
from promo_engine.db.models.customers import Customer
from promo_engine.db.models.transactions import Transaction, TransactionItem
from promo_engine.db.models.vehicles import Vehicle


@dataclass(frozen=True, slots=True)
class CustomerSnapshot:
    id: int
    tags: tuple[str, ...] = ()
    visit_count: int = 0
    last_visit_date: date | None = None
    lifetime_spend: Decimal = Decimal("0")
    loyalty_points_balance: int = 0
    email: str | None = None
    phone: str | None = None
    purchased_service_ids: frozenset[int] = field(default_factory=frozenset)
    vehicle_types: frozenset[str] = field(default_factory=frozenset)


class _Predicate(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class TagsAll(_Predicate):
    type: Literal["tags_all"] = "tags_all"
    tags: list[str] = Field(min_length=1)

    def to_clause(self, today: date) -> ColumnElement[bool]:
        return Customer.tags.contains(self.tags)

    def matches(self, customer: CustomerSnapshot, today: date) -> bool:
        present = set(customer.tags)
        return all(tag in present for tag in self.tags)


class TagsAny(_Predicate):
    type: Literal["tags_any"] = "tags_any"
    tags: list[str] = Field(min_length=1)

    def to_clause(self, today: date) -> ColumnElement[bool]:
        return Customer.tags.overlap(self.tags)

    def matches(self, customer: CustomerSnapshot, today: date) -> bool:
        present = set(customer.tags)
        return any(tag in present for tag in self.tags)


class VisitCountBetween(_Predicate):
    type: Literal["visit_count_between"] = "visit_count_between"
    min: int | None = Field(default=None, ge=0)
    max: int | None = Field(default=None, ge=0)

    def to_clause(self, today: date) -> ColumnElement[bool]:
        clauses: list[ColumnElement[bool]] = []
        if self.min is not None:
            clauses.append(Customer.visit_count >= self.min)
        if self.max is not None:
            clauses.append(Customer.visit_count <= self.max)
        return and_(true(), *clauses)

    def matches(self, customer: CustomerSnapshot, today: date) -> bool:
        if self.min is not None and customer.visit_count < self.min:
            return False
        return self.max is None or customer.visit_count <= self.max


class DaysSinceVisitBetween(_Predicate):
    type: Literal["days_since_visit_between"] = "days_since_visit_between"
    min: int | None = Field(default=None, ge=0)
    max: int | None = Field(default=None, ge=0)

    def to_clause(self, today: date) -> ColumnElement[bool]:
        clauses: list[ColumnElement[bool]] = [Customer.last_visit_date.is_not(None)]
        if self.min is not None:
            clauses.append(Customer.last_visit_date <= today - timedelta(days=self.min))
        if self.max is not None:
            clauses.append(Customer.last_visit_date >= today - timedelta(days=self.max))
        return and_(*clauses)

    def matches(self, customer: CustomerSnapshot, today: date) -> bool:
        if customer.last_visit_date is None:
            return False
        days = (today - customer.last_visit_date).days
        if self.min is not None and days < self.min:
            return False
        return self.max is None or days <= self.max


class LastVisitBetween(_Predicate):
    type: Literal["last_visit_between"] = "last_visit_between"
    start: date | None = None
    end: date | None = None

    def to_clause(self, today: date) -> ColumnElement[bool]:
        clauses: list[ColumnElement[bool]] = [Customer.last_visit_date.is_not(None)]
        if self.start is not None:
            clauses.append(Customer.last_visit_date >= self.start)
        if self.end is not None:
            clauses.append(Customer.last_visit_date <= self.end)
        return and_(*clauses)

    def matches(self, customer: CustomerSnapshot, today: date) -> bool:
        if customer.last_visit_date is None:
            return False
        if self.start is not None and customer.last_visit_date < self.start:
            return False
        return self.end is None or customer.last_visit_date <= self.end


class LifetimeSpendGte(_Predicate):
    type: Literal["lifetime_spend_gte"] = "lifetime_spend_gte"
    amount: Decimal = Field(ge=0)

    def to_clause(self, today: date) -> ColumnElement[bool]:
        return Customer.lifetime_spend >= to_money(self.amount)

    def matches(self, customer: CustomerSnapshot, today: date) -> bool:
        return to_money(customer.lifetime_spend) >= to_money(self.amount)


class LoyaltyPointsGte(_Predicate):
    type: Literal["loyalty_points_gte"] = "loyalty_points_gte"
    points: int = Field(ge=0)

    def to_clause(self, today: date) -> ColumnElement[bool]:
        return Customer.loyalty_points_balance >= self.points

    def matches(self, customer: CustomerSnapshot, today: date) -> bool:
        return customer.loyalty_points_balance >= self.points


class HasEmail(_Predicate):
    type: Literal["has_email"] = "has_email"

    def to_clause(self, today: date) -> ColumnElement[bool]:
        return and_(Customer.email.is_not(None), Customer.email != "")

    def matches(self, customer: CustomerSnapshot, today: date) -> bool:
        return bool(customer.email)


class HasPhone(_Predicate):
    type: Literal["has_phone"] = "has_phone"

    def to_clause(self, today: date) -> ColumnElement[bool]:
        return and_(Customer.phone.is_not(None), Customer.phone != "")

    def matches(self, customer: CustomerSnapshot, today: date) -> bool:
        return bool(customer.phone)


class PurchasedService(_Predicate):
    type: Literal["purchased_service"] = "purchased_service"
    service_id: int

    def to_clause(self, today: date) -> ColumnElement[bool]:
        buyers = (
            select(Transaction.customer_id)
            .join(TransactionItem, TransactionItem.transaction_id == Transaction.id)
            .where(
                TransactionItem.service_id == self.service_id,
                Transaction.customer_id.is_not(None),
            )
        )
        return Customer.id.in_(buyers)

    def matches(self, customer: CustomerSnapshot, today: date) -> bool:
        return self.service_id in customer.purchased_service_ids


class VehicleType(_Predicate):
    type: Literal["vehicle_type"] = "vehicle_type"
    vehicle_type: str = Field(min_length=1)

    def to_clause(self, today: date) -> ColumnElement[bool]:
        owners = select(Vehicle.customer_id).where(Vehicle.vehicle_type == self.vehicle_type)
        return Customer.id.in_(owners)

    def matches(self, customer: CustomerSnapshot, today: date) -> bool:
        return self.vehicle_type in customer.vehicle_types


class AllOf(_Predicate):
    type: Literal["all_of"] = "all_of"
    filters: list[AudienceFilter] = Field(default_factory=list)

    def to_clause(self, today: date) -> ColumnElement[bool]:
        return and_(true(), *(node.to_clause(today) for node in self.filters))

    def matches(self, customer: CustomerSnapshot, today: date) -> bool:
        return all(node.matches(customer, today) for node in self.filters)


class AnyOf(_Predicate):
    type: Literal["any_of"] = "any_of"
    filters: list[AudienceFilter] = Field(default_factory=list)

    def to_clause(self, today: date) -> ColumnElement[bool]:
        return or_(false(), *(node.to_clause(today) for node in self.filters))

    def matches(self, customer: CustomerSnapshot, today: date) -> bool:
        return any(node.matches(customer, today) for node in self.filters)


class Not(_Predicate):
    type: Literal["not"] = "not"
    filter: AudienceFilter

    def to_clause(self, today: date) -> ColumnElement[bool]:
        return not_(self.filter.to_clause(today))

    def matches(self, customer: CustomerSnapshot, today: date) -> bool:
        return not self.filter.matches(customer, today)


AudienceFilter = Annotated[
    Union[
        TagsAll,
        TagsAny,
        VisitCountBetween,
        DaysSinceVisitBetween,
        LastVisitBetween,
        LifetimeSpendGte,
        LoyaltyPointsGte,
        HasEmail,
        HasPhone,
        PurchasedService,
        VehicleType,
        AllOf,
        AnyOf,
        Not,
    ],
    Field(discriminator="type"),
]

AllOf.model_rebuild()
AnyOf.model_rebuild()
Not.model_rebuild()

_FILTER_ADAPTER: TypeAdapter[Any] = TypeAdapter(AudienceFilter)

LEGACY_FILTER_KEYS = frozenset(
    {
        "days_since_visit_min",
        "days_since_visit_max",
        "min_spend",
        "tags",
        "has_email",
        "has_phone",
        "last_service",
        "vehicle_type",
    }
)


def _from_legacy(raw: dict[str, Any]) -> AllOf:
    unknown = sorted(
        key for key, value in raw.items() if value is not None and key not in LEGACY_FILTER_KEYS
    )
    if unknown:
        raise InvalidAudienceFilterError(f"unsupported audience filter keys: {', '.join(unknown)}")

    nodes: list[dict[str, Any]] = []
    days_min = raw.get("days_since_visit_min")
    days_max = raw.get("days_since_visit_max")
    if days_min is not None or days_max is not None:
        nodes.append({"type": "days_since_visit_between", "min": days_min, "max": days_max})
    if raw.get("min_spend") is not None:
        nodes.append({"type": "lifetime_spend_gte", "amount": raw["min_spend"]})
    if raw.get("tags"):
        nodes.append({"type": "tags_all", "tags": raw["tags"]})
    if raw.get("has_email"):
        nodes.append({"type": "has_email"})
    if raw.get("has_phone"):
        nodes.append({"type": "has_phone"})
    if raw.get("last_service") is not None:
        nodes.append({"type": "purchased_service", "service_id": raw["last_service"]})
    if raw.get("vehicle_type"):
        nodes.append({"type": "vehicle_type", "vehicle_type": raw["vehicle_type"]})
    return AllOf.model_validate({"type": "all_of", "filters": nodes})


def parse_audience_filters(raw: object) -> AudienceFilter:
    """Accept a typed predicate tree or the flat legacy filter object.

    An empty or missing filter selects every customer.
    """
    if raw is None or raw == {}:
        return AllOf()
    if isinstance(raw, _Predicate):
        return raw
    if not isinstance(raw, dict):
        raise InvalidAudienceFilterError("audience filters must be an object")
    try:
        if "type" in raw:
            return _FILTER_ADAPTER.validate_python(raw)
        return _from_legacy(raw)
    except ValidationError as exc:
        raise InvalidAudienceFilterError(str(exc)) from exc
