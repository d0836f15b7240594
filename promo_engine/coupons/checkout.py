from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Protocol, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from promo_engine.coupons.service import CouponEvaluator
from promo_engine.coupons.types import ITEM_TYPE_SERVICE, CartItem, CouponEvaluation, CustomerContext
from promo_engine.db.models.customers import Customer
from promo_engine.db.repo.customers_repo import CustomersRepo
from promo_engine.services.coupon_codes import normalize_email, normalize_phone

RequestT = TypeVar("RequestT", contravariant=True)


@dataclass(frozen=True, slots=True)
class BookedService:
    service_id: int
    name: str
    price: Decimal
    category_id: int | None = None


@dataclass(frozen=True, slots=True)
class BookingCouponRequest:
    code: str
    subtotal: Decimal
    services: tuple[BookedService, ...] = field(default_factory=tuple)
    phone: str | None = None
    email: str | None = None


@dataclass(frozen=True, slots=True)
class PosCouponRequest:
    code: str
    subtotal: Decimal
    items: tuple[CartItem, ...] = field(default_factory=tuple)
    customer_id: int | None = None


class CouponCheckout(Protocol[RequestT]):
    async def validate(
        self,
        session: AsyncSession,
        request: RequestT,
        *,
        now_utc: datetime | None = None,
    ) -> CouponEvaluation: ...


def customer_context(customer: Customer | None) -> CustomerContext | None:
    if customer is None:
        return None
    return CustomerContext(
        id=int(customer.id),
        tags=tuple(customer.tags or ()),
        customer_type=customer.customer_type,
        visit_count=int(customer.visit_count or 0),
    )


def booked_services_to_cart(services: Sequence[BookedService]) -> tuple[CartItem, ...]:
    return tuple(
        CartItem(
            item_type=ITEM_TYPE_SERVICE,
            target_id=service.service_id,
            target_category_id=service.category_id,
            unit_price=service.price,
            quantity=1,
            name=service.name,
        )
        for service in services
    )


class BookingCouponCheckout:
    """Online booking: the customer is identified by phone, then email."""

    @staticmethod
    async def _resolve_customer(
        session: AsyncSession,
        *,
        phone: str | None,
        email: str | None,
    ) -> Customer | None:
        e164_phone = normalize_phone(phone)
        if e164_phone is not None:
            customer = await CustomersRepo.get_by_phone(session, e164_phone)
            if customer is not None:
                return customer

        normalized_email = normalize_email(email)
        if normalized_email is not None:
            return await CustomersRepo.get_by_email(session, normalized_email)
        return None

    async def validate(
        self,
        session: AsyncSession,
        request: BookingCouponRequest,
        *,
        now_utc: datetime | None = None,
    ) -> CouponEvaluation:
        customer = await self._resolve_customer(session, phone=request.phone, email=request.email)
        return await CouponEvaluator.evaluate(
            session,
            code=request.code,
            subtotal=request.subtotal,
            cart_items=booked_services_to_cart(request.services),
            customer=customer_context(customer),
            now_utc=now_utc,
        )


class PosCouponCheckout:
    """Point of sale: the cashier has already attached a customer, if any."""

    async def validate(
        self,
        session: AsyncSession,
        request: PosCouponRequest,
        *,
        now_utc: datetime | None = None,
    ) -> CouponEvaluation:
        customer = None
        if request.customer_id is not None:
            customer = await CustomersRepo.get_by_id(session, request.customer_id)
        return await CouponEvaluator.evaluate(
            session,
            code=request.code,
            subtotal=request.subtotal,
            cart_items=request.items,
            customer=customer_context(customer),
            now_utc=now_utc,
        )
