from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import NoReturn

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from promo_engine.api.routes.internal_access import assert_internal_access
from promo_engine.coupons.checkout import (
    BookedService,
    BookingCouponCheckout,
    BookingCouponRequest,
    PosCouponCheckout,
    PosCouponRequest,
)
from promo_engine.coupons.errors import CouponError
from promo_engine.coupons.types import ITEM_TYPE_PRODUCT, ITEM_TYPE_SERVICE, CartItem, CouponEvaluation
from promo_engine.coupons.usage import CouponUsageService
from promo_engine.db.session import SessionLocal

router = APIRouter(tags=["internal", "coupons"])

REJECTION_HTTP_STATUS: dict[str, tuple[int, str]] = {
    "not_found": (404, "E_COUPON_NOT_FOUND"),
    "inactive": (410, "E_COUPON_INACTIVE"),
    "already_used": (409, "E_COUPON_ALREADY_USED"),
    "not_eligible": (422, "E_COUPON_NOT_ELIGIBLE"),
    "no_matching_items": (422, "E_COUPON_NO_MATCHING_ITEMS"),
}


class BookedServiceIn(BaseModel):
    service_id: int = Field(gt=0)
    name: str = Field(min_length=1, max_length=128)
    price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    category_id: int | None = Field(default=None, gt=0)


class BookingValidateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    subtotal: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    services: list[BookedServiceIn] = Field(default_factory=list)
    phone: str | None = Field(default=None, max_length=32)
    email: str | None = Field(default=None, max_length=254)


class CartItemIn(BaseModel):
    item_type: str = Field(pattern=f"^({ITEM_TYPE_PRODUCT}|{ITEM_TYPE_SERVICE})$")
    target_id: int | None = Field(default=None, gt=0)
    target_category_id: int | None = Field(default=None, gt=0)
    unit_price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    quantity: int = Field(default=1, ge=1, le=1000)
    name: str = Field(min_length=1, max_length=128)


class PosValidateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    subtotal: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    items: list[CartItemIn] = Field(default_factory=list)
    customer_id: int | None = Field(default=None, gt=0)


class RewardLineOut(BaseModel):
    reward_id: int | None = None
    applies_to: str
    discount_type: str
    target_name: str
    discount: Decimal


class CouponValidationResponse(BaseModel):
    coupon_id: int | None
    code: str | None
    name: str | None
    discount: Decimal
    description: str
    breakdown: list[RewardLineOut]
    warning: str | None = None


class CouponConsumeResponse(BaseModel):
    coupon_id: int
    use_count: int = Field(ge=0)


def _raise_rejection(kind: str, message: str) -> NoReturn:
    status_code, code = REJECTION_HTTP_STATUS.get(kind, (422, "E_COUPON_NOT_ELIGIBLE"))
    raise HTTPException(status_code=status_code, detail={"code": code, "message": message})


def _as_response(evaluation: CouponEvaluation) -> CouponValidationResponse:
    if not evaluation.ok:
        error = evaluation.error
        _raise_rejection(
            error.kind if error is not None else "not_eligible",
            error.message if error is not None else "",
        )
    return CouponValidationResponse(
        coupon_id=evaluation.coupon_id,
        code=evaluation.code,
        name=evaluation.name,
        discount=evaluation.discount,
        description=evaluation.description,
        breakdown=[
            RewardLineOut(
                reward_id=line.reward_id,
                applies_to=line.applies_to,
                discount_type=line.discount_type,
                target_name=line.target_name,
                discount=line.discount,
            )
            for line in evaluation.breakdown
        ],
        warning=evaluation.warning,
    )


@router.post("/internal/coupons/validate/booking", response_model=CouponValidationResponse)
async def validate_booking_coupon(
    payload: BookingValidateRequest,
    request: Request,
) -> CouponValidationResponse:
    assert_internal_access(request, log_event="internal_coupons_auth_failed")

    checkout_request = BookingCouponRequest(
        code=payload.code,
        subtotal=payload.subtotal,
        services=tuple(
            BookedService(
                service_id=service.service_id,
                name=service.name,
                price=service.price,
                category_id=service.category_id,
            )
            for service in payload.services
        ),
        phone=payload.phone,
        email=payload.email,
    )
    async with SessionLocal() as session:
        evaluation = await BookingCouponCheckout().validate(
            session,
            checkout_request,
            now_utc=datetime.now(timezone.utc),
        )
    return _as_response(evaluation)


@router.post("/internal/coupons/validate/pos", response_model=CouponValidationResponse)
async def validate_pos_coupon(
    payload: PosValidateRequest,
    request: Request,
) -> CouponValidationResponse:
    assert_internal_access(request, log_event="internal_coupons_auth_failed")

    checkout_request = PosCouponRequest(
        code=payload.code,
        subtotal=payload.subtotal,
        items=tuple(
            CartItem(
                item_type=item.item_type,
                target_id=item.target_id,
                target_category_id=item.target_category_id,
                unit_price=item.unit_price,
                quantity=item.quantity,
                name=item.name,
            )
            for item in payload.items
        ),
        customer_id=payload.customer_id,
    )
    async with SessionLocal() as session:
        evaluation = await PosCouponCheckout().validate(
            session,
            checkout_request,
            now_utc=datetime.now(timezone.utc),
        )
    return _as_response(evaluation)


@router.post("/internal/coupons/{coupon_id}/consume", response_model=CouponConsumeResponse)
async def consume_coupon(coupon_id: int, request: Request) -> CouponConsumeResponse:
    assert_internal_access(request, log_event="internal_coupons_auth_failed")

    try:
        async with SessionLocal.begin() as session:
            use_count = await CouponUsageService.consume(
                session,
                coupon_id,
                now_utc=datetime.now(timezone.utc),
            )
    except CouponError as exc:
        _raise_rejection(exc.kind, exc.message)

    return CouponConsumeResponse(coupon_id=coupon_id, use_count=use_count)
