from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

from fastapi.testclient import TestClient

from promo_engine.api.routes import internal_access, internal_coupons
from promo_engine.coupons.errors import CouponInactiveError
from promo_engine.coupons.types import CouponEvaluation, RewardLine
from promo_engine.main import app


class _SessionContext:
    async def __aenter__(self) -> SimpleNamespace:
        return SimpleNamespace()

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class _SessionFactory:
    def __call__(self) -> _SessionContext:
        return _SessionContext()

    def begin(self) -> _SessionContext:
        return _SessionContext()


def _allow_access(monkeypatch) -> None:
    monkeypatch.setattr(internal_coupons, "assert_internal_access", lambda request, *, log_event: None)
    monkeypatch.setattr(internal_coupons, "SessionLocal", _SessionFactory())


def test_internal_coupons_rejects_missing_token(monkeypatch) -> None:
    monkeypatch.setattr(
        internal_access,
        "get_settings",
        lambda: SimpleNamespace(
            internal_api_token="internal-secret",
            internal_api_allowlist="127.0.0.1/32",
            internal_api_trusted_proxies="",
        ),
    )

    client = TestClient(app)
    response = client.post(
        "/internal/coupons/validate/pos",
        json={"code": "SAVE20", "subtotal": "50.00"},
    )

    assert response.status_code == 403
    assert response.json() == {"detail": {"code": "E_FORBIDDEN"}}


def test_internal_coupons_rejects_disallowed_forwarded_ip(monkeypatch) -> None:
    monkeypatch.setattr(
        internal_access,
        "get_settings",
        lambda: SimpleNamespace(
            internal_api_token="internal-secret",
            internal_api_allowlist="192.168.0.0/16",
            internal_api_trusted_proxies="",
        ),
    )

    client = TestClient(app)
    response = client.post(
        "/internal/coupons/validate/pos",
        json={"code": "SAVE20", "subtotal": "50.00"},
        headers={"X-Internal-Token": "internal-secret", "X-Forwarded-For": "192.168.1.10"},
    )

    assert response.status_code == 403


def test_pos_validation_returns_discount_breakdown(monkeypatch) -> None:
    _allow_access(monkeypatch)
    captured: list[object] = []

    class _Checkout:
        async def validate(self, session, request, *, now_utc=None):  # noqa: ANN001
            captured.append(request)
            line = RewardLine(
                reward_id=1,
                applies_to="order",
                discount_type="percentage",
                target_name="Order",
                discount=Decimal("10.00"),
            )
            return CouponEvaluation(
                ok=True,
                discount=Decimal("10.00"),
                breakdown=(line,),
                description="Order $10.00 off",
                coupon_id=11,
                code="SAVE20",
                name="Save 20",
            )

    monkeypatch.setattr(internal_coupons, "PosCouponCheckout", _Checkout)

    client = TestClient(app)
    response = client.post(
        "/internal/coupons/validate/pos",
        json={
            "code": "save20",
            "subtotal": "50.00",
            "customer_id": 4,
            "items": [
                {"item_type": "service", "target_id": 7, "unit_price": "25.00", "name": "Basic Wash"},
            ],
        },
    )

    assert response.status_code == 200
    payload = response.json()
    assert Decimal(payload["discount"]) == Decimal("10.00")
    assert payload["description"] == "Order $10.00 off"
    assert payload["breakdown"][0]["target_name"] == "Order"
    assert captured[0].customer_id == 4
    assert captured[0].items[0].name == "Basic Wash"


def test_booking_validation_maps_rejection_to_status(monkeypatch) -> None:
    _allow_access(monkeypatch)

    class _Checkout:
        async def validate(self, session, request, *, now_utc=None):  # noqa: ANN001
            return CouponEvaluation.rejected(kind="already_used", message="You have already used this coupon")

    monkeypatch.setattr(internal_coupons, "BookingCouponCheckout", _Checkout)

    client = TestClient(app)
    response = client.post(
        "/internal/coupons/validate/booking",
        json={
            "code": "WELCOME",
            "subtotal": "30.00",
            "phone": "5550102000",
            "services": [{"service_id": 7, "name": "Basic Wash", "price": "30.00"}],
        },
    )

    assert response.status_code == 409
    assert response.json() == {
        "detail": {
            "code": "E_COUPON_ALREADY_USED",
            "message": "You have already used this coupon",
        }
    }


def test_consume_returns_use_count(monkeypatch) -> None:
    _allow_access(monkeypatch)

    async def _consume(session, coupon_id: int, *, now_utc=None) -> int:  # noqa: ANN001
        return 2

    monkeypatch.setattr(internal_coupons.CouponUsageService, "consume", _consume)

    client = TestClient(app)
    response = client.post("/internal/coupons/11/consume")

    assert response.status_code == 200
    assert response.json() == {"coupon_id": 11, "use_count": 2}


def test_consume_exhausted_coupon_is_gone(monkeypatch) -> None:
    _allow_access(monkeypatch)

    async def _consume(session, coupon_id: int, *, now_utc=None) -> int:  # noqa: ANN001
        raise CouponInactiveError("Coupon usage limit reached")

    monkeypatch.setattr(internal_coupons.CouponUsageService, "consume", _consume)

    client = TestClient(app)
    response = client.post("/internal/coupons/11/consume")

    assert response.status_code == 410
    assert response.json()["detail"]["code"] == "E_COUPON_INACTIVE"
