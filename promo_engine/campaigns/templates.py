from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from urllib.parse import urlencode

from promo_engine.core.money import format_money, to_money

_PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")
BOOKING_PATH = "/book"


@dataclass(frozen=True, slots=True)
class BusinessProfile:
    name: str
    phone: str
    address: str
    site_url: str
    loyalty_redeem_rate: Decimal

    @classmethod
    def from_settings(cls, settings: object) -> BusinessProfile:
        return cls(
            name=str(getattr(settings, "business_name", "") or ""),
            phone=str(getattr(settings, "business_phone", "") or ""),
            address=str(getattr(settings, "business_address", "") or ""),
            site_url=str(getattr(settings, "site_url", "") or ""),
            loyalty_redeem_rate=Decimal(str(getattr(settings, "loyalty_redeem_rate", "0.05"))),
        )


def render_template(template: str, variables: Mapping[str, str]) -> str:
    """Replace ``{name}`` placeholders; unknown placeholders are left untouched."""

    def _substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        return variables[key] if key in variables else match.group(0)

    return _PLACEHOLDER_PATTERN.sub(_substitute, template)


def build_booking_url(site_url: str, coupon_code: str | None = None) -> str:
    base = f"{site_url.rstrip('/')}{BOOKING_PATH}"
    if not coupon_code:
        return base
    return f"{base}?{urlencode({'coupon': coupon_code})}"


def build_offer_url(
    site_url: str,
    *,
    campaign_id: int,
    channel: str,
    coupon_code: str | None = None,
    variant_label: str | None = None,
) -> str:
    params: dict[str, str] = {}
    if coupon_code:
        params["coupon"] = coupon_code
    params.update(
        {
            "utm_source": "campaign",
            "utm_medium": channel,
            "utm_campaign": str(campaign_id),
        }
    )
    if variant_label:
        params["utm_content"] = variant_label
    return f"{site_url.rstrip('/')}{BOOKING_PATH}?{urlencode(params)}"


def build_template_variables(
    customer: object,
    *,
    business: BusinessProfile,
    campaign_id: int,
    channel: str,
    coupon_code: str | None,
    today: date,
    variant_label: str | None = None,
) -> dict[str, str]:
    points = int(getattr(customer, "loyalty_points_balance", 0) or 0)
    last_visit: date | None = getattr(customer, "last_visit_date", None)
    return {
        "first_name": getattr(customer, "first_name", None) or "",
        "last_name": getattr(customer, "last_name", None) or "",
        "coupon_code": coupon_code or "",
        "business_name": business.name,
        "business_phone": business.phone,
        "business_address": business.address,
        "booking_url": build_booking_url(business.site_url, coupon_code),
        "offer_url": build_offer_url(
            business.site_url,
            campaign_id=campaign_id,
            channel=channel,
            coupon_code=coupon_code,
            variant_label=variant_label,
        ),
        "loyalty_points": str(points),
        "loyalty_value": format_money(to_money(Decimal(points) * business.loyalty_redeem_rate)),
        "visit_count": str(int(getattr(customer, "visit_count", 0) or 0)),
        "days_since_last_visit": (
            str((today - last_visit).days) if last_visit is not None else ""
        ),
        "lifetime_spend": format_money(to_money(getattr(customer, "lifetime_spend", 0))),
    }
