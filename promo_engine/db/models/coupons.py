from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BOOLEAN,
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from promo_engine.db.models.base import Base


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint(
            "status IN ('active','paused','expired','disabled')",
            name="ck_coupons_status",
        ),
        CheckConstraint("tag_match_mode IN ('any','all')", name="ck_coupons_tag_match_mode"),
        CheckConstraint("condition_logic IN ('and','or')", name="ck_coupons_condition_logic"),
        CheckConstraint("use_count >= 0", name="ck_coupons_use_count_non_negative"),
        CheckConstraint(
            "max_uses IS NULL OR max_uses > 0",
            name="ck_coupons_max_uses_positive",
        ),
        CheckConstraint(
            "max_uses IS NULL OR use_count <= max_uses",
            name="ck_coupons_use_count_le_max",
        ),
        CheckConstraint(
            "max_customer_visits IS NULL OR max_customer_visits >= 0",
            name="ck_coupons_max_customer_visits_non_negative",
        ),
        Index("uq_coupons_code_upper", text("upper(code)"), unique=True),
        Index("idx_coupons_campaign", "campaign_id"),
        Index("idx_coupons_customer", "customer_id"),
        Index("idx_coupons_status_expires_at", "status", "expires_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    code: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'active'"))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    max_uses: Mapped[int | None] = mapped_column(Integer, nullable=True)
    use_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    is_single_use: Mapped[bool] = mapped_column(
        BOOLEAN, nullable=False, server_default=text("false")
    )
    min_purchase: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    max_customer_visits: Mapped[int | None] = mapped_column(Integer, nullable=True)
    customer_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("customers.id"),
        nullable=True,
    )
    customer_tags: Mapped[list[str] | None] = mapped_column(ARRAY(Text), nullable=True)
    tag_match_mode: Mapped[str] = mapped_column(
        String(8), nullable=False, server_default=text("'any'")
    )
    target_customer_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    requires_product_ids: Mapped[list[int] | None] = mapped_column(ARRAY(BigInteger), nullable=True)
    requires_service_ids: Mapped[list[int] | None] = mapped_column(ARRAY(BigInteger), nullable=True)
    requires_product_category_ids: Mapped[list[int] | None] = mapped_column(
        ARRAY(BigInteger), nullable=True
    )
    requires_service_category_ids: Mapped[list[int] | None] = mapped_column(
        ARRAY(BigInteger), nullable=True
    )
    condition_logic: Mapped[str] = mapped_column(
        String(8), nullable=False, server_default=text("'and'")
    )
    campaign_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("campaigns.id", use_alter=True, name="fk_coupons_campaign_id"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )


class CouponReward(Base):
    __tablename__ = "coupon_rewards"
    __table_args__ = (
        CheckConstraint(
            "applies_to IN ('order','product','service')",
            name="ck_coupon_rewards_applies_to",
        ),
        CheckConstraint(
            "discount_type IN ('percentage','flat','free')",
            name="ck_coupon_rewards_discount_type",
        ),
        CheckConstraint(
            "discount_type <> 'percentage' OR discount_value > 0",
            name="ck_coupon_rewards_percentage_positive",
        ),
        CheckConstraint(
            "discount_value >= 0",
            name="ck_coupon_rewards_discount_value_non_negative",
        ),
        Index("idx_coupon_rewards_coupon", "coupon_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    coupon_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("coupons.id", ondelete="CASCADE"),
        nullable=False,
    )
    applies_to: Mapped[str] = mapped_column(String(16), nullable=False)
    discount_type: Mapped[str] = mapped_column(String(16), nullable=False)
    discount_value: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, server_default=text("0")
    )
    max_discount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    target_product_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("products.id"), nullable=True
    )
    target_service_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("services.id"), nullable=True
    )
    target_product_category_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("product_categories.id"), nullable=True
    )
    target_service_category_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("service_categories.id"), nullable=True
    )
