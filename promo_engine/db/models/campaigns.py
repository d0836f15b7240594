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
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from promo_engine.db.models.base import Base


class Campaign(Base):
    __tablename__ = "campaigns"
    __table_args__ = (
        CheckConstraint("channel IN ('sms','email','both')", name="ck_campaigns_channel"),
        CheckConstraint(
            "status IN ('draft','scheduled','sending','sent','cancelled')",
            name="ck_campaigns_status",
        ),
        CheckConstraint("recipient_count >= 0", name="ck_campaigns_recipient_count_non_negative"),
        CheckConstraint(
            "delivered_count >= 0 AND delivered_count <= recipient_count",
            name="ck_campaigns_delivered_le_recipients",
        ),
        Index("idx_campaigns_status_scheduled_at", "status", "scheduled_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    channel: Mapped[str] = mapped_column(String(8), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'draft'"))
    audience_filters: Mapped[dict[str, object]] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    sms_template: Mapped[str | None] = mapped_column(Text, nullable=True)
    email_subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    email_template: Mapped[str | None] = mapped_column(Text, nullable=True)
    coupon_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("coupons.id"),
        nullable=True,
    )
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sending_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    recipient_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    delivered_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )


class CampaignVariant(Base):
    __tablename__ = "campaign_variants"
    __table_args__ = (
        CheckConstraint(
            "split_percentage >= 0 AND split_percentage <= 100",
            name="ck_campaign_variants_split_range",
        ),
        UniqueConstraint("campaign_id", "label", name="uq_campaign_variants_campaign_label"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    campaign_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("campaigns.id", ondelete="CASCADE"),
        nullable=False,
    )
    label: Mapped[str] = mapped_column(String(32), nullable=False)
    split_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    message_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    email_subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_winner: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, server_default=text("false"))


class CampaignRecipient(Base):
    __tablename__ = "campaign_recipients"
    __table_args__ = (
        CheckConstraint("channel IN ('sms','email','both')", name="ck_campaign_recipients_channel"),
        UniqueConstraint(
            "campaign_id",
            "customer_id",
            name="uq_campaign_recipients_campaign_customer",
        ),
        Index("idx_campaign_recipients_variant", "variant_id"),
        Index("idx_campaign_recipients_sent_at", "sent_at"),
        Index("idx_campaign_recipients_customer", "customer_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    campaign_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("campaigns.id", ondelete="CASCADE"),
        nullable=False,
    )
    customer_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("customers.id"),
        nullable=False,
    )
    channel: Mapped[str] = mapped_column(String(8), nullable=False)
    variant_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("campaign_variants.id"),
        nullable=True,
    )
    coupon_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    delivered: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, server_default=text("false"))
    clicked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
