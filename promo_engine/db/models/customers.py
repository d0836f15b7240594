from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import BOOLEAN, BigInteger, Date, DateTime, Index, Integer, Numeric, String, Text, text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from promo_engine.db.models.base import Base


class Customer(Base):
    """Customer profile owned by the platform; read-only here."""

    __tablename__ = "customers"
    __table_args__ = (
        Index("idx_customers_phone", "phone"),
        Index("idx_customers_email", "email"),
        Index("idx_customers_last_visit_date", "last_visit_date"),
        Index("idx_customers_tags", "tags", postgresql_using="gin"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    first_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    tags: Mapped[list[str]] = mapped_column(
        ARRAY(Text),
        nullable=False,
        server_default=text("'{}'::text[]"),
    )
    customer_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    visit_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    sms_consent: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, server_default=text("false"))
    email_consent: Mapped[bool] = mapped_column(
        BOOLEAN, nullable=False, server_default=text("false")
    )
    loyalty_points_balance: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    last_visit_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    lifetime_spend: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, server_default=text("0")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
