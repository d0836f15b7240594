from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from promo_engine.db.models.base import Base


class Transaction(Base):
    """Completed or pending checkout, written by booking and POS; read-only here."""

    __tablename__ = "transactions"
    __table_args__ = (
        Index("idx_transactions_customer_date", "customer_id", "transaction_date"),
        Index("idx_transactions_coupon_customer", "coupon_id", "customer_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    customer_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("customers.id"),
        nullable=True,
    )
    coupon_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("coupons.id"),
        nullable=True,
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)


class TransactionItem(Base):
    __tablename__ = "transaction_items"
    __table_args__ = (
        Index("idx_transaction_items_transaction", "transaction_id"),
        Index("idx_transaction_items_service", "service_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    transaction_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("transactions.id"),
        nullable=False,
    )
    item_type: Mapped[str] = mapped_column(String(16), nullable=False)
    service_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("services.id"), nullable=True
    )
    product_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("products.id"), nullable=True
    )
