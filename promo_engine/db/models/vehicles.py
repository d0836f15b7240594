from __future__ import annotations

from sqlalchemy import BigInteger, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from promo_engine.db.models.base import Base


class Vehicle(Base):
    """Customer vehicle owned by the platform; read for audience targeting only."""

    __tablename__ = "vehicles"
    __table_args__ = (Index("idx_vehicles_type_customer", "vehicle_type", "customer_id"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    customer_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("customers.id"),
        nullable=False,
    )
    vehicle_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
