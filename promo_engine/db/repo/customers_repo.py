from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from promo_engine.db.models.customers import Customer


class CustomersRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, customer_id: int) -> Customer | None:
        return await session.get(Customer, customer_id)

    @staticmethod
    async def get_by_phone(session: AsyncSession, phone: str) -> Customer | None:
        stmt = select(Customer).where(Customer.phone == phone).order_by(Customer.id.asc()).limit(1)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email(session: AsyncSession, email: str) -> Customer | None:
        stmt = (
            select(Customer)
            .where(func.lower(Customer.email) == email.lower())
            .order_by(Customer.id.asc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_by_ids(
        session: AsyncSession,
        customer_ids: Sequence[int],
    ) -> list[Customer]:
        ids = tuple({int(customer_id) for customer_id in customer_ids})
        if not ids:
            return []
        stmt = select(Customer).where(Customer.id.in_(ids)).order_by(Customer.id.asc())
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_ids_matching(
        session: AsyncSession,
        *conditions: ColumnElement[bool],
    ) -> list[int]:
        stmt = select(Customer.id).where(*conditions).order_by(Customer.id.asc())
        result = await session.execute(stmt)
        return [int(customer_id) for customer_id in result.scalars().all()]

    @staticmethod
    async def count_matching(
        session: AsyncSession,
        *conditions: ColumnElement[bool],
    ) -> int:
        stmt = select(func.count(Customer.id)).where(*conditions)
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)
