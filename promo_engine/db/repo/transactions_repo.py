from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from promo_engine.db.models.transactions import Transaction

COMPLETED_TRANSACTION_STATUS = "completed"


class TransactionsRepo:
    @staticmethod
    async def list_completed_for_customers(
        session: AsyncSession,
        *,
        customer_ids: Sequence[int],
        from_utc: datetime,
        to_utc: datetime,
    ) -> list[Transaction]:
        ids = tuple({int(customer_id) for customer_id in customer_ids})
        if not ids:
            return []
        stmt = (
            select(Transaction)
            .where(
                Transaction.customer_id.in_(ids),
                Transaction.status == COMPLETED_TRANSACTION_STATUS,
                Transaction.transaction_date >= from_utc,
                Transaction.transaction_date <= to_utc,
            )
            .order_by(Transaction.transaction_date.asc(), Transaction.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
