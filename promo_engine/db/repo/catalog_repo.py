from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from promo_engine.db.models.catalog import Product, ProductCategory, Service, ServiceCategory

CatalogModel = type[Service] | type[Product] | type[ServiceCategory] | type[ProductCategory]


async def _names_by_id(
    session: AsyncSession,
    model: CatalogModel,
    ids: Iterable[int],
) -> dict[int, str]:
    unique_ids = tuple({int(item_id) for item_id in ids})
    if not unique_ids:
        return {}
    stmt = select(model.id, model.name).where(model.id.in_(unique_ids))
    result = await session.execute(stmt)
    return {int(item_id): str(name) for item_id, name in result.all()}


class CatalogRepo:
    @staticmethod
    async def service_names(session: AsyncSession, ids: Iterable[int]) -> dict[int, str]:
        return await _names_by_id(session, Service, ids)

    @staticmethod
    async def product_names(session: AsyncSession, ids: Iterable[int]) -> dict[int, str]:
        return await _names_by_id(session, Product, ids)

    @staticmethod
    async def service_category_names(session: AsyncSession, ids: Iterable[int]) -> dict[int, str]:
        return await _names_by_id(session, ServiceCategory, ids)

    @staticmethod
    async def product_category_names(session: AsyncSession, ids: Iterable[int]) -> dict[int, str]:
        return await _names_by_id(session, ProductCategory, ids)
