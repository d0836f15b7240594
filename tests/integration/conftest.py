from __future__ import annotations

import pytest
from sqlalchemy import text

from promo_engine.core.integration_db_safety import assert_safe_integration_db
from promo_engine.db.models import Base
from promo_engine.db.session import engine

TRUNCATE_TABLES = (
    "transaction_items",
    "transactions",
    "campaign_recipients",
    "campaign_variants",
    "coupon_rewards",
    "coupons",
    "campaigns",
    "products",
    "services",
    "product_categories",
    "service_categories",
    "vehicles",
    "customers",
)

TRUNCATE_SQL = f"TRUNCATE TABLE {', '.join(TRUNCATE_TABLES)} RESTART IDENTITY CASCADE"


@pytest.fixture(scope="session", autouse=True)
def guard_integration_db_target() -> None:
    assert_safe_integration_db(str(engine.url))


@pytest.fixture(autouse=True)
async def cleanup_db() -> None:
    # Pooled asyncpg connections must not leak across per-test event loops.
    await engine.dispose()

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - environment-dependent
        pytest.skip(f"Postgres is required for integration tests: {exc}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text(TRUNCATE_SQL))

    yield

    await engine.dispose()
