from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from promo_engine.db.session import dispose_engine

T = TypeVar("T")


def run_async_job(job: Callable[[], Awaitable[T]]) -> T:
    """Run ``job()`` on a fresh event loop from a synchronous Celery task.

    Pooled asyncpg connections are bound to the loop that opened them, so the
    pool is dropped before and after every job.
    """

    async def _runner() -> T:
        await dispose_engine()
        try:
            return await job()
        finally:
            await dispose_engine()

    return asyncio.run(_runner())
