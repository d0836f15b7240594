from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text

from promo_engine.core.config import get_settings
from promo_engine.db.session import SessionLocal
from promo_engine.workers.celery_app import celery_app

router = APIRouter(tags=["health"])

CheckResult = dict[str, Any]


def _passed(**extra: Any) -> CheckResult:
    return {"status": "ok", **extra}


def _failed(error: str) -> CheckResult:
    return {"status": "failed", "error": error}


async def check_database() -> CheckResult:
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        return _failed(str(exc))
    return _passed()


async def check_redis() -> CheckResult:
    client = Redis.from_url(get_settings().redis_url)
    try:
        if await client.ping() is not True:
            return _failed("redis did not answer PING")
        return _passed()
    except Exception as exc:
        return _failed(str(exc))
    finally:
        await client.aclose()


def _ping_workers() -> CheckResult:
    try:
        inspector = celery_app.control.inspect(timeout=1.0)
        replies = (inspector.ping() if inspector is not None else None) or {}
    except Exception as exc:
        return _failed(str(exc))
    if not replies:
        return _failed("no celery workers responded to ping")
    return _passed(workers=len(replies))


async def check_workers() -> CheckResult:
    return await asyncio.to_thread(_ping_workers)


async def collect_checks(*, include_workers: bool = True) -> dict[str, CheckResult]:
    if not include_workers:
        database, redis = await asyncio.gather(check_database(), check_redis())
        return {"database": database, "redis": redis}

    database, redis, workers = await asyncio.gather(
        check_database(),
        check_redis(),
        check_workers(),
    )
    return {"database": database, "redis": redis, "celery": workers}


def _respond(checks: dict[str, CheckResult], *, ok_label: str, failed_label: str) -> JSONResponse:
    healthy = all(check.get("status") == "ok" for check in checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": ok_label if healthy else failed_label, "checks": checks},
    )


@router.get("/health")
async def health() -> JSONResponse:
    return _respond(await collect_checks(), ok_label="ok", failed_label="degraded")


@router.get("/ready")
async def ready() -> JSONResponse:
    checks = await collect_checks(include_workers=False)
    return _respond(checks, ok_label="ready", failed_label="not_ready")


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}
