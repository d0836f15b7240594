from __future__ import annotations

import argparse
import asyncio
import json
from datetime import datetime, timezone
from typing import Any

from promo_engine.campaigns.attribution import AttributionEngine
from promo_engine.campaigns.dispatch import CampaignDispatcher
from promo_engine.campaigns.errors import CampaignError
from promo_engine.campaigns.lifecycle import CampaignLifecycle
from promo_engine.core.config import get_settings
from promo_engine.core.logging import configure_logging
from promo_engine.db.session import SessionLocal, dispose_engine


def parse_utc_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Campaign operator tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    dispatch = subparsers.add_parser("dispatch", help="claim and dispatch a campaign in-process")
    dispatch.add_argument("campaign_id", type=int)

    release = subparsers.add_parser(
        "release-stuck",
        help="move an aborted campaign from sending back to draft",
    )
    release.add_argument("campaign_id", type=int)

    attribution = subparsers.add_parser("attribution", help="compute campaign revenue attribution")
    attribution.add_argument("campaign_id", type=int, nargs="?")
    attribution.add_argument("--window-days", type=int)
    attribution.add_argument("--variant-id", type=int)
    attribution.add_argument("--period-start", help="ISO datetime, attribute every campaign sent in the period")
    attribution.add_argument("--period-end", help="ISO datetime")

    subparsers.add_parser("process-due", help="dispatch every scheduled campaign that is due")
    return parser.parse_args(argv)


def _validate_args(args: argparse.Namespace) -> None:
    if args.command != "attribution":
        return
    has_period = args.period_start is not None or args.period_end is not None
    if has_period and args.campaign_id is not None:
        raise ValueError("use either campaign_id or --period-start/--period-end")
    if has_period and (args.period_start is None or args.period_end is None):
        raise ValueError("--period-start and --period-end are required together")
    if not has_period and args.campaign_id is None:
        raise ValueError("campaign_id is required without a period")
    if args.window_days is not None and args.window_days < 0:
        raise ValueError("--window-days must not be negative")


async def _attribution(args: argparse.Namespace) -> dict[str, Any]:
    async with SessionLocal() as session:
        if args.campaign_id is None:
            result = await AttributionEngine.attribute_period(
                session,
                parse_utc_datetime(args.period_start),
                parse_utc_datetime(args.period_end),
                args.window_days,
            )
        else:
            result = await AttributionEngine.attribute(
                session,
                args.campaign_id,
                args.window_days,
                variant_id=args.variant_id,
            )
    return {
        "revenue": str(result.revenue),
        "transaction_count": result.transaction_count,
        "unique_customers": result.unique_customers,
    }


async def _execute(args: argparse.Namespace) -> dict[str, Any]:
    if args.command == "dispatch":
        summary = await CampaignDispatcher().dispatch(args.campaign_id)
        return {
            "campaign_id": summary.campaign_id,
            "recipient_count": summary.recipient_count,
            "delivered_count": summary.delivered_count,
        }
    if args.command == "release-stuck":
        async with SessionLocal.begin() as session:
            await CampaignLifecycle.release_stuck(session, campaign_id=args.campaign_id)
        return {"campaign_id": args.campaign_id, "status": "draft"}
    if args.command == "attribution":
        return await _attribution(args)
    return await CampaignDispatcher().process_due()


async def _run(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    _validate_args(args)
    configure_logging(get_settings().log_level)

    try:
        output = await _execute(args)
    except CampaignError as exc:
        print(json.dumps({"error": type(exc).__name__, "message": str(exc)}))  # noqa: T201
        return 1
    finally:
        await dispose_engine()

    print(json.dumps(output))  # noqa: T201
    return 0


def main(argv: list[str] | None = None) -> int:
    return asyncio.run(_run(argv))


if __name__ == "__main__":
    raise SystemExit(main())
