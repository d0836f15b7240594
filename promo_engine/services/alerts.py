from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from promo_engine.core.config import get_settings

logger = structlog.get_logger(__name__)
SEVERITY_COLOR = {
    "critical": "#B42318",
    "error": "#F04438",
    "warning": "#F79009",
    "info": "#1570EF",
}


@dataclass(frozen=True)
class AlertRoute:
    channels: tuple[str, ...]
    severity: str


@dataclass(frozen=True)
class AlertTarget:
    channel: str
    url: str


DEFAULT_ALERT_ROUTE = AlertRoute(channels=("generic",), severity="warning")
EVENT_ALERT_ROUTES = {
    "campaign_dispatch_aborted": AlertRoute(channels=("slack", "generic"), severity="error"),
    "campaign_stuck_sending": AlertRoute(channels=("slack", "generic"), severity="warning"),
    "campaign_sent": AlertRoute(channels=("generic",), severity="info"),
}


def _setting_str(settings: object, attr: str) -> str:
    value = getattr(settings, attr, "")
    return value.strip() if isinstance(value, str) else ""


def _resolve_targets(*, route: AlertRoute, settings: object) -> list[AlertTarget]:
    channel_to_url = {
        "generic": _setting_str(settings, "ops_alert_webhook_url"),
        "slack": _setting_str(settings, "ops_alert_slack_webhook_url"),
    }
    targets = [
        AlertTarget(channel=channel, url=channel_to_url[channel])
        for channel in route.channels
        if channel_to_url.get(channel)
    ]
    if not targets and channel_to_url["generic"]:
        targets.append(AlertTarget(channel="generic", url=channel_to_url["generic"]))
    return targets


def _payload_text(payload: dict[str, object]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def _build_channel_payload(
    *,
    channel: str,
    event: str,
    payload: dict[str, object],
    sent_at: datetime,
    route: AlertRoute,
    app_env: str,
) -> dict[str, Any]:
    if channel == "generic":
        return {
            "event": event,
            "payload": payload,
            "sent_at": sent_at.isoformat(),
            "severity": route.severity,
            "environment": app_env,
        }
    if channel == "slack":
        text = f"[{route.severity.upper()}] {event}"
        campaign_id = payload.get("campaign_id")
        if campaign_id is not None:
            text = f"{text} (campaign {campaign_id})"
        return {
            "text": text,
            "attachments": [
                {
                    "color": SEVERITY_COLOR.get(route.severity, SEVERITY_COLOR["warning"]),
                    "fields": [
                        {"title": "Environment", "value": app_env, "short": True},
                        {"title": "Sent At", "value": sent_at.isoformat(), "short": True},
                        {"title": "Event", "value": event, "short": False},
                        {"title": "Payload", "value": _payload_text(payload), "short": False},
                    ],
                }
            ],
        }
    raise ValueError(f"Unsupported alert channel: {channel}")


async def _post_json(
    *,
    client: httpx.AsyncClient,
    url: str,
    body: dict[str, Any],
    event: str,
    channel: str,
) -> bool:
    try:
        response = await client.post(url, json=body)
        response.raise_for_status()
        return True
    except httpx.HTTPError:
        logger.exception(
            "ops_alert_delivery_failed",
            alert_event=event,
            provider=channel,
        )
        return False


async def send_ops_alert(*, event: str, payload: dict[str, object]) -> bool:
    settings = get_settings()
    route = EVENT_ALERT_ROUTES.get(event, DEFAULT_ALERT_ROUTE)
    targets = _resolve_targets(route=route, settings=settings)
    if not targets:
        return False

    sent_at = datetime.now(timezone.utc)
    app_env = _setting_str(settings, "app_env") or "dev"

    delivered_to: list[str] = []
    failed_to: list[str] = []
    async with httpx.AsyncClient(timeout=5.0) as client:
        for target in targets:
            body = _build_channel_payload(
                channel=target.channel,
                event=event,
                payload=payload,
                sent_at=sent_at,
                route=route,
                app_env=app_env,
            )
            delivered = await _post_json(
                client=client,
                url=target.url,
                body=body,
                event=event,
                channel=target.channel,
            )
            if delivered:
                delivered_to.append(target.channel)
            else:
                failed_to.append(target.channel)

    if not delivered_to:
        logger.error(
            "ops_alert_delivery_exhausted",
            alert_event=event,
            severity=route.severity,
            failed_to=failed_to,
        )
        return False

    logger.info(
        "ops_alert_delivered",
        alert_event=event,
        severity=route.severity,
        delivered_to=delivered_to,
        failed_to=failed_to,
    )
    return True
