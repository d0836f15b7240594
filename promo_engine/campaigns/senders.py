from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SendResult:
    success: bool
    provider_id: str | None = None


class ChannelSender(Protocol):
    async def send(
        self,
        destination: str,
        body: str,
        metadata: Mapping[str, object],
    ) -> SendResult: ...


class HttpRelaySender:
    """Hands a rendered message to the provider relay over HTTP.

    The relay owns transport and retries; any HTTP or network error here is
    reported as an unsuccessful send.
    """

    def __init__(
        self,
        *,
        channel: str,
        url: str,
        token: str = "",
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.channel = channel
        self.url = url
        self.token = token
        self.timeout_seconds = timeout_seconds
        self._client = client

    def _headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def _post(self, client: httpx.AsyncClient, body: dict[str, Any]) -> httpx.Response:
        response = await client.post(self.url, json=body, headers=self._headers())
        response.raise_for_status()
        return response

    async def send(
        self,
        destination: str,
        body: str,
        metadata: Mapping[str, object],
    ) -> SendResult:
        if not self.url:
            logger.warning("channel_relay_not_configured", channel=self.channel)
            return SendResult(success=False)

        payload = {
            "channel": self.channel,
            "to": destination,
            "body": body,
            "metadata": dict(metadata),
        }
        try:
            if self._client is not None:
                response = await self._post(self._client, payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await self._post(client, payload)
        except httpx.HTTPError as exc:
            logger.warning(
                "channel_send_failed",
                channel=self.channel,
                error_type=type(exc).__name__,
            )
            return SendResult(success=False)

        provider_id: str | None = None
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("id") is not None:
            provider_id = str(data["id"])
        return SendResult(success=True, provider_id=provider_id)


def build_default_senders(settings: object) -> dict[str, ChannelSender]:
    token = str(getattr(settings, "channel_relay_token", "") or "")
    timeout = float(getattr(settings, "channel_send_timeout_seconds", 10.0))
    return {
        "sms": HttpRelaySender(
            channel="sms",
            url=str(getattr(settings, "sms_relay_url", "") or ""),
            token=token,
            timeout_seconds=timeout,
        ),
        "email": HttpRelaySender(
            channel="email",
            url=str(getattr(settings, "email_relay_url", "") or ""),
            token=token,
            timeout_seconds=timeout,
        ),
    }
