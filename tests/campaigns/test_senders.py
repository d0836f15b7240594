from __future__ import annotations

import json

import httpx
import pytest

from promo_engine.campaigns.senders import HttpRelaySender, build_default_senders


def _client(handler) -> httpx.AsyncClient:  # noqa: ANN001
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_relay_sender_posts_message_with_token() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(202, json={"id": "msg_123"})

    async with _client(handler) as client:
        sender = HttpRelaySender(
            channel="sms",
            url="https://relay.example.local/sms",
            token="relay_token",
            client=client,
        )
        result = await sender.send("+15550102000", "Hi Ana", {"campaign_id": 9})

    assert result.success is True
    assert result.provider_id == "msg_123"
    assert seen[0].headers["Authorization"] == "Bearer relay_token"
    assert json.loads(seen[0].content) == {
        "channel": "sms",
        "to": "+15550102000",
        "body": "Hi Ana",
        "metadata": {"campaign_id": 9},
    }


@pytest.mark.asyncio
async def test_relay_sender_reports_http_errors_as_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "busy"})

    async with _client(handler) as client:
        sender = HttpRelaySender(channel="email", url="https://relay.example.local/email", client=client)
        result = await sender.send("driver@example.com", "Hello", {})

    assert result.success is False
    assert result.provider_id is None


@pytest.mark.asyncio
async def test_relay_sender_reports_network_errors_as_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        sender = HttpRelaySender(channel="sms", url="https://relay.example.local/sms", client=client)
        result = await sender.send("+15550102000", "Hi", {})

    assert result.success is False


@pytest.mark.asyncio
async def test_relay_sender_without_url_does_not_send() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with _client(handler) as client:
        sender = HttpRelaySender(channel="sms", url="", client=client)
        result = await sender.send("+15550102000", "Hi", {})

    assert result.success is False


@pytest.mark.asyncio
async def test_relay_sender_accepts_non_json_response() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="queued")

    async with _client(handler) as client:
        sender = HttpRelaySender(channel="sms", url="https://relay.example.local/sms", client=client)
        result = await sender.send("+15550102000", "Hi", {})

    assert result.success is True
    assert result.provider_id is None


def test_default_senders_cover_both_channels() -> None:
    class _Settings:
        channel_relay_token = "tok"
        channel_send_timeout_seconds = 3.0
        sms_relay_url = "https://relay.example.local/sms"
        email_relay_url = ""

    senders = build_default_senders(_Settings())

    assert set(senders) == {"sms", "email"}
    assert senders["sms"].url == "https://relay.example.local/sms"
    assert senders["email"].url == ""
