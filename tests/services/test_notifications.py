"""Tests for the Discord notification client and circuit breaker."""

import json

import httpx
import pytest

from league_tracker.core.errors import CircuitOpenError, NotificationError
from league_tracker.services.notifications import (
    CircuitBreaker,
    CircuitState,
    DiscordConfig,
    DiscordMessageClient,
    TrackerNotificationService,
)

DM_CHANNEL_ID = "555"


def _config(token: str | None = "bot-token", threshold: int = 2) -> DiscordConfig:
    return DiscordConfig(
        bot_token=token,
        api_url="https://discord.test/api/v10",
        timeout_seconds=5.0,
        breaker_threshold=threshold,
        breaker_timeout_seconds=60.0,
    )


class RecordingDiscord:
    """Fake Discord API answering DM channel creation and message posts."""

    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"message": "nope"})
        if request.url.path.endswith("/messages"):
            return httpx.Response(200, json={"id": "msg-1", "channel_id": DM_CHANNEL_ID})
        return httpx.Response(200, json={"id": DM_CHANNEL_ID})


def _client(api: RecordingDiscord, **config) -> DiscordMessageClient:
    return DiscordMessageClient(_config(**config), transport=httpx.MockTransport(api))


@pytest.mark.asyncio
async def test_send_direct_message_opens_channel_then_posts() -> None:
    api = RecordingDiscord()
    client = _client(api)

    message = await client.send_direct_message("42", {"content": "hi"})
    await client.close()

    assert message["id"] == "msg-1"
    assert len(api.requests) == 2
    open_channel, post = api.requests
    assert "me/channels" in open_channel.url.path
    assert json.loads(open_channel.content) == {"recipient_id": "42"}
    assert post.url.path == f"/api/v10/channels/{DM_CHANNEL_ID}/messages"
    assert json.loads(post.content) == {"content": "hi"}
    assert post.headers["Authorization"] == "Bot bot-token"


@pytest.mark.asyncio
async def test_missing_token_raises_notification_error() -> None:
    api = RecordingDiscord()
    client = _client(api, token=None)

    with pytest.raises(NotificationError, match="not configured"):
        await client.send_message(DM_CHANNEL_ID, {"content": "hi"})
    assert api.requests == []


@pytest.mark.asyncio
async def test_server_errors_open_the_circuit() -> None:
    api = RecordingDiscord(status_code=503)
    client = _client(api, threshold=2)

    for _ in range(2):
        with pytest.raises(NotificationError):
            await client.send_message(DM_CHANNEL_ID, {"content": "hi"})

    assert client.circuit_breaker.get_state() == CircuitState.OPEN
    with pytest.raises(CircuitOpenError):
        await client.send_message(DM_CHANNEL_ID, {"content": "hi"})
    assert len(api.requests) == 2
    await client.close()


@pytest.mark.asyncio
async def test_client_errors_do_not_trip_the_circuit() -> None:
    api = RecordingDiscord(status_code=403)
    client = _client(api, threshold=1)

    with pytest.raises(NotificationError, match="403"):
        await client.send_message(DM_CHANNEL_ID, {"content": "hi"})

    assert client.circuit_breaker.get_state() == CircuitState.CLOSED
    await client.close()


@pytest.mark.asyncio
async def test_transport_failure_counts_as_failure() -> None:
    def _fail(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = DiscordMessageClient(_config(threshold=1), transport=httpx.MockTransport(_fail))

    with pytest.raises(NotificationError, match="request failed"):
        await client.send_message(DM_CHANNEL_ID, {"content": "hi"})

    assert client.circuit_breaker.get_state() == CircuitState.OPEN
    await client.close()


def test_circuit_breaker_half_opens_after_timeout() -> None:
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0.0)

    breaker.record_failure()
    assert breaker.get_state() == CircuitState.OPEN

    assert not breaker.is_open()
    assert breaker.get_state() == CircuitState.HALF_OPEN
    breaker.record_success()
    assert breaker.get_state() == CircuitState.CLOSED


def test_circuit_breaker_reopens_on_half_open_failure() -> None:
    breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=0.0)
    for _ in range(3):
        breaker.record_failure()
    breaker.is_open()

    breaker.record_failure()

    assert breaker.get_state() == CircuitState.OPEN


@pytest.mark.asyncio
async def test_registration_notification_sends_embed() -> None:
    api = RecordingDiscord()
    notifications = TrackerNotificationService(_client(api), frontend_url="https://league.test/")

    await notifications.send_registration_notification(
        "reg-1", "guild-1", "42", "https://rocketleague.tracker.network/x"
    )
    await notifications.close()

    body = json.loads(api.requests[-1].content)
    embed = body["embeds"][0]
    assert embed["url"] == "https://league.test/trackers"
    assert {"name": "Registration", "value": "reg-1", "inline": True} in embed["fields"]
    assert {"name": "Server", "value": "guild-1", "inline": True} in embed["fields"]
    assert "pending admin approval" in embed["description"]


@pytest.mark.asyncio
async def test_registration_notification_propagates_failures() -> None:
    notifications = TrackerNotificationService(_client(RecordingDiscord(status_code=500)))

    with pytest.raises(NotificationError):
        await notifications.send_registration_notification(
            "reg-1", "guild-1", "42", "https://example.com"
        )
    await notifications.close()
