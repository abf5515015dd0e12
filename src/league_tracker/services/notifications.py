"""Discord notifications for tracker registrations.

This module provides:

- ``DiscordMessageClient``: an httpx-based client for the Discord REST API
  authenticated with the bot token, guarded by a circuit breaker
- ``TrackerNotificationService``: builds registration messages and sends
  them to users as direct messages

Send failures raise :class:`NotificationError` so the queue job that
triggered them is retried.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from league_tracker.core.errors import CircuitOpenError, NotificationError
from league_tracker.core.settings import settings

logger = logging.getLogger(__name__)

HTTP_BAD_REQUEST = 400
HTTP_TOO_MANY_REQUESTS = 429
HTTP_INTERNAL_SERVER_ERROR = 500

EMBED_COLOR_PENDING = 0xF1C40F


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # requests allowed
    OPEN = "open"          # requests blocked
    HALF_OPEN = "half_open"  # probing whether the API recovered


@dataclass
class CircuitBreaker:
    """Circuit breaker for Discord API calls."""

    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    success_threshold: int = 1

    _state: CircuitState = CircuitState.CLOSED
    _failure_count: int = 0
    _success_count: int = 0
    _last_failure_time: float = 0.0

    def is_open(self) -> bool:
        """Check if circuit is open."""
        if self._state == CircuitState.OPEN:
            if time.monotonic() - self._last_failure_time > self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0
            return self._state == CircuitState.OPEN
        return False

    def record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.success_threshold:
                self._state = CircuitState.CLOSED
                self._failure_count = 0
        elif self._state == CircuitState.CLOSED:
            self._failure_count = 0

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN

    def get_state(self) -> CircuitState:
        return self._state


@dataclass(frozen=True)
class DiscordConfig:
    """Immutable configuration for the Discord client."""

    bot_token: str | None
    api_url: str
    timeout_seconds: float
    breaker_threshold: int
    breaker_timeout_seconds: float


def load_discord_config() -> DiscordConfig:
    """Build configuration object from global settings."""

    return DiscordConfig(
        bot_token=settings.discord_bot_token,
        api_url=settings.discord_api_url.rstrip("/"),
        timeout_seconds=float(settings.discord_http_timeout_seconds),
        breaker_threshold=settings.discord_circuit_breaker_threshold,
        breaker_timeout_seconds=float(settings.discord_circuit_breaker_timeout_seconds),
    )


class DiscordMessageClient:
    """HTTP client wrapper for sending Discord messages as the bot."""

    def __init__(
        self,
        config: DiscordConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_discord_config()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self._circuit_breaker = CircuitBreaker(
            failure_threshold=self.config.breaker_threshold,
            recovery_timeout=self.config.breaker_timeout_seconds,
        )

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    async def _ensure_client(self) -> httpx.AsyncClient:
        if not self.config.bot_token:
            raise NotificationError("Discord bot token is not configured")

        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.config.api_url,
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    headers={"Authorization": f"Bot {self.config.bot_token}"},
                    transport=self._transport,
                )
        return self._client

    async def _request(
        self, method: str, path: str, json_data: Mapping[str, Any] | None = None
    ) -> httpx.Response:
        if self._circuit_breaker.is_open():
            raise CircuitOpenError("Discord API circuit breaker is open - service unavailable")

        client = await self._ensure_client()
        try:
            response = await client.request(method, path, json=json_data)
        except httpx.HTTPError as exc:
            self._circuit_breaker.record_failure()
            raise NotificationError(f"Discord request failed: {exc}") from exc

        if response.status_code >= HTTP_INTERNAL_SERVER_ERROR or (
            response.status_code == HTTP_TOO_MANY_REQUESTS
        ):
            self._circuit_breaker.record_failure()
            raise NotificationError(f"Discord responded with {response.status_code}")

        # 4xx other than rate limiting means the request itself was wrong;
        # the API is healthy.
        self._circuit_breaker.record_success()
        if response.status_code >= HTTP_BAD_REQUEST:
            raise NotificationError(
                f"Discord rejected {method} {path} with {response.status_code}"
            )
        return response

    async def send_message(self, channel_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Post a message to a channel and return the created message."""
        response = await self._request("POST", f"/channels/{channel_id}/messages", payload)
        return dict(response.json())

    async def send_direct_message(
        self, user_id: str, payload: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Open (or reuse) a DM channel with ``user_id`` and post ``payload`` to it."""
        response = await self._request(
            "POST", "/users/@me/channels", {"recipient_id": user_id}
        )
        channel_id = response.json().get("id")
        if not channel_id:
            raise NotificationError(f"Discord did not return a DM channel for user {user_id}")
        return await self.send_message(str(channel_id), payload)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class TrackerNotificationService:
    """Tells users what happened to their tracker registrations."""

    def __init__(
        self,
        client: DiscordMessageClient | None = None,
        frontend_url: str | None = None,
    ) -> None:
        self.client = client or DiscordMessageClient()
        self.frontend_url = (frontend_url or settings.frontend_url).rstrip("/")

    def build_registration_embed(
        self, registration_id: str, guild_id: str, url: str
    ) -> dict[str, Any]:
        return {
            "title": "Tracker registration received",
            "description": (
                "You are registered. Your tracker is pending admin approval.\n"
                f"[View tracker]({url})"
            ),
            "color": EMBED_COLOR_PENDING,
            "fields": [
                {"name": "Registration", "value": registration_id, "inline": True},
                {"name": "Server", "value": guild_id, "inline": True},
            ],
            "url": f"{self.frontend_url}/trackers",
        }

    async def send_registration_notification(
        self, registration_id: str, guild_id: str, user_id: str, url: str
    ) -> None:
        """DM the submitting user that their registration is queued.

        Raises:
            NotificationError: If Discord could not be reached or refused the message.
        """
        embed = self.build_registration_embed(registration_id, guild_id, url)
        await self.client.send_direct_message(user_id, {"embeds": [embed]})
        logger.info(
            "Sent registration notification to user %s for registration %s",
            user_id,
            registration_id,
        )

    async def close(self) -> None:
        await self.client.close()
