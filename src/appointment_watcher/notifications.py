"""
Notification channels for the appointment watcher.

Every channel exposes a tri-state permission (granted, denied, undetermined)
that is resolved asynchronously before anything is sent. The router performs
that permission flow and delivers with retry and exponential backoff.
"""

import asyncio
import sys
from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, Protocol, TextIO, runtime_checkable

import httpx

from .config import (
    DiscordConfig,
    RetryConfig,
    TelegramConfig,
    WebhookConfig,
)
from .enums import LogLevel, Permission
from .exceptions import NotificationError

if TYPE_CHECKING:
    from .event_log import EventLogger


@dataclass
class AlertPayload:
    """Payload for an availability alert."""

    title: str
    body: str
    timestamps: list[str] = field(default_factory=list)
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


@dataclass
class DeliveryResult:
    """Result of delivering one alert to one channel."""

    channel: str
    success: bool
    permission: Permission
    error: Optional[str] = None
    attempts: int = 0


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol defining the interface for notification channels."""

    @abstractmethod
    def get_name(self) -> str:
        ...

    @abstractmethod
    async def permission(self) -> Permission:
        """Current permission state, without prompting."""
        ...

    @abstractmethod
    async def request_permission(self) -> Permission:
        """Resolve an undetermined permission; returns the new state."""
        ...

    @abstractmethod
    async def send(self, payload: AlertPayload) -> bool:
        """
        Send a notification.

        Returns:
            True if delivery was successful, False on network failure

        Raises:
            NotificationError: If the service rejected the delivery
        """
        ...


class ConsoleChannel:
    """Writes alerts to a text stream. Always permitted."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream

    def get_name(self) -> str:
        return "console"

    async def permission(self) -> Permission:
        return Permission.GRANTED

    async def request_permission(self) -> Permission:
        return Permission.GRANTED

    async def send(self, payload: AlertPayload) -> bool:
        stream = self._stream or sys.stdout
        stream.write(f"*** {payload.title} ***\n{payload.body}\n")
        stream.flush()
        return True


class TelegramChannel:
    """
    Telegram notification channel using the Bot API.

    Permission starts undetermined; requesting it verifies the bot token
    with ``getMe``. A missing token or chat id is a denial.
    """

    def __init__(
        self,
        config: TelegramConfig,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._bot_token = config.bot_token
        self._chat_id = config.chat_id
        self._base_url = f"https://api.telegram.org/bot{self._bot_token}"
        self._client = client
        if not self._bot_token or not self._chat_id:
            self._permission = Permission.DENIED
        else:
            self._permission = Permission.UNDETERMINED

    def get_name(self) -> str:
        return "telegram"

    async def permission(self) -> Permission:
        return self._permission

    async def request_permission(self) -> Permission:
        if self._permission is not Permission.UNDETERMINED:
            return self._permission
        try:
            response = await self._request("GET", f"{self._base_url}/getMe")
            verified = response.status_code == 200 and bool(response.json().get("ok"))
        except (httpx.HTTPError, ValueError):
            # Network trouble is not a verdict on the token.
            return Permission.UNDETERMINED
        if verified:
            self._permission = Permission.GRANTED
        elif response.status_code in (401, 404):
            self._permission = Permission.DENIED
        return self._permission

    async def send(self, payload: AlertPayload) -> bool:
        try:
            response = await self._request(
                "POST",
                f"{self._base_url}/sendMessage",
                json={
                    "chat_id": self._chat_id,
                    "text": self._format_message(payload),
                    "disable_web_page_preview": True,
                },
            )
        except httpx.HTTPError:
            return False
        if response.status_code != 200:
            raise NotificationError(
                self.get_name(),
                f"Telegram returned status {response.status_code}",
                status_code=response.status_code,
            )
        return True

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, url, timeout=30.0, **kwargs)
        async with httpx.AsyncClient() as client:
            return await client.request(method, url, timeout=30.0, **kwargs)

    def _format_message(self, payload: AlertPayload) -> str:
        lines = [f"🔔 {payload.title}", "", payload.body]
        lines.extend(f"• {ts}" for ts in payload.timestamps)
        return "\n".join(lines)


class DiscordChannel:
    """
    Discord notification channel using Webhooks.

    Permission starts undetermined; a GET on the webhook URL answering 200
    grants it, 401/404 denies it.
    """

    def __init__(
        self,
        config: DiscordConfig,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._webhook_url = config.webhook_url
        self._client = client
        self._permission = (
            Permission.UNDETERMINED if self._webhook_url else Permission.DENIED
        )

    def get_name(self) -> str:
        return "discord"

    async def permission(self) -> Permission:
        return self._permission

    async def request_permission(self) -> Permission:
        if self._permission is not Permission.UNDETERMINED:
            return self._permission
        try:
            response = await self._request("GET")
        except httpx.HTTPError:
            return Permission.UNDETERMINED
        if response.status_code == 200:
            self._permission = Permission.GRANTED
        elif response.status_code in (401, 404):
            self._permission = Permission.DENIED
        return self._permission

    async def send(self, payload: AlertPayload) -> bool:
        try:
            response = await self._request("POST", json={"embeds": [self._format_embed(payload)]})
        except httpx.HTTPError:
            return False
        # Discord returns 204 No Content on success
        if response.status_code not in (200, 204):
            raise NotificationError(
                self.get_name(),
                f"Discord returned status {response.status_code}",
                status_code=response.status_code,
            )
        return True

    async def _request(self, method: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, self._webhook_url, timeout=30.0, **kwargs)
        async with httpx.AsyncClient() as client:
            return await client.request(method, self._webhook_url, timeout=30.0, **kwargs)

    def _format_embed(self, payload: AlertPayload) -> dict:
        return {
            "title": f"🔔 {payload.title}",
            "description": payload.body,
            "color": 0x00FF00,
            "fields": [
                {"name": "Slot", "value": ts, "inline": False}
                for ts in payload.timestamps[:25]
            ],
        }


class WebhookChannel:
    """Generic webhook notification channel using HTTP POST. Always permitted."""

    def __init__(
        self,
        config: WebhookConfig,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._url = config.url
        self._headers = config.headers.copy()
        self._client = client

    def get_name(self) -> str:
        return "webhook"

    async def permission(self) -> Permission:
        return Permission.GRANTED

    async def request_permission(self) -> Permission:
        return Permission.GRANTED

    async def send(self, payload: AlertPayload) -> bool:
        data = {
            "title": payload.title,
            "body": payload.body,
            "timestamps": payload.timestamps,
            "created_at": payload.created_at,
        }
        headers = {"Content-Type": "application/json"}
        headers.update(self._headers)

        try:
            if self._client is not None:
                response = await self._client.post(self._url, json=data, headers=headers, timeout=30.0)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(self._url, json=data, headers=headers, timeout=30.0)
        except httpx.HTTPError:
            return False
        if not 200 <= response.status_code < 300:
            raise NotificationError(
                self.get_name(),
                f"Webhook returned status {response.status_code}",
                status_code=response.status_code,
            )
        return True


class NotificationRouter:
    """
    Delivers alerts to registered channels.

    For each channel: granted → send; undetermined → request permission and
    send only if granted; denied → skip silently. Sending is retried with
    exponential backoff. Nothing here raises to the caller.
    """

    def __init__(
        self,
        retry_config: RetryConfig,
        logger: Optional["EventLogger"] = None,
    ) -> None:
        self._channels: list[NotificationChannel] = []
        self._retry_config = retry_config
        self._logger = logger

    def register_channel(self, channel: NotificationChannel) -> None:
        self._channels.append(channel)

    def unregister_channel(self, channel_name: str) -> bool:
        for i, channel in enumerate(self._channels):
            if channel.get_name() == channel_name:
                self._channels.pop(i)
                return True
        return False

    @property
    def channels(self) -> list[NotificationChannel]:
        """Get list of registered channels."""
        return self._channels.copy()

    async def resolve_permission(self, channel: NotificationChannel) -> Permission:
        """Run the tri-state permission flow for one channel."""
        try:
            permission = await channel.permission()
            if permission is Permission.UNDETERMINED:
                permission = await channel.request_permission()
        except Exception as e:
            self._log(
                LogLevel.WARN,
                f"Permission check failed for channel '{channel.get_name()}'",
                {"channel": channel.get_name(), "error": str(e)},
            )
            return Permission.DENIED
        return permission

    async def deliver_all(self, payload: AlertPayload) -> list[DeliveryResult]:
        """Deliver ``payload`` to every channel concurrently."""
        if not self._channels:
            return []
        return list(await asyncio.gather(
            *(self.deliver(channel, payload) for channel in self._channels)
        ))

    async def deliver(
        self,
        channel: NotificationChannel,
        payload: AlertPayload,
    ) -> DeliveryResult:
        """Deliver ``payload`` to a single channel."""
        channel_name = channel.get_name()
        permission = await self.resolve_permission(channel)
        if permission is not Permission.GRANTED:
            self._log(
                LogLevel.DEBUG,
                f"Notification suppressed for channel '{channel_name}'",
                {"channel": channel_name, "permission": permission.value},
            )
            return DeliveryResult(
                channel=channel_name,
                success=False,
                permission=permission,
                attempts=0,
            )
        return await self._send_with_retry(channel, payload)

    async def _send_with_retry(
        self,
        channel: NotificationChannel,
        payload: AlertPayload,
    ) -> DeliveryResult:
        channel_name = channel.get_name()
        max_attempts = self._retry_config.max_retries + 1
        attempts = 0
        errors: list[str] = []

        while attempts < max_attempts:
            attempts += 1
            try:
                if await channel.send(payload):
                    return DeliveryResult(
                        channel=channel_name,
                        success=True,
                        permission=Permission.GRANTED,
                        attempts=attempts,
                    )
                errors.append("Channel returned failure")
            except Exception as e:
                errors.append(str(e) or type(e).__name__)

            # Don't delay after the last attempt
            if attempts < max_attempts:
                await asyncio.sleep(self._calculate_delay(attempts - 1))

        self._log(
            LogLevel.ERROR,
            f"All notification retries failed for channel '{channel_name}'",
            {"channel": channel_name, "total_attempts": attempts, "errors": errors},
        )
        return DeliveryResult(
            channel=channel_name,
            success=False,
            permission=Permission.GRANTED,
            error=errors[-1] if errors else None,
            attempts=attempts,
        )

    def _calculate_delay(self, attempt: int) -> float:
        """Exponential backoff: base * 2^attempt, capped at max delay."""
        delay = self._retry_config.base_delay_seconds * (2 ** attempt)
        return min(delay, self._retry_config.max_delay_seconds)

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger is not None:
            self._logger.log(level, "NotificationRouter", message, data)
