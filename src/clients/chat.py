"""Chat providers posting to Slack and Microsoft Teams incoming webhooks."""

from __future__ import annotations

import logging
import uuid

import httpx

from src.clients.base import ChannelProvider
from src.config import settings
from src.schemas.notifications import ChannelMessage, ChannelType, DeliveryResult

logger = logging.getLogger(__name__)


class SlackChatProvider(ChannelProvider):
    """Send messages through a Slack incoming webhook."""

    name = "slack"
    channel_type = ChannelType.CHAT

    def __init__(
        self,
        webhook_url: str | None = None,
        channel: str | None = None,
        username: str | None = None,
        icon_emoji: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(client)
        self._webhook_url = settings.slack_webhook_url if webhook_url is None else webhook_url
        self._channel = settings.slack_channel if channel is None else channel
        self._username = username or settings.slack_username
        self._icon_emoji = icon_emoji or settings.slack_icon_emoji

    def validate_config(self) -> bool:
        return bool(self._webhook_url)

    async def send(self, message: ChannelMessage) -> DeliveryResult:
        if not self.validate_config():
            return self._failed("Invalid Slack configuration")
        payload: dict = {
            "text": message.text,
            "channel": message.to or self._channel,
            "username": self._username,
            "icon_emoji": self._icon_emoji,
        }
        try:
            resp = await self._client.post(self._webhook_url, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Slack webhook post to %s failed: %s", payload["channel"], exc)
            return self._failed(str(exc) or exc.__class__.__name__)
        logger.info("Slack message sent to %s", payload["channel"])
        return self._ok(f"slack_{uuid.uuid4().hex}")


class TeamsChatProvider(ChannelProvider):
    """Send MessageCards through a Teams incoming webhook."""

    name = "teams"
    channel_type = ChannelType.CHAT

    def __init__(
        self,
        webhook_url: str | None = None,
        theme_color: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(client)
        self._webhook_url = settings.teams_webhook_url if webhook_url is None else webhook_url
        self._theme_color = theme_color or settings.teams_theme_color

    def validate_config(self) -> bool:
        return bool(self._webhook_url)

    async def send(self, message: ChannelMessage) -> DeliveryResult:
        if not self.validate_config():
            return self._failed("Invalid Teams configuration")
        title = message.subject or "VMS Notification"
        payload = {
            "@type": "MessageCard",
            "@context": "http://schema.org/extensions",
            "themeColor": self._theme_color,
            "summary": title,
            "sections": [
                {
                    "activityTitle": title,
                    "activitySubtitle": "Visitor Management System",
                    "text": message.text,
                    "markdown": True,
                }
            ],
        }
        try:
            resp = await self._client.post(self._webhook_url, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Teams webhook post failed: %s", exc)
            return self._failed(str(exc) or exc.__class__.__name__)
        logger.info("Teams message sent")
        return self._ok(f"teams_{uuid.uuid4().hex}")
