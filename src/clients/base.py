"""Common contract for channel providers."""

from __future__ import annotations

from abc import ABC, abstractmethod

import httpx

from src.config import settings
from src.schemas.notifications import ChannelMessage, ChannelType, DeliveryResult


class ChannelProvider(ABC):
    """Delivers one rendered message over one channel.

    ``send`` reports expected failures (bad recipient, gateway outage) through the
    returned result and only raises for programming errors.
    """

    name: str
    channel_type: ChannelType

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient(timeout=settings.provider_timeout_seconds)

    @abstractmethod
    def validate_config(self) -> bool: ...

    @abstractmethod
    async def send(self, message: ChannelMessage) -> DeliveryResult: ...

    def _ok(self, message_id: str | None) -> DeliveryResult:
        return DeliveryResult(success=True, provider=self.name, message_id=message_id)

    def _failed(self, error: str) -> DeliveryResult:
        return DeliveryResult(success=False, provider=self.name, error=error[:500])

    async def close(self) -> None:
        await self._client.aclose()
