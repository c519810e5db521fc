"""Registry of active channel providers.

Resolution is by channel type. When several providers share a channel type the
first one registered always wins; register providers in order of preference.
"""

from __future__ import annotations

import logging

from src.clients.base import ChannelProvider
from src.schemas.notifications import ChannelType

logger = logging.getLogger(__name__)


class ProviderRegistry:
    def __init__(self) -> None:
        self._providers: dict[str, ChannelProvider] = {}

    def register(self, provider: ChannelProvider) -> bool:
        """Add ``provider`` if its configuration validates. Returns whether it was added."""
        if not provider.validate_config():
            logger.error("Provider %s has invalid configuration; not registering", provider.name)
            return False
        if provider.name in self._providers:
            logger.warning("Provider %s already registered; keeping the first instance", provider.name)
            return False
        self._providers[provider.name] = provider
        logger.info("Registered notification provider: %s (%s)", provider.name, provider.channel_type.value)
        return True

    def resolve(self, channel_type: ChannelType) -> ChannelProvider | None:
        for provider in self._providers.values():
            if provider.channel_type == channel_type:
                return provider
        return None

    def providers(self) -> list[ChannelProvider]:
        return list(self._providers.values())

    async def close(self) -> None:
        for provider in self._providers.values():
            try:
                await provider.close()
            except Exception as exc:
                logger.warning("Error closing provider %s: %s", provider.name, exc)
