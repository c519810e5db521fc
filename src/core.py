"""Builds the notification core from settings.

Registries and services are constructed once at startup and handed to the
routes through ``app.state``; nothing here is a module-level singleton.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from src.clients.chat import SlackChatProvider, TeamsChatProvider
from src.clients.sendgrid_email import SendGridEmailProvider
from src.clients.twilio_sms import TwilioSmsProvider
from src.config import Settings, settings as default_settings
from src.handlers.notification_service import NotificationService, parse_fallback_chains
from src.handlers.webhook_dispatcher import WebhookDispatcher
from src.handlers.worker import NotificationWorker
from src.schemas.webhooks import RetryPolicy
from src.services.job_queue import JobQueue
from src.services.nonce_store import NonceStore
from src.services.provider_registry import ProviderRegistry
from src.services.rate_limiter import RateLimitConfig, RateLimiter
from src.templates.defaults import load_default_templates
from src.templates.engine import TemplateEngine

logger = logging.getLogger(__name__)


@dataclass
class NotificationCore:
    notifications: NotificationService
    worker: NotificationWorker
    webhooks: WebhookDispatcher

    async def close(self) -> None:
        await self.worker.stop()
        await self.webhooks.aclose()
        await self.notifications.providers.close()


def register_configured_providers(registry: ProviderRegistry) -> None:
    """Register every provider, in preference order; unconfigured ones are rejected."""
    for provider in (
        TwilioSmsProvider(),
        SendGridEmailProvider(),
        SlackChatProvider(),
        TeamsChatProvider(),
    ):
        registry.register(provider)


def build_core(config: Settings = default_settings, queue: JobQueue | None = None) -> NotificationCore:
    retry_policy = RetryPolicy(
        max_retries=config.notification_max_retries,
        initial_delay_seconds=config.notification_initial_delay_seconds,
        backoff_multiplier=config.notification_backoff_multiplier,
        max_delay_seconds=config.notification_max_delay_seconds,
    )
    rate_limiter = RateLimiter(
        RateLimitConfig(
            max_per_hour=config.rate_limit_max_per_hour,
            max_per_day=config.rate_limit_max_per_day,
            max_per_scope=config.rate_limit_max_per_scope,
        )
    )
    providers = ProviderRegistry()
    register_configured_providers(providers)
    if not providers.providers():
        logger.error("No notification providers configured; every job will exhaust its fallback chain")

    queue = queue or JobQueue(lease_seconds=config.worker_lease_seconds)
    service = NotificationService(
        providers=providers,
        templates=load_default_templates(TemplateEngine()),
        rate_limiter=rate_limiter,
        queue=queue,
        fallback_chains=parse_fallback_chains(config.fallback_chains),
        retry_policy=retry_policy,
        default_chat_destination=config.default_chat_destination,
    )
    worker = NotificationWorker(
        service,
        queue,
        retry_policy,
        concurrency=config.worker_concurrency,
        poll_interval=config.worker_poll_interval_seconds,
    )
    webhooks = WebhookDispatcher(nonce_store=NonceStore(config.webhook_nonce_store_max_size))
    return NotificationCore(notifications=service, worker=worker, webhooks=webhooks)
