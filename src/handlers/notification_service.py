"""Turns domain events into queued notification jobs and walks their fallback chains.

An event type without a configured chain, or a rate-limited subject, is skipped
without raising: callers of ``emit`` are fire-and-forget. Within one job the chain
is walked strictly in order and a failing step moves straight on to the next
channel; retrying the whole chain later is the worker's job.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Callable

from src.clients.base import ChannelProvider
from src.config import settings
from src.exceptions import AllProvidersFailed, RenderError, TemplateMissing
from src.schemas.notifications import (
    ChainStep,
    ChannelMessage,
    ChannelType,
    DeliveryResult,
    DispatchOutcome,
    EmitSkipReason,
    NotificationEventType,
    NotificationJob,
    utc_now,
)
from src.schemas.webhooks import RetryPolicy
from src.services.job_queue import JobQueue
from src.services.provider_registry import ProviderRegistry
from src.services.rate_limiter import RateLimiter
from src.templates.engine import TemplateEngine, lookup_path

logger = logging.getLogger(__name__)

# Context paths tried in order for each channel.
_RECIPIENT_PATHS: dict[ChannelType, tuple[str, ...]] = {
    ChannelType.SMS: ("host.phone", "visitor.phone"),
    ChannelType.EMAIL: ("host.email", "visitor.email"),
    ChannelType.CHAT: ("host.slackId", "host.teamsId"),
}


def extract_recipient(
    template_data: dict[str, Any],
    channel_type: ChannelType,
    default_chat_destination: str | None = None,
) -> str | None:
    for path in _RECIPIENT_PATHS.get(channel_type, ()):
        value = lookup_path(template_data, path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    if channel_type == ChannelType.CHAT:
        return default_chat_destination or None
    return None


def parse_fallback_chains(raw: dict[str, list[str]]) -> dict[NotificationEventType, list[ChannelType]]:
    """Validate the configured chains. Unknown event or channel names fail loudly at startup."""
    chains: dict[NotificationEventType, list[ChannelType]] = {}
    for event_name, channels in raw.items():
        chain = [ChannelType(c.upper()) for c in channels]
        if chain:
            chains[NotificationEventType(event_name.upper())] = chain
    return chains


class NotificationService:
    def __init__(
        self,
        providers: ProviderRegistry,
        templates: TemplateEngine,
        rate_limiter: RateLimiter,
        queue: JobQueue,
        fallback_chains: dict[NotificationEventType, list[ChannelType]],
        retry_policy: RetryPolicy,
        default_chat_destination: str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.providers = providers
        self.templates = templates
        self.rate_limiter = rate_limiter
        self.queue = queue
        self.retry_policy = retry_policy
        self._fallback_chains = fallback_chains
        self._default_chat_destination = (
            settings.default_chat_destination if default_chat_destination is None else default_chat_destination
        )
        self._clock = clock
        self.skipped: Counter[EmitSkipReason] = Counter()

    def register_provider(self, provider: ChannelProvider) -> bool:
        return self.providers.register(provider)

    def fallback_chain(self, event_type: NotificationEventType) -> list[ChannelType]:
        return list(self._fallback_chains.get(event_type, []))

    async def emit(
        self,
        event_type: NotificationEventType,
        context: dict[str, Any],
        subject_key: str,
        scope_key: str | None = None,
        scheduled_at: datetime | None = None,
        org_id: str | None = None,
        job_id: str | None = None,
    ) -> str | None:
        """Queue a notification. Returns the job id, or None when the event was skipped."""
        job_id, _ = await self.submit(
            event_type, context, subject_key, scope_key, scheduled_at, org_id=org_id, job_id=job_id
        )
        return job_id

    async def submit(
        self,
        event_type: NotificationEventType,
        context: dict[str, Any],
        subject_key: str,
        scope_key: str | None = None,
        scheduled_at: datetime | None = None,
        org_id: str | None = None,
        job_id: str | None = None,
    ) -> tuple[str | None, EmitSkipReason | None]:
        """Like ``emit`` but also reports why an event was skipped."""
        chain = self.fallback_chain(event_type)
        if not chain:
            logger.error("No fallback chain configured for %s; dropping event", event_type.value)
            self.skipped[EmitSkipReason.NO_FALLBACK_CONFIGURED] += 1
            return None, EmitSkipReason.NO_FALLBACK_CONFIGURED

        if not self.rate_limiter.check_and_consume(subject_key, scope_key):
            logger.warning("Rate limit exceeded for %s; %s not queued", subject_key, event_type.value)
            self.skipped[EmitSkipReason.RATE_LIMITED] += 1
            return None, EmitSkipReason.RATE_LIMITED

        now = self._clock()
        if scheduled_at is not None and scheduled_at.tzinfo is None:
            scheduled_at = scheduled_at.replace(tzinfo=timezone.utc)
        delay = max(0.0, (scheduled_at - now).total_seconds()) if scheduled_at else 0.0

        job = NotificationJob(
            id=job_id or uuid.uuid4().hex,
            event_type=event_type,
            template_data=context,
            fallback_chain=chain,
            max_retries=self.retry_policy.max_retries,
            subject_key=subject_key,
            scope_key=scope_key,
            org_id=org_id,
            created_at=now,
            scheduled_at=scheduled_at,
        )
        await self.queue.enqueue(job, delay)
        logger.info("Queued notification job %s for %s (delay %.1fs)", job.id, event_type.value, delay)
        return job.id, None

    async def process_job(self, job: NotificationJob) -> DispatchOutcome:
        """Walk the job's fallback chain from ``current_index`` until one provider succeeds.

        Raises ``TemplateMissing`` when a channel has a provider but no template, and
        ``AllProvidersFailed`` once the chain is exhausted.
        """
        steps: list[ChainStep] = []
        errors: list[str] = []

        while job.current_index < len(job.fallback_chain):
            index = job.current_index
            channel = job.fallback_chain[index]

            provider = self.providers.resolve(channel)
            if provider is None:
                logger.error("No provider registered for %s; skipping step %d of job %s", channel.value, index, job.id)
                steps.append(ChainStep(index=index, channel_type=channel, error="no provider registered"))
                job.current_index += 1
                continue

            template = self.templates.select_template(job.event_type, channel)
            if template is None:
                logger.error("No template for %s/%s (job %s)", job.event_type.value, channel.value, job.id)
                raise TemplateMissing(job.event_type.value, channel.value)

            result = await self._attempt(job, provider, template.id, channel)
            steps.append(
                ChainStep(
                    index=index,
                    channel_type=channel,
                    provider=provider.name,
                    success=result.success,
                    error=result.error,
                )
            )
            if result.success:
                logger.info("Notification sent via %s for job %s: %s", provider.name, job.id, result.message_id)
                return DispatchOutcome(job_id=job.id, result=result, steps=steps)

            logger.warning("Notification failed via %s for job %s: %s", provider.name, job.id, result.error)
            errors.append(f"{provider.name}: {result.error}")
            job.current_index += 1

        logger.error("All providers in fallback chain failed for job %s", job.id)
        raise AllProvidersFailed(job.id, errors)

    async def _attempt(
        self,
        job: NotificationJob,
        provider: ChannelProvider,
        template_id: str,
        channel: ChannelType,
    ) -> DeliveryResult:
        recipient = extract_recipient(job.template_data, channel, self._default_chat_destination)
        if not recipient:
            return DeliveryResult(success=False, provider=provider.name, error=f"no recipient for {channel.value}")

        try:
            rendered = self.templates.render(template_id, job.template_data)
        except RenderError as exc:
            logger.error("Cannot render %s for job %s: %s", template_id, job.id, exc)
            return DeliveryResult(success=False, provider=provider.name, error=str(exc))

        message = ChannelMessage(
            to=recipient,
            subject=rendered.subject,
            text=rendered.text,
            html=rendered.html,
            metadata={
                "job_id": job.id,
                "event_type": job.event_type.value,
                "org_id": job.org_id,
                "subject_key": job.subject_key,
                "scope_key": job.scope_key,
            },
        )
        try:
            return await provider.send(message)
        except Exception as exc:
            logger.exception("Provider %s raised while sending job %s", provider.name, job.id)
            return DeliveryResult(success=False, provider=provider.name, error=f"provider raised: {exc}")
