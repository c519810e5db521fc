"""Signed fan-out of domain events to organisation webhook subscribers.

Each broadcast builds one envelope and one nonce, serialises it once, and signs
those exact bytes per subscriber with HMAC-SHA256. Deliveries run as independent
tasks so a slow endpoint never holds up the others; a failed delivery is retried
with exponential backoff using the same body and nonce.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
import secrets
from typing import Any, Awaitable, Callable

import httpx

from src.config import settings
from src.exceptions import WebhookNotFound
from src.schemas.notifications import utc_now
from src.schemas.webhooks import (
    RetryPolicy,
    WebhookConfig,
    WebhookDeliveryAttempt,
    WebhookEnvelope,
    WebhookSubscription,
)
from src.services.backoff import backoff_delay, should_retry
from src.services.nonce_store import NonceStore

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-VMS-Signature"
EVENT_HEADER = "X-VMS-Event"
TIMESTAMP_HEADER = "X-VMS-Timestamp"
NONCE_HEADER = "X-VMS-Nonce"

TEST_EVENT = "webhook.test"

# Test events get a single attempt.
TEST_RETRY_POLICY = RetryPolicy(max_retries=0)


def sign_payload(payload: bytes | str, secret: str) -> str:
    data = payload.encode("utf-8") if isinstance(payload, str) else payload
    return hmac.new(secret.encode("utf-8"), data, hashlib.sha256).hexdigest()


def serialize_envelope(envelope: WebhookEnvelope) -> bytes:
    return json.dumps(
        envelope.model_dump(by_alias=True), separators=(",", ":"), default=str
    ).encode("utf-8")


def _timestamp() -> str:
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


class WebhookDispatcher:
    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        nonce_store: NonceStore | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client = client or httpx.AsyncClient(timeout=settings.webhook_timeout_seconds)
        self._nonces = nonce_store or NonceStore(settings.webhook_nonce_store_max_size)
        self._sleep = sleep
        self._webhooks: dict[str, WebhookSubscription] = {}
        self._tasks: set[asyncio.Task] = set()

    def register_webhook(self, webhook_id: str, config: WebhookConfig) -> WebhookSubscription:
        subscription = WebhookSubscription(
            id=webhook_id,
            org_id=config.org_id,
            url=str(config.url),
            secret=config.secret,
            subscribed_events=frozenset(config.events),
            is_active=config.is_active,
            retry=config.retry,
        )
        self._webhooks[webhook_id] = subscription
        logger.info("Registered webhook: %s -> %s", webhook_id, config.url)
        return subscription

    def unregister_webhook(self, webhook_id: str) -> bool:
        removed = self._webhooks.pop(webhook_id, None) is not None
        if removed:
            logger.info("Unregistered webhook: %s", webhook_id)
        return removed

    def get_webhooks(self) -> dict[str, WebhookSubscription]:
        return dict(self._webhooks)

    def select_targets(
        self, event: str, org_id: str, target_ids: list[str] | None = None
    ) -> list[WebhookSubscription]:
        candidates = self._webhooks.values()
        if target_ids is not None:
            wanted = set(target_ids)
            candidates = [s for s in candidates if s.id in wanted]
        return [s for s in candidates if s.org_id == org_id and s.accepts(event)]

    async def broadcast(
        self,
        event: str,
        data: dict[str, Any],
        org_id: str,
        target_ids: list[str] | None = None,
    ) -> list[asyncio.Task]:
        """Start delivery to every matching subscriber and return without waiting.

        The returned tasks resolve to the final ``WebhookDeliveryAttempt`` of each
        delivery; callers are free to ignore them.
        """
        targets = self.select_targets(event, org_id, target_ids)
        if not targets:
            logger.debug("No webhook subscribers for %s in org %s", event, org_id)
            return []

        envelope = WebhookEnvelope(
            event=event,
            data=data,
            timestamp=_timestamp(),
            org_id=org_id,
            nonce=secrets.token_hex(16),
        )
        body = serialize_envelope(envelope)
        tasks = [self._spawn(subscription, envelope, body) for subscription in targets]
        logger.info("Broadcasting %s to %d webhook(s) (nonce %s)", event, len(tasks), envelope.nonce)
        return tasks

    async def test_webhook(self, webhook_id: str) -> WebhookDeliveryAttempt:
        """Send a ``webhook.test`` event to one subscription and wait for the outcome."""
        subscription = self._webhooks.get(webhook_id)
        if subscription is None:
            raise WebhookNotFound(webhook_id)
        envelope = WebhookEnvelope(
            event=TEST_EVENT,
            data={"message": "This is a test webhook", "timestamp": _timestamp()},
            timestamp=_timestamp(),
            org_id=subscription.org_id,
            nonce=secrets.token_hex(16),
        )
        return await self._deliver(subscription, envelope, serialize_envelope(envelope), TEST_RETRY_POLICY)

    def _spawn(self, subscription: WebhookSubscription, envelope: WebhookEnvelope, body: bytes) -> asyncio.Task:
        task = asyncio.create_task(self._deliver(subscription, envelope, body))
        self._tasks.add(task)
        task.add_done_callback(self._delivery_done)
        return task

    def _delivery_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Webhook delivery task crashed", exc_info=exc)

    async def _deliver(
        self,
        subscription: WebhookSubscription,
        envelope: WebhookEnvelope,
        body: bytes,
        retry: RetryPolicy | None = None,
    ) -> WebhookDeliveryAttempt:
        policy = retry or subscription.retry
        signature = sign_payload(body, subscription.secret)
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: signature,
            EVENT_HEADER: envelope.event,
            TIMESTAMP_HEADER: envelope.timestamp,
            NONCE_HEADER: envelope.nonce,
            "User-Agent": settings.webhook_user_agent,
        }
        attempt_number = 1
        while True:
            attempt = await self._post_once(subscription, body, headers, signature, envelope.nonce, attempt_number)
            if attempt.success:
                subscription.last_success_at = utc_now()
                subscription.failure_count = 0
                logger.info(
                    "Webhook %s delivered (attempt %d): %s", subscription.id, attempt_number, attempt.status_code
                )
                return attempt

            subscription.last_failure_at = utc_now()
            subscription.failure_count += 1
            logger.warning("Webhook %s failed (attempt %d): %s", subscription.id, attempt_number, attempt.error)

            if not should_retry(policy, attempt_number):
                logger.error(
                    "Webhook %s failed after %d retries: %s",
                    subscription.id, policy.max_retries, attempt.error,
                )
                return attempt

            delay = backoff_delay(policy, attempt_number)
            logger.info("Webhook %s will retry in %.2fs (attempt %d)", subscription.id, delay, attempt_number + 1)
            await self._sleep(delay)
            attempt_number += 1

    async def _post_once(
        self,
        subscription: WebhookSubscription,
        body: bytes,
        headers: dict[str, str],
        signature: str,
        nonce: str,
        attempt_number: int,
    ) -> WebhookDeliveryAttempt:
        attempt = WebhookDeliveryAttempt(
            subscription_id=subscription.id, attempt=attempt_number, signature=signature, nonce=nonce
        )
        try:
            resp = await self._client.post(subscription.url, content=body, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            attempt.error = str(exc) or exc.__class__.__name__
            return attempt
        attempt.status_code = resp.status_code
        attempt.success = 200 <= resp.status_code < 300
        if not attempt.success:
            attempt.error = f"HTTP {resp.status_code}"
        return attempt

    def validate_signature(
        self,
        payload: bytes | str,
        signature: str,
        secret: str,
        nonce: str | None = None,
    ) -> bool:
        """Check an inbound signature in constant time and reject replayed nonces.

        A nonce is only recorded once the signature has been verified.
        """
        expected = sign_payload(payload, secret).encode("ascii")
        if not hmac.compare_digest(expected, (signature or "").strip().encode("utf-8")):
            logger.warning("Webhook signature mismatch")
            return False
        if nonce is not None and not self._nonces.add_if_absent(nonce):
            logger.warning("Webhook replay attempt detected: %s", nonce)
            return False
        return True

    async def drain(self) -> None:
        """Wait for every in-flight delivery, retries included."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.drain()
        await self._client.aclose()
