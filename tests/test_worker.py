"""Tests for the durable job queue and the retrying worker."""

import asyncio
from unittest.mock import AsyncMock, patch

from src.handlers.notification_service import NotificationService
from src.handlers.worker import NotificationWorker
from src.models.notification_job import STATUS_FAILED, STATUS_PENDING, STATUS_RUNNING, STATUS_SUCCEEDED
from src.schemas.notifications import ChannelType, NotificationEventType, NotificationJob, NotificationTemplate
from src.schemas.webhooks import RetryPolicy
from src.services.job_queue import JobQueue
from src.services.provider_registry import ProviderRegistry
from src.services.rate_limiter import RateLimitConfig, RateLimiter
from src.templates.engine import TemplateEngine
from tests.fakes import FakeClock, FakeProvider

HOST_ALERT = NotificationEventType.HOST_ALERT
CONTEXT = {"host": {"email": "a@b.com"}}
POLICY = RetryPolicy(max_retries=2, initial_delay_seconds=10, backoff_multiplier=3)


def _setup(*providers: FakeProvider, templates: TemplateEngine | None = None, lease_seconds: float = 300):
    clock = FakeClock()
    if templates is None:
        templates = TemplateEngine(markup_compiler=lambda m: m)
        templates.register_template(
            NotificationTemplate(
                id="host_alert_email",
                name="Host alert email",
                event_type=HOST_ALERT,
                channel_type=ChannelType.EMAIL,
                text_template="Your visitor is here",
            )
        )
    registry = ProviderRegistry()
    for provider in providers:
        registry.register(provider)
    queue = JobQueue(lease_seconds=lease_seconds, clock=clock)
    service = NotificationService(
        providers=registry,
        templates=templates,
        rate_limiter=RateLimiter(RateLimitConfig(max_per_hour=100, max_per_day=100, max_per_scope=100)),
        queue=queue,
        fallback_chains={HOST_ALERT: [ChannelType.EMAIL]},
        retry_policy=POLICY,
        clock=clock,
    )
    worker = NotificationWorker(service, queue, POLICY, concurrency=4, poll_interval=0.01)
    return clock, queue, service, worker


async def test_successful_job_is_completed():
    email = FakeProvider("email", ChannelType.EMAIL)
    _, queue, service, worker = _setup(email)

    job_id = await service.emit(HOST_ALERT, CONTEXT, subject_key="visitor-1")
    assert await worker.run_once() == 1

    record = await queue.get(job_id)
    assert record.status == STATUS_SUCCEEDED
    assert record.deliveries == 1
    assert len(email.sent) == 1


async def test_failed_chain_is_retried_from_start_with_backoff():
    email = FakeProvider("email", ChannelType.EMAIL, succeed=False)
    clock, queue, service, worker = _setup(email)

    job_id = await service.emit(HOST_ALERT, CONTEXT, subject_key="visitor-1")
    await worker.run_once()

    record = await queue.get(job_id)
    assert record.status == STATUS_PENDING
    assert "All providers in fallback chain failed" in record.last_error
    stored = NotificationJob.model_validate_json(record.payload_json)
    assert stored.retry_count == 1
    assert stored.current_index == 0

    # First retry waits initial_delay_seconds.
    clock.advance(9)
    assert await worker.run_once() == 0
    clock.advance(1)
    assert await worker.run_once() == 1

    # Second retry waits initial * multiplier.
    clock.advance(29)
    assert await worker.run_once() == 0
    clock.advance(1)
    assert await worker.run_once() == 1

    record = await queue.get(job_id)
    assert record.status == STATUS_FAILED
    assert len(email.sent) == 3


async def test_retry_succeeds_after_transient_failure():
    email = FakeProvider("email", ChannelType.EMAIL, succeed=False)
    clock, queue, service, worker = _setup(email)

    job_id = await service.emit(HOST_ALERT, CONTEXT, subject_key="visitor-1")
    await worker.run_once()
    email.succeed = True
    clock.advance(10)
    await worker.run_once()

    assert (await queue.get(job_id)).status == STATUS_SUCCEEDED


async def test_missing_template_fails_without_retry():
    email = FakeProvider("email", ChannelType.EMAIL)
    _, queue, service, worker = _setup(email, templates=TemplateEngine(markup_compiler=lambda m: m))

    job_id = await service.emit(HOST_ALERT, CONTEXT, subject_key="visitor-1")
    await worker.run_once()

    record = await queue.get(job_id)
    assert record.status == STATUS_FAILED
    assert "No template found" in record.last_error
    assert email.sent == []


async def test_running_job_is_not_redelivered_while_leased():
    email = FakeProvider("email", ChannelType.EMAIL)
    clock, queue, service, _ = _setup(email, lease_seconds=60)

    job_id = await service.emit(HOST_ALERT, CONTEXT, subject_key="visitor-1")
    assert [j.id for j in await queue.claim()] == [job_id]
    assert await queue.claim() == []

    # Worker crashed mid-flight: the lease runs out and the job comes back.
    clock.advance(61)
    redelivered = await queue.claim()
    assert [j.id for j in redelivered] == [job_id]
    record = await queue.get(job_id)
    assert record.status == STATUS_RUNNING
    assert record.deliveries == 2


async def test_cancel_only_removes_unclaimed_jobs():
    email = FakeProvider("email", ChannelType.EMAIL)
    clock, queue, service, _ = _setup(email)

    first = await service.emit(HOST_ALERT, CONTEXT, subject_key="visitor-1")
    clock.advance(1)
    second = await service.emit(HOST_ALERT, CONTEXT, subject_key="visitor-2")
    await queue.claim(limit=1)

    assert await queue.cancel(first) is False
    assert await queue.cancel(second) is True
    assert await queue.get(second) is None


async def test_started_worker_processes_queue_and_stops_cleanly():
    email = FakeProvider("email", ChannelType.EMAIL)
    _, queue, service, worker = _setup(email)

    job_ids = [await service.emit(HOST_ALERT, CONTEXT, subject_key=f"visitor-{i}") for i in range(3)]
    worker.start()
    for _ in range(200):
        if len(email.sent) == 3:
            break
        await asyncio.sleep(0.01)
    await worker.stop()

    assert len(email.sent) == 3
    for job_id in job_ids:
        assert (await queue.get(job_id)).status == STATUS_SUCCEEDED


async def test_unexpected_error_is_retried_not_dropped():
    email = FakeProvider("email", ChannelType.EMAIL)
    _, queue, service, worker = _setup(email)

    job_id = await service.emit(HOST_ALERT, CONTEXT, subject_key="visitor-1")
    with patch.object(service, "process_job", AsyncMock(side_effect=RuntimeError("boom"))):
        await worker.run_once()

    record = await queue.get(job_id)
    assert record.status == STATUS_PENDING
    assert record.last_error == "unexpected error: boom"


async def test_crashed_job_task_is_logged(caplog):
    email = FakeProvider("email", ChannelType.EMAIL)
    _, queue, service, worker = _setup(email)

    await service.emit(HOST_ALERT, CONTEXT, subject_key="visitor-1")
    with patch.object(queue, "complete", AsyncMock(side_effect=RuntimeError("database is locked"))):
        worker.start()
        for _ in range(200):
            if "Notification job task crashed" in caplog.text:
                break
            await asyncio.sleep(0.01)
        await worker.stop()

    assert "Notification job task crashed" in caplog.text
    assert "database is locked" in caplog.text
