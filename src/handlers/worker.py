"""Background worker pulling notification jobs from the durable queue.

Each claimed job runs to a terminal state or to a scheduled whole-chain retry.
Failed chains are retried from the first channel after an exponential backoff,
at most ``job.max_retries`` times.
"""

from __future__ import annotations

import asyncio
import logging

from src.config import settings
from src.exceptions import AllProvidersFailed, TemplateMissing
from src.handlers.notification_service import NotificationService
from src.schemas.notifications import DispatchOutcome, NotificationJob
from src.schemas.webhooks import RetryPolicy
from src.services.backoff import backoff_delay
from src.services.job_queue import JobQueue

logger = logging.getLogger(__name__)


class NotificationWorker:
    def __init__(
        self,
        service: NotificationService,
        queue: JobQueue,
        retry_policy: RetryPolicy,
        concurrency: int | None = None,
        poll_interval: float | None = None,
    ) -> None:
        self._service = service
        self._queue = queue
        self._retry_policy = retry_policy
        self._concurrency = max(1, concurrency or settings.worker_concurrency)
        self._poll_interval = settings.worker_poll_interval_seconds if poll_interval is None else poll_interval
        self._in_flight: set[asyncio.Task] = set()
        self._stopping = asyncio.Event()
        self._loop_task: asyncio.Task | None = None

    async def run_once(self) -> int:
        """Claim every currently due job (up to the concurrency limit) and run them."""
        jobs = await self._queue.claim(self._concurrency)
        if jobs:
            await asyncio.gather(*(self.run_job(job) for job in jobs))
        return len(jobs)

    async def run_job(self, job: NotificationJob) -> DispatchOutcome | None:
        logger.info("Processing notification job %s (retry %d)", job.id, job.retry_count)
        try:
            outcome = await self._service.process_job(job)
        except TemplateMissing as exc:
            logger.error("Notification job %s failed permanently: %s", job.id, exc)
            await self._queue.fail(job.id, str(exc))
            return None
        except AllProvidersFailed as exc:
            await self._retry_or_fail(job, str(exc))
            return None
        except Exception as exc:
            logger.exception("Unexpected error processing notification job %s", job.id)
            await self._retry_or_fail(job, f"unexpected error: {exc}")
            return None

        await self._queue.complete(job.id)
        logger.info("Notification job %s completed via %s", job.id, outcome.result.provider)
        return outcome

    async def _retry_or_fail(self, job: NotificationJob, error: str) -> None:
        if job.retry_count >= job.max_retries:
            logger.error(
                "Notification job %s failed after %d retries: %s", job.id, job.retry_count, error
            )
            await self._queue.fail(job.id, error)
            return
        job.retry_count += 1
        job.current_index = 0
        delay = backoff_delay(self._retry_policy, job.retry_count)
        logger.warning(
            "Notification job %s will retry whole chain in %.1fs (retry %d/%d)",
            job.id, delay, job.retry_count, job.max_retries,
        )
        await self._queue.retry_later(job, delay, error)

    def start(self) -> None:
        if self._loop_task is None:
            self._stopping.clear()
            self._loop_task = asyncio.create_task(self._loop())
            logger.info("Notification worker started (concurrency %d)", self._concurrency)

    async def stop(self) -> None:
        """Stop claiming new jobs and wait for in-flight ones to finish."""
        self._stopping.set()
        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        logger.info("Notification worker stopped")

    def _job_done(self, task: asyncio.Task) -> None:
        self._in_flight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Notification job task crashed", exc_info=exc)

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            claimed = 0
            free = self._concurrency - len(self._in_flight)
            if free > 0:
                try:
                    jobs = await self._queue.claim(free)
                except Exception as exc:
                    logger.error("Failed to claim notification jobs: %s", exc)
                    jobs = []
                for job in jobs:
                    task = asyncio.create_task(self.run_job(job))
                    self._in_flight.add(task)
                    task.add_done_callback(self._job_done)
                claimed = len(jobs)
            if claimed == 0:
                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=self._poll_interval)
                except asyncio.TimeoutError:
                    pass
