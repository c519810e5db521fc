"""Durable, delay-capable job queue on top of the notification_jobs table.

Delivery is at-least-once. A claimed job holds a lease; if the worker that
claimed it dies, the job becomes claimable again once the lease runs out.
Scheduled jobs that have not been claimed yet can be cancelled.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import settings
from src.database import async_session
from src.models.notification_job import (
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_RUNNING,
    STATUS_SUCCEEDED,
    NotificationJobRecord,
)
from src.schemas.notifications import NotificationJob, utc_now

logger = logging.getLogger(__name__)


class JobQueue:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session,
        lease_seconds: float | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._lease = timedelta(
            seconds=settings.worker_lease_seconds if lease_seconds is None else lease_seconds
        )
        self._clock = clock

    async def enqueue(self, job: NotificationJob, delay_seconds: float = 0) -> str:
        run_at = self._clock() + timedelta(seconds=max(0.0, delay_seconds))
        async with self._session_factory() as db:
            db.add(
                NotificationJobRecord(
                    id=job.id,
                    event_type=job.event_type.value,
                    payload_json=job.model_dump_json(),
                    subject_key=job.subject_key,
                    status=STATUS_PENDING,
                    run_at=run_at,
                )
            )
            await db.commit()
        logger.debug("Enqueued job %s to run at %s", job.id, run_at.isoformat())
        return job.id

    async def claim(self, limit: int = 1) -> list[NotificationJob]:
        """Lease up to ``limit`` due jobs, oldest first, including jobs whose lease expired."""
        now = self._clock()
        stale_before = now - self._lease
        async with self._session_factory() as db:
            stmt = (
                select(NotificationJobRecord)
                .where(
                    or_(
                        and_(
                            NotificationJobRecord.status == STATUS_PENDING,
                            NotificationJobRecord.run_at <= now,
                        ),
                        and_(
                            NotificationJobRecord.status == STATUS_RUNNING,
                            NotificationJobRecord.locked_at < stale_before,
                        ),
                    )
                )
                .order_by(NotificationJobRecord.run_at)
                .limit(limit)
                .with_for_update(skip_locked=True)
            )
            records = (await db.execute(stmt)).scalars().all()
            for record in records:
                if record.status == STATUS_RUNNING:
                    logger.warning("Lease expired for job %s; redelivering", record.id)
                record.status = STATUS_RUNNING
                record.locked_at = now
                record.deliveries = (record.deliveries or 0) + 1
            await db.commit()
            return [NotificationJob.model_validate_json(r.payload_json) for r in records]

    async def complete(self, job_id: str) -> None:
        await self._finish(job_id, STATUS_SUCCEEDED, None)

    async def fail(self, job_id: str, error: str) -> None:
        await self._finish(job_id, STATUS_FAILED, error)

    async def _finish(self, job_id: str, status: str, error: str | None) -> None:
        async with self._session_factory() as db:
            await db.execute(
                update(NotificationJobRecord)
                .where(NotificationJobRecord.id == job_id)
                .values(status=status, locked_at=None, last_error=error, finished_at=self._clock())
            )
            await db.commit()

    async def retry_later(self, job: NotificationJob, delay_seconds: float, error: str) -> None:
        """Persist the mutated job and make it claimable again after ``delay_seconds``."""
        async with self._session_factory() as db:
            await db.execute(
                update(NotificationJobRecord)
                .where(NotificationJobRecord.id == job.id)
                .values(
                    payload_json=job.model_dump_json(),
                    status=STATUS_PENDING,
                    run_at=self._clock() + timedelta(seconds=max(0.0, delay_seconds)),
                    locked_at=None,
                    last_error=error[:500],
                )
            )
            await db.commit()

    async def cancel(self, job_id: str) -> bool:
        """Remove a job that has not been claimed yet. Returns False if it is running or gone."""
        async with self._session_factory() as db:
            result = await db.execute(
                delete(NotificationJobRecord).where(
                    NotificationJobRecord.id == job_id,
                    NotificationJobRecord.status == STATUS_PENDING,
                )
            )
            await db.commit()
        cancelled = result.rowcount > 0
        if cancelled:
            logger.info("Cancelled scheduled job %s", job_id)
        return cancelled

    async def get(self, job_id: str) -> NotificationJobRecord | None:
        async with self._session_factory() as db:
            return await db.get(NotificationJobRecord, job_id)
