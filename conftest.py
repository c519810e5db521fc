"""Test bootstrap: point the job queue at a throwaway database before src is imported."""

import os

os.environ["VMS_NOTIF_DATABASE_URL"] = "sqlite+aiosqlite://"
# Real provider credentials in the environment must never reach a test run.
for _name in list(os.environ):
    if _name.startswith(("VMS_NOTIF_TWILIO_", "VMS_NOTIF_SENDGRID_", "VMS_NOTIF_SLACK_", "VMS_NOTIF_TEAMS_")):
        del os.environ[_name]

import pytest
from src.database import Base, engine
import src.models.notification_job  # noqa: F401  registers notification_jobs on Base.metadata


@pytest.fixture(autouse=True)
async def _job_tables():
    """Every test starts with an empty notification_jobs table."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
