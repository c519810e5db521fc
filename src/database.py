"""Database engine and session factory backing the durable job queue."""

import logging
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.config import settings

logger = logging.getLogger(__name__)

_SQLITE_PREFIX = "sqlite+aiosqlite:///"


def _ensure_sqlite_directory(database_url: str) -> None:
    if not database_url.startswith(_SQLITE_PREFIX):
        return
    sqlite_path = database_url.removeprefix(_SQLITE_PREFIX)
    if sqlite_path in {"", ":memory:"}:
        return
    parent = Path(sqlite_path).parent
    if str(parent) != ".":
        parent.mkdir(parents=True, exist_ok=True)


def _set_sqlite_pragmas(dbapi_connection, _connection_record) -> None:
    # WAL lets the worker poll while the API enqueues.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA synchronous=NORMAL;")
    cursor.execute("PRAGMA busy_timeout=30000;")
    cursor.close()


def make_engine(database_url: str) -> AsyncEngine:
    if "sqlite" not in database_url:
        return create_async_engine(database_url, echo=settings.debug)
    _ensure_sqlite_directory(database_url)
    sqlite_engine = create_async_engine(database_url, echo=settings.debug, connect_args={"timeout": 30})
    event.listen(sqlite_engine.sync_engine, "connect", _set_sqlite_pragmas)
    return sqlite_engine


engine = make_engine(settings.database_url)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Job queue tables ready")


async def close_db() -> None:
    await engine.dispose()
