"""FastAPI application for the visitor notification service."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config import settings
from src.core import build_core
from src.database import close_db, init_db
from src.routes.notifications import router as notifications_router
from src.routes.webhooks import router as webhooks_router

logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("notification-service starting up")
    await init_db()
    core = build_core(settings)
    app.state.core = core
    core.worker.start()
    yield
    logger.info("notification-service shutting down")
    await core.close()
    await close_db()


app = FastAPI(
    title="Visitor Notification Service",
    description="Fallback-chain notifications and signed webhooks for visitor management events",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(notifications_router, prefix=settings.api_prefix)
app.include_router(webhooks_router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "notification-service"}
