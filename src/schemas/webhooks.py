"""Pydantic models for outbound webhook subscriptions and payloads."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from src.config import settings


class RetryPolicy(BaseModel):
    """Exponential backoff parameters shared by notification jobs and webhooks."""

    max_retries: int = Field(default=3, ge=0)
    initial_delay_seconds: float = Field(default=1.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    max_delay_seconds: Optional[float] = None


def default_webhook_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_retries=settings.webhook_max_retries,
        initial_delay_seconds=settings.webhook_initial_delay_seconds,
        backoff_multiplier=settings.webhook_backoff_multiplier,
    )


class WebhookConfig(BaseModel):
    """Subscription settings supplied by the management API."""

    model_config = ConfigDict(extra="ignore")

    org_id: str
    url: HttpUrl
    secret: str
    events: list[str] = Field(default_factory=list)
    is_active: bool = True
    retry: RetryPolicy = Field(default_factory=default_webhook_retry_policy)


class WebhookSubscription(BaseModel):
    id: str
    org_id: str
    url: str
    secret: str
    subscribed_events: frozenset[str] = frozenset()
    is_active: bool = True
    retry: RetryPolicy = Field(default_factory=default_webhook_retry_policy)

    # Observability only; never consulted when selecting targets.
    last_success_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None
    failure_count: int = 0

    def accepts(self, event: str) -> bool:
        return self.is_active and event in self.subscribed_events


class WebhookEnvelope(BaseModel):
    """Body posted to every subscriber of one broadcast."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    event: str
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: str
    org_id: str = Field(alias="orgId")
    nonce: str


class WebhookDeliveryAttempt(BaseModel):
    """In-flight record of one POST; lives only for the duration of the retry loop."""

    subscription_id: str
    attempt: int
    signature: str
    nonce: str
    status_code: Optional[int] = None
    success: bool = False
    error: Optional[str] = None


class WebhookSubscriptionView(BaseModel):
    """Subscription as exposed over the API, without its secret."""

    id: str
    org_id: str
    url: str
    events: list[str]
    is_active: bool
    last_success_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None
    failure_count: int = 0


class BroadcastRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: str
    data: dict[str, Any] = Field(default_factory=dict)
    org_id: str
    target_ids: Optional[list[str]] = None


class BroadcastResponse(BaseModel):
    status: str = "accepted"
    deliveries: int = 0
