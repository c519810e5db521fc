"""Pydantic models for notification dispatch."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NotificationEventType(str, Enum):
    HOST_ALERT = "HOST_ALERT"
    VISITOR_CONFIRMATION = "VISITOR_CONFIRMATION"
    CHECKOUT_ALERT = "CHECKOUT_ALERT"


class ChannelType(str, Enum):
    SMS = "SMS"
    EMAIL = "EMAIL"
    CHAT = "CHAT"


class EmitSkipReason(str, Enum):
    NO_FALLBACK_CONFIGURED = "no_fallback_configured"
    RATE_LIMITED = "rate_limited"


class ChannelMessage(BaseModel):
    """A rendered, channel-ready message. Built fresh for every delivery attempt."""

    model_config = ConfigDict(frozen=True)

    to: str
    subject: Optional[str] = None
    text: str
    html: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class DeliveryResult(BaseModel):
    success: bool
    provider: str
    message_id: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)


class RenderedMessage(BaseModel):
    subject: Optional[str] = None
    text: str
    html: Optional[str] = None


class NotificationTemplate(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    event_type: NotificationEventType
    channel_type: ChannelType
    subject: Optional[str] = None
    text_template: str
    html_template: Optional[str] = None
    variables: list[str] = Field(default_factory=list)
    is_default: bool = False


class NotificationJob(BaseModel):
    """A unit of dispatch work, mutated in place while the fallback chain is walked."""

    id: str
    event_type: NotificationEventType
    template_data: dict[str, Any] = Field(default_factory=dict)
    fallback_chain: list[ChannelType]
    current_index: int = 0
    retry_count: int = 0
    max_retries: int = 0
    subject_key: str
    scope_key: Optional[str] = None
    org_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    scheduled_at: Optional[datetime] = None

    @field_validator("fallback_chain")
    @classmethod
    def _chain_not_empty(cls, value: list[ChannelType]) -> list[ChannelType]:
        if not value:
            raise ValueError("fallback_chain must contain at least one channel")
        return value


class ChainStep(BaseModel):
    """One position of the fallback chain as it was walked."""

    index: int
    channel_type: ChannelType
    provider: Optional[str] = None
    success: bool = False
    error: Optional[str] = None


class DispatchOutcome(BaseModel):
    job_id: str
    result: DeliveryResult
    steps: list[ChainStep] = Field(default_factory=list)


class EmitRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event_type: NotificationEventType
    context: dict[str, Any] = Field(default_factory=dict)
    subject_key: str
    scope_key: Optional[str] = None
    org_id: Optional[str] = None
    scheduled_at: Optional[datetime] = None


class EmitResponse(BaseModel):
    status: str
    job_id: Optional[str] = None
    reason: Optional[EmitSkipReason] = None


class ProviderInfo(BaseModel):
    name: str
    channel_type: ChannelType
