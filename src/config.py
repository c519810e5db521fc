"""Configuration for the visitor notification service."""

import json

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./notifications.db"
    api_prefix: str = "/api/v1"
    debug: bool = False

    # Twilio (SMS)
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""

    # SendGrid (email)
    sendgrid_api_key: str = ""
    sendgrid_from_email: str = ""
    sendgrid_from_name: str = "VMS Notifications"

    # Slack incoming webhook (chat)
    slack_webhook_url: str = ""
    slack_channel: str = ""
    slack_username: str = "VMS Bot"
    slack_icon_emoji: str = ":office:"

    # Microsoft Teams incoming webhook (chat)
    teams_webhook_url: str = ""
    teams_theme_color: str = "0076D7"

    # Used when a chat notification has no personal handle
    default_chat_destination: str = "#general"
    provider_timeout_seconds: float = 10.0

    # Ordered channel types per event type
    fallback_chains: dict[str, list[str]] = {
        "HOST_ALERT": ["SMS", "EMAIL", "CHAT"],
        "VISITOR_CONFIRMATION": ["EMAIL", "SMS"],
        "CHECKOUT_ALERT": ["EMAIL", "SMS"],
    }

    # Rate limits
    rate_limit_max_per_hour: int = 5
    rate_limit_max_per_day: int = 20
    rate_limit_max_per_scope: int = 3

    # Whole-chain retry policy for notification jobs
    notification_max_retries: int = 3
    notification_initial_delay_seconds: float = 1.0
    notification_backoff_multiplier: float = 2.0
    notification_max_delay_seconds: float = 3600.0

    # Worker
    worker_concurrency: int = 4
    worker_poll_interval_seconds: float = 1.0
    worker_lease_seconds: float = 300.0

    # Outbound webhooks
    webhook_max_retries: int = 3
    webhook_initial_delay_seconds: float = 1.0
    webhook_backoff_multiplier: float = 2.0
    webhook_timeout_seconds: float = 30.0
    webhook_user_agent: str = "VMS-Webhook/1.0"
    webhook_nonce_store_max_size: int = 10000

    model_config = {"env_prefix": "VMS_NOTIF_"}

    @field_validator("fallback_chains", mode="before")
    @classmethod
    def _parse_fallback_chains(cls, value: object) -> object:
        if value in (None, ""):
            return {}
        if isinstance(value, dict):
            return value
        if isinstance(value, str):
            return json.loads(value)
        raise TypeError("fallback_chains must be a dict or JSON object string")


settings = Settings()
