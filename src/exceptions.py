"""Error taxonomy for notification dispatch and webhook delivery."""

from __future__ import annotations


class NotificationError(Exception):
    """Base class for dispatch errors."""


class TemplateNotFound(NotificationError):
    def __init__(self, template_id: str) -> None:
        super().__init__(f"Template not found: {template_id}")
        self.template_id = template_id


class RenderError(NotificationError):
    """A template could not be rendered against the supplied context."""

    def __init__(self, template_id: str, message: str, missing: list[str] | None = None) -> None:
        super().__init__(f"Cannot render template {template_id}: {message}")
        self.template_id = template_id
        self.missing = missing or []


class TemplateMissing(NotificationError):
    """No template is registered for an (event type, channel) pair.

    This is a configuration error for the event type, so the job is not retried.
    """

    def __init__(self, event_type: str, channel_type: str) -> None:
        super().__init__(f"No template found for {event_type} and {channel_type}")
        self.event_type = event_type
        self.channel_type = channel_type


class AllProvidersFailed(NotificationError):
    def __init__(self, job_id: str, errors: list[str]) -> None:
        detail = "; ".join(errors) if errors else "no provider attempted"
        super().__init__(f"All providers in fallback chain failed for job {job_id}: {detail}")
        self.job_id = job_id
        self.errors = errors


class WebhookNotFound(NotificationError):
    def __init__(self, webhook_id: str) -> None:
        super().__init__(f"Webhook not found: {webhook_id}")
        self.webhook_id = webhook_id
