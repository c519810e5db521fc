"""SendGrid v3 mail client (Bearer token)."""

from __future__ import annotations

import logging

import httpx

from src.clients.base import ChannelProvider
from src.config import settings
from src.schemas.notifications import ChannelMessage, ChannelType, DeliveryResult

logger = logging.getLogger(__name__)

_SENDGRID_MAIL_SEND = "https://api.sendgrid.com/v3/mail/send"


class SendGridEmailProvider(ChannelProvider):
    name = "sendgrid"
    channel_type = ChannelType.EMAIL

    def __init__(
        self,
        api_key: str | None = None,
        from_email: str | None = None,
        from_name: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(client)
        self._api_key = settings.sendgrid_api_key if api_key is None else api_key
        self._from_email = settings.sendgrid_from_email if from_email is None else from_email
        self._from_name = from_name or settings.sendgrid_from_name

    def validate_config(self) -> bool:
        return bool(self._api_key and self._from_email)

    def _payload(self, message: ChannelMessage) -> dict:
        return {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {"email": self._from_email, "name": self._from_name},
            "subject": message.subject or "Notification",
            "content": [
                {"type": "text/plain", "value": message.text},
                {"type": "text/html", "value": message.html or message.text},
            ],
            "custom_args": {k: str(v) for k, v in message.metadata.items() if v is not None},
        }

    async def send(self, message: ChannelMessage) -> DeliveryResult:
        if not self.validate_config():
            return self._failed("Invalid SendGrid configuration")
        try:
            resp = await self._client.post(
                _SENDGRID_MAIL_SEND,
                json=self._payload(message),
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("SendGrid send to %s failed: %s", message.to, exc)
            return self._failed(str(exc) or exc.__class__.__name__)
        message_id = resp.headers.get("x-message-id", "unknown")
        logger.info("SendGrid email accepted: %s", message_id)
        return self._ok(message_id)
