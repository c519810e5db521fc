"""Twilio Programmable Messaging client (Basic auth, form-encoded)."""

from __future__ import annotations

import logging

import httpx

from src.clients.base import ChannelProvider
from src.config import settings
from src.schemas.notifications import ChannelMessage, ChannelType, DeliveryResult

logger = logging.getLogger(__name__)

_TWILIO_API = "https://api.twilio.com/2010-04-01"


class TwilioSmsProvider(ChannelProvider):
    name = "twilio"
    channel_type = ChannelType.SMS

    def __init__(
        self,
        account_sid: str | None = None,
        auth_token: str | None = None,
        from_number: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(client)
        self._account_sid = settings.twilio_account_sid if account_sid is None else account_sid
        self._auth_token = settings.twilio_auth_token if auth_token is None else auth_token
        self._from = settings.twilio_from_number if from_number is None else from_number

    def validate_config(self) -> bool:
        return bool(self._account_sid and self._auth_token and self._from)

    async def send(self, message: ChannelMessage) -> DeliveryResult:
        if not self.validate_config():
            return self._failed("Invalid Twilio configuration")
        url = f"{_TWILIO_API}/Accounts/{self._account_sid}/Messages.json"
        try:
            resp = await self._client.post(
                url,
                data={"To": message.to, "From": self._from, "Body": message.text},
                auth=(self._account_sid, self._auth_token),
            )
            resp.raise_for_status()
            sid = resp.json().get("sid")
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Twilio send to %s failed: %s", message.to, exc)
            return self._failed(str(exc) or exc.__class__.__name__)
        logger.info("Twilio SMS queued: %s", sid)
        return self._ok(sid)
