"""Tests for the channel provider clients against mocked HTTP transports."""

import json

import httpx

from src.clients.chat import SlackChatProvider, TeamsChatProvider
from src.clients.sendgrid_email import SendGridEmailProvider
from src.clients.twilio_sms import TwilioSmsProvider
from src.schemas.notifications import ChannelMessage, ChannelType
from src.services.provider_registry import ProviderRegistry
from tests.fakes import FakeProvider


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


MESSAGE = ChannelMessage(
    to="+15551234567",
    subject="Visitor arrived",
    text="Grace is here",
    metadata={"job_id": "job-1", "scope_key": None},
)


async def test_twilio_success_returns_sid():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = request.content.decode()
        return httpx.Response(201, json={"sid": "SM123"})

    provider = TwilioSmsProvider("AC1", "token", "+15550000000", client=_client(handler))
    result = await provider.send(MESSAGE)

    assert result.success is True
    assert result.message_id == "SM123"
    assert result.provider == "twilio"
    assert captured["url"].endswith("/Accounts/AC1/Messages.json")
    assert "Body=Grace+is+here" in captured["body"]


async def test_twilio_gateway_error_is_a_failure_result():
    provider = TwilioSmsProvider(
        "AC1", "token", "+15550000000",
        client=_client(lambda request: httpx.Response(400, json={"message": "invalid To"})),
    )
    result = await provider.send(MESSAGE)

    assert result.success is False
    assert "400" in result.error


async def test_twilio_without_credentials_is_invalid():
    assert TwilioSmsProvider("", "", "", client=_client(lambda r: httpx.Response(200))).validate_config() is False


async def test_sendgrid_uses_text_when_no_html():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["auth"] = request.headers["authorization"]
        captured["payload"] = json.loads(request.content)
        return httpx.Response(202, headers={"X-Message-Id": "msg-9"})

    provider = SendGridEmailProvider("key", "noreply@example.com", client=_client(handler))
    result = await provider.send(MESSAGE.model_copy(update={"to": "a@b.com"}))

    assert result.success is True
    assert result.message_id == "msg-9"
    assert captured["auth"] == "Bearer key"
    payload = captured["payload"]
    assert payload["personalizations"][0]["to"][0]["email"] == "a@b.com"
    assert payload["content"][1] == {"type": "text/html", "value": "Grace is here"}
    assert payload["custom_args"] == {"job_id": "job-1"}


async def test_sendgrid_outage_does_not_raise():
    provider = SendGridEmailProvider(
        "key", "noreply@example.com", client=_client(lambda request: httpx.Response(503))
    )
    result = await provider.send(MESSAGE)
    assert result.success is False


async def test_slack_timeout_is_a_failure_result():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    provider = SlackChatProvider("https://hooks.slack.test/x", client=_client(handler))
    result = await provider.send(MESSAGE.model_copy(update={"to": "#front-desk"}))

    assert result.success is False
    assert "timed out" in result.error


async def test_slack_posts_to_recipient_channel():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.update(json.loads(request.content))
        return httpx.Response(200, text="ok")

    provider = SlackChatProvider("https://hooks.slack.test/x", channel="#general", client=_client(handler))
    result = await provider.send(MESSAGE.model_copy(update={"to": "U123"}))

    assert result.success is True
    assert captured["channel"] == "U123"
    assert captured["text"] == "Grace is here"


async def test_teams_builds_message_card():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.update(json.loads(request.content))
        return httpx.Response(200, text="1")

    provider = TeamsChatProvider("https://teams.test/hook", client=_client(handler))
    result = await provider.send(MESSAGE)

    assert result.success is True
    assert captured["@type"] == "MessageCard"
    assert captured["sections"][0]["activityTitle"] == "Visitor arrived"


def test_registry_excludes_invalid_provider():
    registry = ProviderRegistry()
    assert registry.register(FakeProvider("broken-sms", ChannelType.SMS, configured=False)) is False
    assert registry.resolve(ChannelType.SMS) is None
    assert registry.providers() == []


def test_registry_first_registered_wins_for_shared_channel():
    registry = ProviderRegistry()
    first = FakeProvider("sendgrid", ChannelType.EMAIL)
    second = FakeProvider("ses", ChannelType.EMAIL)
    registry.register(first)
    registry.register(second)

    assert registry.resolve(ChannelType.EMAIL) is first
    assert [p.name for p in registry.providers()] == ["sendgrid", "ses"]
