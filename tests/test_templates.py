"""Tests for the template registry and renderer."""

import logging

import pytest

from src.exceptions import RenderError, TemplateNotFound
from src.schemas.notifications import ChannelType, NotificationEventType, NotificationTemplate
from src.templates.defaults import DEFAULT_TEMPLATES, load_default_templates
from src.templates.engine import TemplateEngine

HOST_ALERT_CONTEXT = {
    "host": {"firstName": "Ada", "email": "ada@example.com"},
    "visitor": {"firstName": "Grace", "lastName": "Hopper", "company": "Navy"},
    "visit": {"purpose": "Demo", "checkInTime": "09:00", "badgeNumber": "B-17"},
    "location": {"name": "Lobby"},
}


def _template(**overrides) -> NotificationTemplate:
    defaults = {
        "id": "greeting",
        "name": "Greeting",
        "event_type": NotificationEventType.HOST_ALERT,
        "channel_type": ChannelType.EMAIL,
        "subject": "Hi {{ visitor.firstName }}",
        "text_template": "Hello {{ visitor.firstName }} from {{ visitor.company }}",
        "variables": ["visitor.firstName", "visitor.company"],
    }
    defaults.update(overrides)
    return NotificationTemplate(**defaults)


def _passthrough(markup: str) -> str:
    return f"<html>{len(markup)}</html>"


def test_render_with_all_variables_ignores_extras():
    engine = TemplateEngine(markup_compiler=_passthrough)
    engine.register_template(_template())

    rendered = engine.render(
        "greeting", {"visitor": {"firstName": "Grace", "company": "Navy", "unused": "x"}, "extra": 1}
    )

    assert rendered.subject == "Hi Grace"
    assert rendered.text == "Hello Grace from Navy"
    assert rendered.html is None


def test_missing_required_variable_raises_render_error():
    engine = TemplateEngine(markup_compiler=_passthrough)
    engine.register_template(_template())

    with pytest.raises(RenderError) as excinfo:
        engine.render("greeting", {"visitor": {"firstName": "Grace"}})

    assert excinfo.value.missing == ["visitor.company"]


def test_none_counts_as_missing():
    engine = TemplateEngine(markup_compiler=_passthrough)
    engine.register_template(_template())

    with pytest.raises(RenderError):
        engine.render("greeting", {"visitor": {"firstName": "Grace", "company": None}})


def test_unknown_template_raises_not_found():
    engine = TemplateEngine(markup_compiler=_passthrough)
    with pytest.raises(TemplateNotFound):
        engine.render("nope", {})


def test_default_flag_wins_over_registration_order():
    engine = TemplateEngine(markup_compiler=_passthrough)
    engine.register_template(_template(id="first"))
    engine.register_template(_template(id="preferred", is_default=True))

    assert engine.select_template(NotificationEventType.HOST_ALERT, ChannelType.EMAIL).id == "preferred"


def test_first_registered_used_when_no_default():
    engine = TemplateEngine(markup_compiler=_passthrough)
    engine.register_template(_template(id="first"))
    engine.register_template(_template(id="second"))

    assert engine.select_template(NotificationEventType.HOST_ALERT, ChannelType.EMAIL).id == "first"
    assert engine.select_template(NotificationEventType.HOST_ALERT, ChannelType.SMS) is None


def test_get_templates_by_type_filters_on_channel():
    engine = load_default_templates(TemplateEngine(markup_compiler=_passthrough))

    all_host = engine.get_templates_by_type(NotificationEventType.HOST_ALERT)
    email_host = engine.get_templates_by_type(NotificationEventType.HOST_ALERT, ChannelType.EMAIL)

    assert {t.channel_type for t in all_host} == {ChannelType.SMS, ChannelType.EMAIL, ChannelType.CHAT}
    assert [t.id for t in email_host] == ["host_alert_email"]


def test_mjml_body_is_compiled():
    seen: list[str] = []

    def compiler(markup: str) -> str:
        seen.append(markup)
        return "<html>compiled</html>"

    engine = load_default_templates(TemplateEngine(markup_compiler=compiler))
    rendered = engine.render("host_alert_email", HOST_ALERT_CONTEXT)

    assert rendered.html == "<html>compiled</html>"
    assert "Grace" in seen[0]
    assert rendered.subject == "Visitor Grace Hopper has arrived"


def test_mjml_compile_failure_falls_back_to_markup(caplog):
    def broken(markup: str) -> str:
        raise ValueError("unclosed mj-section")

    engine = load_default_templates(TemplateEngine(markup_compiler=broken))
    with caplog.at_level(logging.WARNING, logger="src.templates.engine"):
        rendered = engine.render("host_alert_email", HOST_ALERT_CONTEXT)

    assert rendered.html.startswith("<mjml>")
    assert "Grace" in rendered.html
    assert "MJML compilation failed" in caplog.text


def test_html_substitution_is_escaped():
    engine = TemplateEngine(markup_compiler=_passthrough)
    engine.register_template(_template(html_template="<p>{{ visitor.firstName }}</p>"))

    rendered = engine.render("greeting", {"visitor": {"firstName": "<b>x</b>", "company": "Navy"}})

    assert rendered.html == "<p>&lt;b&gt;x&lt;/b&gt;</p>"


def test_every_default_template_declares_what_it_uses():
    engine = load_default_templates(TemplateEngine(markup_compiler=_passthrough))
    for template in DEFAULT_TEMPLATES:
        context: dict = {}
        for name in template.variables:
            head, tail = name.split(".", 1)
            context.setdefault(head, {})[tail] = "value"
        rendered = engine.render(template.id, context)
        assert rendered.text


def test_default_compiler_renders_mjml_to_html(caplog):
    engine = load_default_templates(TemplateEngine())
    with caplog.at_level(logging.WARNING, logger="src.templates.engine"):
        rendered = engine.render("host_alert_email", HOST_ALERT_CONTEXT)

    assert not rendered.html.startswith("<mjml>")
    assert "<html" in rendered.html
    assert "Grace" in rendered.html
    assert "MJML compilation failed" not in caplog.text
