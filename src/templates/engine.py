"""Template registry and renderer (Jinja2, MJML for rich email bodies)."""

from __future__ import annotations

import logging
from typing import Any, Callable

from jinja2 import Environment, StrictUndefined, Template, TemplateError
from mjml import mjml2html

from src.exceptions import RenderError, TemplateNotFound
from src.schemas.notifications import (
    ChannelType,
    NotificationEventType,
    NotificationTemplate,
    RenderedMessage,
)

logger = logging.getLogger(__name__)

_MISSING = object()


def lookup_path(context: dict[str, Any], path: str) -> Any:
    """Resolve a dotted variable name such as ``visitor.firstName``."""
    current: Any = context
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def missing_variables(template: NotificationTemplate, context: dict[str, Any]) -> list[str]:
    missing = []
    for name in template.variables:
        value = lookup_path(context, name)
        if value is _MISSING or value is None:
            missing.append(name)
    return missing


class TemplateEngine:
    """Holds templates keyed by id, in registration order.

    Rich bodies containing ``<mjml>`` are compiled to HTML after substitution.
    A compile failure never blocks delivery: the substituted markup is sent as-is
    and a warning is logged.
    """

    def __init__(self, markup_compiler: Callable[[str], str] = mjml2html) -> None:
        self._templates: dict[str, NotificationTemplate] = {}
        self._compiled: dict[str, tuple[Template | None, Template, Template | None]] = {}
        self._text_env = Environment(undefined=StrictUndefined, autoescape=False, keep_trailing_newline=True)
        self._html_env = Environment(undefined=StrictUndefined, autoescape=True)
        self._markup_compiler = markup_compiler

    def register_template(self, template: NotificationTemplate) -> None:
        subject = self._text_env.from_string(template.subject) if template.subject else None
        text = self._text_env.from_string(template.text_template)
        html = self._html_env.from_string(template.html_template) if template.html_template else None
        self._templates[template.id] = template
        self._compiled[template.id] = (subject, text, html)
        logger.debug("Registered template %s (%s/%s)", template.id, template.event_type.value, template.channel_type.value)

    def get_template(self, template_id: str) -> NotificationTemplate | None:
        return self._templates.get(template_id)

    def get_templates_by_type(
        self,
        event_type: NotificationEventType,
        channel_type: ChannelType | None = None,
    ) -> list[NotificationTemplate]:
        return [
            t
            for t in self._templates.values()
            if t.event_type == event_type and (channel_type is None or t.channel_type == channel_type)
        ]

    def select_template(
        self,
        event_type: NotificationEventType,
        channel_type: ChannelType,
    ) -> NotificationTemplate | None:
        """The default template for the pair, else the first registered, else None."""
        candidates = self.get_templates_by_type(event_type, channel_type)
        for template in candidates:
            if template.is_default:
                return template
        return candidates[0] if candidates else None

    def render(self, template_id: str, context: dict[str, Any]) -> RenderedMessage:
        template = self._templates.get(template_id)
        if template is None:
            raise TemplateNotFound(template_id)

        missing = missing_variables(template, context)
        if missing:
            raise RenderError(template_id, f"missing variables {', '.join(missing)}", missing)

        subject_tpl, text_tpl, html_tpl = self._compiled[template_id]
        try:
            subject = subject_tpl.render(context) if subject_tpl else None
            text = text_tpl.render(context)
            html = html_tpl.render(context) if html_tpl else None
        except TemplateError as exc:
            raise RenderError(template_id, str(exc)) from exc

        if html is not None and "<mjml>" in html:
            html = self._compile_markup(template_id, html)

        return RenderedMessage(subject=subject, text=text, html=html)

    def _compile_markup(self, template_id: str, markup: str) -> str:
        try:
            return self._markup_compiler(markup)
        except Exception as exc:
            logger.warning("MJML compilation failed for template %s, sending raw markup: %s", template_id, exc)
            return markup

    def __len__(self) -> int:
        return len(self._templates)
