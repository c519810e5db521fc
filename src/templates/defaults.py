"""Built-in notification templates registered at startup."""

from __future__ import annotations

from src.schemas.notifications import ChannelType, NotificationEventType, NotificationTemplate
from src.templates.engine import TemplateEngine


def _mjml_email(title: str, accent: str, greeting: str, lead: str, details_title: str,
                details: list[str], closing: str, signature: str) -> str:
    detail_lines = "<br/>\n              ".join(f"&bull; {line}" for line in details)
    return f"""<mjml>
  <mj-head>
    <mj-title>{title}</mj-title>
    <mj-attributes>
      <mj-all font-family="Arial, sans-serif" />
    </mj-attributes>
  </mj-head>
  <mj-body background-color="#f4f4f4">
    <mj-section background-color="#ffffff" padding="20px">
      <mj-column>
        <mj-text font-size="24px" color="{accent}" font-weight="bold" align="center">{title}</mj-text>
        <mj-divider border-color="#e5e7eb" />
        <mj-text font-size="16px" color="#374151">{greeting}</mj-text>
        <mj-text font-size="16px" color="#374151">{lead}</mj-text>
        <mj-text font-size="14px" color="#6b7280" font-weight="bold">{details_title}</mj-text>
        <mj-text font-size="14px" color="#374151">
              {detail_lines}
        </mj-text>
        <mj-text font-size="16px" color="#374151">{closing}</mj-text>
        <mj-text font-size="14px" color="#6b7280">Best regards,<br/>{signature}</mj-text>
      </mj-column>
    </mj-section>
  </mj-body>
</mjml>"""


HOST_ALERT_SMS = NotificationTemplate(
    id="host_alert_sms",
    name="Host Alert SMS",
    event_type=NotificationEventType.HOST_ALERT,
    channel_type=ChannelType.SMS,
    text_template=(
        "Visitor Alert: {{ visitor.firstName }} {{ visitor.lastName }} from {{ visitor.company }} "
        "has checked in to see you. Badge: {{ visit.badgeNumber }}. Location: {{ location.name }}."
    ),
    variables=["visitor.firstName", "visitor.lastName", "visitor.company", "visit.badgeNumber", "location.name"],
    is_default=True,
)

HOST_ALERT_EMAIL = NotificationTemplate(
    id="host_alert_email",
    name="Host Alert Email",
    event_type=NotificationEventType.HOST_ALERT,
    channel_type=ChannelType.EMAIL,
    subject="Visitor {{ visitor.firstName }} {{ visitor.lastName }} has arrived",
    text_template="""Hello {{ host.firstName }},

{{ visitor.firstName }} {{ visitor.lastName }} from {{ visitor.company }} has checked in and is here to see you.

Visit Details:
- Purpose: {{ visit.purpose }}
- Check-in Time: {{ visit.checkInTime }}
- Badge Number: {{ visit.badgeNumber }}
- Location: {{ location.name }}

Please meet them at the reception area.

Best regards,
Visitor Management System""",
    html_template=_mjml_email(
        title="Visitor Alert",
        accent="#2563EB",
        greeting="Hello {{ host.firstName }},",
        lead=(
            "<strong>{{ visitor.firstName }} {{ visitor.lastName }}</strong> from "
            "<strong>{{ visitor.company }}</strong> has checked in and is here to see you."
        ),
        details_title="Visit Details:",
        details=[
            "Purpose: {{ visit.purpose }}",
            "Check-in Time: {{ visit.checkInTime }}",
            "Badge Number: {{ visit.badgeNumber }}",
            "Location: {{ location.name }}",
        ],
        closing="Please meet them at the reception area.",
        signature="Visitor Management System",
    ),
    variables=[
        "host.firstName", "visitor.firstName", "visitor.lastName", "visitor.company",
        "visit.purpose", "visit.checkInTime", "visit.badgeNumber", "location.name",
    ],
    is_default=True,
)

HOST_ALERT_CHAT = NotificationTemplate(
    id="host_alert_slack",
    name="Host Alert Slack",
    event_type=NotificationEventType.HOST_ALERT,
    channel_type=ChannelType.CHAT,
    text_template="""*Visitor Alert*
{{ visitor.firstName }} {{ visitor.lastName }} from *{{ visitor.company }}* has checked in to see you.
Location: {{ location.name }}
Badge: {{ visit.badgeNumber }}
Time: {{ visit.checkInTime }}""",
    variables=["visitor.firstName", "visitor.lastName", "visitor.company", "location.name",
               "visit.badgeNumber", "visit.checkInTime"],
    is_default=True,
)

VISITOR_CONFIRMATION_SMS = NotificationTemplate(
    id="visitor_confirmation_sms",
    name="Visitor Confirmation SMS",
    event_type=NotificationEventType.VISITOR_CONFIRMATION,
    channel_type=ChannelType.SMS,
    text_template=(
        "Welcome to {{ organization.name }}! Your visit is confirmed for {{ visit.scheduledStart }}. "
        "Host: {{ host.firstName }} {{ host.lastName }}. QR Code: {{ visit.qrCode }}"
    ),
    variables=["organization.name", "visit.scheduledStart", "host.firstName", "host.lastName", "visit.qrCode"],
    is_default=True,
)

VISITOR_CONFIRMATION_EMAIL = NotificationTemplate(
    id="visitor_confirmation_email",
    name="Visitor Confirmation Email",
    event_type=NotificationEventType.VISITOR_CONFIRMATION,
    channel_type=ChannelType.EMAIL,
    subject="Visit Confirmation - {{ organization.name }}",
    text_template="""Dear {{ visitor.firstName }},

Your visit to {{ organization.name }} has been confirmed!

Visit Details:
- Date & Time: {{ visit.scheduledStart }}
- Host: {{ host.firstName }} {{ host.lastName }}
- Location: {{ location.name }}
- Address: {{ location.address }}

Please use this QR code for quick check-in: {{ visit.qrCode }}

We look forward to seeing you!

Best regards,
{{ organization.name }}""",
    html_template=_mjml_email(
        title="Visit Confirmed",
        accent="#10b981",
        greeting="Dear {{ visitor.firstName }},",
        lead="Your visit to <strong>{{ organization.name }}</strong> has been confirmed!",
        details_title="Visit Details:",
        details=[
            "Date &amp; Time: {{ visit.scheduledStart }}",
            "Host: {{ host.firstName }} {{ host.lastName }}",
            "Location: {{ location.name }}",
            "Address: {{ location.address }}",
            "QR Code: {{ visit.qrCode }}",
        ],
        closing="We look forward to seeing you!",
        signature="{{ organization.name }}",
    ),
    variables=[
        "visitor.firstName", "organization.name", "visit.scheduledStart", "host.firstName",
        "host.lastName", "location.name", "location.address", "visit.qrCode",
    ],
    is_default=True,
)

CHECKOUT_ALERT_SMS = NotificationTemplate(
    id="checkout_alert_sms",
    name="Checkout Alert SMS",
    event_type=NotificationEventType.CHECKOUT_ALERT,
    channel_type=ChannelType.SMS,
    text_template=(
        "{{ visitor.firstName }} {{ visitor.lastName }} has checked out. "
        "Visit duration: {{ visit.duration }}. Thank you for hosting!"
    ),
    variables=["visitor.firstName", "visitor.lastName", "visit.duration"],
    is_default=True,
)

CHECKOUT_ALERT_EMAIL = NotificationTemplate(
    id="checkout_alert_email",
    name="Checkout Alert Email",
    event_type=NotificationEventType.CHECKOUT_ALERT,
    channel_type=ChannelType.EMAIL,
    subject="Visitor {{ visitor.firstName }} {{ visitor.lastName }} has checked out",
    text_template="""Hello {{ host.firstName }},

{{ visitor.firstName }} {{ visitor.lastName }} from {{ visitor.company }} has checked out.

Visit Summary:
- Check-in: {{ visit.checkInTime }}
- Check-out: {{ visit.checkOutTime }}
- Duration: {{ visit.duration }}
- Purpose: {{ visit.purpose }}

Thank you for hosting!

Best regards,
Visitor Management System""",
    html_template=_mjml_email(
        title="Visitor Checked Out",
        accent="#f59e0b",
        greeting="Hello {{ host.firstName }},",
        lead=(
            "<strong>{{ visitor.firstName }} {{ visitor.lastName }}</strong> from "
            "<strong>{{ visitor.company }}</strong> has checked out."
        ),
        details_title="Visit Summary:",
        details=[
            "Check-in: {{ visit.checkInTime }}",
            "Check-out: {{ visit.checkOutTime }}",
            "Duration: {{ visit.duration }}",
            "Purpose: {{ visit.purpose }}",
        ],
        closing="Thank you for hosting!",
        signature="Visitor Management System",
    ),
    variables=[
        "host.firstName", "visitor.firstName", "visitor.lastName", "visitor.company",
        "visit.checkInTime", "visit.checkOutTime", "visit.duration", "visit.purpose",
    ],
    is_default=True,
)

DEFAULT_TEMPLATES = [
    HOST_ALERT_SMS,
    HOST_ALERT_EMAIL,
    HOST_ALERT_CHAT,
    VISITOR_CONFIRMATION_SMS,
    VISITOR_CONFIRMATION_EMAIL,
    CHECKOUT_ALERT_SMS,
    CHECKOUT_ALERT_EMAIL,
]


def load_default_templates(engine: TemplateEngine) -> TemplateEngine:
    for template in DEFAULT_TEMPLATES:
        engine.register_template(template)
    return engine
