"""
Notification sender for budget alerts and expense review emails.

Delivery is fire-and-forget from the caller's point of view: failures are
logged and reported through the boolean return value, never raised.
"""
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from html import escape
from typing import Any, Dict, Tuple

from budget_tracker.core.config import Settings
from budget_tracker.services.fx_service import format_currency

logger = logging.getLogger(__name__)

TEMPLATE_KINDS = ("budget_alert", "expense_reviewed")


@dataclass(frozen=True)
class Recipient:
    """Detached copy of the user fields a notification needs."""
    id: int
    name: str
    email: str

    @classmethod
    def from_user(cls, user) -> "Recipient":
        return cls(id=user.id, name=user.name, email=user.email)


_WRAPPER = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: {color};">{heading}</h2>
  <p>Dear {name},</p>
  <p>{intro}</p>
  <div style="background-color: #f8f9fa; padding: 20px; border-radius: 5px; margin: 20px 0;">
    <h3>{details_title}</h3>
    <ul>
{items}
    </ul>
  </div>
  {footer}
  <p>Best regards,<br>{sender_name} Team</p>
</div>
"""


def _items(rows) -> str:
    return "\n".join(
        f"      <li><strong>{escape(label)}:</strong> {escape(str(value))}</li>"
        for label, value in rows
    )


class NotificationSender:
    """Renders HTML email bodies and delivers them over SMTP."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 587,
        user: str = "",
        password: str = "",
        from_name: str = "ERP Budget Tracker",
        use_tls: bool = True,
        enabled: bool = False,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_name = from_name
        self.use_tls = use_tls
        self.enabled = enabled

    @classmethod
    def from_settings(cls, settings: Settings) -> "NotificationSender":
        return cls(
            host=settings.EMAIL_HOST,
            port=settings.EMAIL_PORT,
            user=settings.EMAIL_USER,
            password=settings.EMAIL_PASSWORD,
            from_name=settings.EMAIL_FROM_NAME,
            use_tls=settings.EMAIL_USE_TLS,
            enabled=settings.EMAIL_ENABLED,
        )

    def render(self, recipient, template_kind: str, payload: Dict[str, Any]) -> Tuple[str, str]:
        """Return ``(subject, html_body)`` for a template kind."""
        if template_kind not in TEMPLATE_KINDS:
            raise ValueError(f"Unknown notification template: {template_kind}")
        renderer = getattr(self, f"_render_{template_kind}")
        return renderer(recipient, payload)

    def _render_budget_alert(self, recipient, payload):
        currency = payload["currency"]
        name = payload["budget_name"]
        subject = f"Budget Alert: {name}"
        body = _WRAPPER.format(
            color="#dc3545",
            heading="Budget Alert",
            name=escape(recipient.name),
            intro=(
                f"Your budget <strong>{escape(name)}</strong> has reached "
                f"{payload['usage_percentage']}% of its allocated amount."
            ),
            details_title="Budget Details:",
            items=_items([
                ("Budget Name", name),
                ("Total Amount", format_currency(payload["amount"], currency)),
                ("Spent Amount", format_currency(payload["spent_amount"], currency)),
                ("Remaining", format_currency(payload["remaining_amount"], currency)),
                ("Usage", f"{payload['usage_percentage']}%"),
            ]),
            footer="<p>Please review your expenses and consider adjusting your spending to stay within budget.</p>",
            sender_name=escape(self.from_name),
        )
        return subject, body

    def _render_expense_reviewed(self, recipient, payload):
        approved = payload["status"] == "approved"
        label = "Approved" if approved else "Rejected"
        rows = [
            ("Title", payload["title"]),
            ("Amount", format_currency(payload["amount"], payload["currency"])),
            ("Date", payload["date"].strftime("%a %b %d %Y")),
        ]
        if payload.get("rejection_reason"):
            rows.append(("Reason", payload["rejection_reason"]))
        body = _WRAPPER.format(
            color="#28a745" if approved else "#dc3545",
            heading=f"Expense {label}",
            name=escape(recipient.name),
            intro=f"Your expense submission has been {payload['status']}.",
            details_title="Expense Details:",
            items=_items(rows),
            footer="",
            sender_name=escape(self.from_name),
        )
        return f"Expense {label}: {payload['title']}", body

    def _deliver(self, to_address: str, subject: str, html_body: str):
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = f'"{self.from_name}" <{self.user}>'
        message["To"] = to_address
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html_body, subtype="html")

        with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.user:
                smtp.login(self.user, self.password)
            smtp.send_message(message)

    def send(self, recipient, template_kind: str, payload: Dict[str, Any]) -> bool:
        """Render and deliver a notification. Returns True when delivered."""
        subject, html_body = self.render(recipient, template_kind, payload)
        if not self.enabled:
            logger.info(f"Email disabled, not sending '{subject}' to {recipient.email}")
            return False
        try:
            self._deliver(recipient.email, subject, html_body)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Error sending {template_kind} email to {recipient.email}: {e}")
            return False
        logger.info(f"{template_kind} email sent to {recipient.email}")
        return True
