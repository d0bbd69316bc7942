"""
Tests for notification rendering and delivery.
"""
import smtplib
from datetime import date
from decimal import Decimal

import pytest

from budget_tracker.services.notification_service import NotificationSender, Recipient

RECIPIENT = Recipient(id=1, name="Uma <User>", email="uma@example.com")

ALERT_PAYLOAD = {
    "budget_id": 7,
    "budget_name": "Marketing",
    "currency": "USD",
    "amount": Decimal("1000"),
    "spent_amount": Decimal("850"),
    "remaining_amount": Decimal("150"),
    "usage_percentage": 85,
    "alert_threshold": 80,
}


def test_render_budget_alert():
    subject, body = NotificationSender().render(RECIPIENT, "budget_alert", ALERT_PAYLOAD)

    assert subject == "Budget Alert: Marketing"
    assert "85%" in body
    assert "$850.00" in body
    assert "Uma &lt;User&gt;" in body


def test_render_rejected_expense_includes_reason():
    payload = {
        "status": "rejected",
        "title": "Team dinner",
        "amount": Decimal("120"),
        "currency": "EUR",
        "date": date(2024, 3, 10),
        "rejection_reason": "Missing receipt",
    }

    subject, body = NotificationSender().render(RECIPIENT, "expense_reviewed", payload)

    assert subject == "Expense Rejected: Team dinner"
    assert "Missing receipt" in body
    assert "€120.00" in body


def test_unknown_template_kind():
    with pytest.raises(ValueError):
        NotificationSender().render(RECIPIENT, "weekly_digest", {})


def test_disabled_sender_does_not_deliver(monkeypatch):
    sender = NotificationSender(enabled=False)
    monkeypatch.setattr(sender, "_deliver", lambda *args: pytest.fail("should not deliver"))

    assert sender.send(RECIPIENT, "budget_alert", ALERT_PAYLOAD) is False


def test_enabled_sender_delivers(monkeypatch):
    sender = NotificationSender(enabled=True)
    delivered = []
    monkeypatch.setattr(sender, "_deliver", lambda to, subject, body: delivered.append((to, subject)))

    assert sender.send(RECIPIENT, "budget_alert", ALERT_PAYLOAD) is True
    assert delivered == [("uma@example.com", "Budget Alert: Marketing")]


def test_smtp_failure_is_reported_not_raised(monkeypatch):
    sender = NotificationSender(enabled=True)

    def fail(*args):
        raise smtplib.SMTPException("relay refused")

    monkeypatch.setattr(sender, "_deliver", fail)

    assert sender.send(RECIPIENT, "budget_alert", ALERT_PAYLOAD) is False
