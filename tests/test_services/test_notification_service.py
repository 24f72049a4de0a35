from __future__ import annotations

import pytest

from app.config import Settings
from app.core.exceptions import IntegrationError, ValidationError
from app.integrations.email import EmailService
from app.services.notification_service import ReminderNotifier
from app.templates.reminder_templates import build_templates, mail_info

SNAPSHOT = {
    "id": "sub-1",
    "name": "Netflix <Premium>",
    "price": 15.99,
    "currency": "USD",
    "frequency": "monthly",
    "payment_method": "Credit Card",
    "status": "active",
    "renewal_date": "2024-02-15T00:00:00+00:00",
    "user": {"username": "jane", "email": "jane@example.com"},
}


class FakeEmailService:
    def __init__(self):
        self.outbox = []

    async def send_email(self, to, subject, html_content, from_email=None, from_name=None):
        self.outbox.append({"to": to, "subject": subject, "html": html_content})
        return {"status": "sent", "to": to}


def test_mail_info_formats_snapshot():
    info = mail_info(SNAPSHOT)
    assert info["renewal_date"] == "Feb 15, 2024"
    assert info["price"] == "USD 15.99 (monthly)"
    assert info["user_name"] == "jane"


def test_templates_cover_every_threshold_label():
    templates = build_templates([7, 5, 3, 1])
    assert sorted(templates) == [
        "1 days before reminder",
        "3 days before reminder",
        "5 days before reminder",
        "7 days before reminder",
    ]
    info = mail_info(SNAPSHOT)
    assert "7 days" in templates["7 days before reminder"].subject(info)
    assert templates["1 days before reminder"].subject(info).startswith("Final Reminder")


@pytest.mark.asyncio
async def test_send_reminder_renders_and_escapes():
    email = FakeEmailService()
    notifier = ReminderNotifier(email)

    result = await notifier.send_reminder("jane@example.com", "3 days before reminder", SNAPSHOT)

    assert result["label"] == "3 days before reminder"
    sent = email.outbox[0]
    assert sent["to"] == "jane@example.com"
    assert "Netflix &lt;Premium&gt;" in sent["html"]
    assert "in 3 days" in sent["html"]


@pytest.mark.asyncio
async def test_send_reminder_validates_input():
    notifier = ReminderNotifier(FakeEmailService())
    with pytest.raises(ValidationError):
        await notifier.send_reminder("", "7 days before reminder", SNAPSHOT)
    with pytest.raises(ValidationError):
        await notifier.send_reminder("jane@example.com", "2 weeks before reminder", SNAPSHOT)


@pytest.mark.asyncio
async def test_unconfigured_email_service_raises_integration_error():
    service = EmailService(Settings(DATABASE_URL="sqlite://"))
    assert service.configured is False
    with pytest.raises(IntegrationError):
        await service.send_email("jane@example.com", "subject", "<p>hi</p>")
