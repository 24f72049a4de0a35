from __future__ import annotations

from typing import Any, Dict, Iterable

from app.core.exceptions import ValidationError
from app.core.logger import get_logger
from app.integrations.email import EmailService
from app.templates.reminder_templates import build_templates, mail_info

logger = get_logger(__name__)


class ReminderNotifier:
    """Renders renewal reminder emails and hands them to the mail transport."""

    def __init__(self, email_service: EmailService, days: Iterable[int] = (7, 5, 3, 1)):
        self.email_service = email_service
        self.templates = build_templates(days)

    async def send_reminder(self, to: str, label: str, subscription: Dict[str, Any]) -> Dict[str, Any]:
        if not to or not label or not subscription:
            raise ValidationError("Missing required fields")

        template = self.templates.get(label)
        if template is None:
            raise ValidationError(f"Invalid template type: {label}")

        info = mail_info(subscription)
        result = await self.email_service.send_email(
            to=to,
            subject=template.subject(info),
            html_content=template.body(info),
        )
        logger.info(
            "Reminder %r for subscription %s sent to %s",
            label,
            subscription.get("id"),
            to,
        )
        return {"label": label, **result}
