from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from app.core.clock import parse_datetime

REMINDER_BODY_TEMPLATE = """
<div style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto;">
  <p>Hello <strong>{user_name}</strong>,</p>
  <p>Your <strong>{subscription_name}</strong> subscription is set to renew on
  <strong>{renewal_date}</strong> ({days_left_text}).</p>
  <table style="width: 100%; border-collapse: collapse; margin: 16px 0;">
    <tr><td><strong>Plan:</strong></td><td>{plan_name}</td></tr>
    <tr><td><strong>Price:</strong></td><td>{price}</td></tr>
    <tr><td><strong>Payment Method:</strong></td><td>{payment_method}</td></tr>
  </table>
  <p>If you'd like to make changes or cancel your subscription, please visit your account settings before the renewal date.</p>
  <p>Thanks,<br><strong>Subscription Tracker</strong></p>
</div>
"""


def reminder_label(days_before: int) -> str:
    return f"{days_before} days before reminder"


def _days_left_text(days_left: int) -> str:
    if days_left == 0:
        return "today"
    if days_left == 1:
        return "tomorrow"
    return f"in {days_left} days"


@dataclass(frozen=True)
class ReminderTemplate:
    label: str
    days_left: int

    def subject(self, info: Dict[str, str]) -> str:
        if self.days_left <= 1:
            return f"Final Reminder: {info['subscription_name']} renews {_days_left_text(self.days_left)}!"
        return f"Reminder: Your {info['subscription_name']} subscription renews in {self.days_left} days"

    def body(self, info: Dict[str, str]) -> str:
        safe = {key: html.escape(value) for key, value in info.items()}
        return REMINDER_BODY_TEMPLATE.format(days_left_text=_days_left_text(self.days_left), **safe)


def build_templates(days: Iterable[int]) -> Dict[str, ReminderTemplate]:
    return {reminder_label(day): ReminderTemplate(label=reminder_label(day), days_left=day) for day in days}


def mail_info(subscription: Dict[str, Any]) -> Dict[str, str]:
    """Flatten a subscription snapshot into the values the template renders."""
    user = subscription.get("user") or {}
    renewal = parse_datetime(subscription["renewal_date"])
    price = subscription.get("price")
    frequency: Optional[str] = subscription.get("frequency")
    return {
        "user_name": user.get("username") or user.get("name") or "there",
        "subscription_name": subscription.get("name") or "",
        "renewal_date": f"{renewal:%b} {renewal.day}, {renewal.year}",
        "plan_name": subscription.get("name") or "",
        "price": f"{subscription.get('currency') or 'USD'} {price} ({frequency})",
        "payment_method": subscription.get("payment_method") or "",
    }
