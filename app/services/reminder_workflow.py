"""
Renewal reminder workflow.

One run per subscription, started when the subscription is created. The run
fetches the subscription once, then walks the reminder offsets from the
furthest to the closest: it sleeps until each reminder date and sends that
reminder only if it wakes on the same (UTC) calendar day. Offsets whose day
has already gone by are skipped.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional

from app.core.clock import Clock, now_utc, parse_datetime
from app.core.logger import get_logger
from app.services.notification_service import ReminderNotifier
from app.services.subscription_service import SubscriptionRepository
from app.services.workflow_engine import WorkflowContext
from app.templates.reminder_templates import reminder_label

logger = get_logger(__name__)

WORKFLOW_NAME = "send-reminders"
REMINDER_DAYS = (7, 5, 3, 1)


def sleep_step_name(days_before: int) -> str:
    return f"Reminder {days_before} days before"


def same_day(left: datetime, right: datetime) -> bool:
    return left.date() == right.date()


class ReminderWorkflow:
    """Workflow handler registered under ``send-reminders``."""

    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        notifier: ReminderNotifier,
        clock: Clock = now_utc,
        days: Iterable[int] = REMINDER_DAYS,
        recheck_status: bool = False,
    ):
        self.subscriptions = subscriptions
        self.notifier = notifier
        self.clock = clock
        self.days = sorted(set(days), reverse=True)
        self.recheck_status = recheck_status

    async def __call__(self, ctx: WorkflowContext) -> None:
        subscription_id = ctx.request_payload.get("subscriptionId")

        subscription = await ctx.run(
            "get subscription",
            lambda: self.subscriptions.find_with_user(subscription_id),
        )

        if not subscription or subscription.get("status") != "active":
            logger.info("Subscription %s is missing or not active. Stopping workflow.", subscription_id)
            return

        renewal_date = parse_datetime(subscription["renewal_date"])
        # decided on the first pass only; a 0-day offset wakes at renewal_date itself
        renews_ahead = await ctx.run(
            "check renewal date",
            lambda: renewal_date >= self.clock(),
        )
        if not renews_ahead:
            logger.info("Renewal date has passed for subscription %s. Stopping workflow.", subscription_id)
            return

        for days_before in self.days:
            reminder_date = renewal_date - timedelta(days=days_before)

            if reminder_date > self.clock():
                logger.info(
                    "Sleeping until %s reminder for subscription %s at %s",
                    sleep_step_name(days_before),
                    subscription_id,
                    reminder_date.isoformat(),
                )
                await ctx.sleep_until(sleep_step_name(days_before), reminder_date)

            if not same_day(self.clock(), reminder_date):
                logger.debug("Skipping %s reminder for subscription %s", days_before, subscription_id)
                continue

            if self.recheck_status:
                current = await ctx.run(
                    f"refresh subscription {days_before} days before",
                    lambda: self.subscriptions.find_with_user(subscription_id),
                )
                if not current or current.get("status") != "active":
                    logger.info("Subscription %s is no longer active. Stopping workflow.", subscription_id)
                    return
                subscription = current

            await self._trigger_reminder(ctx, reminder_label(days_before), subscription)

    async def _trigger_reminder(self, ctx: WorkflowContext, label: str, subscription: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        logger.info("Triggering %s for subscription %s", label, subscription.get("id"))
        user = subscription.get("user") or {}
        return await ctx.run(
            label,
            lambda: self.notifier.send_reminder(
                to=user.get("email"),
                label=label,
                subscription=subscription,
            ),
        )
