"""
Subscription reminder sweep.

Runs periodically from an external scheduler (cron hitting the admin endpoint).
Sends 3-day and 1-day expiry reminders and proactively expires subscriptions
whose end date has passed. The core never depends on this job: expiry is also
discovered lazily on the next reconciliation.
"""

from datetime import datetime, timezone

import httpx

from echoecho.core.logger.logger import get_logger
from echoecho.core.service.entitlement.models import Clock, ReminderKind, Subscription, SweepSummary, utc_now
from echoecho.core.service.notifications.notifier import MiniAppNotifier
from echoecho.infra.repository.entitlement_store import EntitlementStore

logger = get_logger(__name__)

REMINDER_MESSAGES = {
    ReminderKind.THREE_DAYS: "Your EchoEcho {tier} plan expires in 3 days. Renew to keep your perks.",
    ReminderKind.ONE_DAY: "Your EchoEcho {tier} plan expires tomorrow. Renew now to avoid interruption.",
}


class SubscriptionReminderSweep:
    """Sends expiry reminders and expires past-due subscriptions"""

    def __init__(self, store: EntitlementStore, notifier: MiniAppNotifier, clock: Clock = utc_now):
        self.store = store
        self.notifier = notifier
        self._clock = clock

    def _now(self) -> datetime:
        return self._clock().astimezone(timezone.utc)

    async def run(self) -> SweepSummary:
        """
        Execute the sweep.

        Returns:
            Summary of reminders sent, subscriptions expired and per-item errors
        """
        summary = SweepSummary(started_at=self._now())
        logger.info("Starting subscription reminder sweep")

        # Most urgent first; a subscription gets at most one reminder per run
        handled = set()
        for kind in sorted(ReminderKind, key=lambda k: k.days_ahead):
            for subscription in await self.store.get_expiring_subscriptions(kind.days_ahead):
                if subscription.id in handled:
                    continue
                handled.add(subscription.id)
                try:
                    if await self._remind(subscription, kind):
                        summary.reminders_sent += 1
                except httpx.HTTPError as e:
                    error_msg = f"Failed to send {kind.value} reminder for {subscription.id}: {e}"
                    logger.error(error_msg, extra={"subscription_id": subscription.id})
                    summary.errors.append(error_msg)

        now = self._now()
        for subscription in await self.store.get_all_active_subscriptions():
            if subscription.is_expired_at(now):
                if await self.store.expire_subscription(subscription.id):
                    summary.subscriptions_expired += 1

        summary.completed_at = self._now()
        logger.info("Subscription reminder sweep completed", extra=summary.model_dump(mode="json"))
        return summary

    async def _remind(self, subscription: Subscription, kind: ReminderKind) -> bool:
        if subscription.reminder_sent_at(kind) is not None:
            return False
        # Already past due; the expiry pass handles it
        if subscription.is_expired_at(self._now()):
            return False

        user = await self.store.get_user(subscription.wallet_address)
        sent = False
        if user and user.notification_token and user.notification_url:
            sent = await self.notifier.send(
                user,
                title="Subscription expiring",
                body=REMINDER_MESSAGES[kind].format(tier=subscription.tier.value),
                notification_id=f"reminder-{kind.value}-{subscription.id}"
            )

        await self.store.mark_reminder_sent(subscription.id, kind)
        # A later run must not send the 3-day notice after the 1-day one
        if kind is ReminderKind.ONE_DAY and subscription.reminder_sent_at(ReminderKind.THREE_DAYS) is None:
            await self.store.mark_reminder_sent(subscription.id, ReminderKind.THREE_DAYS)
        return sent
