"""Admin-only endpoints: revenue, broadcast notifications and the reminder sweep."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from echoecho.api.models.request_models import BroadcastRequest, BroadcastResponse, RevenueResponse
from echoecho.core.dependencies import (
    get_entitlement_store,
    get_notifier,
    get_reminder_sweep,
    require_admin,
)
from echoecho.core.logger.logger import get_logger
from echoecho.core.service.entitlement.models import SweepSummary
from echoecho.core.service.entitlement.reminders import SubscriptionReminderSweep
from echoecho.core.service.notifications.notifier import MiniAppNotifier
from echoecho.infra.repository.entitlement_store import EntitlementStore

logger = get_logger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Admin access required"}
    }
)


@router.get("/revenue", response_model=RevenueResponse)
async def get_revenue(
    admin_wallet: str = Depends(require_admin),
    store: EntitlementStore = Depends(get_entitlement_store)
) -> RevenueResponse:
    total = await store.get_total_subscription_revenue()
    return RevenueResponse(total_revenue_usdc=total, generated_at=datetime.now(timezone.utc))


@router.post("/notifications/broadcast", response_model=BroadcastResponse)
async def broadcast_notification(
    request: BroadcastRequest,
    admin_wallet: str = Depends(require_admin),
    store: EntitlementStore = Depends(get_entitlement_store),
    notifier: MiniAppNotifier = Depends(get_notifier)
) -> BroadcastResponse:
    """Push a notification to every user who enabled notifications"""
    users = await store.get_all_users_with_notifications()
    sent = await notifier.send_to_all(users, request.title, request.body)

    logger.info(
        "Admin broadcast sent",
        extra={"admin_wallet": admin_wallet, "sent": sent, "total": len(users)}
    )
    return BroadcastResponse(sent=sent, total=len(users))


@router.post("/subscriptions/sweep", response_model=SweepSummary)
async def run_subscription_sweep(
    admin_wallet: str = Depends(require_admin),
    sweep: SubscriptionReminderSweep = Depends(get_reminder_sweep)
) -> SweepSummary:
    """Send expiry reminders and expire past-due subscriptions; called by cron"""
    return await sweep.run()
