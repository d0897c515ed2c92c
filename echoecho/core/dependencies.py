"""
FastAPI dependency injection functions.
Clean, maintainable dependency resolution using FastAPI's native DI system.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from echoecho.api.middleware.authentication.jwt_bearer import get_current_wallet
from echoecho.core.exceptions.entitlement import ForbiddenError
from echoecho.core.logger.logger import get_logger
from echoecho.core.service.entitlement.lifecycle import SubscriptionLifecycleManager
from echoecho.core.service.entitlement.models import Clock, EntitlementConfig, utc_now
from echoecho.core.service.entitlement.reminders import SubscriptionReminderSweep
from echoecho.core.service.entitlement.usage_gate import UsageMeteringGate
from echoecho.core.service.notifications.notifier import MiniAppNotifier
from echoecho.core.service.payments.verifier import PaymentVerifier, UsdcReceiptVerifier
from echoecho.infra.config.settings import get_settings
from echoecho.infra.database import get_async_session
from echoecho.infra.repository.activity_repository import ActivityRepository
from echoecho.infra.repository.entitlement_store import EntitlementStore

logger = get_logger(__name__)


def get_entitlement_config() -> EntitlementConfig:
    """Get entitlement configuration folded from settings."""
    return EntitlementConfig.from_settings(get_settings())


def get_clock() -> Clock:
    return utc_now


async def get_entitlement_store(
    session: AsyncSession = Depends(get_async_session),
    config: EntitlementConfig = Depends(get_entitlement_config),
    clock: Clock = Depends(get_clock)
) -> EntitlementStore:
    """Get entitlement store with SQLAlchemy session dependency."""
    return EntitlementStore(session, config=config, clock=clock)


async def get_activity_repository(
    session: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock)
) -> ActivityRepository:
    """Get echo/NFT activity repository with SQLAlchemy session dependency."""
    return ActivityRepository(session, clock=clock)


async def get_lifecycle_manager(
    store: EntitlementStore = Depends(get_entitlement_store),
    config: EntitlementConfig = Depends(get_entitlement_config),
    clock: Clock = Depends(get_clock)
) -> SubscriptionLifecycleManager:
    return SubscriptionLifecycleManager(store, config, clock=clock)


async def get_usage_gate(
    lifecycle: SubscriptionLifecycleManager = Depends(get_lifecycle_manager),
    store: EntitlementStore = Depends(get_entitlement_store),
    config: EntitlementConfig = Depends(get_entitlement_config)
) -> UsageMeteringGate:
    return UsageMeteringGate(lifecycle, store, config)


def get_payment_verifier() -> PaymentVerifier:
    """Get the on-chain payment oracle."""
    settings = get_settings()
    return UsdcReceiptVerifier(settings.BASE_RPC_URL, settings.USDC_CONTRACT_ADDRESS)


def get_notifier() -> MiniAppNotifier:
    return MiniAppNotifier()


async def get_reminder_sweep(
    store: EntitlementStore = Depends(get_entitlement_store),
    notifier: MiniAppNotifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock)
) -> SubscriptionReminderSweep:
    return SubscriptionReminderSweep(store, notifier, clock=clock)


async def require_admin(
    wallet_address: str = Depends(get_current_wallet),
    config: EntitlementConfig = Depends(get_entitlement_config)
) -> str:
    """Resolve the caller's wallet and reject anyone outside the admin list."""
    if not config.is_admin(wallet_address):
        logger.warning("Admin endpoint called by non-admin wallet", extra={"wallet_address": wallet_address})
        raise ForbiddenError()
    return wallet_address
