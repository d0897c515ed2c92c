"""
Tier-gated daily usage metering
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Union

from pydantic import BaseModel

from echoecho.core.exceptions.entitlement import QuotaExceededError, UpstreamQuotaError
from echoecho.core.logger.logger import get_logger
from echoecho.core.service.entitlement.lifecycle import SubscriptionLifecycleManager
from echoecho.core.service.entitlement.models import (
    EntitlementConfig,
    UsageCategory,
    UsageStatus,
    UserTier,
)
from echoecho.core.service.entitlement.validators import normalize_address, parse_usage_category
from echoecho.infra.repository.entitlement_store import EntitlementStore

logger = get_logger(__name__)


class UsageTicket(BaseModel):
    """Proof of an admitted call; `charged` is False for unlimited tiers"""
    wallet_address: str
    category: UsageCategory
    tier: UserTier
    limit: Optional[int] = None
    used: int = 0
    charged: bool = False
    released: bool = False


class UsageMeteringGate:
    """
    Enforces per-tier daily quotas.

    The counter is incremented before the metered call runs and rolled back if
    the upstream provider rejects the call for quota/billing reasons. Under
    concurrency the limit can be overshot by the number of in-flight requests.
    """

    def __init__(
        self,
        lifecycle: SubscriptionLifecycleManager,
        store: EntitlementStore,
        config: EntitlementConfig
    ):
        self.lifecycle = lifecycle
        self.store = store
        self.config = config

    async def check(self, wallet_address: str, category: Union[UsageCategory, str]) -> UsageStatus:
        """Current quota position without consuming anything"""
        user_key = normalize_address(wallet_address)
        category = parse_usage_category(category)
        status = await self.lifecycle.reconcile_user_status(user_key)
        limit = self.config.limit_for(category, status.tier)
        used = await self.store.get_api_calls_used(user_key, category)
        return UsageStatus(
            tier=status.tier,
            category=category,
            limit=limit,
            used=used,
            remaining=None if limit is None else max(limit - used, 0)
        )

    async def acquire(self, wallet_address: str, category: Union[UsageCategory, str]) -> UsageTicket:
        """
        Admit one call or raise QuotaExceededError without touching the counter
        """
        user_key = normalize_address(wallet_address)
        category = parse_usage_category(category)
        status = await self.lifecycle.reconcile_user_status(user_key)
        limit = self.config.limit_for(category, status.tier)

        if limit is None:
            return UsageTicket(wallet_address=user_key, category=category, tier=status.tier)

        used = await self.store.get_api_calls_used(user_key, category)
        if used >= limit:
            logger.info(
                "Usage quota exceeded",
                extra={
                    "wallet_address": user_key,
                    "category": category.value,
                    "tier": status.tier.value,
                    "limit": limit,
                    "used": used
                }
            )
            raise QuotaExceededError(tier=status.tier.value, category=category.value, limit=limit, used=used)

        used = await self.store.increment_api_calls(user_key, category)
        return UsageTicket(
            wallet_address=user_key,
            category=category,
            tier=status.tier,
            limit=limit,
            used=used,
            charged=True
        )

    async def release(self, ticket: UsageTicket) -> UsageTicket:
        """Give back the call counted by `ticket`; safe to call more than once"""
        if not ticket.charged or ticket.released:
            return ticket
        used = await self.store.rollback_api_calls(ticket.wallet_address, ticket.category)
        return ticket.model_copy(update={"used": used, "released": True})

    @asynccontextmanager
    async def metered(self, wallet_address: str, category: Union[UsageCategory, str]) -> AsyncIterator[UsageTicket]:
        """
        Run a metered upstream call:

            async with gate.metered(address, UsageCategory.AI):
                result = await provider.analyze(text)

        An UpstreamQuotaError from the body rolls the count back before propagating.
        """
        ticket = await self.acquire(wallet_address, category)
        try:
            yield ticket
        except UpstreamQuotaError as e:
            logger.warning(
                "Upstream quota error, rolling back usage",
                extra={
                    "wallet_address": ticket.wallet_address,
                    "category": ticket.category.value,
                    "provider": e.provider
                }
            )
            await self.release(ticket)
            raise
