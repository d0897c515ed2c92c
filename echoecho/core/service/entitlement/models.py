"""
Entitlement domain models: tiers, subscriptions, payments, usage and activity records
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UserTier(str, Enum):
    """User tier/subscription level"""
    FREE = "free"
    PREMIUM = "premium"
    PRO = "pro"


PAID_TIERS = (UserTier.PREMIUM, UserTier.PRO)


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class ReminderKind(str, Enum):
    """Expiry reminder windows"""
    THREE_DAYS = "3d"
    ONE_DAY = "1d"

    @property
    def days_ahead(self) -> int:
        return 3 if self is ReminderKind.THREE_DAYS else 1


class UsageCategory(str, Enum):
    """Metered endpoint categories"""
    TRENDING = "trending"
    AI = "ai"


class EchoType(str, Enum):
    STANDARD = "standard"
    COUNTER_NARRATIVE = "counter_narrative"


class NftRarity(str, Enum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class User(BaseModel):
    """User keyed by lower-cased wallet address"""
    id: str
    wallet_address: str
    farcaster_fid: Optional[str] = None
    email: Optional[str] = None
    tier: UserTier = UserTier.FREE
    created_at: datetime
    updated_at: Optional[datetime] = None
    notification_token: Optional[str] = None
    notification_url: Optional[str] = None


class UserInfo(BaseModel):
    """Optional attributes supplied when a user is first created"""
    farcaster_fid: Optional[str] = None
    email: Optional[str] = None
    tier: Optional[str] = None


class Subscription(BaseModel):
    """One paid entitlement period"""
    id: str
    user_id: Optional[str] = None
    wallet_address: str
    tier: UserTier
    status: SubscriptionStatus
    created_at: datetime
    expires_at: datetime
    next_billing_at: Optional[datetime] = None
    auto_renew: bool = True
    last_reminder_3d_at: Optional[datetime] = None
    last_reminder_1d_at: Optional[datetime] = None
    transaction_hash: str

    def is_expired_at(self, now: datetime) -> bool:
        return now > self.expires_at

    def reminder_sent_at(self, kind: ReminderKind) -> Optional[datetime]:
        if kind is ReminderKind.THREE_DAYS:
            return self.last_reminder_3d_at
        return self.last_reminder_1d_at


class Payment(BaseModel):
    """Append-only confirmed payment"""
    id: str
    wallet_address: str
    tx_hash: str
    amount_usdc: Decimal
    tier: UserTier
    confirmed_at: datetime


class Echo(BaseModel):
    id: str
    user_address: str
    cast_id: str
    type: EchoType = EchoType.STANDARD
    source: str = "farcaster"
    echoed_at: datetime


class Nft(BaseModel):
    id: str
    user_address: str
    token_id: str
    title: Optional[str] = None
    rarity: NftRarity = NftRarity.COMMON
    minted_at: datetime
    image: Optional[str] = None


class ReconciledStatus(BaseModel):
    """Effective tier after lazy expiry has been applied"""
    tier: UserTier
    subscription: Optional[Subscription] = None


class UsageStatus(BaseModel):
    tier: UserTier
    category: UsageCategory
    limit: Optional[int] = Field(None, description="Daily limit, None when unlimited")
    used: int = 0
    remaining: Optional[int] = None

    @property
    def unlimited(self) -> bool:
        return self.limit is None


# Feature matrix shown on the plans page
TIER_FEATURES: Dict[UserTier, Dict[str, object]] = {
    UserTier.FREE: {
        "daily_echoes": 5,
        "cross_platform": False,
        "nft_rarities": [NftRarity.COMMON.value],
        "analytics": False,
    },
    UserTier.PREMIUM: {
        "daily_echoes": "unlimited",
        "cross_platform": True,
        "nft_rarities": [NftRarity.COMMON.value, NftRarity.RARE.value, NftRarity.EPIC.value],
        "analytics": True,
    },
    UserTier.PRO: {
        "daily_echoes": "unlimited",
        "cross_platform": True,
        "nft_rarities": [r.value for r in NftRarity],
        "analytics": True,
    },
}


class EntitlementConfig(BaseModel):
    """Immutable entitlement configuration injected into the lifecycle manager and usage gate"""
    tier_duration_days: Dict[UserTier, int] = {UserTier.PREMIUM: 30, UserTier.PRO: 30}
    tier_prices_usdc: Dict[UserTier, Decimal] = {
        UserTier.PREMIUM: Decimal("7"),
        UserTier.PRO: Decimal("25"),
    }
    usage_limits: Dict[UsageCategory, Dict[UserTier, Optional[int]]] = {
        UsageCategory.TRENDING: {UserTier.FREE: 10, UserTier.PREMIUM: None, UserTier.PRO: None},
        UsageCategory.AI: {UserTier.FREE: 10, UserTier.PREMIUM: None, UserTier.PRO: None},
    }
    admin_wallets: FrozenSet[str] = frozenset()
    subscription_wallet: Optional[str] = None

    class Config:
        frozen = True

    def duration_for(self, tier: UserTier) -> timedelta:
        return timedelta(days=self.tier_duration_days.get(tier, 0))

    def price_for(self, tier: UserTier) -> Decimal:
        return self.tier_prices_usdc[tier]

    def limit_for(self, category: UsageCategory, tier: UserTier) -> Optional[int]:
        """Daily call limit for the tier, None means unlimited"""
        return self.usage_limits.get(category, {}).get(tier)

    def is_admin(self, wallet_address: str) -> bool:
        return wallet_address.lower() in self.admin_wallets

    @classmethod
    def from_settings(cls, settings) -> "EntitlementConfig":
        admin_wallets = frozenset(
            addr.strip().lower() for addr in settings.ADMIN_WALLETS.split(",") if addr.strip()
        )
        return cls(
            tier_duration_days={
                UserTier.PREMIUM: settings.PREMIUM_DURATION_DAYS,
                UserTier.PRO: settings.PRO_DURATION_DAYS,
            },
            tier_prices_usdc={
                UserTier.PREMIUM: Decimal(settings.PREMIUM_PRICE_USDC),
                UserTier.PRO: Decimal(settings.PRO_PRICE_USDC),
            },
            usage_limits={
                UsageCategory.TRENDING: {
                    UserTier.FREE: settings.FREE_TRENDING_DAILY_LIMIT,
                    UserTier.PREMIUM: None,
                    UserTier.PRO: None,
                },
                UsageCategory.AI: {
                    UserTier.FREE: settings.FREE_AI_DAILY_LIMIT,
                    UserTier.PREMIUM: None,
                    UserTier.PRO: None,
                },
            },
            admin_wallets=admin_wallets,
            subscription_wallet=settings.SUBSCRIPTION_WALLET.lower() if settings.SUBSCRIPTION_WALLET else None,
        )


class PlanCatalogue(BaseModel):
    pricing: Dict[str, Decimal]
    features: Dict[str, Dict[str, object]]


def build_plan_catalogue(config: EntitlementConfig) -> PlanCatalogue:
    return PlanCatalogue(
        pricing={tier.value: price for tier, price in config.tier_prices_usdc.items()},
        features={tier.value: features for tier, features in TIER_FEATURES.items()},
    )


class SweepSummary(BaseModel):
    started_at: datetime
    completed_at: Optional[datetime] = None
    reminders_sent: int = 0
    subscriptions_expired: int = 0
    errors: List[str] = Field(default_factory=list)
