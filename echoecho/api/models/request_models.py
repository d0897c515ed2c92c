"""
Request and response DTOs for API endpoints.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, validator

from echoecho.core.service.entitlement.models import (
    Echo,
    EchoType,
    Nft,
    Subscription,
    UsageStatus,
    User,
    UserTier,
)


class CreateSubscriptionRequest(BaseModel):
    """Request model for activating a paid subscription."""

    tier: str = Field(..., description="Paid tier to activate (premium, pro)")
    transaction_hash: str = Field(
        ...,
        min_length=1,
        description="Hash of the USDC transfer paying for the subscription"
    )

    @validator('tier')
    def normalize_tier(cls, v):
        return v.strip().lower()

    @validator('transaction_hash')
    def strip_transaction_hash(cls, v):
        return v.strip()


class EchoRequest(BaseModel):
    """Request model for recording an echo."""

    cast_id: str = Field(..., min_length=1, max_length=256, description="Echoed cast identifier")
    type: EchoType = Field(EchoType.STANDARD, description="Echo type")
    source: str = Field("farcaster", min_length=1, max_length=64, description="Source platform")


class NotificationDetailsRequest(BaseModel):
    """Mini app notification details handed out by the Farcaster client."""

    token: str = Field(..., min_length=1, description="Notification token")
    url: str = Field(..., min_length=1, description="Notification endpoint URL")

    @validator('url')
    def validate_url(cls, v):
        if not v.startswith(("https://", "http://")):
            raise ValueError("Notification URL must be an http(s) URL")
        return v


class BroadcastRequest(BaseModel):
    """Admin broadcast notification."""

    title: str = Field(..., min_length=1, max_length=32)
    body: str = Field(..., min_length=1, max_length=128)


class SubscriptionStatusResponse(BaseModel):
    tier: UserTier
    subscription: Optional[Subscription] = None
    is_admin: bool = False


class MeResponse(BaseModel):
    user: User
    tier: UserTier
    subscription: Optional[Subscription] = None
    is_admin: bool = False


class PlansResponse(BaseModel):
    pricing: Dict[str, Decimal]
    features: Dict[str, Dict[str, object]]
    subscription_wallet: Optional[str] = None


class SubscriptionCreatedResponse(BaseModel):
    success: bool = True
    subscription: Subscription
    tier: UserTier


class UsageResponse(BaseModel):
    usage: UsageStatus
    unlimited: bool


class EchoStats(BaseModel):
    total_echoes: int = 0
    counter_narratives: int = 0
    nfts_collected: int = 0


class EchoHistoryResponse(BaseModel):
    echoes: List[Echo]
    nfts: List[Nft]
    stats: EchoStats


class BroadcastResponse(BaseModel):
    sent: int
    total: int


class RevenueResponse(BaseModel):
    total_revenue_usdc: Decimal
    generated_at: datetime
