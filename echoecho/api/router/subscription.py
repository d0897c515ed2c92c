"""Subscription plans, status and USDC-paid activation."""

from typing import Optional

from fastapi import APIRouter, Depends, status

from echoecho.api.middleware.authentication.jwt_bearer import get_current_wallet
from echoecho.api.models.request_models import (
    CreateSubscriptionRequest,
    PlansResponse,
    SubscriptionCreatedResponse,
    SubscriptionStatusResponse,
)
from echoecho.core.dependencies import get_entitlement_config, get_lifecycle_manager, get_payment_verifier
from echoecho.core.logger.logger import get_logger
from echoecho.core.service.entitlement.lifecycle import SubscriptionLifecycleManager
from echoecho.core.service.entitlement.models import EntitlementConfig, build_plan_catalogue
from echoecho.core.service.entitlement.validators import normalize_address, parse_paid_tier, validate_tx_hash
from echoecho.core.service.payments.verifier import PaymentVerifier, UsdcBalance

logger = get_logger(__name__)

router = APIRouter(
    prefix="/subscription",
    tags=["subscription"],
    responses={
        400: {"description": "Bad Request"},
        401: {"description": "Unauthorized"},
        409: {"description": "Payment already used"}
    }
)


@router.get("/plans", response_model=PlansResponse)
async def get_plans(config: EntitlementConfig = Depends(get_entitlement_config)) -> PlansResponse:
    """Price list and per-tier features"""
    catalogue = build_plan_catalogue(config)
    return PlansResponse(
        pricing=catalogue.pricing,
        features=catalogue.features,
        subscription_wallet=config.subscription_wallet
    )


@router.get("", response_model=SubscriptionStatusResponse)
async def get_subscription(
    wallet_address: str = Depends(get_current_wallet),
    lifecycle: SubscriptionLifecycleManager = Depends(get_lifecycle_manager)
) -> SubscriptionStatusResponse:
    reconciled = await lifecycle.reconcile_user_status(wallet_address)
    return SubscriptionStatusResponse(
        tier=reconciled.tier,
        subscription=reconciled.subscription,
        is_admin=lifecycle.is_admin(wallet_address)
    )


@router.post("", response_model=SubscriptionCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_subscription(
    request: CreateSubscriptionRequest,
    wallet_address: str = Depends(get_current_wallet),
    lifecycle: SubscriptionLifecycleManager = Depends(get_lifecycle_manager),
    verifier: PaymentVerifier = Depends(get_payment_verifier)
) -> SubscriptionCreatedResponse:
    """
    Activate a paid subscription.

    The transaction must be a successful USDC transfer from the caller to the
    subscription wallet covering the tier price. Each transaction pays once.
    """
    tier = parse_paid_tier(request.tier)
    tx_hash = validate_tx_hash(request.transaction_hash)

    logger.info(
        "Subscription purchase requested",
        extra={"wallet_address": wallet_address, "tier": tier.value, "transaction_hash": tx_hash}
    )

    payment = await verifier.verify(tx_hash)
    subscription = await lifecycle.activate_subscription(wallet_address, tier, tx_hash, payment)

    return SubscriptionCreatedResponse(subscription=subscription, tier=subscription.tier)


@router.get("/usdc-balance", response_model=UsdcBalance)
async def get_usdc_balance(
    address: Optional[str] = None,
    wallet_address: str = Depends(get_current_wallet),
    verifier: PaymentVerifier = Depends(get_payment_verifier)
) -> UsdcBalance:
    """USDC balance of `address`, defaulting to the caller's wallet"""
    target = normalize_address(address) if address else wallet_address
    return await verifier.get_usdc_balance(target)
