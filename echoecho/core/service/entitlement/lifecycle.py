"""
Subscription lifecycle: lazy expiry, effective tier reconciliation and
payment-to-entitlement activation.
"""

from datetime import datetime, timezone
from typing import Union

from echoecho.core.exceptions.entitlement import DuplicatePaymentError, PaymentMismatchError
from echoecho.core.logger.logger import get_logger
from echoecho.core.service.entitlement.models import (
    Clock,
    EntitlementConfig,
    ReconciledStatus,
    Subscription,
    UserTier,
    utc_now,
)
from echoecho.core.service.entitlement.validators import (
    normalize_address,
    parse_paid_tier,
    validate_amount,
    validate_tx_hash,
)
from echoecho.core.service.payments.verifier import VerifiedPayment
from echoecho.infra.repository.entitlement_store import EntitlementStore

logger = get_logger(__name__)


class SubscriptionLifecycleManager:
    """Computes the effective tier for a wallet and owns subscription activation"""

    def __init__(self, store: EntitlementStore, config: EntitlementConfig, clock: Clock = utc_now):
        self.store = store
        self.config = config
        self._clock = clock

    def _now(self) -> datetime:
        return self._clock().astimezone(timezone.utc)

    async def reconcile_user_status(self, wallet_address: str) -> ReconciledStatus:
        """
        Reconcile the stored tier against the active subscription and wall-clock expiry.

        Must run before any tier-gated decision; a stored tier is never trusted on its own.
        Expiry is discovered here on access rather than by a background job.
        """
        user_key = normalize_address(wallet_address)
        subscription = await self.store.get_user_subscription(user_key)

        if subscription is None:
            user = await self.store.get_user(user_key)
            if user and user.tier != UserTier.FREE:
                logger.warning(
                    "Paid tier without active subscription, resetting to free",
                    extra={"wallet_address": user_key, "stored_tier": user.tier.value}
                )
                await self.store.update_user_tier(user_key, UserTier.FREE)
            return ReconciledStatus(tier=UserTier.FREE, subscription=None)

        if subscription.is_expired_at(self._now()):
            await self.store.expire_subscription(subscription.id)
            await self.store.update_user_tier(user_key, UserTier.FREE)
            logger.info(
                "Subscription lazily expired",
                extra={
                    "wallet_address": user_key,
                    "subscription_id": subscription.id,
                    "expired_at": subscription.expires_at.isoformat()
                }
            )
            return ReconciledStatus(tier=UserTier.FREE, subscription=None)

        user = await self.store.get_user(user_key)
        if user is None:
            user = await self.store.create_user(user_key)
        if user.tier != subscription.tier:
            # A crash between the subscription insert and the tier update leaves the user behind
            logger.warning(
                "User tier out of sync with active subscription, healing",
                extra={
                    "wallet_address": user_key,
                    "stored_tier": user.tier.value,
                    "subscription_tier": subscription.tier.value
                }
            )
            user = await self.store.update_user_tier(user_key, subscription.tier)

        return ReconciledStatus(tier=user.tier, subscription=subscription)

    async def activate_subscription(
        self,
        wallet_address: str,
        tier: Union[UserTier, str],
        transaction_hash: str,
        payment: VerifiedPayment
    ) -> Subscription:
        """
        Link a verified on-chain payment to a new subscription.

        Raises:
            PaymentMismatchError: payer, payee or amount do not match the purchase
            InvalidAmountError: the configured tier price is not a positive amount
            DuplicatePaymentError: the transaction already paid for a subscription
        """
        user_key = normalize_address(wallet_address)
        paid_tier = parse_paid_tier(tier)
        validate_tx_hash(transaction_hash)
        price = validate_amount(self.config.price_for(paid_tier))

        mismatch = {}
        if payment.tx_hash.lower() != transaction_hash.lower():
            mismatch["transaction_hash"] = payment.tx_hash
        if payment.payer.lower() != user_key:
            mismatch["payer"] = payment.payer
        if self.config.subscription_wallet and payment.payee.lower() != self.config.subscription_wallet:
            mismatch["payee"] = payment.payee
        if payment.amount_usdc < price:
            mismatch["amount_usdc"] = str(payment.amount_usdc)
        if mismatch:
            logger.warning(
                "Verified payment does not match subscription purchase",
                extra={"wallet_address": user_key, "tier": paid_tier.value, "mismatch": mismatch}
            )
            raise PaymentMismatchError(details={"mismatch": mismatch, "required_amount_usdc": str(price)})

        if (
            await self.store.get_payment_by_tx_hash(transaction_hash)
            or await self.store.get_subscription_by_tx_hash(transaction_hash)
        ):
            raise DuplicatePaymentError(transaction_hash)

        subscription = await self.store.create_subscription(user_key, paid_tier, transaction_hash)
        await self.store.record_payment(user_key, transaction_hash, price, paid_tier)
        return subscription

    def is_admin(self, wallet_address: str) -> bool:
        return self.config.is_admin(wallet_address)
